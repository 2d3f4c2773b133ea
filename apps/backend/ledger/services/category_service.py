from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .. import models
from ..errors import CategoryNotFound, ValidationError
from ..schemas import CategoryCreate, CategoryUpdate
from ..utils.normalization import clean_name, normalize_token


logger = logging.getLogger(__name__)


DEFAULT_CATEGORIES: tuple[tuple[str, models.CategoryType, str], ...] = (
    ("Food & Dining", models.CategoryType.EXPENSE, "#FF6384"),
    ("Shopping", models.CategoryType.EXPENSE, "#36A2EB"),
    ("Transport", models.CategoryType.EXPENSE, "#FFCE56"),
    ("Entertainment", models.CategoryType.EXPENSE, "#4BC0C0"),
    ("Bills & Utilities", models.CategoryType.EXPENSE, "#9966FF"),
    ("Healthcare", models.CategoryType.EXPENSE, "#FF9F40"),
    ("Investment", models.CategoryType.EXPENSE, "#FF6384"),
    ("Others", models.CategoryType.EXPENSE, "#C9CBCF"),
    ("Salary", models.CategoryType.INCOME, "#4CAF50"),
    ("Reimbursement", models.CategoryType.INCOME, "#8BC34A"),
    ("Refund", models.CategoryType.INCOME, "#CDDC39"),
    ("Interest", models.CategoryType.INCOME, "#00BCD4"),
)


class CategoryService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_all(self, *, type: Optional[models.CategoryType] = None) -> list[models.Category]:
        q = select(models.Category)
        if type is not None:
            q = q.where(models.Category.type == type)
        return list(self.db.execute(q.order_by(models.Category.type, models.Category.name)).scalars())

    def get_by_id(self, category_id: int) -> models.Category:
        row = self.db.get(models.Category, category_id)
        if row is None:
            raise CategoryNotFound(category_id, field="category_id")
        return row

    def _check_name(self, name: str, type: models.CategoryType, *, exclude_id: Optional[int] = None) -> str:
        name = clean_name(name)
        if not 2 <= len(name) <= 30:
            raise ValidationError("Category name must be 2-30 characters", field="name")
        token = normalize_token(name)
        for row in self.get_all(type=type):
            if row.id != exclude_id and normalize_token(row.name) == token:
                raise ValidationError(f"Category '{row.name}' already exists", field="name")
        return name

    def create(self, payload: CategoryCreate) -> models.Category:
        row = models.Category(
            name=self._check_name(payload.name, payload.type),
            type=payload.type,
            color_code=payload.color_code.upper(),
            is_default=False,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def update(self, category_id: int, payload: CategoryUpdate) -> models.Category:
        row = self.get_by_id(category_id)
        patch = payload.model_dump(exclude_unset=True)
        if not patch:
            return row
        if row.is_default:
            raise ValidationError("Default categories cannot be modified", field="category_id")
        if patch.get("name") is not None:
            row.name = self._check_name(patch["name"], row.type, exclude_id=row.id)
        if patch.get("color_code") is not None:
            row.color_code = patch["color_code"].upper()
        self.db.commit()
        self.db.refresh(row)
        return row

    def delete(self, category_id: int) -> None:
        """Remove a user category, detaching it from everything that references it."""
        row = self.get_by_id(category_id)
        if row.is_default:
            raise ValidationError("Default categories cannot be deleted", field="category_id")
        for model in (models.Transaction, models.RecurringRule, models.Budget):
            self.db.execute(
                update(model)
                .where(model.category_id == category_id)
                .values(category_id=None)
                .execution_options(synchronize_session=False)
            )
        self.db.delete(row)
        self.db.commit()
        logger.info("Category %s deleted", category_id)

    def ensure_defaults(self) -> list[models.Category]:
        """Insert any missing default categories. Idempotent by (type, name)."""
        existing = {(row.type, row.name) for row in self.get_all()}
        created: list[models.Category] = []
        for name, type_, color in DEFAULT_CATEGORIES:
            if (type_, name) in existing:
                continue
            row = models.Category(name=name, type=type_, color_code=color, is_default=True)
            self.db.add(row)
            created.append(row)
        if created:
            self.db.commit()
            logger.info("Seeded %d default categories", len(created))
        return created
