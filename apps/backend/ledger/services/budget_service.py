from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import models
from ..errors import BudgetNotFound, CategoryNotFound, ValidationError
from ..schemas import BudgetCreate, BudgetOut, BudgetSummaryOut, BudgetUpdate


class BudgetService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, budget_id: int) -> models.Budget:
        row = self.db.get(models.Budget, budget_id)
        if row is None:
            raise BudgetNotFound(budget_id, field="budget_id")
        return row

    def list_budgets(self, *, active_only: bool = False) -> list[models.Budget]:
        q = select(models.Budget)
        if active_only:
            q = q.where(models.Budget.is_active.is_(True))
        return list(self.db.execute(q.order_by(models.Budget.start_date.desc(), models.Budget.id)).scalars())

    def current(self, on: date) -> list[models.Budget]:
        """Active budgets whose window contains ``on``."""
        return list(
            self.db.execute(
                select(models.Budget)
                .where(
                    models.Budget.is_active.is_(True),
                    models.Budget.start_date <= on,
                    models.Budget.end_date >= on,
                )
                .order_by(models.Budget.id)
            ).scalars()
        )

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        category = self.db.get(models.Category, category_id)
        if category is None:
            raise CategoryNotFound(category_id, field="category_id")
        if category.type is not models.CategoryType.EXPENSE:
            raise ValidationError("Budgets apply to expense categories only", field="category_id")

    def create(self, payload: BudgetCreate) -> models.Budget:
        self._check_category(payload.category_id)
        dup = self.db.execute(
            select(models.Budget.id).where(
                models.Budget.category_id.is_(None)
                if payload.category_id is None
                else models.Budget.category_id == payload.category_id,
                models.Budget.start_date == payload.start_date,
                models.Budget.end_date == payload.end_date,
            )
        ).first()
        if dup is not None:
            raise ValidationError("Budget already exists for this period and category", field="category_id")
        row = models.Budget(**payload.model_dump())
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def update(self, budget_id: int, payload: BudgetUpdate) -> models.Budget:
        row = self.get(budget_id)
        patch = payload.model_dump(exclude_unset=True)
        for key, value in patch.items():
            if value is None:
                raise ValidationError(f"{key} cannot be null", field=key)
        start = patch.get("start_date", row.start_date)
        end = patch.get("end_date", row.end_date)
        if end < start:
            raise ValidationError("end_date must be on or after start_date", field="end_date")
        for key, value in patch.items():
            setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        return row

    def delete(self, budget_id: int) -> None:
        row = self.get(budget_id)
        self.db.delete(row)
        self.db.commit()

    def spent(self, budget: models.Budget) -> Decimal:
        T = models.Transaction
        q = select(func.coalesce(func.sum(T.amount), 0)).where(
            T.type == models.TxnType.EXPENSE,
            T.date >= budget.start_date,
            T.date <= budget.end_date,
        )
        if budget.category_id is not None:
            q = q.where(T.category_id == budget.category_id)
        return Decimal(str(self.db.execute(q).scalar_one()))

    def summary(self, budget_id: int) -> BudgetSummaryOut:
        budget = self.get(budget_id)
        amount = Decimal(budget.amount)
        spent = self.spent(budget)
        percentage = float(spent / amount * 100) if amount > 0 else 0.0
        return BudgetSummaryOut(
            budget=BudgetOut.model_validate(budget),
            category_name=budget.category.name if budget.category is not None else None,
            spent=spent,
            remaining=amount - spent,
            percentage_used=round(percentage, 2),
            is_over_budget=spent > amount,
            should_alert=percentage >= budget.alert_percentage,
        )
