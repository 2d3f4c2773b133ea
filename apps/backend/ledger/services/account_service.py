from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import models
from ..errors import AccountNotFound, ValidationError
from ..schemas import AccountCreate, AccountUpdate, TotalBalanceOut
from ..utils.normalization import clean_name, normalize_token


class AccountService:
    """Account records without balance writes; those belong to ``LedgerService``."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_all(self, *, is_active: Optional[bool] = None) -> list[models.Account]:
        q = select(models.Account)
        if is_active is not None:
            q = q.where(models.Account.is_active == bool(is_active))
        return list(self.db.execute(q.order_by(models.Account.name, models.Account.id)).scalars())

    def get_by_id(self, account_id: int) -> models.Account:
        row = self.db.get(models.Account, account_id)
        if row is None:
            raise AccountNotFound(account_id, field="account_id")
        return row

    def _check_name(self, name: str, *, exclude_id: Optional[int] = None) -> str:
        name = clean_name(name)
        if not 2 <= len(name) <= 50:
            raise ValidationError("Account name must be 2-50 characters", field="name")
        token = normalize_token(name)
        for row in self.get_all():
            if row.id != exclude_id and normalize_token(row.name) == token:
                raise ValidationError(f"Account '{row.name}' already exists", field="name")
        return name

    def create(self, payload: AccountCreate) -> models.Account:
        name = self._check_name(payload.name)
        opening = Decimal(payload.opening_balance)
        row = models.Account(
            name=name,
            type=payload.type,
            opening_balance=opening,
            # no transactions yet, so the running balance starts at the opening value
            balance=opening,
            is_active=True,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def update(self, account_id: int, payload: AccountUpdate) -> models.Account:
        row = self.get_by_id(account_id)
        patch = payload.model_dump(exclude_unset=True)
        if not patch:
            return row
        if "name" in patch:
            if patch["name"] is None:
                raise ValidationError("Account name is required", field="name")
            patch["name"] = self._check_name(patch["name"], exclude_id=row.id)
        for key in ("type", "is_active"):
            if key in patch and patch[key] is None:
                raise ValidationError(f"{key} cannot be null", field=key)
        for key, value in patch.items():
            setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        return row

    def total_balance(self) -> TotalBalanceOut:
        total, count = self.db.execute(
            select(func.coalesce(func.sum(models.Account.balance), 0), func.count(models.Account.id)).where(
                models.Account.is_active.is_(True)
            )
        ).one()
        return TotalBalanceOut(total=Decimal(str(total)), account_count=int(count))
