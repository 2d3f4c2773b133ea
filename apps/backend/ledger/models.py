from __future__ import annotations

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from zoneinfo import ZoneInfo

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Index,
    Boolean,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "Asia/Kolkata"))
except Exception:
    LOCAL_ZONE = ZoneInfo("Asia/Kolkata")


MONEY = Numeric(18, 4)


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


def today_local() -> date:
    return now_local_naive().date()


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class AccountType(str, Enum):
    BANK = "BANK"
    CREDIT_CARD = "CREDIT_CARD"
    WALLET = "WALLET"
    CASH = "CASH"
    OTHER = "OTHER"


class TxnType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"


class CategoryType(str, Enum):
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"

    @classmethod
    def for_txn_type(cls, txn_type: TxnType) -> "CategoryType | None":
        """Polarity a category must have to be attached to ``txn_type``."""
        if txn_type is TxnType.INCOME:
            return cls.INCOME
        if txn_type is TxnType.EXPENSE:
            return cls.EXPENSE
        if txn_type is TxnType.TRANSFER:
            return None
        raise ValueError(f"Unknown transaction type: {txn_type!r}")


class RecurringFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class Account(Base, TimestampMixin):
    """Source/destination of money with a single-sided running balance."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    type: Mapped[AccountType] = mapped_column(SAEnum(AccountType, name="account_type"), nullable=False)
    # balance == opening_balance + sum of effects of existing transactions
    opening_balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    transactions_out: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="account",
        foreign_keys="Transaction.account_id",
    )
    transactions_in: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="to_account",
        foreign_keys="Transaction.to_account_id",
    )

    __table_args__ = (
        UniqueConstraint("name", name="uq_account_name"),
    )


class Category(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(30), nullable=False)
    type: Mapped[CategoryType] = mapped_column(SAEnum(CategoryType, name="category_type"), nullable=False)
    # default categories are seeded and immutable
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    color_code: Mapped[str] = mapped_column(String(7), default="#000000", nullable=False)

    __table_args__ = (
        UniqueConstraint("type", "name", name="uq_category_type_name"),
    )


class Transaction(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    to_account_id: Mapped[int | None] = mapped_column(ForeignKey("account.id"))
    category_id: Mapped[int | None] = mapped_column(ForeignKey("category.id"))
    # always positive; direction comes from type
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    type: Mapped[TxnType] = mapped_column(SAEnum(TxnType, name="txn_type"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    note: Mapped[str] = mapped_column(Text, default="", nullable=False)
    recurring_rule_id: Mapped[int | None] = mapped_column(ForeignKey("recurringrule.id", ondelete="SET NULL"))
    external_id: Mapped[str | None] = mapped_column(String(64))

    account: Mapped["Account"] = relationship(
        "Account",
        back_populates="transactions_out",
        foreign_keys=[account_id],
    )
    to_account: Mapped["Account | None"] = relationship(
        "Account",
        back_populates="transactions_in",
        foreign_keys=[to_account_id],
    )
    category: Mapped["Category | None"] = relationship("Category")

    __table_args__ = (
        UniqueConstraint("external_id", name="uq_txn_external_id"),
        CheckConstraint("amount > 0", name="ck_txn_amount_positive"),
        CheckConstraint(
            "(type = 'TRANSFER' AND to_account_id IS NOT NULL AND to_account_id != account_id AND category_id IS NULL)"
            " OR (type != 'TRANSFER' AND to_account_id IS NULL)",
            name="ck_txn_transfer_target",
        ),
        Index("ix_txn_account_date", "account_id", "date"),
        Index("ix_txn_to_account_date", "to_account_id", "date"),
        Index("ix_txn_type_date", "type", "date"),
    )


class RecurringRule(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    to_account_id: Mapped[int | None] = mapped_column(ForeignKey("account.id"))
    category_id: Mapped[int | None] = mapped_column(ForeignKey("category.id"))
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    type: Mapped[TxnType] = mapped_column(SAEnum(TxnType, name="txn_type"), nullable=False)
    frequency: Mapped[RecurringFrequency] = mapped_column(
        SAEnum(RecurringFrequency, name="recurring_frequency"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    # mutated only by the scheduler after creation
    next_occurrence: Mapped[date] = mapped_column(Date, nullable=False)
    last_executed: Mapped[date | None] = mapped_column(Date)
    note: Mapped[str] = mapped_column(Text, default="", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    account: Mapped["Account"] = relationship("Account", foreign_keys=[account_id])
    to_account: Mapped["Account | None"] = relationship("Account", foreign_keys=[to_account_id])

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_recurring_amount_positive"),
        CheckConstraint(
            "(type = 'TRANSFER' AND to_account_id IS NOT NULL AND to_account_id != account_id AND category_id IS NULL)"
            " OR (type != 'TRANSFER' AND to_account_id IS NULL)",
            name="ck_recurring_type_rules",
        ),
        Index("ix_recurring_due", "is_active", "next_occurrence"),
    )


class BudgetPeriod(str, Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class Budget(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # null category_id means an overall budget
    category_id: Mapped[int | None] = mapped_column(ForeignKey("category.id"))
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(SAEnum(BudgetPeriod, name="budget_period"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    alert_percentage: Mapped[int] = mapped_column(Integer, default=80, nullable=False)

    category: Mapped["Category | None"] = relationship("Category")

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_budget_window"),
        CheckConstraint("alert_percentage BETWEEN 1 AND 100", name="ck_budget_alert_pct"),
    )


class NumberFormat(str, Enum):
    INDIAN = "INDIAN"  # 12,34,567.00
    INTERNATIONAL = "INTERNATIONAL"  # 1,234,567.00
    EUROPEAN = "EUROPEAN"  # 1.234.567,00


class AppSettings(Base):
    # singleton row, always id=1
    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)
    currency_symbol: Mapped[str] = mapped_column(String(8), default="₹", nullable=False)
    number_format: Mapped[NumberFormat] = mapped_column(
        SAEnum(NumberFormat, name="number_format"), default=NumberFormat.INDIAN, nullable=False
    )
    default_transaction_type: Mapped[TxnType] = mapped_column(
        SAEnum(TxnType, name="txn_type"), default=TxnType.EXPENSE, nullable=False
    )
    is_dark_theme: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)

    __table_args__ = (
        CheckConstraint("id = 1", name="ck_settings_singleton"),
    )
