from __future__ import annotations

import datetime as dt
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from .models import (
    AccountType,
    BudgetPeriod,
    CategoryType,
    NumberFormat,
    RecurringFrequency,
    TxnType,
)


NOTE_MAX_LENGTH = 200
COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


# --- Accounts -------------------------------------------------------------


class AccountCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    type: AccountType = AccountType.BANK
    opening_balance: Decimal = Decimal("0")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Account name too short")
        return value


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    type: Optional[AccountType] = None
    is_active: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class AccountOut(BaseModel):
    id: int
    name: str
    type: AccountType
    opening_balance: Decimal
    balance: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AccountReconcileRequest(BaseModel):
    observed_balance: Decimal
    on: Optional[dt.date] = None


class AccountAuditOut(BaseModel):
    account_id: int
    stored_balance: Decimal
    expected_balance: Decimal
    transaction_count: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_consistent(self) -> bool:
        return self.stored_balance == self.expected_balance


class TotalBalanceOut(BaseModel):
    total: Decimal
    account_count: int


# --- Categories -----------------------------------------------------------


class CategoryCreate(BaseModel):
    name: str = Field(min_length=2, max_length=30)
    type: CategoryType
    color_code: str = Field(default="#000000", pattern=COLOR_PATTERN)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=30)
    color_code: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)

    model_config = ConfigDict(extra="forbid")


class CategoryOut(BaseModel):
    id: int
    name: str
    type: CategoryType
    is_default: bool
    color_code: str

    model_config = ConfigDict(from_attributes=True)


# --- Transactions ---------------------------------------------------------


class TransactionCreate(BaseModel):
    account_id: int
    category_id: Optional[int] = None
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=4)
    type: TxnType
    date: dt.date
    to_account_id: Optional[int] = None
    note: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    recurring_rule_id: Optional[int] = None
    external_id: Optional[str] = Field(default=None, max_length=64)


class TransactionUpdate(BaseModel):
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=18, decimal_places=4)
    type: Optional[TxnType] = None
    date: Optional[dt.date] = None
    to_account_id: Optional[int] = None
    note: Optional[str] = Field(default=None, max_length=NOTE_MAX_LENGTH)

    model_config = ConfigDict(extra="forbid")


class TransactionOut(BaseModel):
    id: int
    account_id: int
    category_id: Optional[int]
    amount: Decimal
    type: TxnType
    date: dt.date
    to_account_id: Optional[int]
    note: str
    recurring_rule_id: Optional[int]
    external_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SortOption(str, Enum):
    DATE_DESC = "DATE_DESC"
    DATE_ASC = "DATE_ASC"
    AMOUNT_DESC = "AMOUNT_DESC"
    AMOUNT_ASC = "AMOUNT_ASC"


class TransactionFilter(BaseModel):
    search: str = ""
    types: set[TxnType] = Field(default_factory=set)
    account_ids: set[int] = Field(default_factory=set)
    category_ids: set[int] = Field(default_factory=set)
    include_uncategorized: bool = False
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    sort_by: SortOption = SortOption.DATE_DESC

    @model_validator(mode="after")
    def _check_ranges(self) -> "TransactionFilter":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        if self.min_amount is not None and self.max_amount is not None and self.min_amount > self.max_amount:
            raise ValueError("min_amount must not exceed max_amount")
        return self


class TypeTotalsOut(BaseModel):
    start_date: dt.date
    end_date: dt.date
    income: Decimal
    expense: Decimal
    transfer: Decimal

    @computed_field  # type: ignore[prop-decorator]
    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class CategoryTotalOut(BaseModel):
    category_id: Optional[int]
    category_name: Optional[str]
    total: Decimal


# --- Recurring rules ------------------------------------------------------


class RecurringRuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    account_id: int
    to_account_id: Optional[int] = None
    category_id: Optional[int] = None
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=4)
    type: TxnType
    frequency: RecurringFrequency
    start_date: dt.date
    end_date: Optional[dt.date] = None
    note: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_window(self) -> "RecurringRuleCreate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class RecurringRuleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    account_id: Optional[int] = None
    to_account_id: Optional[int] = None
    category_id: Optional[int] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=18, decimal_places=4)
    frequency: Optional[RecurringFrequency] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    note: Optional[str] = Field(default=None, max_length=NOTE_MAX_LENGTH)
    is_active: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class RecurringRuleOut(BaseModel):
    id: int
    name: str
    account_id: int
    to_account_id: Optional[int]
    category_id: Optional[int]
    amount: Decimal
    type: TxnType
    frequency: RecurringFrequency
    start_date: dt.date
    end_date: Optional[dt.date]
    next_occurrence: dt.date
    last_executed: Optional[dt.date]
    note: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class RecurringRulePreviewOut(BaseModel):
    rule_id: int
    occurrences: list[dt.date]


class SchedulerRunRequest(BaseModel):
    now: Optional[dt.date] = None


class SchedulerRuleErrorOut(BaseModel):
    rule_id: int
    rule_name: str
    error: str
    detail: str


class SchedulerRunOut(BaseModel):
    materialized: int
    failed: int
    deactivated: int
    skipped: bool = False
    cancelled: bool = False
    errors: list[SchedulerRuleErrorOut] = Field(default_factory=list)


# --- Text candidates ------------------------------------------------------


class Candidate(BaseModel):
    """Unconfirmed transaction guess produced from notification text."""

    amount: Decimal
    type: TxnType
    merchant: Optional[str] = None
    account_hint: Optional[str] = None
    balance: Optional[Decimal] = None
    date: dt.date
    confidence: float = Field(ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    def summary(self, currency_symbol: str = "₹") -> str:
        label = "Expense" if self.type == TxnType.EXPENSE else "Income"
        lines = [f"{label} of {currency_symbol}{self.amount:.2f}"]
        if self.merchant:
            lines.append(f"at {self.merchant}")
        if self.account_hint:
            lines.append(f"Account: {self.account_hint}")
        lines.append(f"Confidence: {int(self.confidence * 100)}%")
        return "\n".join(lines)


class CandidateExtractRequest(BaseModel):
    sender: str = ""
    body: str
    received_at: Optional[dt.date] = None


class CandidateExtractOut(BaseModel):
    candidate: Optional[Candidate] = None
    accepted: bool = False
    threshold: float
    summary: Optional[str] = None


class CandidateApproveRequest(BaseModel):
    candidate: Candidate
    account_id: int
    category_id: Optional[int] = None
    note: Optional[str] = Field(default=None, max_length=NOTE_MAX_LENGTH)


# --- Budgets --------------------------------------------------------------


class BudgetCreate(BaseModel):
    category_id: Optional[int] = None
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=4)
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: dt.date
    end_date: dt.date
    alert_percentage: int = Field(default=80, ge=1, le=100)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_window(self) -> "BudgetCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class BudgetUpdate(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=18, decimal_places=4)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    alert_percentage: Optional[int] = Field(default=None, ge=1, le=100)
    is_active: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class BudgetOut(BaseModel):
    id: int
    category_id: Optional[int]
    amount: Decimal
    period: BudgetPeriod
    start_date: dt.date
    end_date: dt.date
    alert_percentage: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class BudgetSummaryOut(BaseModel):
    budget: BudgetOut
    category_name: Optional[str] = None
    spent: Decimal
    remaining: Decimal
    percentage_used: float
    is_over_budget: bool
    should_alert: bool


# --- App settings ---------------------------------------------------------


class AppSettingsUpdate(BaseModel):
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    currency_symbol: Optional[str] = Field(default=None, min_length=1, max_length=8)
    number_format: Optional[NumberFormat] = None
    default_transaction_type: Optional[TxnType] = None
    is_dark_theme: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class AppSettingsOut(BaseModel):
    currency: str
    currency_symbol: str
    number_format: NumberFormat
    default_transaction_type: TxnType
    is_dark_theme: bool

    model_config = ConfigDict(from_attributes=True)
