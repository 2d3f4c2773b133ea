"""Domain error taxonomy.

Services raise these; the HTTP layer (``ledger.main``) maps them to responses.
Every error carries the offending ``field`` where one exists so a caller can
point the user at the input to correct.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for every error raised by the ledger core."""

    field: str | None = None

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if field is not None:
            self.field = field

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "field": self.field, "error": type(self).__name__}


class ValidationError(LedgerError):
    """Malformed input, detected before any mutation."""


class NotFoundError(LedgerError):
    entity = "Record"

    def __init__(self, ref: Any, *, field: str | None = None) -> None:
        self.ref = ref
        super().__init__(f"{self.entity} {ref} not found", field=field)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["ref"] = self.ref
        return data


class AccountNotFound(NotFoundError):
    entity = "Account"


class CategoryNotFound(NotFoundError):
    entity = "Category"


class TransactionNotFound(NotFoundError):
    entity = "Transaction"


class RuleNotFound(NotFoundError):
    entity = "RecurringRule"


class BudgetNotFound(NotFoundError):
    entity = "Budget"


class PartialWriteError(LedgerError):
    """The mutation sequence could not complete atomically.

    Nothing was committed; the caller should retry the whole logical operation.
    """

    retryable = True

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retryable"] = self.retryable
        return data


class StoreTimeoutError(PartialWriteError):
    """A store call exceeded its caller-supplied deadline and was rolled back."""


class SchedulerRuleError(LedgerError):
    """Per-rule failure inside a scheduler run; never aborts the run."""

    def __init__(self, rule_id: int, rule_name: str, cause: BaseException) -> None:
        self.rule_id = rule_id
        self.rule_name = rule_name
        self.cause = cause
        super().__init__(f"Recurring rule {rule_id} ({rule_name}) failed: {cause}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "error": type(self.cause).__name__,
            "detail": str(self.cause),
        }
