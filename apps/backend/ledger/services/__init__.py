"""
Services package

Business logic classes used by the API routers and the scheduler.
"""

from .account_locks import AccountLockRegistry
from .account_service import AccountService
from .budget_service import BudgetService
from .category_service import CategoryService
from .ledger_service import LedgerService
from .recurring_service import RecurringRuleService, get_next_occurrence
from .report_service import ReportService
from .scheduler import RecurringScheduler, SchedulerRunResult, SchedulerTimer
from .settings_service import SettingsService
from .text_extractor import extract_candidate
from .transaction_service import TransactionBalanceService, effect, net_effect

__all__ = [
    "AccountLockRegistry",
    "AccountService",
    "BudgetService",
    "CategoryService",
    "LedgerService",
    "RecurringRuleService",
    "get_next_occurrence",
    "ReportService",
    "RecurringScheduler",
    "SchedulerRunResult",
    "SchedulerTimer",
    "SettingsService",
    "extract_candidate",
    "TransactionBalanceService",
    "effect",
    "net_effect",
]
