from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..services.account_locks import AccountLockRegistry
from ..services.ledger_service import LedgerService
from ..services.scheduler import RecurringScheduler
from .database import get_db


def get_locks(request: Request) -> AccountLockRegistry:
    """Process-wide lock registry; every ledger built for a request shares it."""
    return request.app.state.locks


def get_ledger(
    db: Session = Depends(get_db),
    locks: AccountLockRegistry = Depends(get_locks),
) -> LedgerService:
    return LedgerService(db, locks)


def get_scheduler(request: Request) -> RecurringScheduler:
    return request.app.state.scheduler
