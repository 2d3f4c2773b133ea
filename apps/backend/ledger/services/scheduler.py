"""Recurring transaction scheduler.

A run walks the due rules in ``next_occurrence`` order and, per rule,
materializes one transaction and advances the schedule in a single commit.
Only one run is active at a time; a second trigger returns immediately.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models
from ..core.database import Store
from ..errors import SchedulerRuleError
from ..schemas import SchedulerRunOut
from .account_locks import AccountLockRegistry
from .ledger_service import LedgerService
from .recurring_service import RecurringRuleService, get_next_occurrence
from .transaction_service import touched_accounts


logger = logging.getLogger(__name__)


def occurrence_key(rule_id: int, occurrence: date) -> str:
    """Idempotency key stored as ``Transaction.external_id``."""
    return f"rule-{rule_id}-{occurrence.isoformat()}"


def recurring_note(rule: models.RecurringRule) -> str:
    return f"{rule.note or ''} (Recurring: {rule.name})".strip()


@dataclass
class SchedulerRunResult:
    materialized: int = 0
    failed: int = 0
    deactivated: int = 0
    errors: list[SchedulerRuleError] = field(default_factory=list)
    cancelled: bool = False
    skipped: bool = False

    def to_out(self) -> SchedulerRunOut:
        return SchedulerRunOut(
            materialized=self.materialized,
            failed=self.failed,
            deactivated=self.deactivated,
            skipped=self.skipped,
            cancelled=self.cancelled,
            errors=[err.to_dict() for err in self.errors],
        )


class RecurringScheduler:
    """Materialize due recurring rules through the ledger."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        locks: AccountLockRegistry,
        *,
        timeout: Optional[float] = None,
        clock: Callable[[], date] = models.today_local,
    ) -> None:
        self.session_factory = session_factory
        self.locks = locks
        self.timeout = timeout
        self.clock = clock
        self._running = threading.Lock()

    @classmethod
    def from_store(cls, store: Store, locks: AccountLockRegistry, **kwargs) -> "RecurringScheduler":
        return cls(store.new_session, locks, **kwargs)

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def run(self, now: Optional[date] = None, *, cancel: Optional[threading.Event] = None) -> SchedulerRunResult:
        if not self._running.acquire(blocking=False):
            logger.info("Scheduler run already in progress; trigger ignored")
            return SchedulerRunResult(skipped=True)
        try:
            return self._run(now or self.clock(), cancel)
        finally:
            self._running.release()

    def _run(self, now: date, cancel: Optional[threading.Event]) -> SchedulerRunResult:
        result = SchedulerRunResult()
        db = self.session_factory()
        try:
            rule_ids = [rule.id for rule in RecurringRuleService(db).due(now)]
            db.rollback()
            logger.info("Scheduler run for %s: %d due rule(s)", now, len(rule_ids))
            for rule_id in rule_ids:
                if cancel is not None and cancel.is_set():
                    result.cancelled = True
                    logger.info("Scheduler run cancelled")
                    break
                self._process_rule(db, rule_id, now, result)
        finally:
            db.close()
        logger.info(
            "Scheduler run finished: materialized=%d failed=%d deactivated=%d",
            result.materialized,
            result.failed,
            result.deactivated,
        )
        return result

    def _process_rule(self, db: Session, rule_id: int, now: date, result: SchedulerRunResult) -> None:
        rule = db.get(models.RecurringRule, rule_id)
        if rule is None or not rule.is_active or rule.next_occurrence > now:
            # changed by someone else since the due query
            return
        rule_name = rule.name
        ledger = LedgerService(db, self.locks, timeout=self.timeout)
        try:
            if rule.end_date is not None and now > rule.end_date:
                rule.is_active = False
                db.commit()
                result.deactivated += 1
                logger.info("Recurring rule %s (%s) expired; deactivated", rule_id, rule_name)
                return
            if self._materialize(ledger, rule, now):
                result.materialized += 1
        except Exception as exc:
            db.rollback()
            err = SchedulerRuleError(rule_id, rule_name, exc)
            result.errors.append(err)
            result.failed += 1
            logger.warning("%s", err)

    def _materialize(self, ledger: LedgerService, rule: models.RecurringRule, now: date) -> bool:
        """Insert the occurrence and advance the rule in one commit.

        Returns False when the occurrence already exists, in which case only
        the schedule moves.
        """
        occurrence = rule.next_occurrence
        key = occurrence_key(rule.id, occurrence)
        values = ledger.validate(
            {
                "account_id": rule.account_id,
                "to_account_id": rule.to_account_id,
                "category_id": rule.category_id,
                "amount": rule.amount,
                "type": rule.type,
                "date": now,
                "note": recurring_note(rule),
                "recurring_rule_id": rule.id,
                "external_id": key,
            }
        )
        db = ledger.db
        created = False
        with ledger.atomic(touched_accounts(rule)):
            exists = db.execute(
                select(models.Transaction.id).where(models.Transaction.external_id == key)
            ).first()
            if exists is None:
                ledger.stage_insert(values)
                created = True
            rule.next_occurrence = get_next_occurrence(rule.frequency, occurrence)
            rule.last_executed = now
        if created:
            logger.info("Recurring rule %s materialized occurrence %s", rule.id, occurrence)
        else:
            logger.info("Recurring rule %s occurrence %s already present; schedule advanced", rule.id, occurrence)
        return created


class SchedulerTimer:
    """Background thread calling ``scheduler.run`` every ``interval`` seconds."""

    def __init__(self, scheduler: RecurringScheduler, interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.scheduler = scheduler
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="ledger-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler timer started (every %ss)", self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Scheduler timer stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.scheduler.run(cancel=self._stop)
            except Exception:
                logger.exception("Scheduler run crashed")
            self._stop.wait(self.interval)
