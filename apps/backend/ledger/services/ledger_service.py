from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterable, Iterator, Mapping, Optional

from pydantic import BaseModel
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..errors import (
    AccountNotFound,
    CategoryNotFound,
    LedgerError,
    PartialWriteError,
    RuleNotFound,
    StoreTimeoutError,
    TransactionNotFound,
    ValidationError,
)
from ..schemas import NOTE_MAX_LENGTH, AccountAuditOut
from .account_locks import AccountLockRegistry
from .transaction_service import (
    ZERO,
    TransactionBalanceService,
    TxnSnapshot,
    effect,
    net_effect,
    touched_accounts,
)


logger = logging.getLogger(__name__)

# fields a caller may set on a transaction row
TXN_FIELDS = (
    "account_id",
    "to_account_id",
    "category_id",
    "amount",
    "type",
    "date",
    "note",
    "recurring_rule_id",
    "external_id",
)
MUTABLE_TXN_FIELDS = ("account_id", "to_account_id", "category_id", "amount", "type", "date", "note")
ADJUSTMENT_NOTE = "Balance adjustment"

# attempts before giving up when a row's accounts change while we wait for locks
_MAX_LOCK_ATTEMPTS = 5

_UNSET: Any = object()


def _as_dict(payload: BaseModel | Mapping[str, Any], *, exclude_unset: bool = False) -> dict[str, Any]:
    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_unset=exclude_unset)
    return dict(payload)


def require_account(db: Session, account_id: int, *, field: str = "account_id") -> models.Account:
    account = db.get(models.Account, account_id)
    if account is None:
        raise AccountNotFound(account_id, field=field)
    return account


def validate_transaction_values(db: Session, values: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize and check a full set of transaction fields.

    Raises before anything is written. Returns the cleaned values. Recurring
    rules reuse this with ``start_date`` standing in for ``date``.
    """
    data = {key: values.get(key) for key in TXN_FIELDS if key in values}

    raw_type = data.get("type")
    if raw_type is None:
        raise ValidationError("Transaction type is required", field="type")
    try:
        txn_type = models.TxnType(raw_type)
    except ValueError:
        raise ValidationError(f"Unknown transaction type: {raw_type!r}", field="type") from None
    data["type"] = txn_type

    amount = data.get("amount")
    try:
        amount = Decimal(str(amount))
    except (ArithmeticError, ValueError, TypeError):
        raise ValidationError("Amount must be a number", field="amount") from None
    if not amount.is_finite() or amount <= ZERO:
        raise ValidationError("Amount must be greater than zero", field="amount")
    data["amount"] = amount

    if data.get("date") is None:
        raise ValidationError("Transaction date is required", field="date")

    note = data.get("note") or ""
    if len(note) > NOTE_MAX_LENGTH:
        raise ValidationError(f"Note must be at most {NOTE_MAX_LENGTH} characters", field="note")
    data["note"] = note

    account_id = data.get("account_id")
    if account_id is None:
        raise ValidationError("Account is required", field="account_id")
    to_account_id = data.get("to_account_id")
    category_id = data.get("category_id")

    if txn_type is models.TxnType.TRANSFER:
        if to_account_id is None:
            raise ValidationError("Transfer needs a destination account", field="to_account_id")
        if to_account_id == account_id:
            raise ValidationError("Cannot transfer to the same account", field="to_account_id")
        if category_id is not None:
            raise ValidationError("Transfers cannot have a category", field="category_id")
    elif to_account_id is not None:
        raise ValidationError("Only transfers may have a destination account", field="to_account_id")

    require_account(db, account_id, field="account_id")
    if to_account_id is not None:
        require_account(db, to_account_id, field="to_account_id")

    if category_id is not None:
        category = db.get(models.Category, category_id)
        if category is None:
            raise CategoryNotFound(category_id, field="category_id")
        if category.type is not models.CategoryType.for_txn_type(txn_type):
            raise ValidationError(
                f"Category '{category.name}' cannot be used for {txn_type.value.lower()} transactions",
                field="category_id",
            )

    rule_id = data.get("recurring_rule_id")
    if rule_id is not None and db.get(models.RecurringRule, rule_id) is None:
        raise RuleNotFound(rule_id, field="recurring_rule_id")
    return data


class LedgerService:
    """The only writer of ``Account.balance``.

    Every mutation runs inside :meth:`atomic`: per-account locks are taken in
    id order, the row change and its balance deltas are flushed, and the
    whole unit commits once. Any failure rolls back and leaves balances as
    they were.
    """

    def __init__(
        self,
        db: Session,
        locks: AccountLockRegistry,
        *,
        timeout: Optional[float] = _UNSET,
    ) -> None:
        self.db = db
        self.locks = locks
        self.timeout = settings.STORE_TIMEOUT_SECONDS if timeout is _UNSET else timeout
        self.balances = TransactionBalanceService(db)

    # ---- Unit of work ----------------------------------------------------
    def deadline_for(self, timeout: Optional[float] = _UNSET) -> Optional[float]:
        value = self.timeout if timeout is _UNSET else timeout
        if value is None:
            return None
        return time.monotonic() + float(value)

    @contextmanager
    def atomic(
        self,
        account_ids: Iterable[int],
        *,
        timeout: Optional[float] = _UNSET,
        deadline: Optional[float] = _UNSET,
    ) -> Iterator[Session]:
        if deadline is _UNSET:
            deadline = self.deadline_for(timeout)
        with self.locks.hold(account_ids, deadline=deadline):
            try:
                yield self.db
                self.db.flush()
                if deadline is not None and time.monotonic() > deadline:
                    raise StoreTimeoutError("Ledger write exceeded its deadline")
                self.db.commit()
            except LedgerError:
                self.db.rollback()
                raise
            except IntegrityError as exc:
                self.db.rollback()
                # a concurrent writer committed the same idempotency key first
                if "external_id" in str(exc.orig):
                    raise ValidationError("Duplicate external_id", field="external_id") from exc
                logger.warning("Ledger write rolled back: %s", exc)
                raise PartialWriteError(f"Ledger write could not be completed: {exc}") from exc
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.warning("Ledger write rolled back: %s", exc)
                raise PartialWriteError(f"Ledger write could not be completed: {exc}") from exc
            except BaseException:
                self.db.rollback()
                raise

    # ---- Lookups ---------------------------------------------------------
    def get_transaction(self, txn_id: int) -> models.Transaction:
        txn = self.db.get(models.Transaction, txn_id)
        if txn is None:
            raise TransactionNotFound(txn_id, field="id")
        return txn

    def get_account(self, account_id: int, *, field: str = "account_id") -> models.Account:
        return require_account(self.db, account_id, field=field)

    def _reload_transaction(self, txn_id: int) -> models.Transaction:
        txn = self.db.execute(
            select(models.Transaction)
            .where(models.Transaction.id == txn_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if txn is None:
            raise TransactionNotFound(txn_id, field="id")
        return txn

    def _transactions_touching(self, account_id: int) -> list[models.Transaction]:
        return list(
            self.db.execute(
                select(models.Transaction)
                .where(
                    or_(
                        models.Transaction.account_id == account_id,
                        models.Transaction.to_account_id == account_id,
                    )
                )
                .order_by(models.Transaction.id)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    # ---- Validation ------------------------------------------------------
    def validate(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return validate_transaction_values(self.db, values)

    def _check_external_id(self, external_id: Optional[str]) -> None:
        if external_id is None:
            return
        exists = self.db.execute(
            select(models.Transaction.id).where(models.Transaction.external_id == external_id)
        ).first()
        if exists is not None:
            raise ValidationError(f"Duplicate external_id {external_id}", field="external_id")

    # ---- Staged writes (caller owns the atomic block) --------------------
    def stage_insert(self, values: Mapping[str, Any]) -> models.Transaction:
        txn = models.Transaction(**values)
        self.db.add(txn)
        self.db.flush()
        self.balances.apply(effect(txn))
        return txn

    def stage_update(self, txn: models.Transaction, values: Mapping[str, Any]) -> models.Transaction:
        before = TxnSnapshot.of(txn)
        for key in MUTABLE_TXN_FIELDS:
            if key in values:
                setattr(txn, key, values[key])
        self.db.flush()
        self.balances.apply(net_effect(before, txn))
        return txn

    def stage_delete(self, txn: models.Transaction) -> None:
        self.balances.apply(net_effect(txn, None))
        self.db.delete(txn)
        self.db.flush()

    # ---- Transactions ----------------------------------------------------
    def insert_transaction(
        self,
        payload: BaseModel | Mapping[str, Any],
        *,
        timeout: Optional[float] = _UNSET,
    ) -> models.Transaction:
        values = self.validate(_as_dict(payload))
        with self.atomic(touched_accounts(TxnSnapshot.from_values(values)), timeout=timeout):
            self._check_external_id(values.get("external_id"))
            txn = self.stage_insert(values)
        logger.info("Transaction %s inserted (%s %s)", txn.id, txn.type.value, txn.amount)
        return txn

    def update_transaction(
        self,
        txn_id: int,
        changes: BaseModel | Mapping[str, Any],
        *,
        timeout: Optional[float] = _UNSET,
    ) -> models.Transaction:
        """Replace a transaction's fields and move balances by the net difference.

        The persisted row is the ``old`` side; ``changes`` holds only the
        fields to overwrite. Each distinct account gets a single write.
        """
        patch = _as_dict(changes, exclude_unset=True)
        unknown = set(patch) - set(MUTABLE_TXN_FIELDS)
        if unknown:
            raise ValidationError(f"Field cannot be changed: {sorted(unknown)[0]}", field=sorted(unknown)[0])
        # a type change drops whichever of destination/category the new type forbids
        if patch.get("type") is not None:
            if patch["type"] == models.TxnType.TRANSFER:
                patch.setdefault("category_id", None)
            else:
                patch.setdefault("to_account_id", None)

        deadline = self.deadline_for(timeout)
        txn = self.get_transaction(txn_id)
        new_values = self.validate({**self._values_of(txn), **patch})
        lock_ids = touched_accounts(txn) | touched_accounts(TxnSnapshot.from_values(new_values))

        for _ in range(_MAX_LOCK_ATTEMPTS):
            with self.atomic(lock_ids, deadline=deadline):
                current = self._reload_transaction(txn_id)
                new_values = self.validate({**self._values_of(current), **patch})
                needed = touched_accounts(current) | touched_accounts(TxnSnapshot.from_values(new_values))
                if needed <= lock_ids:
                    self.stage_update(current, new_values)
                    logger.info("Transaction %s updated", txn_id)
                    return current
            lock_ids = lock_ids | needed
        raise PartialWriteError(f"Transaction {txn_id} kept changing accounts; retry")

    def delete_transaction(self, txn_id: int, *, timeout: Optional[float] = _UNSET) -> None:
        deadline = self.deadline_for(timeout)
        lock_ids = touched_accounts(self.get_transaction(txn_id))
        for _ in range(_MAX_LOCK_ATTEMPTS):
            with self.atomic(lock_ids, deadline=deadline):
                current = self._reload_transaction(txn_id)
                needed = touched_accounts(current)
                if needed <= lock_ids:
                    self.stage_delete(current)
                    logger.info("Transaction %s deleted", txn_id)
                    return
            lock_ids = lock_ids | needed
        raise PartialWriteError(f"Transaction {txn_id} kept changing accounts; retry")

    @staticmethod
    def _values_of(txn: models.Transaction) -> dict[str, Any]:
        return {key: getattr(txn, key) for key in TXN_FIELDS}

    # ---- Accounts --------------------------------------------------------
    def delete_account(self, account_id: int, *, timeout: Optional[float] = _UNSET) -> None:
        """Remove an account and everything that references it.

        Each transaction is reverted before removal so transfer counterparts
        get their money back; recurring rules on the account go with it.
        """
        self.get_account(account_id)
        deadline = self.deadline_for(timeout)
        lock_ids = {account_id}
        for txn in self._transactions_touching(account_id):
            lock_ids |= touched_accounts(txn)

        deleted = False
        for _ in range(_MAX_LOCK_ATTEMPTS):
            with self.atomic(lock_ids, deadline=deadline):
                txns = self._transactions_touching(account_id)
                needed = set(lock_ids)
                for txn in txns:
                    needed |= touched_accounts(txn)
                if needed <= lock_ids:
                    for txn in txns:
                        self.stage_delete(txn)
                    rule_ids = list(
                        self.db.execute(
                            select(models.RecurringRule.id).where(
                                or_(
                                    models.RecurringRule.account_id == account_id,
                                    models.RecurringRule.to_account_id == account_id,
                                )
                            )
                        ).scalars()
                    )
                    if rule_ids:
                        self.db.execute(
                            update(models.Transaction)
                            .where(models.Transaction.recurring_rule_id.in_(rule_ids))
                            .values(recurring_rule_id=None)
                            .execution_options(synchronize_session=False)
                        )
                        for rule_id in rule_ids:
                            self.db.delete(self.db.get(models.RecurringRule, rule_id))
                        self.db.flush()
                    self.db.delete(self.get_account(account_id))
                    logger.info(
                        "Account %s deleted with %d transactions and %d recurring rules",
                        account_id,
                        len(txns),
                        len(rule_ids),
                    )
                    deleted = True
            if deleted:
                self.locks.discard(account_id)
                return
            lock_ids = needed
        raise PartialWriteError(f"Account {account_id} kept gaining transactions; retry")

    def deactivate_account(self, account_id: int) -> models.Account:
        account = self.get_account(account_id)
        account.is_active = False
        self.db.commit()
        self.db.refresh(account)
        logger.info("Account %s deactivated", account_id)
        return account

    def reconcile_account(
        self,
        account_id: int,
        observed_balance: Decimal,
        *,
        on: Optional[Any] = None,
        timeout: Optional[float] = _UNSET,
    ) -> Optional[models.Transaction]:
        """Insert an adjustment so the stored balance equals ``observed_balance``.

        Returns the adjustment transaction, or ``None`` when already equal.
        """
        self.get_account(account_id)
        observed = Decimal(str(observed_balance))
        with self.atomic([account_id], timeout=timeout):
            account = self.db.execute(
                select(models.Account)
                .where(models.Account.id == account_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()
            diff = observed - Decimal(account.balance)
            if diff == ZERO:
                return None
            txn = self.stage_insert(
                {
                    "account_id": account_id,
                    "type": models.TxnType.INCOME if diff > ZERO else models.TxnType.EXPENSE,
                    "amount": abs(diff),
                    "date": on or models.today_local(),
                    "note": ADJUSTMENT_NOTE,
                }
            )
        logger.info("Account %s reconciled by %s", account_id, diff)
        return txn

    def audit_account(self, account_id: int) -> AccountAuditOut:
        account = self.get_account(account_id)
        txns = self._transactions_touching(account_id)
        expected = Decimal(account.opening_balance)
        for txn in txns:
            expected += effect(txn).get(account_id, ZERO)
        return AccountAuditOut(
            account_id=account_id,
            stored_balance=Decimal(account.balance),
            expected_balance=expected,
            transaction_count=len(txns),
        )
