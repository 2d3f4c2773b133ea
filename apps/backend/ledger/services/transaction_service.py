from __future__ import annotations

import logging
from decimal import Decimal
from typing import Mapping, Optional, Protocol

from sqlalchemy import update
from sqlalchemy.orm import Session

from .. import models
from ..errors import AccountNotFound


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class _HasEffect(Protocol):
    account_id: int
    to_account_id: Optional[int]
    amount: Decimal
    type: models.TxnType


def effect(txn: _HasEffect) -> dict[int, Decimal]:
    """Signed balance delta a transaction applies, keyed by account id."""
    amount = Decimal(txn.amount)
    if txn.type is models.TxnType.INCOME:
        return {txn.account_id: amount}
    if txn.type is models.TxnType.EXPENSE:
        return {txn.account_id: -amount}
    if txn.type is models.TxnType.TRANSFER:
        if txn.to_account_id is None:
            raise ValueError("Transfer without destination account")
        deltas = {txn.account_id: -amount}
        deltas[txn.to_account_id] = deltas.get(txn.to_account_id, ZERO) + amount
        return deltas
    raise ValueError(f"Unknown transaction type: {txn.type!r}")


def net_effect(old: Optional[_HasEffect], new: Optional[_HasEffect]) -> dict[int, Decimal]:
    """``effect(new) - effect(old)`` per distinct account, zero entries dropped.

    ``old=None`` is an insert and ``new=None`` a delete, so all three write
    paths share this one function.
    """
    combined: dict[int, Decimal] = {}
    if old is not None:
        for account_id, delta in effect(old).items():
            combined[account_id] = combined.get(account_id, ZERO) - delta
    if new is not None:
        for account_id, delta in effect(new).items():
            combined[account_id] = combined.get(account_id, ZERO) + delta
    return {account_id: delta for account_id, delta in combined.items() if delta != ZERO}


class TransactionBalanceService:
    """Apply balance deltas to accounts inside the caller's database transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def apply(self, deltas: Mapping[int, Decimal]) -> None:
        # one write per account, ascending id to match the lock order
        for account_id in sorted(deltas):
            self._apply_delta(account_id, deltas[account_id])

    def _apply_delta(self, account_id: int, delta: Decimal) -> None:
        if delta == ZERO:
            return
        result = self.db.execute(
            update(models.Account)
            .where(models.Account.id == account_id)
            .values(balance=models.Account.balance + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AccountNotFound(account_id, field="account_id")
        logger.debug("Balance delta %s applied to account %s", delta, account_id)


class TxnSnapshot:
    """Frozen copy of the fields ``effect`` reads, taken before a row is mutated."""

    __slots__ = ("account_id", "to_account_id", "amount", "type")

    def __init__(
        self,
        account_id: int,
        to_account_id: Optional[int],
        amount: Decimal,
        type: models.TxnType,
    ) -> None:
        self.account_id = account_id
        self.to_account_id = to_account_id
        self.amount = Decimal(amount)
        self.type = type

    @classmethod
    def of(cls, txn: _HasEffect) -> "TxnSnapshot":
        return cls(txn.account_id, txn.to_account_id, txn.amount, txn.type)

    @classmethod
    def from_values(cls, values: Mapping[str, object]) -> "TxnSnapshot":
        return cls(
            values["account_id"],  # type: ignore[arg-type]
            values.get("to_account_id"),  # type: ignore[arg-type]
            values["amount"],  # type: ignore[arg-type]
            values["type"],  # type: ignore[arg-type]
        )


def touched_accounts(txn: _HasEffect) -> set[int]:
    ids = {txn.account_id}
    if txn.to_account_id is not None:
        ids.add(txn.to_account_id)
    return ids
