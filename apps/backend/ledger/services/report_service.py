from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from .. import models
from ..schemas import CategoryTotalOut, SortOption, TransactionFilter, TypeTotalsOut


_ORDERING = {
    SortOption.DATE_DESC: (models.Transaction.date.desc(), models.Transaction.id.desc()),
    SortOption.DATE_ASC: (models.Transaction.date.asc(), models.Transaction.id.asc()),
    SortOption.AMOUNT_DESC: (models.Transaction.amount.desc(), models.Transaction.id.desc()),
    SortOption.AMOUNT_ASC: (models.Transaction.amount.asc(), models.Transaction.id.asc()),
}


class ReportService:
    """Read-only queries over the transaction log."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _filtered(self, flt: TransactionFilter):
        T = models.Transaction
        q = select(T)

        search = flt.search.strip()
        if search:
            q = q.where(T.note.ilike(f"%{search}%"))
        if flt.types:
            q = q.where(T.type.in_(sorted(flt.types, key=lambda t: t.value)))
        if flt.account_ids:
            ids = sorted(flt.account_ids)
            # an account's transactions include transfers into it
            q = q.where(or_(T.account_id.in_(ids), T.to_account_id.in_(ids)))
        if flt.category_ids or flt.include_uncategorized:
            clauses = []
            if flt.category_ids:
                clauses.append(T.category_id.in_(sorted(flt.category_ids)))
            if flt.include_uncategorized:
                clauses.append(T.category_id.is_(None))
            q = q.where(or_(*clauses))
        if flt.start_date is not None:
            q = q.where(T.date >= flt.start_date)
        if flt.end_date is not None:
            q = q.where(T.date <= flt.end_date)
        if flt.min_amount is not None:
            q = q.where(T.amount >= flt.min_amount)
        if flt.max_amount is not None:
            q = q.where(T.amount <= flt.max_amount)
        return q

    def list_transactions(
        self,
        flt: Optional[TransactionFilter] = None,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[models.Transaction]:
        flt = flt or TransactionFilter()
        q = self._filtered(flt).order_by(*_ORDERING[flt.sort_by])
        if offset:
            q = q.offset(offset)
        if limit is not None:
            q = q.limit(limit)
        return list(self.db.execute(q).scalars())

    def count_transactions(self, flt: Optional[TransactionFilter] = None) -> int:
        """Number of rows matching ``flt``, ignoring paging."""
        q = self._filtered(flt or TransactionFilter())
        return self.db.execute(select(func.count()).select_from(q.subquery())).scalar_one()

    def type_totals(self, start_date: date, end_date: date) -> TypeTotalsOut:
        T = models.Transaction
        rows = self.db.execute(
            select(T.type, func.coalesce(func.sum(T.amount), 0))
            .where(and_(T.date >= start_date, T.date <= end_date))
            .group_by(T.type)
        ).all()
        sums = {txn_type: Decimal(str(total)) for txn_type, total in rows}
        zero = Decimal("0")
        return TypeTotalsOut(
            start_date=start_date,
            end_date=end_date,
            income=sums.get(models.TxnType.INCOME, zero),
            expense=sums.get(models.TxnType.EXPENSE, zero),
            transfer=sums.get(models.TxnType.TRANSFER, zero),
        )

    def category_totals(
        self,
        start_date: date,
        end_date: date,
        *,
        type: models.TxnType = models.TxnType.EXPENSE,
    ) -> list[CategoryTotalOut]:
        T = models.Transaction
        C = models.Category
        rows = self.db.execute(
            select(T.category_id, C.name, func.sum(T.amount).label("total"))
            .select_from(T)
            .outerjoin(C, C.id == T.category_id)
            .where(T.type == type, T.date >= start_date, T.date <= end_date)
            .group_by(T.category_id, C.name)
            .order_by(func.sum(T.amount).desc())
        ).all()
        return [
            CategoryTotalOut(category_id=category_id, category_name=name, total=Decimal(str(total)))
            for category_id, name, total in rows
        ]
