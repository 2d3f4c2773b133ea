from __future__ import annotations

import datetime as dt
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Response
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.deps import get_ledger
from ..errors import ValidationError
from ..models import TxnType
from ..schemas import (
    SortOption,
    TransactionCreate,
    TransactionFilter,
    TransactionOut,
    TransactionUpdate,
)
from ..services.ledger_service import LedgerService
from ..services.report_service import ReportService


router = APIRouter(prefix="/transactions", tags=["transactions"])


def build_filter(
    search: str = Query(""),
    type: list[TxnType] | None = Query(None),
    account_id: list[int] | None = Query(None),
    category_id: list[int] | None = Query(None),
    include_uncategorized: bool = Query(False),
    start_date: dt.date | None = Query(None),
    end_date: dt.date | None = Query(None),
    min_amount: Decimal | None = Query(None),
    max_amount: Decimal | None = Query(None),
    sort_by: SortOption = Query(SortOption.DATE_DESC),
) -> TransactionFilter:
    try:
        return TransactionFilter(
            search=search,
            types=set(type or ()),
            account_ids=set(account_id or ()),
            category_ids=set(category_id or ()),
            include_uncategorized=include_uncategorized,
            start_date=start_date,
            end_date=end_date,
            min_amount=min_amount,
            max_amount=max_amount,
            sort_by=sort_by,
        )
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        raise ValidationError(first["msg"], field="filter") from None


@router.post("", response_model=TransactionOut, status_code=201)
def create_transaction(payload: TransactionCreate, ledger: LedgerService = Depends(get_ledger)):
    return ledger.insert_transaction(payload)


@router.get("", response_model=list[TransactionOut])
def list_transactions(
    response: Response,
    flt: TransactionFilter = Depends(build_filter),
    limit: int | None = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    reports = ReportService(db)
    response.headers["X-Total-Count"] = str(reports.count_transactions(flt))
    return reports.list_transactions(flt, limit=limit, offset=offset)


@router.get("/{txn_id}", response_model=TransactionOut)
def get_transaction(txn_id: int, ledger: LedgerService = Depends(get_ledger)):
    return ledger.get_transaction(txn_id)


@router.patch("/{txn_id}", response_model=TransactionOut)
def update_transaction(
    txn_id: int,
    payload: TransactionUpdate,
    ledger: LedgerService = Depends(get_ledger),
):
    return ledger.update_transaction(txn_id, payload)


@router.delete("/{txn_id}", status_code=204)
def delete_transaction(txn_id: int, ledger: LedgerService = Depends(get_ledger)):
    ledger.delete_transaction(txn_id)
    return Response(status_code=204)
