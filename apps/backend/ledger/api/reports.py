from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..errors import ValidationError
from ..models import TxnType
from ..schemas import CategoryTotalOut, TypeTotalsOut
from ..services.report_service import ReportService


router = APIRouter(prefix="/reports", tags=["reports"])


def _check_window(start_date: dt.date, end_date: dt.date) -> None:
    if end_date < start_date:
        raise ValidationError("end_date must be on or after start_date", field="end_date")


@router.get("/totals", response_model=TypeTotalsOut)
def type_totals(
    start_date: dt.date = Query(...),
    end_date: dt.date = Query(...),
    db: Session = Depends(get_db),
):
    _check_window(start_date, end_date)
    return ReportService(db).type_totals(start_date, end_date)


@router.get("/category-totals", response_model=list[CategoryTotalOut])
def category_totals(
    start_date: dt.date = Query(...),
    end_date: dt.date = Query(...),
    type: TxnType = Query(TxnType.EXPENSE),
    db: Session = Depends(get_db),
):
    _check_window(start_date, end_date)
    if type is TxnType.TRANSFER:
        raise ValidationError("Transfers have no categories", field="type")
    return ReportService(db).category_totals(start_date, end_date, type=type)
