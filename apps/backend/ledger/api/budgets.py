from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..models import today_local
from ..schemas import BudgetCreate, BudgetOut, BudgetSummaryOut, BudgetUpdate
from ..services.budget_service import BudgetService


router = APIRouter(prefix="/budgets", tags=["budgets"])


@router.post("", response_model=BudgetOut, status_code=201)
def create_budget(payload: BudgetCreate, db: Session = Depends(get_db)):
    return BudgetService(db).create(payload)


@router.get("", response_model=list[BudgetOut])
def list_budgets(active_only: bool = Query(False), db: Session = Depends(get_db)):
    return BudgetService(db).list_budgets(active_only=active_only)


@router.get("/current", response_model=list[BudgetOut])
def current_budgets(on: dt.date | None = Query(None), db: Session = Depends(get_db)):
    return BudgetService(db).current(on or today_local())


@router.patch("/{budget_id}", response_model=BudgetOut)
def update_budget(budget_id: int, payload: BudgetUpdate, db: Session = Depends(get_db)):
    return BudgetService(db).update(budget_id, payload)


@router.delete("/{budget_id}", status_code=204)
def delete_budget(budget_id: int, db: Session = Depends(get_db)):
    BudgetService(db).delete(budget_id)
    return Response(status_code=204)


@router.get("/{budget_id}/summary", response_model=BudgetSummaryOut)
def budget_summary(budget_id: int, db: Session = Depends(get_db)):
    return BudgetService(db).summary(budget_id)
