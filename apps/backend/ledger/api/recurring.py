from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Query, Response
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.deps import get_scheduler
from ..schemas import (
    RecurringRuleCreate,
    RecurringRuleOut,
    RecurringRulePreviewOut,
    RecurringRuleUpdate,
    SchedulerRunOut,
    SchedulerRunRequest,
)
from ..services.recurring_service import RecurringRuleService
from ..services.scheduler import RecurringScheduler


router = APIRouter(tags=["recurring"])


@router.post("/recurring-rules", response_model=RecurringRuleOut, status_code=201)
def create_recurring_rule(payload: RecurringRuleCreate, db: Session = Depends(get_db)):
    return RecurringRuleService(db).create(payload)


@router.get("/recurring-rules", response_model=list[RecurringRuleOut])
def list_recurring_rules(is_active: bool | None = Query(None), db: Session = Depends(get_db)):
    return RecurringRuleService(db).list_rules(is_active=is_active)


@router.get("/recurring-rules/{rule_id}", response_model=RecurringRuleOut)
def get_recurring_rule(rule_id: int, db: Session = Depends(get_db)):
    return RecurringRuleService(db).get(rule_id)


@router.patch("/recurring-rules/{rule_id}", response_model=RecurringRuleOut)
def update_recurring_rule(rule_id: int, payload: RecurringRuleUpdate, db: Session = Depends(get_db)):
    return RecurringRuleService(db).update(rule_id, payload)


@router.delete("/recurring-rules/{rule_id}", status_code=204)
def delete_recurring_rule(rule_id: int, db: Session = Depends(get_db)):
    RecurringRuleService(db).delete(rule_id)
    return Response(status_code=204)


@router.get("/recurring-rules/{rule_id}/preview", response_model=RecurringRulePreviewOut)
def preview_recurring_rule(
    rule_id: int,
    count: int = Query(5, ge=1, le=60),
    db: Session = Depends(get_db),
):
    occurrences = RecurringRuleService(db).preview_occurrences(rule_id, count)
    return RecurringRulePreviewOut(rule_id=rule_id, occurrences=occurrences)


@router.post("/scheduler/run", response_model=SchedulerRunOut)
def run_scheduler(
    payload: SchedulerRunRequest | None = Body(None),
    scheduler: RecurringScheduler = Depends(get_scheduler),
):
    now = payload.now if payload is not None else None
    return scheduler.run(now).to_out()
