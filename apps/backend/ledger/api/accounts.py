from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.deps import get_ledger
from ..schemas import (
    AccountAuditOut,
    AccountCreate,
    AccountOut,
    AccountReconcileRequest,
    AccountUpdate,
    TotalBalanceOut,
    TransactionOut,
)
from ..services.account_service import AccountService
from ..services.ledger_service import LedgerService


router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.post("", response_model=AccountOut, status_code=201)
def create_account(payload: AccountCreate, db: Session = Depends(get_db)):
    return AccountService(db).create(payload)


@router.get("", response_model=list[AccountOut])
def list_accounts(is_active: bool | None = Query(None), db: Session = Depends(get_db)):
    return AccountService(db).get_all(is_active=is_active)


@router.get("/total-balance", response_model=TotalBalanceOut)
def total_balance(db: Session = Depends(get_db)):
    return AccountService(db).total_balance()


@router.get("/{account_id}", response_model=AccountOut)
def get_account(account_id: int, db: Session = Depends(get_db)):
    return AccountService(db).get_by_id(account_id)


@router.patch("/{account_id}", response_model=AccountOut)
def update_account(account_id: int, payload: AccountUpdate, db: Session = Depends(get_db)):
    return AccountService(db).update(account_id, payload)


@router.delete("/{account_id}", status_code=204)
def delete_account(account_id: int, ledger: LedgerService = Depends(get_ledger)):
    ledger.delete_account(account_id)
    return Response(status_code=204)


@router.post("/{account_id}/deactivate", response_model=AccountOut)
def deactivate_account(account_id: int, ledger: LedgerService = Depends(get_ledger)):
    return ledger.deactivate_account(account_id)


@router.post("/{account_id}/reconcile", response_model=TransactionOut | None)
def reconcile_account(
    account_id: int,
    payload: AccountReconcileRequest,
    ledger: LedgerService = Depends(get_ledger),
):
    return ledger.reconcile_account(account_id, payload.observed_balance, on=payload.on)


@router.get("/{account_id}/audit", response_model=AccountAuditOut)
def audit_account(account_id: int, ledger: LedgerService = Depends(get_ledger)):
    return ledger.audit_account(account_id)
