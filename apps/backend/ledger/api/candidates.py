from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.database import get_db
from ..core.deps import get_ledger
from ..schemas import CandidateApproveRequest, CandidateExtractOut, CandidateExtractRequest, TransactionOut
from ..services.candidate_service import approve_candidate, screen_candidate
from ..services.ledger_service import LedgerService
from ..services.settings_service import SettingsService


router = APIRouter(prefix="/candidates", tags=["candidates"])


@router.post("/extract", response_model=CandidateExtractOut)
def extract(payload: CandidateExtractRequest, db: Session = Depends(get_db)):
    return screen_candidate(
        payload.sender,
        payload.body,
        threshold=settings.CANDIDATE_MIN_CONFIDENCE,
        received_at=payload.received_at,
        currency_symbol=SettingsService(db).get().currency_symbol,
    )


@router.post("/approve", response_model=TransactionOut, status_code=201)
def approve(payload: CandidateApproveRequest, ledger: LedgerService = Depends(get_ledger)):
    return approve_candidate(
        ledger,
        payload.candidate,
        payload.account_id,
        category_id=payload.category_id,
        note=payload.note,
    )
