from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from .. import models
from ..errors import ValidationError
from ..schemas import Candidate, CandidateExtractOut
from .ledger_service import LedgerService
from .text_extractor import extract_candidate


logger = logging.getLogger(__name__)


def screen_candidate(
    sender: str,
    body: str,
    *,
    threshold: float,
    received_at: Optional[date] = None,
    currency_symbol: str = "₹",
) -> CandidateExtractOut:
    """Run the extractor and apply the caller's acceptance threshold."""
    candidate = extract_candidate(sender, body, received_at=received_at)
    if candidate is None:
        return CandidateExtractOut(threshold=threshold)
    return CandidateExtractOut(
        candidate=candidate,
        accepted=candidate.confidence >= threshold,
        threshold=threshold,
        summary=candidate.summary(currency_symbol),
    )


def approve_candidate(
    ledger: LedgerService,
    candidate: Candidate,
    account_id: int,
    *,
    category_id: Optional[int] = None,
    note: Optional[str] = None,
) -> models.Transaction:
    """Turn an approved candidate into a transaction through the ledger."""
    if candidate.type is models.TxnType.TRANSFER:
        raise ValidationError("Candidates cannot be transfers", field="type")
    txn = ledger.insert_transaction(
        {
            "account_id": account_id,
            "category_id": category_id,
            "amount": candidate.amount,
            "type": candidate.type,
            "date": candidate.date,
            "note": note if note is not None else (candidate.merchant or ""),
        }
    )
    logger.info("Candidate approved as transaction %s", txn.id)
    return txn
