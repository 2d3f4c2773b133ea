"""
Transaction candidates from bank notification text

Pure functions over module-level compiled patterns; no storage access and no
shared mutable state, so calls are safe from any thread. Malformed input
yields ``None`` rather than an exception.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from .. import models
from ..schemas import Candidate
from ..utils.normalization import normalize_text


DEBIT_KEYWORDS = (
    "debited",
    "debit",
    "spent",
    "paid",
    "purchase",
    "withdrawn",
    "payment",
    "transaction",
    "used",
    "bought",
    "charged",
)

CREDIT_KEYWORDS = (
    "credited",
    "credit",
    "received",
    "deposited",
    "refund",
    "cashback",
    "reward",
    "salary",
    "transfer in",
)

BANK_KEYWORDS = (
    "bank",
    "hdfc",
    "icici",
    "sbi",
    "axis",
    "kotak",
    "paytm",
    "phonepe",
    "gpay",
    "googlepay",
    "amazon",
    "flipkart",
)

BANKING_TOKENS = ("a/c", "account", "card", "upi")

WEIGHT_AMOUNT = 0.4
WEIGHT_DIRECTION = 0.3
WEIGHT_MERCHANT = 0.2
WEIGHT_INSTITUTION = 0.1

_NUMBER = r"([0-9][0-9,]*(?:\.[0-9]{1,2})?)"
_CURRENCY = r"(?:(?<![a-z])rs\.?|(?<![a-z])inr|₹)"
_FLAGS = re.IGNORECASE

AMOUNT_PATTERNS = (
    re.compile(_CURRENCY + r"\s*" + _NUMBER, _FLAGS),
    re.compile(r"\b(?:amount|amt)\b\.?\s*:?\s*(?:" + _CURRENCY + r")?\s*" + _NUMBER, _FLAGS),
    re.compile(r"(?<![0-9.,])" + _NUMBER + r"\s*(?:rs\b|inr\b|₹)", _FLAGS),
    re.compile(
        r"\b(?:debited|credited|paid|received|spent)\b\s*(?:by|with|of|for)?\s*(?:" + _CURRENCY + r")?\s*" + _NUMBER,
        _FLAGS,
    ),
)

BALANCE_PATTERN = re.compile(
    r"\b(?:avl\.?\s*bal(?:ance)?|available\s+bal(?:ance)?|bal(?:ance)?)\b\.?\s*(?:is|of)?\s*:?\s*(?:"
    + _CURRENCY
    + r")?\s*"
    + _NUMBER,
    _FLAGS,
)

_NAME = r"([A-Z][A-Z0-9\s&'-]+?)"
_NAME_END = r"(?=\s+on\b|\s+dated\b|\s+ref\b|\s+via\b|\s+using\b|\s+for\b|[.,;]|$)"

MERCHANT_PATTERNS = (
    re.compile(r"\b(?:at|to|from)\s+" + _NAME + _NAME_END, _FLAGS),
    re.compile(r"\b(?:merchant|vendor)\s*:?\s*" + _NAME + _NAME_END, _FLAGS),
)

ACCOUNT_PATTERNS = (
    re.compile(r"\b(?:a/c|account|card)\s*(?:ending|no\.?)\s*(?:with\s*)?:?\s*([X*0-9]{4,})", _FLAGS),
    re.compile(r"(?<![a-z])(?:a/c|acct)\s*:?\s*([X*]+[0-9]{3,}|[0-9]{4,})", _FLAGS),
)

_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")

NUMERIC_DATE_PATTERN = re.compile(r"(?<![0-9])(\d{1,2})[-/](\d{1,2})[-/](\d{4}|\d{2})(?![0-9])")
NAMED_DATE_PATTERN = re.compile(
    r"(?<![0-9])(\d{1,2})[\s-]*(" + "|".join(_MONTHS) + r")[a-z]*[\s,-]*(\d{4}|\d{2})(?![0-9])",
    _FLAGS,
)

_CORPORATE_SUFFIX = re.compile(r"\b(?:pvt|ltd|limited|inc|corp|co)\b\.?", _FLAGS)


def _parse_number(raw: str) -> Optional[Decimal]:
    try:
        value = Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def _year(raw: str) -> int:
    value = int(raw)
    return value + 2000 if value < 100 else value


def is_banking_message(sender: str, lowered: str) -> bool:
    sender_lower = sender.lower()
    if any(keyword in sender_lower for keyword in BANK_KEYWORDS):
        return True
    if any(keyword in lowered for keyword in BANK_KEYWORDS):
        return True
    return any(token in lowered for token in BANKING_TOKENS)


def classify_direction(lowered: str) -> Optional[models.TxnType]:
    """EXPENSE or INCOME when exactly one keyword set matches, else None."""
    has_debit = any(keyword in lowered for keyword in DEBIT_KEYWORDS)
    has_credit = any(keyword in lowered for keyword in CREDIT_KEYWORDS)
    if has_debit and not has_credit:
        return models.TxnType.EXPENSE
    if has_credit and not has_debit:
        return models.TxnType.INCOME
    return None


def extract_balance(text: str) -> tuple[Optional[Decimal], Optional[tuple[int, int]]]:
    """Post-transaction balance and the span of the clause it came from."""
    match = BALANCE_PATTERN.search(text)
    if match is None:
        return None, None
    return _parse_number(match.group(1)), match.span()


def extract_amount(text: str, *, skip: Optional[tuple[int, int]] = None) -> Optional[Decimal]:
    for pattern in AMOUNT_PATTERNS:
        for match in pattern.finditer(text):
            if skip is not None and skip[0] <= match.start(1) < skip[1]:
                continue
            value = _parse_number(match.group(1))
            if value is not None:
                return value
    return None


def clean_merchant_name(raw: str) -> Optional[str]:
    cleaned = _CORPORATE_SUFFIX.sub(" ", raw)
    words = [word for word in cleaned.split() if word]
    if not words:
        return None
    cleaned = " ".join(word[:1].upper() + word[1:].lower() for word in words)
    return cleaned if len(cleaned) > 2 else None


def extract_merchant(text: str) -> Optional[str]:
    for pattern in MERCHANT_PATTERNS:
        for match in pattern.finditer(text):
            raw = match.group(1).strip()
            if len(raw) <= 2:
                continue
            merchant = clean_merchant_name(raw)
            if merchant:
                return merchant
    return None


def extract_account_hint(text: str) -> Optional[str]:
    for pattern in ACCOUNT_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).upper()
    return None


def extract_date(text: str) -> Optional[date]:
    for match in NUMERIC_DATE_PATTERN.finditer(text):
        day, month, year = match.groups()
        try:
            return date(_year(year), int(month), int(day))
        except ValueError:
            continue
    for match in NAMED_DATE_PATTERN.finditer(text):
        day, month_name, year = match.groups()
        try:
            return date(_year(year), _MONTHS.index(month_name[:3].lower()) + 1, int(day))
        except ValueError:
            continue
    return None


def score_confidence(
    *,
    amount: Optional[Decimal],
    direction: Optional[models.TxnType],
    merchant: Optional[str],
    has_institution: bool,
) -> float:
    score = 0.0
    if amount is not None and amount > 0:
        score += WEIGHT_AMOUNT
    if direction is not None:
        score += WEIGHT_DIRECTION
    if merchant:
        score += WEIGHT_MERCHANT
    if has_institution:
        score += WEIGHT_INSTITUTION
    return round(min(max(score, 0.0), 1.0), 4)


def extract_candidate(
    sender: Optional[str],
    body: Optional[str],
    *,
    received_at: Optional[date] = None,
) -> Optional[Candidate]:
    """Best-effort transaction guess from a notification, or ``None``.

    Ambiguous direction (both or neither keyword set present) and a missing
    amount both yield ``None``. Identical input always gives an identical
    result, except that a message without a date falls back to
    ``received_at`` (or today).
    """
    sender = normalize_text(sender if isinstance(sender, str) else "")
    text = normalize_text(body if isinstance(body, str) else "", lower=False)
    if not text:
        return None
    lowered = text.lower()

    if not is_banking_message(sender, lowered):
        return None

    direction = classify_direction(lowered)
    if direction is None:
        return None

    balance, balance_span = extract_balance(text)
    amount = extract_amount(text, skip=balance_span)
    if amount is None:
        return None

    merchant = extract_merchant(text)
    has_institution = any(keyword in sender or keyword in lowered for keyword in BANK_KEYWORDS)

    return Candidate(
        amount=amount,
        type=direction,
        merchant=merchant,
        account_hint=extract_account_hint(text),
        balance=balance,
        date=extract_date(text) or received_at or models.today_local(),
        confidence=score_confidence(
            amount=amount,
            direction=direction,
            merchant=merchant,
            has_institution=has_institution,
        ),
    )
