"""
Normalization helpers

Normalize free-form names and notification text so that lookups and
pattern matching do not depend on case, width or spacing.
"""

import re
import unicodedata


def normalize_token(value: str | None) -> str:
    """
    Collapse a name to a comparison token

    - NFKC normalization
    - casefold
    - strip whitespace and punctuation

    Args:
        value: string to normalize

    Returns:
        normalized token

    Example:
        >>> normalize_token("HDFC Bank - 1234")
        "hdfcbank1234"
        >>> normalize_token("  Food & Dining ")
        "fooddining"
    """
    if not value:
        return ""

    normalized = unicodedata.normalize("NFKC", value)
    normalized = normalized.casefold()
    normalized = re.sub(r"\W+", "", normalized, flags=re.UNICODE)

    return normalized


def normalize_text(value: str | None, *, lower: bool = True) -> str:
    """
    Prepare notification text for pattern matching

    NFKC turns full-width digits and currency signs into their ASCII forms,
    then runs of whitespace collapse to single spaces. Punctuation is kept
    because amount and date patterns depend on it.

    Example:
        >>> normalize_text("Rs. ５００  debited")
        "rs. 500 debited"
        >>> normalize_text("Rs. ５００  debited", lower=False)
        "Rs. 500 debited"
    """
    if not value:
        return ""

    normalized = unicodedata.normalize("NFKC", value)
    normalized = re.sub(r"\s+", " ", normalized).strip()

    return normalized.lower() if lower else normalized


def clean_name(value: str | None) -> str:
    """Trim and collapse inner whitespace of a user supplied name."""
    if not value:
        return ""
    return re.sub(r"\s+", " ", value).strip()
