"""
Utils package
"""

from .dates import add_month, add_months, clamp_day
from .normalization import clean_name, normalize_text, normalize_token

__all__ = [
    "add_month",
    "add_months",
    "clamp_day",
    "clean_name",
    "normalize_text",
    "normalize_token",
]
