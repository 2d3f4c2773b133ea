"""
Calendar helpers

Month arithmetic clamps the day to the length of the target month, so
Jan 31 + 1 month is Feb 28 (or Feb 29 in a leap year).
"""

import calendar
from datetime import date


def add_month(year: int, month: int, delta: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + delta
    new_year = total // 12
    new_month = total % 12 + 1
    return new_year, new_month


def clamp_day(year: int, month: int, day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def add_months(base: date, delta: int) -> date:
    year, month = add_month(base.year, base.month, delta)
    return clamp_day(year, month, base.day)
