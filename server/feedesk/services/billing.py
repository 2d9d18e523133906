"""
feedesk/services/billing.py
Billing calendar helpers: due dates, academic years and challan numbers
"""
from datetime import date
from typing import Optional

from feedesk.core.config import settings
from feedesk.models.schemas import MONTHS


def month_number(month: str) -> int:
    """1-based month number for a month name."""
    return MONTHS.index(month.strip().title()) + 1


def month_name(day: date) -> str:
    return MONTHS[day.month - 1]


def due_date_for(month: str, year: int, due_day: Optional[int] = None) -> date:
    """Due date of a monthly fee: the configured day of that month."""
    return date(year, month_number(month), due_day or settings.FEE_DUE_DAY)


def academic_year(year: int) -> str:
    return f"{year}-{year + 1}"


def challan_number(roll_number: str, month: str, year: int) -> str:
    """CH + year + two-digit month + the last three characters of the roll number."""
    return f"CH{year}{month_number(month):02d}{roll_number[-3:]}"


def format_amount(amount: float) -> str:
    return f"{settings.CURRENCY_LABEL} {amount:,.0f}"
