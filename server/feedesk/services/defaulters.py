"""
feedesk/services/defaulters.py
Pending-fee aggregation over students and their fee records
"""
from datetime import date
from typing import Iterable, List, Optional

from feedesk.models.schemas import (
    Defaulter, DefaulterSummary, FeeStatus, StudentWithFees,
)

CRITICAL_OVERDUE_DAYS = 30
RECENT_OVERDUE_DAYS = 7


def overdue_days(due_date: date, today: date) -> int:
    """Whole days past ``due_date``, floored at zero."""
    return max(0, (today - due_date).days)


def build_defaulter(student: StudentWithFees, today: date) -> Optional[Defaulter]:
    """Return the student's pending position, or None if nothing is owed."""
    pending = sorted(
        (fee for fee in student.fee_records if fee.status == FeeStatus.PENDING),
        key=lambda fee: (fee.due_date, fee.id),
    )
    total_pending = sum(fee.amount for fee in pending)
    if total_pending <= 0:
        return None

    return Defaulter(
        student_id=student.id,
        roll_number=student.roll_number,
        name=student.name,
        email=student.email,
        phone=student.phone,
        course=student.course,
        enrollment_date=student.enrollment_date,
        total_pending=total_pending,
        overdue_days=overdue_days(pending[0].due_date, today),
        fee_records=pending,
    )


def aggregate_defaulters(students: Iterable[StudentWithFees], today: Optional[date] = None) -> List[Defaulter]:
    """
    Students owing money, largest pending total first.

    Students with no pending records, or whose pending records sum to zero,
    are left out.
    """
    today = today or date.today()
    defaulters = []
    for student in students:
        defaulter = build_defaulter(student, today)
        if defaulter is not None:
            defaulters.append(defaulter)
    defaulters.sort(key=lambda d: (-d.total_pending, d.roll_number))
    return defaulters


def search_defaulters(defaulters: List[Defaulter], query: Optional[str]) -> List[Defaulter]:
    query = (query or "").strip().lower()
    if not query:
        return defaulters

    def matches(d: Defaulter) -> bool:
        fields = (d.roll_number, d.name, d.course, d.phone, d.email)
        return any(query in value.lower() for value in fields if value)

    return [d for d in defaulters if matches(d)]


def summarize_defaulters(defaulters: List[Defaulter]) -> DefaulterSummary:
    return DefaulterSummary(
        count=len(defaulters),
        total_pending=sum(d.total_pending for d in defaulters),
        critical=sum(1 for d in defaulters if d.overdue_days > CRITICAL_OVERDUE_DAYS),
        recent=sum(1 for d in defaulters if d.overdue_days <= RECENT_OVERDUE_DAYS),
        with_email=sum(1 for d in defaulters if d.has_email),
        with_phone=sum(1 for d in defaulters if d.has_phone),
    )
