"""
feedesk/services/reports.py
Collection reports and dashboard figures
"""
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional, Set

from feedesk.db.repository import FeeRepository
from feedesk.models.schemas import (
    CourseReport, DashboardStats, FeeRecord, FeeStatus, MONTHS,
    MonthlyCollection, Student, TransactionReport, YearlySummary,
)
from feedesk.services.defaulters import aggregate_defaulters

NO_COURSE = "No Course"


def _month_index(month: str) -> int:
    # Registration and other non-calendar months sort after the year's real months
    return MONTHS.index(month) if month in MONTHS else -1


def monthly_collections(records: List[FeeRecord]) -> List[MonthlyCollection]:
    """Totals per (month, year), newest first."""
    grouped: Dict[tuple, MonthlyCollection] = {}
    for record in records:
        key = (record.month, record.year)
        row = grouped.setdefault(key, MonthlyCollection(month=record.month, year=record.year))
        row.total += record.amount
        if record.status == FeeStatus.PAID:
            row.paid += record.amount
        else:
            row.pending += record.amount
    return sorted(grouped.values(), key=lambda r: (-r.year, -_month_index(r.month), r.month))


def collection_rate(collected: float, pending: float) -> int:
    total = collected + pending
    return round(collected / total * 100) if total > 0 else 0


def course_reports(students: List[Student], records: List[FeeRecord]) -> List[CourseReport]:
    """Per-course totals over active students, highest collection first."""
    fees_by_student: Dict[str, List[FeeRecord]] = defaultdict(list)
    for record in records:
        fees_by_student[record.student_id].append(record)

    courses: Dict[str, CourseReport] = {}
    for student in students:
        if student.deleted:
            continue
        name = student.course or NO_COURSE
        report = courses.setdefault(name, CourseReport(course=name))
        report.total_students += 1
        for fee in fees_by_student.get(student.id, []):
            if fee.status == FeeStatus.PAID:
                report.total_collected += fee.amount
            else:
                report.total_pending += fee.amount

    for report in courses.values():
        report.collection_rate = collection_rate(report.total_collected, report.total_pending)
    return sorted(courses.values(), key=lambda r: (-r.total_collected, r.course))


def yearly_summaries(records: List[FeeRecord]) -> List[YearlySummary]:
    years: Dict[int, YearlySummary] = {}
    students: Dict[int, Set[str]] = defaultdict(set)
    for record in records:
        summary = years.setdefault(record.year, YearlySummary(year=record.year))
        if record.status == FeeStatus.PAID:
            summary.total_collected += record.amount
        else:
            summary.total_pending += record.amount
        students[record.year].add(record.student_id)

    for year, summary in years.items():
        summary.student_count = len(students[year])
    return sorted(years.values(), key=lambda s: -s.year)


# ============================================
# REPORTS OVER THE STORE
# ============================================

async def dashboard_stats(repo: FeeRepository, today: Optional[date] = None) -> DashboardStats:
    students = await repo.list_students_with_fees()
    records = [fee for student in students for fee in student.fee_records]
    return DashboardStats(
        total_students=await repo.count_active_students(),
        total_collected=sum(f.amount for f in records if f.status == FeeStatus.PAID),
        total_pending=sum(f.amount for f in records if f.status == FeeStatus.PENDING),
        defaulters=len(aggregate_defaulters(students, today)),
    )


async def monthly_report(
    repo: FeeRepository,
    created_from: Optional[date] = None,
    created_to: Optional[date] = None
) -> List[MonthlyCollection]:
    records = await repo.list_fee_records(created_from=created_from, created_to=created_to)
    return monthly_collections(records)


async def course_report(repo: FeeRepository) -> List[CourseReport]:
    return course_reports(await repo.list_students(), await repo.list_fee_records())


async def yearly_report(repo: FeeRepository) -> List[YearlySummary]:
    return yearly_summaries(await repo.list_fee_records())


async def recent_transactions(repo: FeeRepository, limit: int = 20) -> List[TransactionReport]:
    payments = await repo.recent_payments(limit)
    students = await repo.get_students([p.student_id for p in payments]) if payments else {}
    transactions = []
    for payment in payments:
        student = students.get(payment.student_id)
        transactions.append(TransactionReport(
            fee_id=payment.id,
            student_name=student.name if student else "Unknown",
            roll_number=student.roll_number if student else None,
            amount=payment.amount,
            month=payment.month,
            year=payment.year,
            payment_date=payment.payment_date,
            status=payment.status,
            challan_number=payment.challan_number,
        ))
    return transactions
