"""
feedesk/services/fees.py
Fee entry, payment marking, enrollment fees and challan generation
"""
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from feedesk.db.repository import FeeRepository, DuplicateRecordError
from feedesk.db.supabase import DataStoreError
from feedesk.models.schemas import (
    BulkPaymentItem, BulkPaymentItemResult, BulkPaymentResult, Challan,
    ChallanBatchResult, Course, CourseResolution, FeeCreate, FeeRecord,
    FeeRecordWithStudent, FeeStatus, PaymentOutcome, REGISTRATION_MONTH,
    Student, StudentWithFees,
)
from feedesk.services.billing import academic_year, challan_number, due_date_for, month_name
from feedesk.services.course_resolver import CourseResolver
from feedesk.services.email_service import EmailService
import logging

logger = logging.getLogger(__name__)


class UnresolvedFeeError(Exception):
    """No fee amount was given and none could be derived from the course."""


class PaidFeeError(Exception):
    """Paid fee records are immutable."""


def fee_payload(
    student_id: str,
    amount: float,
    month: str,
    year: int,
    due_date: date,
    status: FeeStatus = FeeStatus.PENDING,
    payment_date: Optional[date] = None,
    challan: Optional[str] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """Row for the fee_records table."""
    return {
        "student_id": student_id,
        "amount": amount,
        "month": month,
        "year": year,
        "academic_year": academic_year(year),
        "due_date": due_date,
        "status": status,
        "payment_date": payment_date,
        "challan_number": challan,
        "notes": notes,
    }


async def load_resolver(repo: FeeRepository) -> CourseResolver:
    return CourseResolver(await repo.list_courses())


def resolve_student_fee(resolver: CourseResolver, student: Student, linked_course: Optional[Course] = None) -> CourseResolution:
    return resolver.resolve(student.course, student.course_id, linked_course)


# ============================================
# FEE ENTRY
# ============================================

async def add_fee(
    repo: FeeRepository,
    email_service: EmailService,
    fee: FeeCreate,
    student: Student,
    today: Optional[date] = None
) -> FeeRecord:
    """
    Create one fee record for a student.

    Raises:
        UnresolvedFeeError: no amount given and the course has no known fee
        DuplicateRecordError: the student already has a record for that month
    """
    today = today or date.today()

    amount = fee.amount
    if amount is None:
        resolution = resolve_student_fee(await load_resolver(repo), student)
        if not resolution.has_fee:
            raise UnresolvedFeeError(
                f"Cannot determine the monthly fee for course '{student.course or ''}'; provide an amount"
            )
        amount = resolution.monthly_fee

    if await repo.fee_record_exists(student.id, fee.month, fee.year):
        raise DuplicateRecordError(f"Fee record already exists for {fee.month} {fee.year}")

    due = today if fee.month == REGISTRATION_MONTH else due_date_for(fee.month, fee.year)
    is_paid = fee.status == FeeStatus.PAID
    record = await repo.create_fee_record(fee_payload(
        student.id, amount, fee.month, fee.year, due,
        status=fee.status,
        payment_date=today if is_paid else None,
        challan=fee.challan_number,
        notes=fee.notes,
    ))
    logger.info(f"Fee {record.id} added for {student.roll_number}: {fee.month} {fee.year} = {amount}")

    if is_paid:
        await email_service.send_payment_confirmation([_with_student(record, student)])
    return record


def _with_student(record: FeeRecord, student: Student) -> FeeRecordWithStudent:
    return FeeRecordWithStudent(
        **record.model_dump(),
        student_name=student.name,
        roll_number=student.roll_number,
        course=student.course,
    )


async def create_enrollment_fees(
    repo: FeeRepository,
    student: Student,
    resolution: CourseResolution,
    catalog: Iterable[Course],
    today: Optional[date] = None
) -> List[FeeRecord]:
    """First month's fee plus the registration fee for a newly enrolled student."""
    today = today or date.today()
    if not resolution.has_fee:
        logger.warning(f"No fee known for {student.roll_number} ({student.course}); skipping enrollment fees")
        return []

    course_name = resolution.course.name if resolution.course else student.course
    rows = [fee_payload(
        student.id, resolution.monthly_fee, month_name(today), today.year, today,
        notes=f"Monthly fee for {course_name}",
    )]
    registration = min(
        (c for c in catalog if "registration" in c.name.lower() and c.monthly_fee > 0),
        key=lambda c: (c.name, c.id),
        default=None,
    )
    if registration is not None:
        rows.append(fee_payload(
            student.id, registration.monthly_fee, REGISTRATION_MONTH, today.year, today,
            notes="Registration Fee",
        ))
    return await repo.create_fee_records(rows)


# ============================================
# PAYMENTS
# ============================================

async def mark_paid(
    repo: FeeRepository,
    item: BulkPaymentItem,
    today: Optional[date] = None
) -> BulkPaymentItemResult:
    """Mark one record paid; only a pending record can change."""
    today = today or date.today()
    try:
        updated = await repo.mark_fee_paid(item.fee_id, today, item.challan_number)
        if updated is not None:
            return BulkPaymentItemResult(fee_id=item.fee_id, outcome=PaymentOutcome.UPDATED, amount=updated.amount)

        existing = await repo.get_fee_record(item.fee_id)
        if existing is None:
            return BulkPaymentItemResult(fee_id=item.fee_id, outcome=PaymentOutcome.NOT_FOUND, error="Fee record not found")
        return BulkPaymentItemResult(
            fee_id=item.fee_id, outcome=PaymentOutcome.ALREADY_PAID, amount=existing.amount,
            error="Fee record is already paid",
        )
    except DataStoreError as e:
        logger.error(f"Failed to mark fee {item.fee_id} paid: {e}")
        return BulkPaymentItemResult(fee_id=item.fee_id, outcome=PaymentOutcome.FAILED, error=str(e))


async def bulk_mark_paid(
    repo: FeeRepository,
    email_service: EmailService,
    items: List[BulkPaymentItem],
    today: Optional[date] = None
) -> BulkPaymentResult:
    """Mark records paid one by one and send a single summary email."""
    result = BulkPaymentResult()
    updated_ids = []
    for item in items:
        outcome = await mark_paid(repo, item, today)
        result.add(outcome)
        if outcome.outcome == PaymentOutcome.UPDATED:
            updated_ids.append(item.fee_id)

    if updated_ids:
        paid = await _records_with_students(repo, updated_ids)
        by_id = {p.id: p for p in paid}
        for item in result.items:
            record = by_id.get(item.fee_id)
            if record is not None:
                item.student_name = record.student_name
                item.roll_number = record.roll_number
        email = await email_service.send_payment_confirmation(paid)
        result.email_sent = email.success

    logger.info(
        f"Bulk payment: {result.updated} updated, {result.already_paid} already paid, "
        f"{result.not_found} not found, {result.failed} failed"
    )
    return result


async def _records_with_students(repo: FeeRepository, fee_ids: List[str]) -> List[FeeRecordWithStudent]:
    records = [r for r in [await repo.get_fee_record(fid) for fid in fee_ids] if r is not None]
    students = await repo.get_students([r.student_id for r in records])
    joined = []
    for record in records:
        student = students.get(record.student_id)
        joined.append(FeeRecordWithStudent(
            **record.model_dump(),
            student_name=student.name if student else None,
            roll_number=student.roll_number if student else None,
            course=student.course if student else None,
        ))
    return joined


async def delete_fee(repo: FeeRepository, record: FeeRecord) -> None:
    if record.status == FeeStatus.PAID:
        raise PaidFeeError("Paid fee records cannot be deleted")
    await repo.delete_fee_record(record.id)


# ============================================
# CHALLANS
# ============================================

def build_challan(
    student: StudentWithFees,
    month: str,
    year: int,
    resolver: CourseResolver,
    existing: Optional[FeeRecord] = None,
    today: Optional[date] = None
) -> Challan:
    """Challan for one student and billing month; the amount is None when unresolved."""
    today = today or date.today()
    resolution = resolve_student_fee(resolver, student, student.linked_course)
    if existing is not None:
        amount = existing.amount
    else:
        amount = resolution.monthly_fee if resolution.has_fee else None
    return Challan(
        challan_number=challan_number(student.roll_number, month, year),
        student_id=student.id,
        student_name=student.name,
        roll_number=student.roll_number,
        course=resolution.course.name if resolution.course else student.course,
        month=month,
        year=year,
        amount=amount,
        due_date=due_date_for(month, year),
        course_resolution=resolution,
        existing_challan_number=existing.challan_number if existing else None,
        generated_on=today,
    )


async def preview_challan(
    repo: FeeRepository,
    student: StudentWithFees,
    month: str,
    year: int,
    today: Optional[date] = None
) -> Challan:
    existing = next(
        (f for f in student.fee_records if f.month == month and f.year == year), None
    )
    return build_challan(student, month, year, await load_resolver(repo), existing, today)


async def generate_challans(
    repo: FeeRepository,
    month: str,
    year: int,
    today: Optional[date] = None
) -> ChallanBatchResult:
    """
    Create pending fee records with challan numbers for every active student.

    Students already billed for the month and students whose fee cannot be
    determined are skipped and reported.
    """
    today = today or date.today()
    resolver = await load_resolver(repo)
    billed = await repo.billed_student_ids(month, year)
    result = ChallanBatchResult(month=month, year=year)

    for student in await repo.list_students_with_fees():
        if student.id in billed:
            result.skipped_existing += 1
            continue

        challan = build_challan(student, month, year, resolver, today=today)
        if challan.amount is None:
            result.skipped_unresolved += 1
            result.unresolved_students.append(student.roll_number)
            continue

        try:
            await repo.create_fee_record(fee_payload(
                student.id, challan.amount, month, year, challan.due_date,
                challan=challan.challan_number,
                notes=f"Monthly fee for {challan.course or 'course'}",
            ))
        except DuplicateRecordError:
            # billed concurrently since the pre-check
            result.skipped_existing += 1
            continue

        result.created += 1
        result.total_amount += challan.amount
        result.challans.append(challan)

    logger.info(
        f"Challans for {month} {year}: {result.created} created, "
        f"{result.skipped_existing} already billed, {result.skipped_unresolved} unresolved"
    )
    return result
