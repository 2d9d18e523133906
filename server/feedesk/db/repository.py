"""
feedesk/db/repository.py
Typed access to the fee desk tables.

Every row coming back from Supabase is validated into a schema model here,
so the services never see raw PostgREST dictionaries.
"""
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel, ValidationError

from feedesk.db.supabase import SupabaseQueries, DataStoreError
from feedesk.models.schemas import (
    Course, Student, StudentWithFees, FeeRecord, FeeRecordWithStudent,
    FeeStatus, NotificationLog,
)
import logging

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

COURSES = "courses"
STUDENTS = "students"
FEE_RECORDS = "fee_records"
NOTIFICATION_LOGS = "notification_logs"


class DuplicateRecordError(Exception):
    """A row with the same natural key already exists."""


def _parse(model: Type[ModelT], table: str, row: Dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(row)
    except ValidationError as e:
        logger.error(f"Unexpected row shape in {table}: {e}")
        raise DataStoreError(f"Unexpected row shape in {table}: {e.error_count()} invalid field(s)")


def _parse_all(model: Type[ModelT], table: str, rows: List[Dict[str, Any]]) -> List[ModelT]:
    return [_parse(model, table, row) for row in rows]


def _serialize(data: Dict[str, Any]) -> Dict[str, Any]:
    """Make a payload JSON-friendly for PostgREST."""
    payload = {}
    for key, value in data.items():
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        elif hasattr(value, "value"):
            value = value.value
        payload[key] = value
    return payload


class FeeRepository:
    """Course, student and fee-record persistence on top of SupabaseQueries."""

    def __init__(self, queries: SupabaseQueries):
        self.db = queries

    # ============================================
    # COURSES
    # ============================================

    async def list_courses(self) -> List[Course]:
        rows = await self.db.select_all(COURSES, order_by="name")
        return _parse_all(Course, COURSES, rows)

    async def get_course(self, course_id: str) -> Optional[Course]:
        row = await self.db.select_by_id(COURSES, "id", course_id)
        return _parse(Course, COURSES, row) if row else None

    async def create_course(self, data: Dict[str, Any]) -> Course:
        row = await self.db.insert_one(COURSES, _serialize(data))
        if not row:
            raise DataStoreError("Course insert returned no data")
        return _parse(Course, COURSES, row)

    async def update_course(self, course_id: str, data: Dict[str, Any]) -> Optional[Course]:
        row = await self.db.update_by_id(COURSES, "id", course_id, _serialize(data))
        return _parse(Course, COURSES, row) if row else None

    # ============================================
    # STUDENTS
    # ============================================

    async def list_students(self, deleted: Optional[bool] = False) -> List[Student]:
        """List students; ``deleted=None`` returns active and trashed alike."""
        filters = {} if deleted is None else {"deleted": deleted}
        rows = await self.db.select_all(STUDENTS, filters, order_by="name")
        return _parse_all(Student, STUDENTS, rows)

    async def get_student(self, student_id: str) -> Optional[Student]:
        row = await self.db.select_by_id(STUDENTS, "id", student_id)
        return _parse(Student, STUDENTS, row) if row else None

    async def get_students(self, student_ids: List[str]) -> Dict[str, Student]:
        rows = await self.db.select_in(STUDENTS, "id", set(student_ids))
        return {s.id: s for s in _parse_all(Student, STUDENTS, rows)}

    async def get_student_by_roll(self, roll_number: str) -> Optional[Student]:
        row = await self.db.select_one(STUDENTS, {"roll_number": roll_number})
        return _parse(Student, STUDENTS, row) if row else None

    async def list_roll_numbers(self) -> Set[str]:
        rows = await self.db.select_all(STUDENTS, columns="roll_number")
        return {row["roll_number"] for row in rows if row.get("roll_number")}

    async def create_student(self, data: Dict[str, Any]) -> Student:
        try:
            row = await self.db.insert_one(STUDENTS, _serialize(data))
        except DataStoreError as e:
            if e.is_unique_violation:
                raise DuplicateRecordError(f"Roll number {data.get('roll_number')} already exists")
            raise
        if not row:
            raise DataStoreError("Student insert returned no data")
        return _parse(Student, STUDENTS, row)

    async def update_student(self, student_id: str, data: Dict[str, Any]) -> Optional[Student]:
        try:
            row = await self.db.update_by_id(STUDENTS, "id", student_id, _serialize(data))
        except DataStoreError as e:
            if e.is_unique_violation:
                raise DuplicateRecordError(f"Roll number {data.get('roll_number')} already exists")
            raise
        return _parse(Student, STUDENTS, row) if row else None

    async def set_student_deleted(self, student_id: str, deleted: bool) -> Optional[Student]:
        return await self.update_student(student_id, {"deleted": deleted})

    async def purge_student(self, student_id: str) -> None:
        """Permanently remove a student together with its fee records."""
        await self.db.delete_many(FEE_RECORDS, {"student_id": student_id})
        await self.db.delete_many(STUDENTS, {"id": student_id})

    async def list_students_with_fees(self, deleted: Optional[bool] = False) -> List[StudentWithFees]:
        filters = {} if deleted is None else {"deleted": deleted}
        rows = await self.db.select_all(
            STUDENTS, filters, order_by="name", columns="*, fee_records(*), courses(*)"
        )
        students = []
        for row in rows:
            row = dict(row)
            row["fee_records"] = row.get("fee_records") or []
            row["linked_course"] = row.pop("courses", None)
            students.append(_parse(StudentWithFees, STUDENTS, row))
        return students

    async def get_student_with_fees(self, student_id: str) -> Optional[StudentWithFees]:
        row = await self.db.select_by_id(
            STUDENTS, "id", student_id, columns="*, fee_records(*), courses(*)"
        )
        if not row:
            return None
        row = dict(row)
        row["fee_records"] = row.get("fee_records") or []
        row["linked_course"] = row.pop("courses", None)
        return _parse(StudentWithFees, STUDENTS, row)

    # ============================================
    # FEE RECORDS
    # ============================================

    async def list_fee_records(
        self,
        student_id: Optional[str] = None,
        status: Optional[FeeStatus] = None,
        month: Optional[str] = None,
        year: Optional[int] = None,
        created_from: Optional[date] = None,
        created_to: Optional[date] = None
    ) -> List[FeeRecord]:
        filters: Dict[str, Any] = {}
        if student_id:
            filters["student_id"] = student_id
        if status:
            filters["status"] = status.value
        if month:
            filters["month"] = month
        if year:
            filters["year"] = year
        gte = {"created_at": created_from.isoformat()} if created_from else None
        # created_at is a timestamp, so the upper bound covers the whole day
        lte = {"created_at": f"{created_to.isoformat()}T23:59:59"} if created_to else None
        rows = await self.db.select_all(
            FEE_RECORDS, filters, order_by="due_date", ascending=False, gte=gte, lte=lte
        )
        return _parse_all(FeeRecord, FEE_RECORDS, rows)

    async def list_pending_with_students(self) -> List[FeeRecordWithStudent]:
        rows = await self.db.select_all(
            FEE_RECORDS, {"status": FeeStatus.PENDING.value},
            order_by="due_date", columns="*, students(*)"
        )
        records = []
        for row in rows:
            row = dict(row)
            student = row.pop("students", None) or {}
            row["student_name"] = student.get("name")
            row["roll_number"] = student.get("roll_number")
            row["course"] = student.get("course")
            records.append(_parse(FeeRecordWithStudent, FEE_RECORDS, row))
        return records

    async def recent_payments(self, limit: int = 20) -> List[FeeRecord]:
        rows = await self.db.select_all(
            FEE_RECORDS, {"status": FeeStatus.PAID.value},
            order_by="payment_date", ascending=False, limit=limit
        )
        return _parse_all(FeeRecord, FEE_RECORDS, rows)

    async def get_fee_record(self, fee_id: str) -> Optional[FeeRecord]:
        row = await self.db.select_by_id(FEE_RECORDS, "id", fee_id)
        return _parse(FeeRecord, FEE_RECORDS, row) if row else None

    async def find_fee_record(self, student_id: str, month: str, year: int) -> Optional[FeeRecord]:
        row = await self.db.select_one(
            FEE_RECORDS, {"student_id": student_id, "month": month, "year": year}
        )
        return _parse(FeeRecord, FEE_RECORDS, row) if row else None

    async def fee_record_exists(self, student_id: str, month: str, year: int) -> bool:
        return await self.db.exists(
            FEE_RECORDS, {"student_id": student_id, "month": month, "year": year}
        )

    async def billed_student_ids(self, month: str, year: int) -> Dict[str, Optional[str]]:
        """Map student id -> challan number for every record of a billing month."""
        rows = await self.db.select_all(FEE_RECORDS, {"month": month, "year": year})
        return {str(row["student_id"]): row.get("challan_number") for row in rows}

    async def create_fee_record(self, data: Dict[str, Any]) -> FeeRecord:
        try:
            row = await self.db.insert_one(FEE_RECORDS, _serialize(data))
        except DataStoreError as e:
            if e.is_unique_violation:
                raise DuplicateRecordError(
                    f"Fee record already exists for {data.get('month')} {data.get('year')}"
                )
            raise
        if not row:
            raise DataStoreError("Fee record insert returned no data")
        return _parse(FeeRecord, FEE_RECORDS, row)

    async def create_fee_records(self, rows: List[Dict[str, Any]]) -> List[FeeRecord]:
        try:
            inserted = await self.db.insert_many(FEE_RECORDS, [_serialize(r) for r in rows])
        except DataStoreError as e:
            if e.is_unique_violation:
                raise DuplicateRecordError("One or more fee records already exist")
            raise
        return _parse_all(FeeRecord, FEE_RECORDS, inserted)

    async def update_fee_record(self, fee_id: str, data: Dict[str, Any]) -> Optional[FeeRecord]:
        row = await self.db.update_by_id(FEE_RECORDS, "id", fee_id, _serialize(data))
        return _parse(FeeRecord, FEE_RECORDS, row) if row else None

    async def mark_fee_paid(
        self,
        fee_id: str,
        payment_date: date,
        challan_number: Optional[str] = None
    ) -> Optional[FeeRecord]:
        """
        Flip a pending record to paid.

        Returns None when the record is missing or no longer pending, so two
        admins paying the same fee cannot both succeed.
        """
        data = {"status": FeeStatus.PAID.value, "payment_date": payment_date.isoformat()}
        if challan_number:
            data["challan_number"] = challan_number
        rows = await self.db.update_many(
            FEE_RECORDS, {"id": fee_id, "status": FeeStatus.PENDING.value}, data
        )
        return _parse(FeeRecord, FEE_RECORDS, rows[0]) if rows else None

    async def delete_fee_record(self, fee_id: str) -> None:
        await self.db.delete_many(FEE_RECORDS, {"id": fee_id})

    # ============================================
    # NOTIFICATION LOGS
    # ============================================

    async def log_notification(self, data: Dict[str, Any]) -> NotificationLog:
        payload = {"sent_at": datetime.now(timezone.utc), **data}
        row = await self.db.insert_one(NOTIFICATION_LOGS, _serialize(payload))
        if not row:
            raise DataStoreError("Notification log insert returned no data")
        return _parse(NotificationLog, NOTIFICATION_LOGS, row)

    async def list_notification_logs(self, limit: int = 50) -> List[NotificationLog]:
        rows = await self.db.select_all(
            NOTIFICATION_LOGS, order_by="sent_at", ascending=False, limit=limit
        )
        return _parse_all(NotificationLog, NOTIFICATION_LOGS, rows)

    async def count_active_students(self) -> int:
        return await self.db.count(STUDENTS, {"deleted": False})
