"""
feedesk/services/importer.py
Student CSV import with course reconciliation
"""
import csv
import io
from datetime import date
from typing import Dict, List, Optional, Set

from email_validator import validate_email, EmailNotValidError

from feedesk.core.config import settings
from feedesk.db.repository import FeeRepository, DuplicateRecordError
from feedesk.db.supabase import DataStoreError
from feedesk.models.schemas import (
    ImportRow, ImportRowResult, ImportRowStatus, ImportSummary,
)
from feedesk.services.billing import month_name
from feedesk.services.course_resolver import CourseResolver, import_resolver
from feedesk.services.fees import fee_payload
import logging

logger = logging.getLogger(__name__)

# Checked in order against each word of the header; a keyword matches a
# word it starts or ends, so "enrollment_date" is not a roll column and the
# first match wins ("course_name" maps to course, "father_name" to father_name).
HEADER_KEYWORDS = (
    (("roll",), "roll_number"),
    (("course", "program"), "course"),
    (("father", "parent"), "father_name"),
    (("email", "e-mail"), "email"),
    (("name",), "name"),
    (("telephone", "phone", "contact", "mobile"), "phone"),
    (("class", "time", "batch"), "class_time"),
)


class ImportFileError(ValueError):
    """The uploaded file cannot be read as a student CSV."""


def normalize_header(header: str) -> str:
    return "_".join((header or "").strip().lower().split())


def map_header(header: str) -> Optional[str]:
    words = normalize_header(header).split("_")
    for keywords, field in HEADER_KEYWORDS:
        if any(w.startswith(k) or w.endswith(k) for k in keywords for w in words):
            return field
    return None


def parse_csv(content: bytes) -> List[ImportRow]:
    """Decode an uploaded CSV into import rows, skipping blank lines."""
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ImportFileError("File must be UTF-8 encoded CSV")

    reader = csv.reader(io.StringIO(text))
    try:
        headers = next(reader)
    except StopIteration:
        raise ImportFileError("CSV file is empty")

    columns: Dict[int, str] = {}
    for index, header in enumerate(headers):
        field = map_header(header)
        if field and field not in columns.values():
            columns[index] = field
    if "roll_number" not in columns.values() or "name" not in columns.values():
        raise ImportFileError("CSV must have roll number and name columns")

    rows = []
    for line_number, values in enumerate(reader, start=2):
        if not any(value.strip() for value in values):
            continue
        data = {
            field: values[index].strip()
            for index, field in columns.items()
            if index < len(values)
        }
        optional = {k: (v or None) for k, v in data.items() if k not in ("roll_number", "name")}
        rows.append(ImportRow(
            line_number=line_number,
            roll_number=data.get("roll_number", ""),
            name=data.get("name", ""),
            **optional,
        ))
    return rows


def _clean_email(email: Optional[str], warnings: List[str]) -> Optional[str]:
    if not email:
        return None
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError:
        warnings.append(f"Invalid email '{email}' ignored")
        return None


class StudentImporter:
    """Classify and insert imported rows one at a time."""

    def __init__(self, repo: FeeRepository, resolver: CourseResolver, existing_rolls: Set[str]):
        self.repo = repo
        self.resolver = resolver
        self.seen_rolls = set(existing_rolls)

    async def import_row(self, row: ImportRow, today: date) -> ImportRowResult:
        result = ImportRowResult(
            line_number=row.line_number,
            roll_number=row.roll_number,
            status=ImportRowStatus.SUCCESS,
        )

        missing = [label for label, value in (("roll number", row.roll_number), ("name", row.name)) if not value]
        if missing:
            result.status = ImportRowStatus.INVALID
            result.errors.append(f"Missing {' and '.join(missing)}")
            return result

        if row.roll_number in self.seen_rolls:
            result.status = ImportRowStatus.DUPLICATE
            result.errors.append(f"Roll number {row.roll_number} already exists")
            return result

        resolution = self.resolver.resolve(row.course)
        result.course_resolution = resolution
        course = resolution.course

        student_data = {
            "roll_number": row.roll_number,
            "name": row.name,
            "father_name": row.father_name,
            "phone": row.phone,
            "email": _clean_email(row.email, result.warnings),
            "course": course.name if course else row.course,
            "course_id": course.id if course else None,
            "class_time": row.class_time,
            "enrollment_date": today,
            "deleted": False,
        }
        try:
            student = await self.repo.create_student(student_data)
        except DuplicateRecordError as e:
            self.seen_rolls.add(row.roll_number)
            result.status = ImportRowStatus.DUPLICATE
            result.errors.append(str(e))
            return result
        except DataStoreError as e:
            result.status = ImportRowStatus.FAILED
            result.errors.append(str(e))
            return result

        self.seen_rolls.add(row.roll_number)
        result.student_id = student.id

        fee = resolution.monthly_fee if resolution.has_fee else None
        if fee is None and settings.IMPORT_DEFAULT_MONTHLY_FEE:
            fee = settings.IMPORT_DEFAULT_MONTHLY_FEE
            result.warnings.append(f"Course '{row.course or ''}' not matched; default fee {fee:g} applied")
        elif fee is None:
            result.warnings.append(f"Course '{row.course or ''}' not matched; no fee record created")
            return result

        try:
            await self.repo.create_fee_record(fee_payload(
                student.id, fee, month_name(today), today.year, today,
                notes="Imported enrollment fee",
            ))
            result.fee_amount = fee
        except (DuplicateRecordError, DataStoreError) as e:
            logger.error(f"Fee record for imported student {row.roll_number} failed: {e}")
            result.warnings.append(f"Student added but fee record failed: {e}")
        return result


async def import_students(
    repo: FeeRepository,
    rows: List[ImportRow],
    today: Optional[date] = None
) -> ImportSummary:
    """Import parsed rows sequentially and aggregate the outcome."""
    today = today or date.today()
    importer = StudentImporter(
        repo,
        import_resolver(await repo.list_courses()),
        await repo.list_roll_numbers(),
    )
    summary = ImportSummary()
    for row in rows:
        summary.add(await importer.import_row(row, today))

    logger.info(
        f"Import finished: {summary.success} added, {summary.duplicates} duplicates, "
        f"{summary.invalid} invalid, {summary.failed} failed"
    )
    return summary
