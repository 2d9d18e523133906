"""
feedesk/api/v1/endpoints/students.py
Student management endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query, UploadFile, File
from typing import List, Optional
from datetime import date
from feedesk.models.schemas import (
    AdminSession, FeeStatus, ImportSummary, Student, StudentCreate,
    StudentCreated, StudentDetail, StudentUpdate, StudentWithFees,
)
from feedesk.core.config import settings
from feedesk.core.security import require_admin
from feedesk.core.dependencies import get_repository, get_student_or_404
from feedesk.db.repository import FeeRepository, DuplicateRecordError
from feedesk.db.supabase import DataStoreError
from feedesk.services.course_resolver import CourseResolver
from feedesk.services.fees import create_enrollment_fees
from feedesk.services.importer import ImportFileError, import_students, parse_csv
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

# ============================================
# CREATE OPERATIONS
# ============================================

@router.post("/", response_model=StudentCreated, status_code=status.HTTP_201_CREATED)
async def create_student(
    student_data: StudentCreate,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """
    Enroll a student (Admin only)
    Creates the first month's pending fee and the registration fee when the
    course fee is known
    """
    try:
        if await repo.get_student_by_roll(student_data.roll_number):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Roll number {student_data.roll_number} already exists"
            )

        catalog = await repo.list_courses()
        resolution = CourseResolver(catalog).resolve(student_data.course, student_data.course_id)

        student_dict = student_data.model_dump()
        if resolution.course:
            student_dict["course"] = resolution.course.name
            student_dict["course_id"] = resolution.course.id
        elif student_data.course_id and not any(c.id == student_data.course_id for c in catalog):
            # stale link; keep the free text only
            student_dict["course_id"] = None
        student_dict["enrollment_date"] = student_data.enrollment_date or date.today()
        student_dict["deleted"] = False

        student = await repo.create_student(student_dict)
        fee_records, warnings = [], []
        try:
            fee_records = await create_enrollment_fees(repo, student, resolution, catalog)
        except (DuplicateRecordError, DataStoreError) as e:
            logger.error(f"Enrollment fees for {student.roll_number} failed: {e}")
            warnings.append(f"Student added but fee records failed: {e}")

        logger.info(f"Student created: {student.roll_number} ({resolution.status.value})")
        return StudentCreated(
            student=student, course_resolution=resolution,
            fee_records=fee_records, warnings=warnings
        )

    except HTTPException:
        raise
    except DuplicateRecordError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        logger.error(f"Create student error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create student: {str(e)}"
        )


@router.post("/import", response_model=ImportSummary)
async def import_students_csv(
    file: UploadFile = File(...),
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Import students from a CSV file (Admin only)"""
    if not (file.filename or "").lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please upload a CSV file"
        )

    content = await file.read()
    if len(content) > settings.MAX_IMPORT_FILE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="CSV file is too large"
        )

    try:
        rows = parse_csv(content)
    except ImportFileError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        summary = await import_students(repo, rows)
        logger.info(f"CSV import of {file.filename}: {summary.success}/{summary.total} rows added")
        return summary
    except Exception as e:
        logger.error(f"Import students error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to import students: {str(e)}"
        )

# ============================================
# READ OPERATIONS
# ============================================

@router.get("/", response_model=List[Student])
async def get_students(
    search: Optional[str] = None,
    deleted: bool = Query(False, description="List the trash instead of active students"),
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """List students, optionally filtered by roll number, name or course"""
    try:
        students = await repo.list_students(deleted=deleted)
        query = (search or "").strip().lower()
        if query:
            students = [
                s for s in students
                if any(query in (value or "").lower() for value in (s.roll_number, s.name, s.course))
            ]
        return students
    except Exception as e:
        logger.error(f"Get students error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch students: {str(e)}"
        )


@router.get("/{student_id}", response_model=StudentDetail)
async def get_student(
    student: StudentWithFees = Depends(get_student_or_404),
    session: AdminSession = Depends(require_admin)
):
    """Get a student with fee history and totals"""
    fee_records = sorted(student.fee_records, key=lambda f: (f.due_date, f.id), reverse=True)
    return StudentDetail(
        student=Student(**student.model_dump(exclude={"fee_records", "linked_course"})),
        fee_records=fee_records,
        total_pending=sum(f.amount for f in fee_records if f.status == FeeStatus.PENDING),
        total_paid=sum(f.amount for f in fee_records if f.status == FeeStatus.PAID),
    )

# ============================================
# UPDATE OPERATIONS
# ============================================

@router.patch("/{student_id}", response_model=Student)
async def update_student(
    student_id: str,
    student_update: StudentUpdate,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Update student details (Admin only)"""
    try:
        update_dict = student_update.model_dump(exclude_unset=True)
        if not update_dict:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No fields to update"
            )

        if "course" in update_dict or "course_id" in update_dict:
            catalog = await repo.list_courses()
            # course and course_id are always written together
            resolution = CourseResolver(catalog).resolve(
                update_dict.get("course"), update_dict.get("course_id")
            )
            if resolution.course:
                update_dict["course"] = resolution.course.name
                update_dict["course_id"] = resolution.course.id
            elif not any(c.id == update_dict.get("course_id") for c in catalog):
                update_dict["course_id"] = None

        student = await repo.update_student(student_id, update_dict)
        if not student:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Student not found"
            )
        logger.info(f"Student updated: {student_id}")
        return student

    except HTTPException:
        raise
    except DuplicateRecordError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        logger.error(f"Update student error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update student: {str(e)}"
        )


@router.post("/{student_id}/restore", response_model=Student)
async def restore_student(
    student_id: str,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Move a student out of the trash"""
    return await _set_deleted(repo, student_id, False)

# ============================================
# DELETE OPERATIONS
# ============================================

@router.delete("/{student_id}", response_model=Student)
async def delete_student(
    student_id: str,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Soft delete a student (moves it to the trash)"""
    return await _set_deleted(repo, student_id, True)


@router.delete("/{student_id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
async def purge_student(
    student_id: str,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Permanently delete a trashed student and its fee records"""
    try:
        student = await repo.get_student(student_id)
        if not student:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Student not found"
            )
        if not student.deleted:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Move the student to the trash before deleting permanently"
            )

        await repo.purge_student(student_id)
        logger.info(f"Student permanently deleted: {student.roll_number}")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Purge student error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete student: {str(e)}"
        )


async def _set_deleted(repo: FeeRepository, student_id: str, deleted: bool) -> Student:
    try:
        student = await repo.set_student_deleted(student_id, deleted)
        if not student:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Student not found"
            )
        logger.info(f"Student {'deleted' if deleted else 'restored'}: {student_id}")
        return student
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update student deleted flag error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update student: {str(e)}"
        )
