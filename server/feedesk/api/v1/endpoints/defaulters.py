"""
feedesk/api/v1/endpoints/defaulters.py
Defaulter list and reminders
"""
from fastapi import APIRouter, HTTPException, status, Depends
from typing import Optional
from feedesk.models.schemas import (
    AdminSession, DefaulterList, NotificationItemResult, ReminderRequest, StudentWithFees,
)
from feedesk.core.security import require_admin
from feedesk.core.dependencies import get_repository, get_email_service, get_student_or_404
from feedesk.db.repository import FeeRepository
from feedesk.services.defaulters import (
    aggregate_defaulters, build_defaulter, search_defaulters, summarize_defaulters,
)
from feedesk.services.email_service import EmailService
from feedesk.services.notifications import remind
from datetime import date
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=DefaulterList)
async def get_defaulters(
    search: Optional[str] = None,
    include_deleted: bool = False,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """
    Students with pending fees, largest outstanding amount first.
    ``search`` filters by roll number, name, course, phone or email.
    """
    try:
        students = await repo.list_students_with_fees(deleted=None if include_deleted else False)
        defaulters = search_defaulters(aggregate_defaulters(students), search)
        return DefaulterList(summary=summarize_defaulters(defaulters), defaulters=defaulters)
    except Exception as e:
        logger.error(f"Get defaulters error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch defaulters: {str(e)}"
        )


@router.post("/{student_id}/remind", response_model=NotificationItemResult)
async def remind_defaulter(
    request: ReminderRequest,
    student: StudentWithFees = Depends(get_student_or_404),
    repo: FeeRepository = Depends(get_repository),
    email_service: EmailService = Depends(get_email_service),
    session: AdminSession = Depends(require_admin)
):
    """Email a fee reminder to one defaulter"""
    defaulter = build_defaulter(student, date.today())
    if defaulter is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Student has no pending fees"
        )
    try:
        return await remind(repo, email_service, defaulter, request.message)
    except Exception as e:
        logger.error(f"Remind defaulter error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to send reminder: {str(e)}"
        )
