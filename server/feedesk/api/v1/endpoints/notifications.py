"""
feedesk/api/v1/endpoints/notifications.py
Bulk reminder sending and notification history
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import List
from feedesk.models.schemas import (
    AdminSession, NotificationBatchResult, NotificationLog, NotificationRequest,
)
from feedesk.core.security import require_admin
from feedesk.core.dependencies import get_repository, get_email_service
from feedesk.db.repository import FeeRepository
from feedesk.services.email_service import EmailService
from feedesk.services.notifications import send_reminders
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/send", response_model=NotificationBatchResult)
async def send_notifications(
    request: NotificationRequest,
    repo: FeeRepository = Depends(get_repository),
    email_service: EmailService = Depends(get_email_service),
    session: AdminSession = Depends(require_admin)
):
    """Send fee reminders to the selected students"""
    try:
        return await send_reminders(repo, email_service, request.student_ids, request.message)
    except Exception as e:
        logger.error(f"Send notifications error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to send notifications: {str(e)}"
        )


@router.get("/logs", response_model=List[NotificationLog])
async def get_notification_logs(
    limit: int = Query(50, ge=1, le=500),
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Most recent notification attempts"""
    try:
        return await repo.list_notification_logs(limit)
    except Exception as e:
        logger.error(f"Get notification logs error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch notification logs: {str(e)}"
        )
