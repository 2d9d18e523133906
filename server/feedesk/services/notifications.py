"""
feedesk/services/notifications.py
Fee reminder notifications for defaulters
"""
from datetime import date
from typing import List, Optional

from feedesk.db.repository import FeeRepository
from feedesk.db.supabase import DataStoreError
from feedesk.models.schemas import (
    Defaulter, DeliveryStatus, NotificationBatchResult, NotificationItemResult,
)
from feedesk.services.billing import format_amount
from feedesk.services.defaulters import build_defaulter
from feedesk.services.email_service import EmailService
import logging

logger = logging.getLogger(__name__)


class _KeepMissing(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def render_message(template: str, defaulter: Defaulter) -> str:
    """Fill the reminder placeholders; unknown placeholders are left as typed."""
    values = _KeepMissing(
        student_name=defaulter.name,
        roll_number=defaulter.roll_number,
        course=defaulter.course or "",
        pending_amount=format_amount(defaulter.total_pending),
        overdue_days=defaulter.overdue_days,
    )
    try:
        return template.format_map(values)
    except (ValueError, IndexError):
        # stray braces; send the text unformatted
        return template


async def remind(
    repo: FeeRepository,
    email_service: EmailService,
    defaulter: Defaulter,
    template: str
) -> NotificationItemResult:
    """Email one defaulter and log the attempt."""
    message = render_message(template, defaulter)
    email = await email_service.send_fee_reminder(defaulter, message)
    status = DeliveryStatus.SENT if email.success else DeliveryStatus.FAILED

    try:
        await repo.log_notification({
            "student_id": defaulter.student_id,
            "type": "email",
            "status": status,
            "message": message,
            "error": email.error,
            "message_id": email.message_id,
        })
    except DataStoreError as e:
        logger.error(f"Could not log notification for {defaulter.roll_number}: {e}")

    if not email.success:
        logger.warning(f"Reminder to {defaulter.roll_number} failed: {email.error}")
    return NotificationItemResult(
        student_id=defaulter.student_id,
        name=defaulter.name,
        status=status,
        message_id=email.message_id,
        error=email.error,
    )


async def send_reminders(
    repo: FeeRepository,
    email_service: EmailService,
    student_ids: List[str],
    template: str,
    today: Optional[date] = None
) -> NotificationBatchResult:
    """Remind the selected students one by one."""
    today = today or date.today()
    students = {s.id: s for s in await repo.list_students_with_fees(deleted=None)}
    result = NotificationBatchResult()

    for student_id in dict.fromkeys(student_ids):
        student = students.get(student_id)
        if student is None:
            result.add(NotificationItemResult(
                student_id=student_id, status=DeliveryStatus.FAILED, error="Student not found"
            ))
            continue
        defaulter = build_defaulter(student, today)
        if defaulter is None:
            result.add(NotificationItemResult(
                student_id=student_id, name=student.name,
                status=DeliveryStatus.FAILED, error="No pending fees",
            ))
            continue
        result.add(await remind(repo, email_service, defaulter, template))

    logger.info(f"Reminders: {result.sent} sent, {result.failed} failed of {result.requested}")
    return result
