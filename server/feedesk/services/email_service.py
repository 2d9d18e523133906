"""
feedesk/services/email_service.py
Email service using SendGrid
"""
from html import escape
from typing import Iterable, List, Optional
import uuid

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from feedesk.core.config import settings
from feedesk.models.schemas import EmailResult, Defaulter, FeeRecordWithStudent
from feedesk.services.billing import format_amount
import logging

logger = logging.getLogger(__name__)


def _footer() -> str:
    return f"""
            <hr style="border: none; border-top: 1px solid #ddd; margin: 20px 0;">
            <p style="color: #666; font-size: 12px;">
                {escape(settings.COLLEGE_NAME)} | {escape(settings.COLLEGE_ADDRESS)} | {escape(settings.COLLEGE_PHONE)}<br>
                This is an automated email. Please do not reply.
            </p>
    """


class EmailService:
    """Email service for fee reminders and payment confirmations"""

    def __init__(self):
        if settings.SENDGRID_API_KEY:
            self.sg = SendGridAPIClient(settings.SENDGRID_API_KEY)
        else:
            self.sg = None
            logger.warning("SendGrid API key not configured. Emails will be logged only.")

        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> EmailResult:
        """
        Send email via SendGrid

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML content of email
            text_content: Optional plain-text alternative

        Returns:
            EmailResult: success flag, the relay's message id, or the error
        """
        if not self.sg:
            logger.info(f"[EMAIL] To: {to_email} | Subject: {subject}")
            logger.debug(f"[EMAIL] Content: {html_content}")
            return EmailResult(success=True, message_id=f"logged-{uuid.uuid4().hex[:12]}")

        try:
            message = Mail(
                from_email=(self.from_email, self.from_name),
                to_emails=to_email,
                subject=subject,
                html_content=html_content,
                plain_text_content=text_content
            )
            if settings.COLLEGE_EMAIL:
                message.reply_to = settings.COLLEGE_EMAIL

            response = self.sg.send(message)
            message_id = response.headers.get("X-Message-Id") if response.headers else None
            logger.info(f"Email sent to {to_email}: {response.status_code}")
            return EmailResult(success=True, message_id=message_id)

        except Exception as e:
            logger.error(f"Email send failed to {to_email}: {e}")
            return EmailResult(success=False, error=str(e))

    async def send_fee_reminder(self, defaulter: Defaulter, message: str) -> EmailResult:
        """Send a pending-fee reminder to a defaulter"""
        if not defaulter.email:
            return EmailResult(success=False, error="No email address")

        paragraphs = "".join(
            f"<p>{escape(line)}</p>" for line in message.split("\n") if line.strip()
        )
        overdue = (
            f"<p><strong>Overdue:</strong> {defaulter.overdue_days} days</p>"
            if defaulter.overdue_days > 0 else ""
        )
        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #b91c1c;">Fee Payment Reminder</h2>
            {paragraphs}
            <div style="background-color: #fef2f2; padding: 15px; border-radius: 5px; margin: 20px 0;">
                <p><strong>Roll Number:</strong> {escape(defaulter.roll_number)}</p>
                <p><strong>Course:</strong> {escape(defaulter.course or 'Not provided')}</p>
                <p><strong>Pending Amount:</strong> {escape(format_amount(defaulter.total_pending))}</p>
                {overdue}
            </div>
            <p>Please visit the college office (9:00 AM - 5:00 PM, Monday to Friday) to clear the pending dues.</p>
            {_footer()}
        </div>
        """
        text_content = (
            f"{message}\n\nRoll Number: {defaulter.roll_number}\n"
            f"Course: {defaulter.course or 'Not provided'}\n"
            f"Pending Amount: {format_amount(defaulter.total_pending)}\n"
        )
        return await self.send_email(
            defaulter.email,
            f"Fee Payment Reminder - {settings.COLLEGE_NAME}",
            html_content,
            text_content
        )

    async def send_payment_confirmation(self, payments: Iterable[FeeRecordWithStudent]) -> EmailResult:
        """Send one summary of recorded payments to the admin address"""
        payments: List[FeeRecordWithStudent] = list(payments)
        admin_email = settings.ADMIN_NOTIFICATION_EMAIL or settings.FROM_EMAIL
        if not payments:
            return EmailResult(success=False, error="No payments to confirm")

        total = sum(p.amount for p in payments)
        rows = "".join(
            f"<tr><td>{escape(p.student_name or '')}</td><td>{escape(p.roll_number or '')}</td>"
            f"<td>{escape(p.month)} {p.year}</td><td>{escape(p.challan_number or '-')}</td>"
            f"<td style=\"text-align: right;\">{escape(format_amount(p.amount))}</td></tr>"
            for p in payments
        )
        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #059669;">Payment Confirmation</h2>
            <p>{len(payments)} payment(s) recorded.</p>
            <table style="width: 100%; border-collapse: collapse;">
                <tr><th>Student</th><th>Roll No</th><th>Month</th><th>Challan</th><th>Amount</th></tr>
                {rows}
            </table>
            <p><strong>Total:</strong> {escape(format_amount(total))}</p>
            {_footer()}
        </div>
        """
        subject = (
            f"Payment Confirmed - {payments[0].student_name} ({payments[0].roll_number})"
            if len(payments) == 1
            else f"Bulk Payment Confirmed - {len(payments)} Students"
        )
        return await self.send_email(admin_email, subject, html_content)
