"""
feedesk/services/receipts.py
Challan / receipt rendering as HTML and PDF
"""
from html import escape
from io import BytesIO
from typing import List, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from feedesk.core.config import settings
from feedesk.models.schemas import FeeRecordWithStudent, FeeStatus, MONTHS
from feedesk.services.billing import challan_number, format_amount


def receipt_number(record: FeeRecordWithStudent) -> str:
    if record.challan_number:
        return record.challan_number
    if record.roll_number and record.month in MONTHS:
        return challan_number(record.roll_number, record.month, record.year)
    return "-"


def receipt_lines(record: FeeRecordWithStudent) -> List[Tuple[str, str]]:
    """Label/value pairs shown on both the HTML and the PDF receipt."""
    lines = [
        ("Challan No", receipt_number(record)),
        ("Student", record.student_name or "Unknown"),
        ("Roll Number", record.roll_number or "-"),
        ("Course", record.course or "-"),
        ("Fee Month", f"{record.month} {record.year}"),
        ("Academic Year", record.academic_year or "-"),
        ("Due Date", record.due_date.strftime("%d %b %Y")),
        ("Amount", format_amount(record.amount)),
        ("Status", record.status.value.upper()),
    ]
    if record.status == FeeStatus.PAID and record.payment_date:
        lines.append(("Paid On", record.payment_date.strftime("%d %b %Y")))
    if record.notes:
        lines.append(("Notes", record.notes))
    return lines


def render_receipt_html(record: FeeRecordWithStudent) -> str:
    rows = "\n".join(
        f"<tr><th style=\"text-align: left; padding: 4px 12px 4px 0;\">{escape(label)}</th>"
        f"<td>{escape(value)}</td></tr>"
        for label, value in receipt_lines(record)
    )
    title = "Fee Receipt" if record.status == FeeStatus.PAID else "Fee Challan"
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{escape(title)} {escape(receipt_number(record))}</title></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2>{escape(settings.COLLEGE_NAME)}</h2>
    <p>{escape(settings.COLLEGE_ADDRESS)} | {escape(settings.COLLEGE_PHONE)}</p>
    <h3>{escape(title)}</h3>
    <table>
{rows}
    </table>
    <p style="margin-top: 40px;">Cashier signature: ____________________</p>
</body>
</html>
"""


def render_receipt_pdf(record: FeeRecordWithStudent) -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    x, y = 20*mm, height - 20*mm

    c.setFont("Helvetica-Bold", 14)
    c.drawString(x, y, settings.COLLEGE_NAME)
    y -= 6*mm
    c.setFont("Helvetica", 9)
    c.drawString(x, y, f"{settings.COLLEGE_ADDRESS} | {settings.COLLEGE_PHONE}")
    y -= 10*mm

    c.setFont("Helvetica-Bold", 12)
    c.drawString(x, y, "Fee Receipt" if record.status == FeeStatus.PAID else "Fee Challan")
    y -= 5*mm
    c.line(x, y, width - 20*mm, y)
    y -= 8*mm

    c.setFont("Helvetica", 11)
    for label, value in receipt_lines(record):
        c.drawString(x, y, f"{label}:")
        c.drawString(x + 45*mm, y, value)
        y -= 7*mm

    y -= 15*mm
    c.drawString(x, y, "Cashier signature: ____________________")
    c.showPage()
    c.save()
    return buffer.getvalue()
