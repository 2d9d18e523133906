"""
feedesk/api/v1/endpoints/fees.py
Fee management endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from fastapi.responses import HTMLResponse, Response
from typing import List, Optional
from datetime import date
from feedesk.models.schemas import (
    AdminSession, BulkPaymentItem, BulkPaymentRequest, BulkPaymentResult,
    Challan, ChallanBatchRequest, ChallanBatchResult, FeeCreate, FeePaymentMark,
    FeeRecord, FeeRecordWithStudent, FeeStatus, FeeUpdate, MONTHS, PaymentOutcome,
    StudentWithFees,
)
from feedesk.core.security import require_admin
from feedesk.core.dependencies import get_repository, get_email_service, get_student_or_404
from feedesk.db.repository import FeeRepository, DuplicateRecordError
from feedesk.services.email_service import EmailService
from feedesk.services.fees import (
    PaidFeeError, UnresolvedFeeError, add_fee, bulk_mark_paid, delete_fee,
    generate_challans, mark_paid, preview_challan,
)
from feedesk.services.receipts import receipt_number, render_receipt_html, render_receipt_pdf
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


async def _fee_with_student(repo: FeeRepository, fee_id: str) -> FeeRecordWithStudent:
    record = await repo.get_fee_record(fee_id)
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Fee record not found"
        )
    student = await repo.get_student(record.student_id)
    return FeeRecordWithStudent(
        **record.model_dump(),
        student_name=student.name if student else None,
        roll_number=student.roll_number if student else None,
        course=student.course if student else None,
    )

# ============================================
# CREATE OPERATIONS
# ============================================

@router.post("/", response_model=FeeRecord, status_code=status.HTTP_201_CREATED)
async def create_fee(
    fee_data: FeeCreate,
    repo: FeeRepository = Depends(get_repository),
    email_service: EmailService = Depends(get_email_service),
    session: AdminSession = Depends(require_admin)
):
    """
    Create a fee record for a student (Admin only)
    The amount defaults to the monthly fee of the student's course
    """
    try:
        student = await repo.get_student(fee_data.student_id)
        if not student:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Student not found"
            )
        return await add_fee(repo, email_service, fee_data, student)

    except HTTPException:
        raise
    except UnresolvedFeeError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except DuplicateRecordError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        logger.error(f"Create fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create fee record: {str(e)}"
        )


@router.post("/bulk-payment", response_model=BulkPaymentResult)
async def bulk_payment(
    request: BulkPaymentRequest,
    repo: FeeRepository = Depends(get_repository),
    email_service: EmailService = Depends(get_email_service),
    session: AdminSession = Depends(require_admin)
):
    """Mark several pending fee records paid (Admin only)"""
    try:
        return await bulk_mark_paid(repo, email_service, request.items)
    except Exception as e:
        logger.error(f"Bulk payment error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to record payments: {str(e)}"
        )


@router.post("/challans/batch", response_model=ChallanBatchResult)
async def create_challan_batch(
    request: ChallanBatchRequest,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Bill every active student for a month (Admin only)"""
    try:
        return await generate_challans(repo, request.month, request.year)
    except Exception as e:
        logger.error(f"Challan batch error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate challans: {str(e)}"
        )

# ============================================
# READ OPERATIONS
# ============================================

@router.get("/", response_model=List[FeeRecord])
async def get_fees(
    student_id: Optional[str] = None,
    fee_status: Optional[FeeStatus] = Query(None, alias="status"),
    month: Optional[str] = None,
    year: Optional[int] = None,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Get fee records with filtering"""
    try:
        return await repo.list_fee_records(
            student_id=student_id,
            status=fee_status,
            month=month.strip().title() if month else None,
            year=year
        )
    except Exception as e:
        logger.error(f"Get fees error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve fee records: {str(e)}"
        )


@router.get("/pending", response_model=List[FeeRecordWithStudent])
async def get_pending_fees(
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Pending fee records with student details, earliest due first"""
    try:
        return await repo.list_pending_with_students()
    except Exception as e:
        logger.error(f"Get pending fees error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve pending fees: {str(e)}"
        )


@router.get("/challans/{student_id}", response_model=Challan)
async def get_challan(
    month: Optional[str] = None,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    student: StudentWithFees = Depends(get_student_or_404),
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Preview the challan for a student and month"""
    today = date.today()
    month = (month or MONTHS[today.month - 1]).strip().title()
    year = year or today.year
    if month not in MONTHS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown month: {month}"
        )
    try:
        return await preview_challan(repo, student, month, year)
    except Exception as e:
        logger.error(f"Challan preview error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to build challan: {str(e)}"
        )


@router.get("/{fee_id}", response_model=FeeRecordWithStudent)
async def get_fee(
    fee_id: str,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Get a fee record with its student"""
    try:
        return await _fee_with_student(repo, fee_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve fee record: {str(e)}"
        )


@router.get("/{fee_id}/receipt", response_class=HTMLResponse)
async def get_receipt_html(
    fee_id: str,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Printable HTML challan / receipt"""
    try:
        return HTMLResponse(render_receipt_html(await _fee_with_student(repo, fee_id)))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Receipt error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to render receipt: {str(e)}"
        )


@router.get("/{fee_id}/receipt.pdf")
async def get_receipt_pdf(
    fee_id: str,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """PDF challan / receipt"""
    try:
        record = await _fee_with_student(repo, fee_id)
        return Response(
            content=render_receipt_pdf(record),
            media_type="application/pdf",
            headers={"Content-Disposition": f'inline; filename="{receipt_number(record)}.pdf"'}
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Receipt PDF error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to render receipt: {str(e)}"
        )

# ============================================
# UPDATE OPERATIONS
# ============================================

@router.post("/{fee_id}/pay", response_model=FeeRecord)
async def pay_fee(
    fee_id: str,
    payment: FeePaymentMark,
    repo: FeeRepository = Depends(get_repository),
    email_service: EmailService = Depends(get_email_service),
    session: AdminSession = Depends(require_admin)
):
    """Mark one pending fee record paid"""
    try:
        outcome = await mark_paid(repo, BulkPaymentItem(fee_id=fee_id, challan_number=payment.challan_number))
        if outcome.outcome == PaymentOutcome.NOT_FOUND:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Fee record not found")
        if outcome.outcome == PaymentOutcome.ALREADY_PAID:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Fee record is already paid")
        if outcome.outcome == PaymentOutcome.FAILED:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to record payment: {outcome.error}"
            )

        paid = await _fee_with_student(repo, fee_id)
        await email_service.send_payment_confirmation([paid])
        logger.info(f"Fee {fee_id} marked paid")
        return FeeRecord(**paid.model_dump(exclude={"student_name", "roll_number", "course"}))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Pay fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to record payment: {str(e)}"
        )


@router.patch("/{fee_id}", response_model=FeeRecord)
async def update_fee(
    fee_id: str,
    fee_update: FeeUpdate,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Update a pending fee record"""
    try:
        update_dict = fee_update.model_dump(exclude_unset=True)
        if not update_dict:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No fields to update"
            )

        record = await repo.get_fee_record(fee_id)
        if not record:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Fee record not found"
            )
        if record.status == FeeStatus.PAID and ("amount" in update_dict or "due_date" in update_dict):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Amount and due date of a paid fee cannot change"
            )

        updated = await repo.update_fee_record(fee_id, update_dict)
        logger.info(f"Fee {fee_id} updated")
        return updated

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update fee record: {str(e)}"
        )

# ============================================
# DELETE OPERATIONS
# ============================================

@router.delete("/{fee_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_fee(
    fee_id: str,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Delete a pending fee record"""
    try:
        record = await repo.get_fee_record(fee_id)
        if not record:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Fee record not found"
            )
        await delete_fee(repo, record)
        logger.info(f"Fee {fee_id} deleted")

    except HTTPException:
        raise
    except PaidFeeError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        logger.error(f"Delete fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete fee record: {str(e)}"
        )
