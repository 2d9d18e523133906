"""
feedesk/api/v1/endpoints/reports.py
Dashboard and collection reports
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import List, Optional
from datetime import date
from feedesk.models.schemas import (
    AdminSession, CourseReport, DashboardStats, MonthlyCollection,
    TransactionReport, YearlySummary,
)
from feedesk.core.security import require_admin
from feedesk.core.dependencies import get_repository
from feedesk.db.repository import FeeRepository
from feedesk.services import reports
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


def _report_error(name: str, e: Exception) -> HTTPException:
    logger.error(f"{name} report error: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to build {name} report: {str(e)}"
    )


@router.get("/dashboard", response_model=DashboardStats)
async def get_dashboard(
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Headline figures for the dashboard"""
    try:
        return await reports.dashboard_stats(repo)
    except Exception as e:
        raise _report_error("dashboard", e)


@router.get("/monthly", response_model=List[MonthlyCollection])
async def get_monthly_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Billed, paid and pending totals per fee month"""
    if start_date and end_date and start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must not be after end_date"
        )
    try:
        return await reports.monthly_report(repo, start_date, end_date)
    except Exception as e:
        raise _report_error("monthly", e)


@router.get("/courses", response_model=List[CourseReport])
async def get_course_report(
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Collection figures per course"""
    try:
        return await reports.course_report(repo)
    except Exception as e:
        raise _report_error("course", e)


@router.get("/yearly", response_model=List[YearlySummary])
async def get_yearly_report(
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Collection figures per year"""
    try:
        return await reports.yearly_report(repo)
    except Exception as e:
        raise _report_error("yearly", e)


@router.get("/transactions", response_model=List[TransactionReport])
async def get_recent_transactions(
    limit: int = Query(20, ge=1, le=100),
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Latest recorded payments"""
    try:
        return await reports.recent_transactions(repo, limit)
    except Exception as e:
        raise _report_error("transactions", e)
