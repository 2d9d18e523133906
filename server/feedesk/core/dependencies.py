"""
feedesk/core/dependencies.py
Request-scoped dependencies shared by the routers
"""
from fastapi import Depends, HTTPException, status

from feedesk.db.repository import FeeRepository
from feedesk.db.supabase import SupabaseQueries
from feedesk.models.schemas import StudentWithFees
from feedesk.services.email_service import EmailService


def get_repository() -> FeeRepository:
    return FeeRepository(SupabaseQueries())


def get_email_service() -> EmailService:
    return EmailService()


async def get_student_or_404(
    student_id: str,
    repo: FeeRepository = Depends(get_repository)
) -> StudentWithFees:
    """
    Dependency to load a student (with fee records) from the path.
    """
    student = await repo.get_student_with_fees(student_id)
    if not student:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found"
        )
    return student
