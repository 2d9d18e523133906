"""
feedesk/api/v1/endpoints/courses.py
Course catalog endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import List, Optional
from feedesk.models.schemas import (
    AdminSession, Course, CourseCreate, CourseResolution, CourseUpdate,
)
from feedesk.core.security import require_admin
from feedesk.core.dependencies import get_repository
from feedesk.db.repository import FeeRepository
from feedesk.services.course_resolver import CourseResolver, import_resolver
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=List[Course])
async def list_courses(
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """List the course catalog"""
    try:
        return await repo.list_courses()
    except Exception as e:
        logger.error(f"List courses error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch courses: {str(e)}"
        )


@router.get("/resolve", response_model=CourseResolution)
async def resolve_course(
    name: str = Query("", description="Free-text course name"),
    course_id: Optional[str] = None,
    for_import: bool = False,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """
    Show how a free-text course name is matched against the catalog.
    ``for_import`` applies the exclusions used by the CSV import.
    """
    try:
        catalog = await repo.list_courses()
        resolver = import_resolver(catalog) if for_import else CourseResolver(catalog)
        return resolver.resolve(name, course_id)
    except Exception as e:
        logger.error(f"Resolve course error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to resolve course: {str(e)}"
        )


@router.post("/", response_model=Course, status_code=status.HTTP_201_CREATED)
async def create_course(
    course_data: CourseCreate,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Add a course to the catalog"""
    try:
        course = await repo.create_course(course_data.model_dump())
        logger.info(f"Course created: {course.name} ({course.monthly_fee})")
        return course
    except Exception as e:
        logger.error(f"Create course error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create course: {str(e)}"
        )


@router.patch("/{course_id}", response_model=Course)
async def update_course(
    course_id: str,
    course_update: CourseUpdate,
    repo: FeeRepository = Depends(get_repository),
    session: AdminSession = Depends(require_admin)
):
    """Update a course"""
    try:
        update_dict = course_update.model_dump(exclude_unset=True)
        if not update_dict:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No fields to update"
            )

        course = await repo.update_course(course_id, update_dict)
        if not course:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Course not found"
            )
        logger.info(f"Course updated: {course_id}")
        return course
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update course error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update course: {str(e)}"
        )
