from fastapi import APIRouter, Depends, HTTPException, Path, status

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_registry
from app.roster.registry import RosterRegistry

from . import service
from .schemas import (
    StudentBulkCreate,
    StudentBulkCreateResult,
    StudentCreate,
    StudentListResponse,
    StudentResponse,
)

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.get("/{stream}/semesters/{semester}", response_model=StudentListResponse)
async def list_students(
    stream: str,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Active students of one semester, grouped by language subject."""
    try:
        return await service.list_students(registry, stream, semester)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{stream}/semesters/{semester}",
    response_model=StudentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_student(
    stream: str,
    payload: StudentCreate,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(require_admin),
):
    try:
        return await service.enroll_student(registry, stream, semester, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{stream}/semesters/{semester}/bulk",
    response_model=StudentBulkCreateResult,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_students_bulk(
    stream: str,
    payload: StudentBulkCreate,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(require_admin),
):
    try:
        return await service.enroll_students_bulk(registry, stream, semester, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{stream}/semesters/{semester}/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def deactivate_student(
    stream: str,
    student_id: str,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(require_admin),
):
    try:
        await service.deactivate_student(registry, stream, semester, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
