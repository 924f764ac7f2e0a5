"""Attendance API router."""

from fastapi import APIRouter, Depends, HTTPException, Path, status

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_registry
from app.roster.registry import RosterRegistry

from . import service
from .schemas import (
    AttendanceBulkUpdate,
    AttendanceBulkUpdateResult,
    AttendanceMark,
    AttendanceMarkResult,
    AttendanceRegister,
    SubjectStudentList,
)

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])


@router.post(
    "/{stream}/semesters/{semester}/subjects/{subject}",
    response_model=AttendanceMarkResult,
)
async def mark_attendance(
    stream: str,
    subject: str,
    payload: AttendanceMark,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Mark attendance for one subject and date. Language subjects only accept students of that language."""
    try:
        return await service.mark_attendance(registry, stream, semester, subject, payload)
    except service.AttendanceExistsError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={"message": e.message, "exists": True, "existingData": e.existing},
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{stream}/semesters/{semester}/subjects/{subject}/students",
    response_model=SubjectStudentList,
)
async def subject_students(
    stream: str,
    subject: str,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Students to mark for the subject, in natural ID order."""
    try:
        return await service.subject_students(registry, stream, semester, subject)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{stream}/semesters/{semester}/subjects/{subject}/register",
    response_model=AttendanceRegister,
)
async def get_register(
    stream: str,
    subject: str,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_register(registry, stream, semester, subject)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{stream}/semesters/{semester}/subjects/{subject}/register",
    response_model=AttendanceBulkUpdateResult,
    status_code=status.HTTP_200_OK,
)
async def update_register(
    stream: str,
    subject: str,
    payload: AttendanceBulkUpdate,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Bulk update from an ``attendanceMap`` of date to present IDs, all dates in one transaction."""
    try:
        return await service.update_register(registry, stream, semester, subject, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
