from fastapi import APIRouter, Depends, HTTPException, Path

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_registry
from app.roster.registry import RosterRegistry

from . import service
from .schemas import AvailableDataResponse, StudentSubjectReport, SubjectAnalysis

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


@router.get("/available-data", response_model=AvailableDataResponse)
async def available_data(
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Which streams and semesters have active students, with counts."""
    return await service.available_data(registry)


@router.get("/{stream}/semesters/{semester}/student-subject", response_model=StudentSubjectReport)
async def student_subject_report(
    stream: str,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.student_subject_report(registry, stream, semester)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{stream}/semesters/{semester}/subject-analysis", response_model=SubjectAnalysis)
async def subject_analysis(
    stream: str,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.subject_analysis(registry, stream, semester)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
