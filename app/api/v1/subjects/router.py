from fastapi import APIRouter, Depends, HTTPException, Path, status

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_registry
from app.roster.registry import RosterRegistry

from .schemas import SubjectCreate, SubjectListResponse, SubjectResponse
from . import service

router = APIRouter(prefix="/api/v1/subjects", tags=["subjects"])


@router.post(
    "/{stream}/semesters/{semester}",
    response_model=SubjectResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_subject(
    stream: str,
    payload: SubjectCreate,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(require_admin),
):
    """Create a subject for one stream/semester. Language subjects need a language type."""
    try:
        return await service.create_subject(registry, stream, semester, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{stream}/semesters/{semester}", response_model=SubjectListResponse)
async def list_subjects(
    stream: str,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.list_subjects(registry, stream, semester)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
