"""Teacher attendance queue, profile and stats. Every route acts on the caller's own data."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import (
    QueueActionResult,
    QueueBulkCreate,
    QueueBulkResult,
    QueueClassCreate,
    QueuedClassResponse,
    TeacherProfileResponse,
    TeacherProfileUpdate,
    TeacherQueue,
    TeacherStats,
)

router = APIRouter(prefix="/api/v1/teacher", tags=["teacher"])


@router.get("/queue", response_model=TeacherQueue)
async def get_queue(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.get_queue(db, current_user)


@router.post("/queue/add", response_model=QueuedClassResponse, status_code=status.HTTP_201_CREATED)
async def add_to_queue(
    payload: QueueClassCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.add_to_queue(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/queue/bulk-add", response_model=QueueBulkResult, status_code=status.HTTP_201_CREATED)
async def bulk_add_to_queue(
    payload: QueueBulkCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Add several classes; entries that fail are listed under ``errors``."""
    return await service.bulk_add_to_queue(db, current_user, payload)


@router.delete("/queue/clear-completed", response_model=QueueActionResult)
async def clear_completed(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.clear_completed(db, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/queue/{class_id}", response_model=QueueActionResult)
async def remove_from_queue(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.remove_from_queue(db, current_user, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/queue/complete/{class_id}", response_model=QueuedClassResponse)
async def complete_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.complete_class(db, current_user, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/profile", response_model=TeacherProfileResponse)
async def get_profile(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.get_profile(db, current_user)


@router.put("/profile", response_model=TeacherProfileResponse)
async def update_profile(
    payload: TeacherProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.update_profile(db, current_user, payload)


@router.get("/stats", response_model=TeacherStats)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.get_stats(db, current_user)
