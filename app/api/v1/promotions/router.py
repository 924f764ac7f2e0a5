"""Semester promotion API router."""

from fastapi import APIRouter, Depends, HTTPException

from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_registry
from app.roster.registry import RosterRegistry

from . import service
from .schemas import PromotionReport

router = APIRouter(prefix="/api/v1/promotions", tags=["promotions"])


@router.post(
    "/{stream}",
    response_model=PromotionReport,
    response_model_exclude_none=True,
)
async def promote_stream(
    stream: str,
    registry: RosterRegistry = Depends(get_registry),
    current_user: CurrentUser = Depends(require_admin),
):
    """Graduate the final semester and move every semester of the stream up by one. Admin only."""
    try:
        return await service.promote_stream(registry, stream)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
