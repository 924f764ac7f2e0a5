from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db, get_registry
from app.notifications.whatsapp import WhatsAppClient, get_whatsapp_client
from app.roster.registry import RosterRegistry

from . import service
from .schemas import DailyAbsenceSummary, SendAbsenceMessagesRequest, SendAbsenceMessagesResult

router = APIRouter(prefix="/api/v1/absences", tags=["absences"])


@router.get("/{stream}/semesters/{semester}/{day}", response_model=DailyAbsenceSummary)
async def daily_absence_summary(
    stream: str,
    day: date,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Per-student absences for one day across every subject with attendance, plus message status."""
    try:
        return await service.daily_absence_summary(registry, db, stream, semester, day)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{stream}/semesters/{semester}/{day}/notify", response_model=SendAbsenceMessagesResult)
async def send_absence_messages(
    stream: str,
    day: date,
    payload: Optional[SendAbsenceMessagesRequest] = None,
    semester: int = Path(...),
    registry: RosterRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_db),
    client: WhatsAppClient = Depends(get_whatsapp_client),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Send absence messages for the day. Already-sent days are skipped unless ``forceResend`` is set."""
    try:
        return await service.send_absence_messages(
            registry,
            db,
            client,
            stream,
            semester,
            day,
            force_resend=bool(payload and payload.force_resend),
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
