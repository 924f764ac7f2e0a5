from fastapi import APIRouter, Depends

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.notifications.whatsapp import WhatsAppClient, get_whatsapp_client

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("/whatsapp/status")
async def whatsapp_status(
    client: WhatsAppClient = Depends(get_whatsapp_client),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Whether the WhatsApp Cloud API is configured. Never returns the token."""
    return {"success": True, **client.status()}
