"""
WhatsApp Cloud API client.

``send_text`` never raises for API or transport failures; every outcome comes
back as a ``SendResult`` so a bulk send can record per-recipient failures and
carry on.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import httpx
from fastapi import Request

from app.core.config import Settings

from .phone import format_phone_number, mask_phone

logger = logging.getLogger(__name__)

PROVIDER = "WhatsApp Cloud API"

FRIENDLY_ERRORS: Dict[int, str] = {
    190: "Access token expired - Please update token",
    131056: "Phone number not registered on WhatsApp",
    131051: "Invalid phone number format",
    100: "Invalid access token or permissions",
    80007: "Message could not be delivered",
    133010: "Account not registered - Use /register API first",
}


@dataclass
class SendResult:
    success: bool
    recipient_phone: Optional[str]
    message_id: Optional[str] = None
    whatsapp_id: Optional[str] = None
    error: Optional[str] = None
    api_error_code: Optional[int] = None
    user_friendly_error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    provider: str = PROVIDER


@dataclass
class OutgoingMessage:
    key: str
    phone: Optional[str]
    body: str


class WhatsAppClient:
    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.whatsapp_timeout_seconds)

    @property
    def configured(self) -> bool:
        return self._settings.whatsapp_configured

    @property
    def api_version(self) -> str:
        return self._settings.whatsapp_api_version

    @property
    def messages_url(self) -> str:
        s = self._settings
        return f"{s.whatsapp_base_url.rstrip('/')}/{s.whatsapp_api_version}/{s.whatsapp_phone_number_id}/messages"

    async def send_text(self, phone: Optional[str], body: str) -> SendResult:
        formatted = format_phone_number(phone)
        if not formatted:
            return SendResult(success=False, recipient_phone=phone, error="Invalid phone number format")
        if not self.configured:
            return SendResult(
                success=False,
                recipient_phone=formatted,
                error="WhatsApp is not configured",
                user_friendly_error="Missing WHATSAPP_ACCESS_TOKEN or WHATSAPP_PHONE_NUMBER_ID",
            )

        payload = {
            "messaging_product": "whatsapp",
            "to": formatted,
            "type": "text",
            "text": {"body": body},
        }
        headers = {"Authorization": f"Bearer {self._settings.whatsapp_access_token}"}
        try:
            response = await self._http.post(
                self.messages_url,
                json=payload,
                headers=headers,
                timeout=self._settings.whatsapp_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.warning("WhatsApp request to %s failed: %s", mask_phone(formatted), e)
            return SendResult(success=False, recipient_phone=formatted, error=str(e) or type(e).__name__)

        data = _json_or_empty(response)
        if response.is_success:
            messages = data.get("messages") or [{}]
            return SendResult(
                success=True,
                recipient_phone=formatted,
                message_id=messages[0].get("id"),
                whatsapp_id=messages[0].get("wamid"),
            )

        api_error = data.get("error") or {}
        code = api_error.get("code")
        message = api_error.get("message") or f"HTTP {response.status_code}"
        logger.warning("WhatsApp API error for %s: %s (code %s)", mask_phone(formatted), message, code)
        return SendResult(
            success=False,
            recipient_phone=formatted,
            error=message,
            api_error_code=code,
            user_friendly_error=FRIENDLY_ERRORS.get(code, api_error.get("message") or "Unknown WhatsApp API error"),
        )

    async def send_in_batches(self, messages: Sequence[OutgoingMessage]) -> Dict[str, SendResult]:
        """Concurrent within a batch, with a fixed pause between batches."""
        size = self._settings.whatsapp_batch_size
        delay = self._settings.whatsapp_batch_delay_seconds
        results: Dict[str, SendResult] = {}
        batches: List[Sequence[OutgoingMessage]] = [messages[i:i + size] for i in range(0, len(messages), size)]
        for index, batch in enumerate(batches):
            outcomes = await asyncio.gather(*(self.send_text(m.phone, m.body) for m in batch))
            for message, outcome in zip(batch, outcomes):
                results[message.key] = outcome
            logger.info(
                "WhatsApp batch %d/%d sent: %d ok, %d failed",
                index + 1,
                len(batches),
                sum(1 for o in outcomes if o.success),
                sum(1 for o in outcomes if not o.success),
            )
            if index < len(batches) - 1 and delay:
                await asyncio.sleep(delay)
        return results

    def status(self) -> Dict[str, Any]:
        """Configuration summary without secrets."""
        s = self._settings
        return {
            "provider": PROVIDER,
            "configured": self.configured,
            "hasAccessToken": bool(s.whatsapp_access_token),
            "hasPhoneNumberId": bool(s.whatsapp_phone_number_id),
            "apiVersion": s.whatsapp_api_version,
            "batchSize": s.whatsapp_batch_size,
            "batchDelaySeconds": s.whatsapp_batch_delay_seconds,
            "collegeName": s.college_name,
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def get_whatsapp_client(request: Request) -> WhatsAppClient:
    return request.app.state.whatsapp
