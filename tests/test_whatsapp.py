import json
from datetime import date
from typing import List

import httpx
import pytest
from httpx import AsyncClient

from app.core.config import Settings
from app.notifications.phone import format_phone_number, mask_phone
from app.notifications.templates import format_message_date, render_full_day_message, render_partial_day_message
from app.notifications.whatsapp import OutgoingMessage, WhatsAppClient


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("9876543210", "919876543210"),
        ("+91 98765-43210", "919876543210"),
        ("09876543210", "919876543210"),
        ("919876543210", "919876543210"),
        ("4155550100", "4155550100"),
        ("", None),
        (None, None),
    ],
)
def test_format_phone_number(raw, expected) -> None:
    assert format_phone_number(raw) == expected


def test_mask_phone() -> None:
    assert mask_phone("919876543210") == "9198****10"
    assert mask_phone(None) == "Not Available"


def test_absence_messages() -> None:
    assert format_message_date(date(2025, 9, 13)) == "13/09/2025"
    common = dict(
        college_name="Test College",
        college_phone="080-000",
        student_name="ASHA RAO",
        student_id="BCA201",
        stream="BCA",
        semester=2,
        day=date(2025, 9, 13),
    )

    full = render_full_day_message(**common, absent_subjects=["DATA STRUCTURES", "KANNADA"])
    assert "FULL DAY ABSENCE" in full
    assert "*ASHA RAO* (ID: BCA201)" in full
    assert "Total Classes Missed: 2" in full

    partial = render_partial_day_message(**common, absent_subjects=["KANNADA"], present_count=1)
    assert "1. KANNADA" in partial
    assert "Classes Attended: 1" in partial
    assert partial.startswith("*TEST COLLEGE - ATTENDANCE ALERT*")


def _client(settings: Settings, handler) -> WhatsAppClient:
    return WhatsAppClient(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_send_text_success(whatsapp_settings) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.ok"}]})

    client = _client(whatsapp_settings, handler)
    result = await client.send_text("98765 43210", "hello")

    assert result.success is True
    assert result.message_id == "wamid.ok"
    assert result.recipient_phone == "919876543210"
    (request,) = seen
    assert str(request.url) == "https://graph.facebook.com/v19.0/1234567890/messages"
    assert request.headers["Authorization"] == "Bearer test-token"
    assert json.loads(request.read()) == {
        "messaging_product": "whatsapp",
        "to": "919876543210",
        "type": "text",
        "text": {"body": "hello"},
    }


@pytest.mark.asyncio
async def test_send_text_api_error_is_translated(whatsapp_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"code": 190, "message": "Session has expired"}})

    result = await _client(whatsapp_settings, handler).send_text("9876543210", "hello")

    assert result.success is False
    assert result.api_error_code == 190
    assert result.error == "Session has expired"
    assert result.user_friendly_error == "Access token expired - Please update token"


@pytest.mark.asyncio
async def test_send_text_transport_error_does_not_raise(whatsapp_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _client(whatsapp_settings, handler).send_text("9876543210", "hello")

    assert result.success is False
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_send_text_without_configuration(tmp_path) -> None:
    settings = Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'roster.db'}",
        JWT_SECRET_KEY="test-secret-key",
        WHATSAPP_ACCESS_TOKEN="",
        WHATSAPP_PHONE_NUMBER_ID="",
    )

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = _client(settings, handler)
    result = await client.send_text("9876543210", "hello")

    assert client.configured is False
    assert result.success is False
    assert result.error == "WhatsApp is not configured"


@pytest.mark.asyncio
async def test_send_text_rejects_missing_phone(whatsapp_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    result = await _client(whatsapp_settings, handler).send_text(None, "hello")
    assert result.success is False
    assert result.error == "Invalid phone number format"


@pytest.mark.asyncio
async def test_send_in_batches_keys_results(whatsapp_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        to = json.loads(request.read())["to"]
        if to.endswith("0"):
            return httpx.Response(400, json={"error": {"code": 131051, "message": "bad number"}})
        return httpx.Response(200, json={"messages": [{"id": f"wamid.{to}"}]})

    messages = [OutgoingMessage(key=f"BCA20{i}", phone=f"987654321{i}", body="hi") for i in range(5)]
    results = await _client(whatsapp_settings, handler).send_in_batches(messages)

    assert list(results) == ["BCA200", "BCA201", "BCA202", "BCA203", "BCA204"]
    assert results["BCA200"].success is False
    assert results["BCA200"].user_friendly_error == "Invalid phone number format"
    assert all(results[f"BCA20{i}"].success for i in range(1, 5))


def test_status_hides_token(whatsapp_settings) -> None:
    status = WhatsAppClient(whatsapp_settings, http_client=httpx.AsyncClient()).status()
    assert status["configured"] is True
    assert status["hasAccessToken"] is True
    assert "test-token" not in json.dumps(status)


@pytest.mark.asyncio
async def test_status_endpoint(client: AsyncClient, teacher_headers) -> None:
    response = await client.get("/api/v1/notifications/whatsapp/status", headers=teacher_headers)
    assert response.status_code == 200
    assert response.json()["configured"] is True
    assert response.json()["apiVersion"] == "v19.0"
