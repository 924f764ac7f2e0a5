from datetime import date

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.api.v1.absences.service import SubjectAttendance, compute_absences, estimate_cost
from app.core.enums import Language, MessageType, Stream
from app.core.models import MessageLog
from app.main import app
from app.notifications.whatsapp import WhatsAppClient, get_whatsapp_client
from app.roster.records import StudentRecord

DAY = date(2025, 9, 13)
BASE = "/api/v1/absences/BCA/semesters/2"


def _student(student_id: str, language=None, phone="919876543210") -> StudentRecord:
    return StudentRecord(
        student_id=student_id,
        name=student_id,
        stream=Stream.BCA,
        semester=2,
        parent_phone=phone,
        language_subject=language,
    )


def test_compute_absences_filters_language_subjects() -> None:
    students = [
        _student("BCA201", Language.KANNADA),
        _student("BCA202", Language.HINDI),
        _student("BCA203", Language.HINDI, phone=None),
    ]
    subjects = [
        SubjectAttendance("DATA STRUCTURES", {"BCA202"}),
        SubjectAttendance("KANNADA", {"BCA201"}, is_language_subject=True, language_type="KANNADA"),
        SubjectAttendance("HINDI", set(), is_language_subject=True, language_type="HINDI"),
    ]

    by_id = {a.student_id: a for a in compute_absences(students, subjects)}

    assert by_id["BCA201"].applicable_subjects == 2
    assert by_id["BCA201"].absent_subjects == ["DATA STRUCTURES"]
    assert by_id["BCA201"].message_type is MessageType.PARTIAL_DAY
    assert by_id["BCA201"].attendance_percentage == 50.0

    assert by_id["BCA202"].absent_subjects == ["HINDI"]
    assert by_id["BCA202"].is_full_day_absent is False

    assert by_id["BCA203"].is_full_day_absent is True
    assert by_id["BCA203"].message_type is MessageType.FULL_DAY
    assert by_id["BCA203"].will_receive_message is False


def test_student_with_no_applicable_subjects_is_not_full_day() -> None:
    (absence,) = compute_absences(
        [_student("BCA201")],
        [SubjectAttendance("SANSKRIT", set(), is_language_subject=True, language_type="SANSKRIT")],
    )
    assert absence.applicable_subjects == 0
    assert absence.is_full_day_absent is False
    assert absence.message_type is MessageType.PRESENT


def test_estimate_cost() -> None:
    assert estimate_cost(0) == 0
    assert estimate_cost(1000) == 0
    assert estimate_cost(1250) == 10.0


@pytest.fixture()
async def absent_day(roster):
    await roster.students(Stream.BCA, 2, "BCA201", "BCA202", "BCA203", "BCA204", language=Language.KANNADA)
    await roster.students(Stream.BCA, 2, "BCA205", phone=None)
    await roster.subject(Stream.BCA, 2, "Data Structures")
    await roster.subject(Stream.BCA, 2, "Kannada", language=Language.KANNADA)
    await roster.subject(Stream.BCA, 2, "Statistics")
    await roster.attendance(Stream.BCA, 2, "Data Structures", DAY, ["BCA201", "BCA202"])
    await roster.attendance(Stream.BCA, 2, "Kannada", DAY, ["BCA201"])
    return roster


@pytest.mark.asyncio
async def test_daily_summary(client: AsyncClient, teacher_headers, absent_day) -> None:
    response = await client.get(f"{BASE}/{DAY.isoformat()}", headers=teacher_headers)
    assert response.status_code == 200
    data = response.json()
    summary = data["summary"]
    assert summary["totalStudents"] == 5
    assert summary["subjectsWithAttendance"] == ["DATA STRUCTURES", "KANNADA"]
    assert summary["subjectsWithoutAttendance"] == ["STATISTICS"]
    assert summary["fullDayAbsent"] == 3
    assert summary["partialDayAbsent"] == 1
    assert summary["presentAllDay"] == 1
    assert summary["willReceiveMessage"] == 3
    assert data["messageStatus"]["alreadySent"] is False
    assert "parentPhone" not in data["students"][0]


@pytest.mark.asyncio
async def test_summary_without_roster_is_not_found(client: AsyncClient, teacher_headers) -> None:
    response = await client.get(f"{BASE}/{DAY.isoformat()}", headers=teacher_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_send_messages_once_unless_forced(
    client: AsyncClient, teacher_headers, absent_day, whatsapp_requests, session_factory
) -> None:
    url = f"{BASE}/{DAY.isoformat()}/notify"

    response = await client.post(url, json={}, headers=teacher_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["studentsToNotify"] == 3
    assert data["messagesSent"] == 3
    assert data["fullDayAbsent"] == 2
    assert data["successRate"] == 100.0
    assert len(whatsapp_requests) == 3
    body = whatsapp_requests[0].read()
    assert b'"messaging_product":"whatsapp"' in body.replace(b" ", b"")

    response = await client.post(url, json={}, headers=teacher_headers)
    assert response.json()["alreadySent"] is True
    assert len(whatsapp_requests) == 3

    response = await client.post(url, json={"forceResend": True}, headers=teacher_headers)
    assert response.json()["messagesSent"] == 3
    assert len(whatsapp_requests) == 6

    async with session_factory() as session:
        log = (await session.execute(select(MessageLog))).scalar_one()
    assert log.sent_by == "manual-force"
    assert log.messages_sent == 3
    assert log.subjects_included == ["DATA STRUCTURES", "KANNADA"]


@pytest.mark.asyncio
async def test_send_without_attendance_is_rejected(client: AsyncClient, teacher_headers, absent_day) -> None:
    response = await client.post(f"{BASE}/2025-09-14/notify", headers=teacher_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_send_with_no_absentees_logs_zero(
    client: AsyncClient, teacher_headers, roster, whatsapp_requests
) -> None:
    await roster.students(Stream.BCA, 2, "BCA201")
    await roster.subject(Stream.BCA, 2, "Statistics")
    await roster.attendance(Stream.BCA, 2, "Statistics", DAY, ["BCA201"])

    response = await client.post(f"{BASE}/{DAY.isoformat()}/notify", headers=teacher_headers)
    assert response.status_code == 200
    assert response.json()["messagesSent"] == 0
    assert whatsapp_requests == []

    response = await client.get(f"{BASE}/{DAY.isoformat()}", headers=teacher_headers)
    assert response.json()["messageStatus"]["alreadySent"] is False


@pytest.mark.asyncio
async def test_failed_sends_are_reported(client: AsyncClient, teacher_headers, absent_day, whatsapp_settings) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 2:
            return httpx.Response(
                400, json={"error": {"code": 131056, "message": "Recipient not on WhatsApp", "type": "OAuthException"}}
            )
        return httpx.Response(200, json={"messages": [{"id": f"wamid.{len(calls)}"}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        app.dependency_overrides[get_whatsapp_client] = lambda: WhatsAppClient(whatsapp_settings, http_client=http)
        response = await client.post(f"{BASE}/{DAY.isoformat()}/notify", headers=teacher_headers)

    data = response.json()
    assert data["messagesSent"] == 2
    assert data["messagesFailed"] == 1
    assert data["successRate"] == 66.7
    (failure,) = data["failedMessages"]
    assert failure["studentID"] == "BCA203"
    assert failure["userFriendlyError"] == "Phone number not registered on WhatsApp"


@pytest.mark.asyncio
async def test_resend_after_new_subject_without_attendance(client: AsyncClient, teacher_headers, roster) -> None:
    await roster.students(Stream.BCA, 2, "BCA201")
    await roster.subject(Stream.BCA, 2, "Statistics")
    await roster.attendance(Stream.BCA, 2, "Statistics", DAY, ["BCA201"])
    url = f"{BASE}/{DAY.isoformat()}/notify"
    assert (await client.post(url, headers=teacher_headers)).status_code == 200

    # The new subject has no attendance table yet; sending again has to create it.
    await roster.subject(Stream.BCA, 2, "Economics")
    response = await client.post(url, headers=teacher_headers)

    assert response.status_code == 200
    assert response.json()["messagesSent"] == 0
    assert response.json()["subjectsIncluded"] == ["STATISTICS"]
