"""
Daily absence summary and parent notification.

A subject applies to a student unless it is a language subject of another
language. A student is absent for the full day when absent from every subject
that applies to them (and at least one applies).
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Set, Tuple

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.enums import MessageType, Stream
from app.core.exceptions import ServiceError
from app.core.models import MessageLog
from app.core.streams import validate_semester
from app.notifications.phone import format_phone_number
from app.notifications.templates import render_full_day_message, render_partial_day_message
from app.notifications.whatsapp import OutgoingMessage, WhatsAppClient
from app.roster.queries import active_students, active_subjects, natural_student_key
from app.roster.records import StudentRecord
from app.roster.registry import RosterRegistry

from .schemas import (
    AbsenceSummary,
    DailyAbsenceSummary,
    FailedMessage,
    MessageStatus,
    SendAbsenceMessagesResult,
    StudentAbsence,
)

logger = logging.getLogger(__name__)

FREE_MESSAGES = 1000
COST_PER_MESSAGE = 0.04


@dataclass
class SubjectAttendance:
    subject: str
    students_present: Set[str]
    is_language_subject: bool = False
    language_type: Optional[str] = None

    def applies_to(self, student: StudentRecord) -> bool:
        if not self.is_language_subject or not self.language_type:
            return True
        return student.language_subject is not None and student.language_subject.value == self.language_type


def estimate_cost(messages_sent: int) -> float:
    """First 1000 messages are free, then ₹0.04 each."""
    return round(max(0, messages_sent - FREE_MESSAGES) * COST_PER_MESSAGE, 2)


def compute_absences(
    students: Sequence[StudentRecord],
    subjects: Sequence[SubjectAttendance],
) -> List[StudentAbsence]:
    results = []
    for student in students:
        absent, present = [], []
        for record in subjects:
            if not record.applies_to(student):
                continue
            if student.student_id in record.students_present:
                present.append(record.subject)
            else:
                absent.append(record.subject)
        applicable = len(absent) + len(present)
        full_day = applicable > 0 and len(absent) == applicable
        if full_day:
            message_type = MessageType.FULL_DAY
        elif absent:
            message_type = MessageType.PARTIAL_DAY
        else:
            message_type = MessageType.PRESENT
        results.append(
            StudentAbsence(
                student_id=student.student_id,
                name=student.name,
                parent_phone=student.parent_phone,
                has_phone=bool(student.parent_phone),
                language_subject=student.language_subject.value if student.language_subject else None,
                absent_subjects=absent,
                present_subjects=present,
                applicable_subjects=applicable,
                total_absent=len(absent),
                is_full_day_absent=full_day,
                attendance_percentage=round(len(present) / applicable * 100, 1) if applicable else 0.0,
                message_type=message_type,
                will_receive_message=bool(absent) and bool(student.parent_phone),
            )
        )
    return results


async def _load_day(
    registry: RosterRegistry,
    stream: Stream,
    semester: int,
    day: date,
) -> Tuple[List[StudentRecord], List[str], List[SubjectAttendance]]:
    students_bucket = registry.students(stream, semester)
    subjects_bucket = registry.subjects(stream, semester)
    await registry.ensure(students_bucket, subjects_bucket)

    async with registry.connect() as conn:
        students = await active_students(conn, students_bucket)
        subjects = await active_subjects(conn, subjects_bucket)
    if not students or not subjects:
        raise ServiceError(
            f"No students or subjects found for {stream.value} Semester {semester} "
            f"(students: {len(students)}, subjects: {len(subjects)})",
            status.HTTP_404_NOT_FOUND,
        )

    buckets = [registry.attendance(stream, semester, s["subject_name"]) for s in subjects]
    await registry.ensure(*buckets)
    records = []
    async with registry.connect() as conn:
        for subject, bucket in zip(subjects, buckets):
            row = await bucket.find_one(conn, bucket.c.date == day)
            if row is None:
                continue
            records.append(
                SubjectAttendance(
                    subject=subject["subject_name"],
                    students_present=set(row["students_present"] or []),
                    is_language_subject=bool(subject["is_language_subject"]),
                    language_type=subject.get("language_type"),
                )
            )
    students.sort(key=lambda s: natural_student_key(s.student_id))
    return students, [s["subject_name"] for s in subjects], records


async def get_message_log(db: AsyncSession, stream: Stream, semester: int, day: date) -> Optional[MessageLog]:
    result = await db.execute(
        select(MessageLog).where(
            MessageLog.date == day,
            MessageLog.stream == stream.value,
            MessageLog.semester == semester,
        )
    )
    return result.scalar_one_or_none()


def _message_status(log: Optional[MessageLog]) -> MessageStatus:
    if log is None:
        return MessageStatus(already_sent=False)
    return MessageStatus(
        already_sent=log.messages_sent > 0,
        messages_sent=log.messages_sent,
        messages_failed=log.messages_failed,
        sent_at=log.sent_at,
        sent_by=log.sent_by,
    )


async def daily_absence_summary(
    registry: RosterRegistry,
    db: AsyncSession,
    stream_value: str,
    semester: int,
    day: date,
) -> DailyAbsenceSummary:
    stream = Stream.parse(stream_value)
    validate_semester(semester)
    students, subject_names, records = await _load_day(registry, stream, semester, day)
    absences = compute_absences(students, records)
    with_attendance = [r.subject for r in records]
    to_notify = sum(1 for a in absences if a.will_receive_message)

    return DailyAbsenceSummary(
        date=day,
        stream=stream.value,
        semester=semester,
        summary=AbsenceSummary(
            total_students=len(students),
            total_subjects=len(subject_names),
            subjects_with_attendance=with_attendance,
            subjects_without_attendance=[s for s in subject_names if s not in with_attendance],
            full_day_absent=sum(1 for a in absences if a.message_type is MessageType.FULL_DAY),
            partial_day_absent=sum(1 for a in absences if a.message_type is MessageType.PARTIAL_DAY),
            present_all_day=sum(1 for a in absences if a.message_type is MessageType.PRESENT),
            will_receive_message=to_notify,
            estimated_cost=estimate_cost(to_notify),
        ),
        students=absences,
        message_status=_message_status(await get_message_log(db, stream, semester, day)),
    )


def _render(absence: StudentAbsence, stream: Stream, semester: int, day: date) -> str:
    common = dict(
        college_name=settings.college_name,
        college_phone=settings.college_phone,
        student_name=absence.name,
        student_id=absence.student_id,
        stream=stream.value,
        semester=semester,
        day=day,
        absent_subjects=absence.absent_subjects,
    )
    if absence.is_full_day_absent:
        return render_full_day_message(**common)
    return render_partial_day_message(present_count=len(absence.present_subjects), **common)


async def _save_log(db: AsyncSession, stream: Stream, semester: int, day: date, values: Dict) -> None:
    log = await get_message_log(db, stream, semester, day)
    if log is None:
        log = MessageLog(date=day, stream=stream.value, semester=semester)
        db.add(log)
    for key, value in values.items():
        setattr(log, key, value)
    await db.commit()


async def send_absence_messages(
    registry: RosterRegistry,
    db: AsyncSession,
    client: WhatsAppClient,
    stream_value: str,
    semester: int,
    day: date,
    *,
    force_resend: bool = False,
) -> SendAbsenceMessagesResult:
    """Send one consolidated message per absent student. A day is sent once unless ``force_resend``."""
    started = time.monotonic()
    stream = Stream.parse(stream_value)
    validate_semester(semester)

    # Must run before the first session query: bucket DDL blocks behind an open SQLite read.
    students, _, records = await _load_day(registry, stream, semester, day)

    if not force_resend:
        existing = await get_message_log(db, stream, semester, day)
        if existing is not None and existing.messages_sent > 0:
            return SendAbsenceMessagesResult(
                already_sent=True,
                message=f"Messages already sent for {stream.value} Semester {semester} on {day.isoformat()}",
                date=day,
                stream=stream.value,
                semester=semester,
                messages_sent=existing.messages_sent,
                messages_failed=existing.messages_failed,
                subjects_included=existing.subjects_included or [],
                previous_send=_message_status(existing),
            )

    if not records:
        raise ServiceError(
            f"No attendance records found for {day.isoformat()}. Please mark attendance first.",
            status.HTTP_400_BAD_REQUEST,
        )

    absences = compute_absences(students, records)
    to_notify = [a for a in absences if a.will_receive_message]
    subjects_included = [r.subject for r in records]
    sent_by = "manual-force" if force_resend else "manual"
    full_day = sum(1 for a in to_notify if a.is_full_day_absent)

    if not to_notify:
        await _save_log(
            db,
            stream,
            semester,
            day,
            {
                "total_students": len(students),
                "messages_sent": 0,
                "messages_failed": 0,
                "students_notified": 0,
                "full_day_absent_count": 0,
                "partial_day_absent_count": 0,
                "subjects_included": subjects_included,
                "sent_by": sent_by,
                "sent_at": datetime.now(timezone.utc),
                "provider": "WhatsApp Cloud API",
                "api_version": client.api_version,
                "analytics": {"reason": "no_absentees"},
            },
        )
        return SendAbsenceMessagesResult(
            message=f"No students with absences found for {day.isoformat()}",
            date=day,
            stream=stream.value,
            semester=semester,
            total_students=len(students),
            subjects_included=subjects_included,
        )

    logger.info("Sending %d absence messages for %s Semester %d on %s", len(to_notify), stream.value, semester, day)
    outgoing = [
        OutgoingMessage(key=a.student_id, phone=a.parent_phone, body=_render(a, stream, semester, day))
        for a in to_notify
    ]
    outcomes = await client.send_in_batches(outgoing)

    sent = sum(1 for r in outcomes.values() if r.success)
    failed = len(outcomes) - sent
    failures = [
        FailedMessage(
            student_id=a.student_id,
            name=a.name,
            error=outcomes[a.student_id].error,
            user_friendly_error=outcomes[a.student_id].user_friendly_error,
        )
        for a in to_notify
        if not outcomes[a.student_id].success
    ]
    success_rate = round(sent / len(to_notify) * 100, 1)
    processing_ms = int((time.monotonic() - started) * 1000)

    await _save_log(
        db,
        stream,
        semester,
        day,
        {
            "total_students": len(students),
            "messages_sent": sent,
            "messages_failed": failed,
            "students_notified": sent,
            "full_day_absent_count": full_day,
            "partial_day_absent_count": len(to_notify) - full_day,
            "subjects_included": subjects_included,
            "sent_by": sent_by,
            "sent_at": datetime.now(timezone.utc),
            "success_rate": success_rate,
            "estimated_cost": estimate_cost(sent),
            "provider": "WhatsApp Cloud API",
            "api_version": client.api_version,
            "processing_time_ms": processing_ms,
            "results": [
                {
                    "studentID": a.student_id,
                    "phone": format_phone_number(a.parent_phone),
                    "success": outcomes[a.student_id].success,
                    "messageId": outcomes[a.student_id].message_id,
                    "messageType": a.message_type.value,
                    "error": outcomes[a.student_id].error,
                }
                for a in to_notify
            ],
            "analytics": {
                "batchSize": settings.whatsapp_batch_size,
                "totalBatches": math.ceil(len(to_notify) / settings.whatsapp_batch_size),
            },
        },
    )
    logger.info("Absence messages for %s Semester %d on %s: %d sent, %d failed", stream.value, semester, day, sent, failed)

    return SendAbsenceMessagesResult(
        message=f"Sent {sent} of {len(to_notify)} absence messages",
        date=day,
        stream=stream.value,
        semester=semester,
        total_students=len(students),
        students_to_notify=len(to_notify),
        messages_sent=sent,
        messages_failed=failed,
        full_day_absent=full_day,
        partial_day_absent=len(to_notify) - full_day,
        success_rate=success_rate,
        estimated_cost=estimate_cost(sent),
        subjects_included=subjects_included,
        failed_messages=failures,
        processing_time_ms=processing_ms,
    )
