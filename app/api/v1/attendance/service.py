"""
Subject attendance: one row per date in the subject's attendance bucket.

Language subjects only count the students who chose that language; every
other subject counts all active students of the semester.
"""

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import status
from sqlalchemy.ext.asyncio import AsyncConnection

from app.core.enums import Language, Stream
from app.core.exceptions import ServiceError
from app.core.streams import validate_semester
from app.roster.queries import find_subject, natural_student_key, students_for_subject
from app.roster.records import StudentRecord, derive_language_group
from app.roster.registry import RosterBucket, RosterRegistry

from .schemas import (
    ATTENDANCE_SCOPE_ALL,
    ATTENDANCE_SCOPE_LANGUAGE,
    AbsentStudent,
    AttendanceBulkUpdate,
    AttendanceBulkUpdateResult,
    AttendanceMark,
    AttendanceMarkResult,
    AttendanceMarkSummary,
    AttendanceRecord,
    AttendanceRegister,
    AttendanceScope,
    DateWarning,
    RegisterStudent,
    SubjectInfo,
    SubjectStudent,
    SubjectStudentList,
)

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
MAX_DATE_DISTANCE = timedelta(days=365)


class AttendanceExistsError(ServiceError):
    """Attendance already taken for the date and ``forceOverwrite`` was not set."""

    def __init__(self, existing: Dict[str, Any]) -> None:
        super().__init__("Attendance already taken for this subject and date", status.HTTP_409_CONFLICT)
        self.existing = existing


def _subject_info(subject: Dict[str, Any]) -> SubjectInfo:
    return SubjectInfo(
        name=subject["subject_name"],
        type=subject["subject_type"],
        is_language_subject=bool(subject["is_language_subject"]),
        language_type=subject.get("language_type"),
        credits=subject.get("credits"),
    )


def _scope(subject: Dict[str, Any], total: int) -> AttendanceScope:
    if subject["is_language_subject"] and subject.get("language_type"):
        language = subject["language_type"]
        return AttendanceScope(
            type=ATTENDANCE_SCOPE_LANGUAGE,
            language=language,
            note=f"Only {language} students",
            total_possible=total,
        )
    return AttendanceScope(type=ATTENDANCE_SCOPE_ALL, note="All students attend together", total_possible=total)


def _percentage(present: int, total: int) -> float:
    return round(present / total * 100, 1) if total else 0.0


async def _load_subject_and_students(
    registry: RosterRegistry,
    conn: AsyncConnection,
    stream: Stream,
    semester: int,
    subject_name: str,
) -> Tuple[Dict[str, Any], List[StudentRecord]]:
    subject = await find_subject(conn, registry.subjects(stream, semester), subject_name)
    if not subject:
        raise ServiceError(
            f'Subject "{subject_name}" not found in {stream.value} Semester {semester}',
            status.HTTP_404_NOT_FOUND,
        )
    students = await students_for_subject(conn, registry.students(stream, semester), subject)
    if not students:
        if subject["is_language_subject"]:
            message = f"No students found who chose {subject['language_type']}"
        else:
            message = "No students found for this stream and semester"
        raise ServiceError(message, status.HTTP_404_NOT_FOUND)
    return subject, students


def _attendance_row(
    stream: Stream,
    semester: int,
    subject: Dict[str, Any],
    day: date,
    present: List[str],
    total: int,
    now: datetime,
) -> Dict[str, Any]:
    language = subject.get("language_type") if subject["is_language_subject"] else None
    return {
        "date": day,
        "subject": subject["subject_name"],
        "stream": stream.value,
        "semester": semester,
        "students_present": present,
        "total_students": total,
        "total_possible_students": total,
        "attendance_percentage": _percentage(len(present), total),
        "is_language_subject": bool(subject["is_language_subject"]),
        "language_type": language,
        "language_group": derive_language_group(stream, semester, Language(language)) if language else None,
        "updated_at": now,
    }


async def _upsert(conn: AsyncConnection, bucket: RosterBucket, row: Dict[str, Any]) -> bool:
    """Returns True when an existing row for the date was overwritten."""
    updated = await bucket.update_where(conn, row, bucket.c.date == row["date"])
    if updated:
        return True
    await bucket.insert_one(conn, {**row, "created_at": row["updated_at"]})
    return False


async def _prepare(registry: RosterRegistry, stream_value: str, semester: int, subject_name: str):
    stream = Stream.parse(stream_value)
    validate_semester(semester)
    attendance = registry.attendance(stream, semester, subject_name)
    await registry.ensure(registry.students(stream, semester), registry.subjects(stream, semester), attendance)
    return stream, attendance


async def mark_attendance(
    registry: RosterRegistry,
    stream_value: str,
    semester: int,
    subject_name: str,
    payload: AttendanceMark,
) -> AttendanceMarkResult:
    stream, bucket = await _prepare(registry, stream_value, semester, subject_name)
    now = datetime.now(timezone.utc)
    if payload.date > now.date():
        raise ServiceError("Attendance cannot be marked for a future date", status.HTTP_400_BAD_REQUEST)

    async with registry.transaction() as conn:
        subject, students = await _load_subject_and_students(registry, conn, stream, semester, subject_name)
        scope = _scope(subject, len(students))

        if not payload.force_overwrite:
            existing = await bucket.find_one(conn, bucket.c.date == payload.date)
            if existing:
                raise AttendanceExistsError(
                    {
                        "date": payload.date.isoformat(),
                        "subject": subject["subject_name"],
                        "stream": stream.value,
                        "semester": semester,
                        "studentsPresent": existing["students_present"],
                        "createdAt": existing["created_at"].isoformat() if existing.get("created_at") else None,
                    }
                )

        relevant_ids = {s.student_id for s in students}
        invalid = [sid for sid in payload.students_present if sid not in relevant_ids]
        if invalid:
            kind = "language subject" if subject["is_language_subject"] else "subject"
            raise ServiceError(
                f"Invalid students for this {kind}: {', '.join(invalid)}",
                status.HTTP_400_BAD_REQUEST,
            )

        row = _attendance_row(stream, semester, subject, payload.date, payload.students_present, len(students), now)
        is_overwrite = await _upsert(conn, bucket, row)
        stored = await bucket.find_one(conn, bucket.c.date == payload.date)

    present = set(payload.students_present)
    absent = [s for s in students if s.student_id not in present]
    logger.info(
        "Attendance %s for %s %s on %s: %d present, %d absent",
        "updated" if is_overwrite else "marked",
        bucket.name,
        scope.type,
        payload.date,
        len(present),
        len(absent),
    )
    return AttendanceMarkResult(
        message=f"Attendance {'updated' if is_overwrite else 'marked'} successfully",
        is_overwrite=is_overwrite,
        data=AttendanceRecord(**stored),
        subject=_subject_info(subject),
        attendance_scope=scope,
        summary=AttendanceMarkSummary(
            total_relevant_students=len(students),
            present_students=len(present),
            absent_students=len(absent),
            absent_with_phone=sum(1 for s in absent if s.parent_phone),
            absent_without_phone=sum(1 for s in absent if not s.parent_phone),
            attendance_percentage=_percentage(len(present), len(students)),
            absent_students_list=[
                AbsentStudent(
                    student_id=s.student_id,
                    name=s.name,
                    has_phone=bool(s.parent_phone),
                    language_subject=s.language_subject.value if s.language_subject else None,
                )
                for s in absent
            ],
        ),
    )


async def subject_students(
    registry: RosterRegistry,
    stream_value: str,
    semester: int,
    subject_name: str,
) -> SubjectStudentList:
    """Who is expected in class: the language group for language subjects, otherwise everyone active."""
    stream, _ = await _prepare(registry, stream_value, semester, subject_name)
    async with registry.connect() as conn:
        subject, students = await _load_subject_and_students(registry, conn, stream, semester, subject_name)

    students.sort(key=lambda s: natural_student_key(s.student_id))
    return SubjectStudentList(
        stream=stream.value,
        semester=semester,
        subject=_subject_info(subject),
        attendance_scope=_scope(subject, len(students)),
        total_students=len(students),
        students=[
            SubjectStudent(
                student_id=s.student_id,
                name=s.name,
                language_subject=s.language_subject.value if s.language_subject else None,
                has_phone=bool(s.parent_phone),
            )
            for s in students
        ],
    )


async def get_register(
    registry: RosterRegistry,
    stream_value: str,
    semester: int,
    subject_name: str,
) -> AttendanceRegister:
    """Students (natural ID order) by dates, with per-student totals."""
    stream, bucket = await _prepare(registry, stream_value, semester, subject_name)
    async with registry.connect() as conn:
        subject, students = await _load_subject_and_students(registry, conn, stream, semester, subject_name)
        records = await bucket.find(conn, order_by=bucket.c.date)

    students.sort(key=lambda s: natural_student_key(s.student_id))
    dates = [r["date"].isoformat() for r in records]
    present_by_date = {r["date"].isoformat(): set(r["students_present"] or []) for r in records}

    rows = []
    for student in students:
        attendance = {d: student.student_id in present_by_date[d] for d in dates}
        attended = sum(1 for v in attendance.values() if v)
        rows.append(
            RegisterStudent(
                student_id=student.student_id,
                name=student.name,
                language_subject=student.language_subject.value if student.language_subject else None,
                attendance=attendance,
                total_classes=len(dates),
                attended_classes=attended,
                absent_classes=len(dates) - attended,
                percentage=_percentage(attended, len(dates)),
            )
        )
    return AttendanceRegister(
        stream=stream.value,
        semester=semester,
        subject=_subject_info(subject),
        attendance_scope=_scope(subject, len(students)),
        dates=dates,
        total_classes=len(dates),
        students=rows,
        collection_used=bucket.name,
    )


def parse_register_date(value: str, today: Optional[date] = None) -> date:
    """``YYYY-MM-DD`` no further than one year from today in either direction."""
    if not DATE_PATTERN.match(value or ""):
        raise ValueError("Use YYYY-MM-DD format")
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        raise ValueError("Not a calendar date")
    today = today or datetime.now(timezone.utc).date()
    if abs(parsed - today) > MAX_DATE_DISTANCE:
        raise ValueError("Date must be within one year of today")
    return parsed


async def update_register(
    registry: RosterRegistry,
    stream_value: str,
    semester: int,
    subject_name: str,
    payload: AttendanceBulkUpdate,
) -> AttendanceBulkUpdateResult:
    """Upsert every date of ``attendanceMap`` in one transaction. Unknown IDs are dropped with a warning."""
    stream, bucket = await _prepare(registry, stream_value, semester, subject_name)

    invalid_dates = []
    parsed: Dict[date, List[str]] = {}
    for raw_date, ids in payload.attendance_map.items():
        try:
            parsed[parse_register_date(raw_date)] = ids
        except ValueError as e:
            invalid_dates.append(f"{raw_date} ({e})")
    if invalid_dates:
        raise ServiceError(f"Found {len(invalid_dates)} invalid dates: {', '.join(invalid_dates)}", status.HTTP_400_BAD_REQUEST)

    now = datetime.now(timezone.utc)
    created = updated = 0
    warnings: List[DateWarning] = []
    async with registry.transaction() as conn:
        subject, students = await _load_subject_and_students(registry, conn, stream, semester, subject_name)
        valid_ids = {s.student_id for s in students}
        for day in sorted(parsed):
            ids = list(dict.fromkeys(str(i).strip().upper() for i in parsed[day] if str(i).strip()))
            present = [i for i in ids if i in valid_ids]
            rejected = [i for i in ids if i not in valid_ids]
            if rejected:
                warnings.append(DateWarning(date=day.isoformat(), invalid_students=rejected, valid_count=len(present)))
            row = _attendance_row(stream, semester, subject, day, present, len(students), now)
            if await _upsert(conn, bucket, row):
                updated += 1
            else:
                created += 1

    logger.info("Attendance register for %s updated: %d created, %d updated", bucket.name, created, updated)
    return AttendanceBulkUpdateResult(
        message=f"Attendance updated for {len(parsed)} dates",
        processed_dates=len(parsed),
        created=created,
        updated=updated,
        warnings=warnings,
    )
