import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List

from fastapi import status
from sqlalchemy.exc import IntegrityError

from app.core.enums import Stream
from app.core.exceptions import ServiceError
from app.core.streams import validate_semester, validate_stream_semester
from app.roster.queries import active_students, natural_student_key
from app.roster.records import StudentRecord, new_student_record
from app.roster.registry import RosterRegistry

from .schemas import (
    LanguageBreakdown,
    StudentBulkCreate,
    StudentBulkCreateResult,
    StudentCreate,
    StudentListResponse,
    StudentRef,
    StudentResponse,
)

logger = logging.getLogger(__name__)

NO_LANGUAGE = "NO_LANGUAGE"


def _duplicate_error(ids: List[str], stream: Stream, semester: int) -> ServiceError:
    return ServiceError(
        f"Student ID already exists in {stream.value} Semester {semester}: {', '.join(ids)}",
        status.HTTP_409_CONFLICT,
    )


def _build_record(payload: StudentCreate, stream: Stream, semester: int, now: datetime) -> StudentRecord:
    return new_student_record(
        student_id=payload.student_id,
        name=payload.name,
        stream=stream,
        semester=semester,
        parent_phone=payload.parent_phone,
        language_subject=payload.language_subject,
        enrolled_at=now,
    )


async def enroll_student(
    registry: RosterRegistry,
    stream_value: str,
    semester: int,
    payload: StudentCreate,
) -> StudentResponse:
    stream = Stream.parse(stream_value)
    validate_stream_semester(stream, semester)
    bucket = registry.students(stream, semester)
    await registry.ensure(bucket)

    record = _build_record(payload, stream, semester, datetime.now(timezone.utc))
    try:
        async with registry.transaction() as conn:
            existing = await bucket.find_one(conn, bucket.c.student_id == record.student_id)
            if existing:
                raise _duplicate_error([record.student_id], stream, semester)
            await bucket.insert_one(conn, record.to_row())
    except IntegrityError:
        raise _duplicate_error([record.student_id], stream, semester)
    logger.info("Enrolled %s into %s", record.student_id, bucket.name)
    return StudentResponse.from_record(record)


async def enroll_students_bulk(
    registry: RosterRegistry,
    stream_value: str,
    semester: int,
    payload: StudentBulkCreate,
) -> StudentBulkCreateResult:
    """All or nothing: one duplicate (in the payload or already enrolled) rejects the whole batch."""
    stream = Stream.parse(stream_value)
    validate_stream_semester(stream, semester)
    bucket = registry.students(stream, semester)
    await registry.ensure(bucket)

    now = datetime.now(timezone.utc)
    records = [_build_record(item, stream, semester, now) for item in payload.students]
    seen, repeated = set(), []
    for record in records:
        if record.student_id in seen:
            repeated.append(record.student_id)
        seen.add(record.student_id)
    if repeated:
        raise ServiceError(
            f"Duplicate student IDs in request: {', '.join(sorted(set(repeated)))}",
            status.HTTP_409_CONFLICT,
        )

    try:
        async with registry.transaction() as conn:
            existing = await bucket.find(conn, bucket.c.student_id.in_(sorted(seen)))
            if existing:
                raise _duplicate_error(sorted(r["student_id"] for r in existing), stream, semester)
            inserted = await bucket.insert_many(conn, [r.to_row() for r in records])
    except IntegrityError:
        raise _duplicate_error(sorted(seen), stream, semester)
    logger.info("Bulk enrolled %d students into %s", inserted, bucket.name)
    return StudentBulkCreateResult(
        inserted=inserted,
        students=[StudentResponse.from_record(r) for r in records],
    )


async def list_students(registry: RosterRegistry, stream_value: str, semester: int) -> StudentListResponse:
    stream = Stream.parse(stream_value)
    validate_semester(semester)
    bucket = registry.students(stream, semester)
    await registry.ensure(bucket)

    async with registry.connect() as conn:
        records = await active_students(conn, bucket)
    records.sort(key=lambda r: natural_student_key(r.student_id))

    by_language: Dict[str, List[StudentResponse]] = defaultdict(list)
    students = []
    for record in records:
        response = StudentResponse.from_record(record)
        students.append(response)
        key = record.language_subject.value if record.language_subject else NO_LANGUAGE
        by_language[key].append(response)

    return StudentListResponse(
        count=len(students),
        stream=stream.value,
        semester=semester,
        students=students,
        students_by_language=dict(by_language),
        language_breakdown=[
            LanguageBreakdown(
                language=language,
                count=len(items),
                students=[StudentRef(id=s.student_id, name=s.name) for s in items],
            )
            for language, items in sorted(by_language.items())
        ],
        collection_used=bucket.name,
    )


async def deactivate_student(
    registry: RosterRegistry,
    stream_value: str,
    semester: int,
    student_id: str,
) -> None:
    """Soft delete. The row stays in the bucket and is skipped by promotion and attendance."""
    stream = Stream.parse(stream_value)
    validate_semester(semester)
    bucket = registry.students(stream, semester)
    await registry.ensure(bucket)

    async with registry.transaction() as conn:
        updated = await bucket.update_where(
            conn,
            {"is_active": False, "updated_at": datetime.now(timezone.utc)},
            bucket.c.student_id == student_id.strip().upper(),
        )
    if not updated:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    logger.info("Deactivated %s in %s", student_id, bucket.name)
