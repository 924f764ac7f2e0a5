import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection

from app.core.enums import Stream
from app.core.exceptions import RosterNameError, ServiceError
from app.core.streams import validate_semester, validate_stream_semester
from app.roster.naming import subject_slug
from app.roster.queries import active_subjects
from app.roster.registry import RosterBucket, RosterRegistry

from .schemas import SubjectCreate, SubjectListResponse, SubjectResponse

logger = logging.getLogger(__name__)


def _conflict_message(name: str, stream: Stream, semester: int) -> str:
    return f"Subject '{name}' already exists in {stream.value} Semester {semester}"


async def _slug_clash(conn: AsyncConnection, bucket: RosterBucket, name: str) -> Optional[str]:
    """Name of an existing subject whose attendance bucket would be the same as ``name``'s."""
    slug = subject_slug(name)
    for row in await bucket.find(conn):
        try:
            other = subject_slug(row["subject_name"])
        except RosterNameError:
            continue
        if other == slug:
            return row["subject_name"]
    return None


async def create_subject(
    registry: RosterRegistry,
    stream_value: str,
    semester: int,
    payload: SubjectCreate,
) -> SubjectResponse:
    stream = Stream.parse(stream_value)
    validate_stream_semester(stream, semester)
    bucket = registry.subjects(stream, semester)
    await registry.ensure(bucket)

    now = datetime.now(timezone.utc)
    row = {
        "subject_name": payload.subject_name,
        "stream": stream.value,
        "semester": semester,
        "credits": payload.credits,
        "subject_type": payload.subject_type.value,
        "is_language_subject": payload.is_language_subject,
        "language_type": payload.language_type.value if payload.language_type else None,
        "is_active": True,
        "academic_year": str(now.year),
        "created_at": now,
        "updated_at": now,
    }
    try:
        async with registry.transaction() as conn:
            existing = await bucket.find_one(conn, bucket.c.subject_name == payload.subject_name)
            if existing:
                raise ServiceError(_conflict_message(payload.subject_name, stream, semester), status.HTTP_409_CONFLICT)
            clash = await _slug_clash(conn, bucket, payload.subject_name)
            if clash:
                raise ServiceError(
                    f"Subject '{payload.subject_name}' would share attendance storage with '{clash}' "
                    f"in {stream.value} Semester {semester}; choose a more distinct name",
                    status.HTTP_409_CONFLICT,
                )
            await bucket.insert_one(conn, row)
    except IntegrityError:
        raise ServiceError(_conflict_message(payload.subject_name, stream, semester), status.HTTP_409_CONFLICT)
    logger.info("Created subject %s in %s", payload.subject_name, bucket.name)
    return SubjectResponse.from_row(row)


async def list_subjects(registry: RosterRegistry, stream_value: str, semester: int) -> SubjectListResponse:
    stream = Stream.parse(stream_value)
    validate_semester(semester)
    bucket = registry.subjects(stream, semester)
    await registry.ensure(bucket)

    async with registry.connect() as conn:
        rows = await active_subjects(conn, bucket)
    subjects = [SubjectResponse.from_row(r) for r in rows]
    return SubjectListResponse(
        stream=stream.value,
        semester=semester,
        count=len(subjects),
        subjects=subjects,
        core_subjects=[s for s in subjects if not s.is_language_subject],
        language_subjects=[s for s in subjects if s.is_language_subject],
        collection_used=bucket.name,
    )
