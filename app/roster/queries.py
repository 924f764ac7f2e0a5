"""Read helpers shared by the roster services."""

import re
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncConnection

from app.core.enums import Language

from .records import StudentRecord
from .registry import RosterBucket

_DIGITS = re.compile(r"\d+")


def natural_student_key(student_id: str) -> Tuple[str, int, str]:
    """Sort "BCA2" before "BCA10": prefix, then the first number, then the raw ID."""
    match = _DIGITS.search(student_id)
    if not match:
        return (student_id, -1, student_id)
    return (student_id[: match.start()], int(match.group()), student_id)


async def active_students(
    conn: AsyncConnection,
    bucket: RosterBucket,
    language: Optional[Language] = None,
) -> List[StudentRecord]:
    criteria = []
    if language is not None:
        criteria.append(bucket.c.language_subject == Language(language).value)
    rows = await bucket.find_active(conn, *criteria, order_by=bucket.c.student_id)
    return [StudentRecord.from_row(row) for row in rows]


async def active_subjects(conn: AsyncConnection, bucket: RosterBucket) -> List[Dict[str, Any]]:
    # is_active NULL counts as active, same as students.
    return await bucket.find_active(conn, order_by=bucket.c.subject_name)


async def find_subject(conn: AsyncConnection, bucket: RosterBucket, subject_name: str) -> Optional[Dict[str, Any]]:
    return await bucket.find_one(
        conn,
        bucket.c.subject_name == " ".join(subject_name.split()).upper(),
        bucket.active_clause(),
    )


async def students_for_subject(
    conn: AsyncConnection,
    students: RosterBucket,
    subject: Dict[str, Any],
) -> List[StudentRecord]:
    """Language subjects are attended only by students who chose that language."""
    if subject["is_language_subject"] and subject.get("language_type"):
        return await active_students(conn, students, Language(subject["language_type"]))
    return await active_students(conn, students)
