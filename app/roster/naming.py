"""Deterministic bucket names: ``{stream_code}_sem{n}_{type}``."""

import hashlib
import re
from enum import Enum
from typing import Optional

from app.core.enums import Stream
from app.core.exceptions import RosterNameError
from app.core.streams import MAX_SEMESTER, MIN_SEMESTER, STREAM_CODES

# Postgres truncates identifiers past 63 bytes; longest prefix+suffix is
# "bcom_a_and_f_sem8_" + "_attendance" (29 chars).
MAX_IDENTIFIER_LENGTH = 63
MAX_SUBJECT_SLUG_LENGTH = 34


class EntityType(str, Enum):
    STUDENTS = "students"
    SUBJECTS = "subjects"
    ATTENDANCE = "attendance"


def stream_code(stream: Stream) -> str:
    return STREAM_CODES[stream]


def subject_slug(subject: str) -> str:
    slug = (subject or "").lower().strip()
    slug = re.sub(r"\s+", "_", slug)
    slug = re.sub(r"[^a-z0-9_]", "", slug)
    slug = re.sub(r"_{2,}", "_", slug).strip("_")
    if not slug:
        raise RosterNameError(f"Invalid subject name: {subject!r}")
    if len(slug) > MAX_SUBJECT_SLUG_LENGTH:
        digest = hashlib.sha1(slug.encode("utf-8")).hexdigest()[:8]
        slug = f"{slug[:MAX_SUBJECT_SLUG_LENGTH - 9].rstrip('_')}_{digest}"
    return slug


def bucket_name(stream: Stream, semester: int, entity_type: EntityType, subject: Optional[str] = None) -> str:
    if semester < MIN_SEMESTER or semester > MAX_SEMESTER:
        raise RosterNameError(f"Invalid semester: {semester}. Must be between {MIN_SEMESTER}-{MAX_SEMESTER}")
    prefix = f"{stream_code(stream)}_sem{semester}"
    if entity_type is EntityType.ATTENDANCE:
        if subject is None:
            raise RosterNameError("Subject is required for an attendance bucket")
        return f"{prefix}_{subject_slug(subject)}_attendance"
    return f"{prefix}_{entity_type.value}"
