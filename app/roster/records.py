"""Student record construction. Defaults are computed here, not by the storage layer."""

import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.enums import ActiveState, Language, Stream

STUDENT_ID_PATTERN = re.compile(r"^[A-Z0-9]{6,10}$")
_PHONE_STRIP = re.compile(r"[\s\-\(\)\+]")
_INDIAN_MOBILE = re.compile(r"^(91)?[6-9]\d{9}$")


def normalize_student_id(value: str) -> str:
    student_id = (value or "").strip().upper()
    if not STUDENT_ID_PATTERN.match(student_id):
        raise ValueError("Student ID must be 6-10 uppercase alphanumeric characters")
    return student_id


def normalize_name(value: str) -> str:
    name = " ".join((value or "").split()).upper()
    if len(name) < 2:
        raise ValueError("Name must be at least 2 characters")
    if len(name) > 100:
        raise ValueError("Name cannot exceed 100 characters")
    return name


def is_valid_indian_mobile(value: str) -> bool:
    return bool(_INDIAN_MOBILE.match(_PHONE_STRIP.sub("", value or "")))


def normalize_phone(value: str) -> str:
    """Store as 91XXXXXXXXXX."""
    if not is_valid_indian_mobile(value):
        raise ValueError("Please enter a valid Indian phone number")
    cleaned = _PHONE_STRIP.sub("", value)
    if len(cleaned) == 10:
        return "91" + cleaned
    return cleaned


def derive_language_group(stream: Stream, semester: int, language: Optional[Language]) -> Optional[str]:
    if language is None:
        return None
    return f"{stream.value}_SEM{semester}_{Language(language).value}".upper()


class MigrationEntry(BaseModel):
    """One promotion hop. Stored in the history JSON with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    from_semester: int
    to_semester: int
    migrated_date: datetime
    migration_batch: Optional[str] = None
    generation: Optional[int] = None


class StudentRecord(BaseModel):
    """A student row as the service layer sees it (tri-state active flag already resolved)."""

    student_id: str
    name: str
    stream: Stream
    semester: int
    parent_phone: Optional[str] = None
    language_subject: Optional[Language] = None
    language_group: Optional[str] = None
    active: ActiveState = ActiveState.ACTIVE
    migration_generation: int = 0
    original_semester: Optional[int] = None
    last_migration_date: Optional[datetime] = None
    migration_batch: Optional[str] = None
    added_to_semester_date: Optional[datetime] = None
    migration_history: List[MigrationEntry] = Field(default_factory=list)
    academic_year: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StudentRecord":
        return cls(
            student_id=row["student_id"],
            name=row["name"],
            stream=Stream(row["stream"]),
            semester=row["semester"],
            parent_phone=row.get("parent_phone"),
            language_subject=row.get("language_subject") or None,
            language_group=row.get("language_group"),
            active=ActiveState.from_flag(row.get("is_active")),
            migration_generation=row.get("migration_generation") or 0,
            original_semester=row.get("original_semester"),
            last_migration_date=row.get("last_migration_date"),
            migration_batch=row.get("migration_batch"),
            added_to_semester_date=row.get("added_to_semester_date"),
            migration_history=row.get("migration_history") or [],
            academic_year=row.get("academic_year"),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "name": self.name,
            "stream": self.stream.value,
            "semester": self.semester,
            "parent_phone": self.parent_phone,
            "language_subject": self.language_subject.value if self.language_subject else None,
            "language_group": self.language_group,
            "is_active": self.active is ActiveState.ACTIVE,
            "migration_generation": self.migration_generation,
            "original_semester": self.original_semester,
            "last_migration_date": self.last_migration_date,
            "migration_batch": self.migration_batch,
            "added_to_semester_date": self.added_to_semester_date,
            "migration_history": [
                entry.model_dump(mode="json", by_alias=True) for entry in self.migration_history
            ],
            "academic_year": self.academic_year,
        }


def new_student_record(
    *,
    student_id: str,
    name: str,
    stream: Stream,
    semester: int,
    parent_phone: str,
    language_subject: Optional[Language],
    enrolled_at: datetime,
) -> StudentRecord:
    """Enrolment: generation 0, original semester is the enrolment semester."""
    return StudentRecord(
        student_id=normalize_student_id(student_id),
        name=normalize_name(name),
        stream=stream,
        semester=semester,
        parent_phone=normalize_phone(parent_phone),
        language_subject=language_subject,
        language_group=derive_language_group(stream, semester, language_subject),
        active=ActiveState.ACTIVE,
        migration_generation=0,
        original_semester=semester,
        added_to_semester_date=enrolled_at,
        academic_year=str(enrolled_at.year),
    )


def build_promoted_record(
    student: StudentRecord,
    from_semester: int,
    to_semester: int,
    promoted_at: datetime,
    batch: str,
) -> StudentRecord:
    """Copy of ``student`` one semester up, with one more history entry."""
    generation = student.migration_generation + 1
    entry = MigrationEntry(
        from_semester=from_semester,
        to_semester=to_semester,
        migrated_date=promoted_at,
        migration_batch=batch,
        generation=generation,
    )
    return student.model_copy(
        update={
            "semester": to_semester,
            "language_group": derive_language_group(student.stream, to_semester, student.language_subject),
            "active": ActiveState.ACTIVE,
            "migration_generation": generation,
            "original_semester": student.original_semester or from_semester,
            "last_migration_date": promoted_at,
            "added_to_semester_date": promoted_at,
            "migration_batch": batch,
            "migration_history": [*student.migration_history, entry],
            "academic_year": str(promoted_at.year),
        }
    )
