from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from app.core.enums import Language
from app.core.schemas import CamelModel
from app.roster.records import (
    MigrationEntry,
    StudentRecord,
    is_valid_indian_mobile,
    normalize_name,
    normalize_student_id,
)


class StudentCreate(CamelModel):
    """Enrol one student into a stream/semester roster."""

    student_id: str = Field(..., alias="studentID")
    name: str
    parent_phone: str
    language_subject: Optional[Language] = None

    @field_validator("student_id")
    @classmethod
    def _student_id(cls, v: str) -> str:
        return normalize_student_id(v)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return normalize_name(v)

    @field_validator("parent_phone")
    @classmethod
    def _phone(cls, v: str) -> str:
        if not is_valid_indian_mobile(v):
            raise ValueError("Please enter a valid Indian phone number")
        return v

    @field_validator("language_subject", mode="before")
    @classmethod
    def _language(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or None
        return v


class StudentBulkCreate(CamelModel):
    students: List[StudentCreate] = Field(..., min_length=1)


class StudentResponse(CamelModel):
    student_id: str = Field(..., alias="studentID")
    name: str
    parent_phone: Optional[str] = None
    stream: str
    semester: int
    language_subject: Optional[str] = None
    language_group: Optional[str] = None
    is_active: bool
    migration_generation: int
    original_semester: Optional[int] = None
    last_migration_date: Optional[datetime] = None
    migration_batch: Optional[str] = None
    migration_history: List[MigrationEntry] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: StudentRecord) -> "StudentResponse":
        return cls(
            student_id=record.student_id,
            name=record.name,
            parent_phone=record.parent_phone,
            stream=record.stream.value,
            semester=record.semester,
            language_subject=record.language_subject.value if record.language_subject else None,
            language_group=record.language_group,
            is_active=record.active.value == "ACTIVE",
            migration_generation=record.migration_generation,
            original_semester=record.original_semester,
            last_migration_date=record.last_migration_date,
            migration_batch=record.migration_batch,
            migration_history=record.migration_history,
        )


class StudentRef(CamelModel):
    id: str
    name: str


class LanguageBreakdown(CamelModel):
    language: str
    count: int
    students: List[StudentRef]


class StudentListResponse(CamelModel):
    success: bool = True
    count: int
    stream: str
    semester: int
    students: List[StudentResponse]
    students_by_language: Dict[str, List[StudentResponse]]
    language_breakdown: List[LanguageBreakdown]
    collection_used: str


class StudentBulkCreateResult(CamelModel):
    success: bool = True
    inserted: int
    students: List[StudentResponse]
