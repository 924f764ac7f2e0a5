from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from app.core.enums import Language, SubjectType
from app.core.exceptions import RosterNameError
from app.core.schemas import CamelModel
from app.roster.naming import subject_slug


class SubjectCreate(CamelModel):
    subject_name: str = Field(..., min_length=1, max_length=120)
    credits: int = Field(4, ge=1, le=6)
    subject_type: SubjectType = SubjectType.CORE
    language_type: Optional[Language] = None

    @field_validator("subject_name")
    @classmethod
    def _subject_name(cls, v: str) -> str:
        name = " ".join(v.split()).upper()
        if not name:
            raise ValueError("Subject name is required")
        try:
            subject_slug(name)
        except RosterNameError as e:
            raise ValueError(f"{e.message}; use at least one Latin letter or digit") from e
        return name

    @field_validator("subject_type", "language_type", mode="before")
    @classmethod
    def _upper(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or None
        return v

    @model_validator(mode="after")
    def _language_requires_type(self) -> "SubjectCreate":
        if self.subject_type is SubjectType.LANGUAGE and self.language_type is None:
            raise ValueError("Language subjects must specify a language type")
        if self.subject_type is not SubjectType.LANGUAGE:
            self.language_type = None
        return self

    @property
    def is_language_subject(self) -> bool:
        return self.subject_type is SubjectType.LANGUAGE


class SubjectResponse(CamelModel):
    subject_name: str
    stream: str
    semester: int
    credits: int
    subject_type: str
    is_language_subject: bool
    language_type: Optional[str] = None
    is_active: bool = True
    academic_year: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SubjectResponse":
        return cls(
            subject_name=row["subject_name"],
            stream=row["stream"],
            semester=row["semester"],
            credits=row["credits"],
            subject_type=row["subject_type"],
            is_language_subject=bool(row["is_language_subject"]),
            language_type=row.get("language_type"),
            is_active=row.get("is_active") is not False,
            academic_year=row.get("academic_year"),
            created_at=row.get("created_at"),
        )


class SubjectListResponse(CamelModel):
    success: bool = True
    stream: str
    semester: int
    count: int
    subjects: List[SubjectResponse]
    core_subjects: List[SubjectResponse]
    language_subjects: List[SubjectResponse]
    collection_used: str
