from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator

from app.core.schemas import CamelModel


class QueueClassCreate(CamelModel):
    stream: str
    semester: int
    subject: str = Field(..., min_length=1, max_length=120)

    @field_validator("stream", "subject")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("Stream, semester, and subject are required")
        return v


class QueueBulkCreate(CamelModel):
    classes: List[QueueClassCreate] = Field(..., min_length=1)


class QueuedClassResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    stream: str
    semester: int
    subject: str
    status: str
    added_at: datetime
    completed_at: Optional[datetime] = None


class TeacherQueue(CamelModel):
    success: bool = True
    attendance_queue: List[QueuedClassResponse]
    completed_today: List[QueuedClassResponse]
    last_updated: Optional[datetime] = None


class QueueBulkError(CamelModel):
    class_: QueueClassCreate = Field(..., alias="class")
    error: str


class QueueBulkResult(CamelModel):
    success: bool = True
    message: str
    added: List[QueuedClassResponse]
    errors: List[QueueBulkError]


class QueueActionResult(CamelModel):
    success: bool = True
    message: str
    count: int = 0


class TeacherProfileUpdate(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class TeacherProfileResponse(CamelModel):
    success: bool = True
    user_id: str
    email: Optional[str] = None
    name: str
    role: str
    is_active: bool = True
    total_classes: int = 0
    completed_today: int = 0
    last_updated: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TeacherStats(CamelModel):
    success: bool = True
    total_queue_classes: int
    completed_today: int
    streams_in_queue: List[str]
    semesters_in_queue: List[int]
    last_activity: Optional[datetime] = None
    account_created: Optional[datetime] = None
