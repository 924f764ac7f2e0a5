from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from app.core.enums import MessageType
from app.core.schemas import CamelModel


class StudentAbsence(CamelModel):
    """Absence picture of one student for one day."""

    student_id: str = Field(..., alias="studentID")
    name: str
    parent_phone: Optional[str] = Field(None, exclude=True)
    has_phone: bool
    language_subject: Optional[str] = None
    absent_subjects: List[str]
    present_subjects: List[str]
    applicable_subjects: int
    total_absent: int
    is_full_day_absent: bool
    attendance_percentage: float
    message_type: MessageType
    will_receive_message: bool


class MessageStatus(CamelModel):
    already_sent: bool
    messages_sent: int = 0
    messages_failed: int = 0
    sent_at: Optional[datetime] = None
    sent_by: Optional[str] = None


class AbsenceSummary(CamelModel):
    total_students: int
    total_subjects: int
    subjects_with_attendance: List[str]
    subjects_without_attendance: List[str]
    full_day_absent: int
    partial_day_absent: int
    present_all_day: int
    will_receive_message: int
    estimated_cost: float


class DailyAbsenceSummary(CamelModel):
    success: bool = True
    date: date
    stream: str
    semester: int
    summary: AbsenceSummary
    students: List[StudentAbsence]
    message_status: MessageStatus


class SendAbsenceMessagesRequest(CamelModel):
    force_resend: bool = False


class FailedMessage(CamelModel):
    student_id: str = Field(..., alias="studentID")
    name: str
    error: Optional[str] = None
    user_friendly_error: Optional[str] = None


class SendAbsenceMessagesResult(CamelModel):
    success: bool = True
    already_sent: bool = False
    message: str
    date: date
    stream: str
    semester: int
    total_students: int = 0
    students_to_notify: int = 0
    messages_sent: int = 0
    messages_failed: int = 0
    full_day_absent: int = 0
    partial_day_absent: int = 0
    success_rate: float = 0.0
    estimated_cost: float = 0.0
    subjects_included: List[str] = Field(default_factory=list)
    failed_messages: List[FailedMessage] = Field(default_factory=list)
    previous_send: Optional[MessageStatus] = None
    processing_time_ms: Optional[int] = None
