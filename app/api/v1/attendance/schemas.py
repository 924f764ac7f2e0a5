from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from app.core.schemas import CamelModel

ATTENDANCE_SCOPE_LANGUAGE = "LANGUAGE_FILTERED"
ATTENDANCE_SCOPE_ALL = "ALL_STUDENTS"


def _normalize_ids(ids: List[str]) -> List[str]:
    return [str(i).strip().upper() for i in ids if str(i).strip()]


class AttendanceMark(CamelModel):
    """Mark one subject for one date."""

    date: date
    students_present: List[str] = Field(default_factory=list)
    force_overwrite: bool = False

    @field_validator("students_present")
    @classmethod
    def _ids(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(_normalize_ids(v)))


class AttendanceScope(CamelModel):
    type: str
    language: Optional[str] = None
    note: str
    total_possible: int = 0


class SubjectInfo(CamelModel):
    name: str
    type: str
    is_language_subject: bool
    language_type: Optional[str] = None
    credits: Optional[int] = None


class AbsentStudent(CamelModel):
    student_id: str = Field(..., alias="studentID")
    name: str
    has_phone: bool
    language_subject: Optional[str] = None


class AttendanceMarkSummary(CamelModel):
    total_relevant_students: int
    present_students: int
    absent_students: int
    absent_with_phone: int
    absent_without_phone: int
    attendance_percentage: float
    absent_students_list: List[AbsentStudent]


class AttendanceRecord(CamelModel):
    date: date
    subject: str
    stream: str
    semester: int
    students_present: List[str]
    total_students: int
    total_possible_students: int
    attendance_percentage: float
    is_language_subject: bool
    language_type: Optional[str] = None
    language_group: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AttendanceMarkResult(CamelModel):
    success: bool = True
    message: str
    is_overwrite: bool
    data: AttendanceRecord
    subject: SubjectInfo
    attendance_scope: AttendanceScope
    summary: AttendanceMarkSummary


class RegisterStudent(CamelModel):
    student_id: str = Field(..., alias="studentID")
    name: str
    language_subject: Optional[str] = None
    attendance: Dict[str, bool]
    total_classes: int
    attended_classes: int
    absent_classes: int
    percentage: float


class AttendanceRegister(CamelModel):
    success: bool = True
    stream: str
    semester: int
    subject: SubjectInfo
    attendance_scope: AttendanceScope
    dates: List[str]
    total_classes: int
    students: List[RegisterStudent]
    collection_used: str


class AttendanceBulkUpdate(CamelModel):
    """``attendanceMap``: ``{"2025-09-13": ["BCA001", ...], ...}``."""

    attendance_map: Dict[str, List[str]] = Field(..., min_length=1)


class DateWarning(CamelModel):
    date: str
    invalid_students: List[str]
    valid_count: int


class AttendanceBulkUpdateResult(CamelModel):
    success: bool = True
    message: str
    processed_dates: int
    created: int
    updated: int
    warnings: List[DateWarning] = Field(default_factory=list)


class SubjectStudent(CamelModel):
    student_id: str = Field(..., alias="studentID")
    name: str
    language_subject: Optional[str] = None
    has_phone: bool


class SubjectStudentList(CamelModel):
    success: bool = True
    stream: str
    semester: int
    subject: SubjectInfo
    attendance_scope: AttendanceScope
    total_students: int
    students: List[SubjectStudent]
