from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import Field

from app.core.schemas import CamelModel


class SubjectAttendanceStats(CamelModel):
    total_classes: int
    attended_classes: int
    absent_classes: int
    percentage: float


class StudentSubjectRow(CamelModel):
    student_id: str = Field(..., alias="studentID")
    name: str
    language_subject: Optional[str] = None
    subjects: Dict[str, SubjectAttendanceStats]


class ReportStatistics(CamelModel):
    overall_average: float
    excellent_count: int
    good_count: int
    poor_count: int
    total_attendance_records: int


class StudentSubjectReport(CamelModel):
    success: bool = True
    stream: str
    semester: int
    subjects: List[str]
    students: List[StudentSubjectRow]
    total_students: int
    total_subjects: int
    statistics: ReportStatistics
    collections: Dict[str, str]
    generated_at: datetime


class DateRange(CamelModel):
    min_date: date
    max_date: date


class SubjectAnalysisItem(CamelModel):
    subject_name: str
    is_language_subject: bool
    language_type: Optional[str] = None
    total_attendance_records: int
    date_range: Optional[DateRange] = None
    collection: str


class SubjectAnalysis(CamelModel):
    success: bool = True
    stream: str
    semester: int
    subject_analysis: List[SubjectAnalysisItem]
    total_subjects: int


class SemesterData(CamelModel):
    semester: int
    student_count: int


class StreamDataSummary(CamelModel):
    total_students: int
    available_semesters: int


class AvailableData(CamelModel):
    streams: List[str]
    semesters: Dict[str, List[SemesterData]]
    summary: Dict[str, StreamDataSummary]


class AvailableDataResponse(CamelModel):
    success: bool = True
    available_data: AvailableData
    total_streams_with_data: int
    generated_at: datetime
