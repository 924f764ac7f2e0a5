from datetime import datetime, timezone
from typing import Dict, List

from fastapi import status

from app.core.enums import Stream
from app.core.exceptions import ServiceError
from app.core.streams import semester_range, validate_semester
from app.roster.queries import active_students, active_subjects, natural_student_key
from app.roster.registry import RosterRegistry

from .schemas import (
    AvailableData,
    AvailableDataResponse,
    DateRange,
    ReportStatistics,
    SemesterData,
    StreamDataSummary,
    StudentSubjectReport,
    StudentSubjectRow,
    SubjectAnalysis,
    SubjectAnalysisItem,
    SubjectAttendanceStats,
)


EXCELLENT_THRESHOLD = 85.0
GOOD_THRESHOLD = 75.0


async def student_subject_report(registry: RosterRegistry, stream_value: str, semester: int) -> StudentSubjectReport:
    """Per student, per applicable subject: classes held up to today, attended, absent, percentage."""
    stream = Stream.parse(stream_value)
    validate_semester(semester)
    students_bucket = registry.students(stream, semester)
    subjects_bucket = registry.subjects(stream, semester)
    await registry.ensure(students_bucket, subjects_bucket)

    async with registry.connect() as conn:
        students = await active_students(conn, students_bucket)
        subjects = await active_subjects(conn, subjects_bucket)
    if not students:
        raise ServiceError(f"No students found for {stream.value} Semester {semester}", status.HTTP_404_NOT_FOUND)
    if not subjects:
        raise ServiceError(f"No subjects found for {stream.value} Semester {semester}", status.HTTP_404_NOT_FOUND)

    today = datetime.now(timezone.utc).date()
    buckets = [registry.attendance(stream, semester, s["subject_name"]) for s in subjects]
    await registry.ensure(*buckets)
    held: Dict[str, List[set]] = {}
    async with registry.connect() as conn:
        for subject, bucket in zip(subjects, buckets):
            records = await bucket.find(conn, bucket.c.date <= today, order_by=bucket.c.date)
            held[subject["subject_name"]] = [set(r["students_present"] or []) for r in records]

    rows: List[StudentSubjectRow] = []
    percentages: List[float] = []
    for student in sorted(students, key=lambda s: natural_student_key(s.student_id)):
        per_subject = {}
        for subject in subjects:
            language = subject.get("language_type")
            if subject["is_language_subject"] and language and (
                student.language_subject is None or student.language_subject.value != language
            ):
                continue
            classes = held[subject["subject_name"]]
            attended = sum(1 for present in classes if student.student_id in present)
            percentage = round(attended / len(classes) * 100, 1) if classes else 0.0
            per_subject[subject["subject_name"]] = SubjectAttendanceStats(
                total_classes=len(classes),
                attended_classes=attended,
                absent_classes=len(classes) - attended,
                percentage=percentage,
            )
            if classes:
                percentages.append(percentage)
        rows.append(
            StudentSubjectRow(
                student_id=student.student_id,
                name=student.name,
                language_subject=student.language_subject.value if student.language_subject else None,
                subjects=per_subject,
            )
        )

    return StudentSubjectReport(
        stream=stream.value,
        semester=semester,
        subjects=[s["subject_name"] for s in subjects],
        students=rows,
        total_students=len(students),
        total_subjects=len(subjects),
        statistics=ReportStatistics(
            overall_average=round(sum(percentages) / len(percentages), 1) if percentages else 0.0,
            excellent_count=sum(1 for p in percentages if p >= EXCELLENT_THRESHOLD),
            good_count=sum(1 for p in percentages if GOOD_THRESHOLD <= p < EXCELLENT_THRESHOLD),
            poor_count=sum(1 for p in percentages if p < GOOD_THRESHOLD),
            total_attendance_records=sum(len(c) for c in held.values()),
        ),
        collections={"students": students_bucket.name, "subjects": subjects_bucket.name},
        generated_at=datetime.now(timezone.utc),
    )


async def subject_analysis(registry: RosterRegistry, stream_value: str, semester: int) -> SubjectAnalysis:
    stream = Stream.parse(stream_value)
    validate_semester(semester)
    subjects_bucket = registry.subjects(stream, semester)
    await registry.ensure(subjects_bucket)

    async with registry.connect() as conn:
        subjects = await active_subjects(conn, subjects_bucket)
    buckets = [registry.attendance(stream, semester, s["subject_name"]) for s in subjects]
    await registry.ensure(*buckets)

    items = []
    async with registry.connect() as conn:
        for subject, bucket in zip(subjects, buckets):
            total = await bucket.count(conn)
            low, high = await bucket.value_range(conn, bucket.c.date)
            items.append(
                SubjectAnalysisItem(
                    subject_name=subject["subject_name"],
                    is_language_subject=bool(subject["is_language_subject"]),
                    language_type=subject.get("language_type"),
                    total_attendance_records=total,
                    date_range=DateRange(min_date=low, max_date=high) if total else None,
                    collection=bucket.name,
                )
            )
    return SubjectAnalysis(
        stream=stream.value,
        semester=semester,
        subject_analysis=items,
        total_subjects=len(subjects),
    )


async def available_data(registry: RosterRegistry) -> AvailableDataResponse:
    """Streams and semesters that currently hold active students. Buckets that were never created count as empty."""
    existing = set(await registry.existing_tables())
    streams: List[str] = []
    semesters: Dict[str, List[SemesterData]] = {}
    summary: Dict[str, StreamDataSummary] = {}

    async with registry.connect() as conn:
        for stream in Stream:
            found = []
            for sem in semester_range(stream):
                bucket = registry.students(stream, sem)
                if bucket.name not in existing:
                    continue
                count = await bucket.count(conn, bucket.active_clause())
                if count:
                    found.append(SemesterData(semester=sem, student_count=count))
            semesters[stream.value] = found
            if found:
                streams.append(stream.value)
                summary[stream.value] = StreamDataSummary(
                    total_students=sum(s.student_count for s in found),
                    available_semesters=len(found),
                )

    return AvailableDataResponse(
        available_data=AvailableData(streams=streams, semesters=semesters, summary=summary),
        total_streams_with_data=len(streams),
        generated_at=datetime.now(timezone.utc),
    )
