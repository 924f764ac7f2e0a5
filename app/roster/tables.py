"""Column layouts for the three bucket kinds. Every bucket gets its own Table."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def student_table(name: str, metadata: MetaData) -> Table:
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("student_id", String(10), nullable=False, unique=True),
        Column("name", String(100), nullable=False),
        Column("stream", String(50), nullable=False),
        Column("semester", Integer, nullable=False),
        Column("parent_phone", String(15), nullable=True),
        Column("language_subject", String(20), nullable=True),
        Column("language_group", String(100), nullable=True),
        # NULL is read as active (rows imported before the flag existed).
        Column("is_active", Boolean, nullable=True, default=True),
        Column("migration_generation", Integer, nullable=True, default=0),
        Column("original_semester", Integer, nullable=True),
        Column("last_migration_date", DateTime(timezone=True), nullable=True),
        Column("migration_batch", String(120), nullable=True),
        Column("added_to_semester_date", DateTime(timezone=True), nullable=True, default=_utcnow),
        Column("migration_history", JSON, nullable=True),
        Column("academic_year", String(4), nullable=True),
        Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
        Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow),
    )


def subject_table(name: str, metadata: MetaData) -> Table:
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("subject_name", String(120), nullable=False, unique=True),
        Column("stream", String(50), nullable=False),
        Column("semester", Integer, nullable=False),
        Column("credits", Integer, nullable=False, default=4),
        Column("subject_type", String(20), nullable=False, default="CORE"),
        Column("is_language_subject", Boolean, nullable=False, default=False),
        Column("language_type", String(20), nullable=True),
        Column("is_active", Boolean, nullable=True, default=True),
        Column("academic_year", String(4), nullable=True),
        Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
        Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow),
    )


def attendance_table(name: str, metadata: MetaData) -> Table:
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("date", Date, nullable=False, unique=True),
        Column("subject", String(120), nullable=False),
        Column("stream", String(50), nullable=False),
        Column("semester", Integer, nullable=False),
        Column("is_language_subject", Boolean, nullable=False, default=False),
        Column("language_type", String(20), nullable=True),
        Column("language_group", String(100), nullable=True),
        Column("students_present", JSON, nullable=False),
        Column("total_students", Integer, nullable=False, default=0),
        Column("total_possible_students", Integer, nullable=False, default=0),
        Column("attendance_percentage", Float, nullable=False, default=0.0),
        Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
        Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow),
    )
