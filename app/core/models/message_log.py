"""
One row per (date, stream, semester) absence-message run. Re-sending for the
same day overwrites the row.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Date, DateTime, Float, Integer, String, UniqueConstraint, Uuid

from app.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageLog(Base):
    __tablename__ = "message_logs"
    __table_args__ = (
        UniqueConstraint("date", "stream", "semester", name="uq_message_logs_date_stream_semester"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    date = Column(Date, nullable=False, index=True)
    stream = Column(String(50), nullable=False)
    semester = Column(Integer, nullable=False)
    message_type = Column(String(40), nullable=False, default="consolidated_absence")
    total_students = Column(Integer, nullable=False, default=0)
    messages_sent = Column(Integer, nullable=False, default=0)
    messages_failed = Column(Integer, nullable=False, default=0)
    students_notified = Column(Integer, nullable=False, default=0)
    full_day_absent_count = Column(Integer, nullable=False, default=0)
    partial_day_absent_count = Column(Integer, nullable=False, default=0)
    subjects_included = Column(JSON, nullable=True)
    sent_by = Column(String(30), nullable=False, default="manual")
    sent_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    success_rate = Column(Float, nullable=False, default=0.0)
    estimated_cost = Column(Float, nullable=False, default=0.0)
    provider = Column(String(50), nullable=True)
    api_version = Column(String(20), nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    results = Column(JSON, nullable=True)
    analytics = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
