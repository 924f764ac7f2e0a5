"""Teachers and their personal queue of classes still to take attendance for."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Uuid

from app.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TeacherProfile(Base):
    """Created on first queue or profile write; keyed by the token subject."""

    __tablename__ = "teachers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    name = Column(String(120), nullable=False)
    role = Column(String(20), nullable=False, default="teacher")
    is_active = Column(Boolean, nullable=False, default=True)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class QueuedClass(Base):
    __tablename__ = "teacher_queue_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    teacher_id = Column(Uuid, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False, index=True)
    stream = Column(String(50), nullable=False)
    semester = Column(Integer, nullable=False)
    subject = Column(String(120), nullable=False)
    status = Column(String(20), nullable=False, default="queued")  # queued | completed
    added_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
