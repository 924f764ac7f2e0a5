"""
Per-teacher attendance queue: classes a teacher still has to mark, and the
ones completed since the queue was last cleared.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.enums import QueueStatus, Stream
from app.core.exceptions import InvalidSemesterError, ServiceError
from app.core.models import QueuedClass, TeacherProfile
from app.core.streams import semester_range, validate_stream_semester

from .schemas import (
    QueueActionResult,
    QueueBulkCreate,
    QueueBulkError,
    QueueBulkResult,
    QueueClassCreate,
    QueuedClassResponse,
    TeacherProfileResponse,
    TeacherProfileUpdate,
    TeacherQueue,
    TeacherStats,
)

logger = logging.getLogger(__name__)


async def _get_teacher(db: AsyncSession, user: CurrentUser) -> Optional[TeacherProfile]:
    result = await db.execute(select(TeacherProfile).where(TeacherProfile.user_id == user.id))
    return result.scalar_one_or_none()


async def _get_teacher_or_404(db: AsyncSession, user: CurrentUser) -> TeacherProfile:
    teacher = await _get_teacher(db, user)
    if teacher is None:
        raise ServiceError("Teacher not found", status.HTTP_404_NOT_FOUND)
    return teacher


async def _get_or_create_teacher(db: AsyncSession, user: CurrentUser) -> TeacherProfile:
    teacher = await _get_teacher(db, user)
    if teacher is None:
        teacher = TeacherProfile(
            user_id=user.id,
            email=user.email.lower() if user.email else None,
            name=user.name,
            role=user.role.value,
        )
        db.add(teacher)
        await db.flush()
        logger.info("Created teacher profile for %s", user.id)
    return teacher


async def _items(db: AsyncSession, teacher: TeacherProfile, queue_status: QueueStatus) -> List[QueuedClass]:
    order = QueuedClass.added_at if queue_status is QueueStatus.QUEUED else QueuedClass.completed_at
    result = await db.execute(
        select(QueuedClass)
        .where(QueuedClass.teacher_id == teacher.id, QueuedClass.status == queue_status.value)
        .order_by(order)
    )
    return list(result.scalars().all())


async def _queued_item_or_404(db: AsyncSession, teacher: TeacherProfile, class_id: UUID) -> QueuedClass:
    item = await db.get(QueuedClass, class_id)
    if item is None or item.teacher_id != teacher.id or item.status != QueueStatus.QUEUED.value:
        raise ServiceError("Class not found in queue", status.HTTP_404_NOT_FOUND)
    return item


async def _add(db: AsyncSession, teacher: TeacherProfile, payload: QueueClassCreate) -> QueuedClass:
    stream = Stream.parse(payload.stream)
    validate_stream_semester(stream, payload.semester)
    if payload.semester not in semester_range(stream):
        raise InvalidSemesterError(f"{stream.value} has no Semester {payload.semester}")
    subject = payload.subject.upper()

    duplicate = await db.execute(
        select(QueuedClass.id).where(
            QueuedClass.teacher_id == teacher.id,
            QueuedClass.status == QueueStatus.QUEUED.value,
            QueuedClass.stream == stream.value,
            QueuedClass.semester == payload.semester,
            QueuedClass.subject == subject,
        )
    )
    if duplicate.first() is not None:
        raise ServiceError("This class is already in your queue", status.HTTP_409_CONFLICT)

    item = QueuedClass(
        teacher_id=teacher.id,
        stream=stream.value,
        semester=payload.semester,
        subject=subject,
        status=QueueStatus.QUEUED.value,
        added_at=datetime.now(timezone.utc),
    )
    db.add(item)
    await db.flush()
    return item


def _touch(teacher: TeacherProfile) -> None:
    teacher.last_updated = datetime.now(timezone.utc)


# ----- Queue -----
async def get_queue(db: AsyncSession, user: CurrentUser) -> TeacherQueue:
    teacher = await _get_teacher(db, user)
    if teacher is None:
        return TeacherQueue(attendance_queue=[], completed_today=[])
    return TeacherQueue(
        attendance_queue=[
            QueuedClassResponse.model_validate(i) for i in await _items(db, teacher, QueueStatus.QUEUED)
        ],
        completed_today=[
            QueuedClassResponse.model_validate(i) for i in await _items(db, teacher, QueueStatus.COMPLETED)
        ],
        last_updated=teacher.last_updated,
    )


async def add_to_queue(db: AsyncSession, user: CurrentUser, payload: QueueClassCreate) -> QueuedClassResponse:
    teacher = await _get_or_create_teacher(db, user)
    item = await _add(db, teacher, payload)
    _touch(teacher)
    await db.commit()
    return QueuedClassResponse.model_validate(item)


async def bulk_add_to_queue(db: AsyncSession, user: CurrentUser, payload: QueueBulkCreate) -> QueueBulkResult:
    """Adds what it can; invalid or duplicate classes are reported per entry."""
    teacher = await _get_or_create_teacher(db, user)
    added: List[QueuedClassResponse] = []
    errors: List[QueueBulkError] = []
    for entry in payload.classes:
        try:
            item = await _add(db, teacher, entry)
        except ServiceError as e:
            errors.append(QueueBulkError(class_=entry, error=e.message))
            continue
        added.append(QueuedClassResponse.model_validate(item))
    _touch(teacher)
    await db.commit()
    return QueueBulkResult(message=f"{len(added)} classes added successfully", added=added, errors=errors)


async def remove_from_queue(db: AsyncSession, user: CurrentUser, class_id: UUID) -> QueueActionResult:
    teacher = await _get_teacher_or_404(db, user)
    item = await _queued_item_or_404(db, teacher, class_id)
    await db.delete(item)
    _touch(teacher)
    await db.commit()
    return QueueActionResult(message="Class removed from queue successfully", count=1)


async def complete_class(db: AsyncSession, user: CurrentUser, class_id: UUID) -> QueuedClassResponse:
    teacher = await _get_teacher_or_404(db, user)
    item = await _queued_item_or_404(db, teacher, class_id)
    item.status = QueueStatus.COMPLETED.value
    item.completed_at = datetime.now(timezone.utc)
    _touch(teacher)
    await db.commit()
    return QueuedClassResponse.model_validate(item)


async def clear_completed(db: AsyncSession, user: CurrentUser) -> QueueActionResult:
    teacher = await _get_teacher_or_404(db, user)
    result = await db.execute(
        delete(QueuedClass).where(
            QueuedClass.teacher_id == teacher.id,
            QueuedClass.status == QueueStatus.COMPLETED.value,
        )
    )
    _touch(teacher)
    await db.commit()
    return QueueActionResult(message="Completed classes cleared successfully", count=result.rowcount)


# ----- Profile and stats -----
async def _count(db: AsyncSession, teacher: TeacherProfile, queue_status: QueueStatus) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(QueuedClass)
        .where(QueuedClass.teacher_id == teacher.id, QueuedClass.status == queue_status.value)
    )
    return result.scalar_one()


async def get_profile(db: AsyncSession, user: CurrentUser) -> TeacherProfileResponse:
    teacher = await _get_teacher(db, user)
    if teacher is None:
        return TeacherProfileResponse(user_id=user.id, email=user.email, name=user.name, role=user.role.value)
    return TeacherProfileResponse(
        user_id=teacher.user_id,
        email=teacher.email,
        name=teacher.name,
        role=teacher.role,
        is_active=teacher.is_active,
        total_classes=await _count(db, teacher, QueueStatus.QUEUED),
        completed_today=await _count(db, teacher, QueueStatus.COMPLETED),
        last_updated=teacher.last_updated,
        created_at=teacher.created_at,
    )


async def update_profile(db: AsyncSession, user: CurrentUser, payload: TeacherProfileUpdate) -> TeacherProfileResponse:
    teacher = await _get_or_create_teacher(db, user)
    teacher.name = payload.name
    _touch(teacher)
    await db.commit()
    return await get_profile(db, user)


async def get_stats(db: AsyncSession, user: CurrentUser) -> TeacherStats:
    teacher = await _get_teacher(db, user)
    if teacher is None:
        return TeacherStats(total_queue_classes=0, completed_today=0, streams_in_queue=[], semesters_in_queue=[])
    queued = await _items(db, teacher, QueueStatus.QUEUED)
    return TeacherStats(
        total_queue_classes=len(queued),
        completed_today=await _count(db, teacher, QueueStatus.COMPLETED),
        streams_in_queue=list(dict.fromkeys(i.stream for i in queued)),
        semesters_in_queue=sorted({i.semester for i in queued}),
        last_activity=teacher.last_updated,
        account_created=teacher.created_at,
    )
