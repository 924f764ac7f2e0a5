"""
Semester promotion for one stream.

Graduation of the terminal semester runs in a savepoint and is best-effort:
if it fails it is logged, rolled back on its own and the run carries on.
The promotion pairs run strictly in descending source order inside the same
outer transaction; a failure in any pair rolls back the whole run.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from app.core.enums import Stream
from app.core.exceptions import PromotionError
from app.core.streams import TERMINAL_SEMESTER, is_limited_stream, promotion_pairs, semester_range
from app.roster.records import StudentRecord, build_promoted_record
from app.roster.registry import RosterBucket, RosterRegistry

from .schemas import PromotedStudent, PromotionReport, PromotionStep

logger = logging.getLogger(__name__)


def make_promotion_batch(stream: Stream, promoted_at: datetime) -> str:
    slug = re.sub(r"\s+", "_", stream.value)
    return f"simple_promotion_{slug}_{int(promoted_at.timestamp() * 1000)}"


def _students_summary(rows) -> List[PromotedStudent]:
    return [PromotedStudent(id=r["student_id"], name=r["name"]) for r in rows]


def build_promotion_flow(stream: Stream, total_graduated: int) -> List[str]:
    semesters = semester_range(stream)
    flow = [f"Semester {sem} → Semester {sem + 1}" for sem in semesters[:-1]]
    flow.append(f"Semester {semesters[-1]} → Graduated ({total_graduated} students removed)")
    return flow


async def _graduate(conn: AsyncConnection, bucket: RosterBucket) -> Optional[PromotionStep]:
    """Remove every student of the terminal semester. Never aborts the run."""
    try:
        async with conn.begin_nested():
            graduating = await bucket.find(conn, order_by=bucket.c.student_id)
            if not graduating:
                return None
            await bucket.delete_all(conn)
    except SQLAlchemyError:
        logger.exception("Graduation step failed for %s; continuing with promotion", bucket.name)
        return None
    logger.info("Graduated %d students from %s", len(graduating), bucket.name)
    return PromotionStep(
        action="graduation",
        semester=bucket.key.semester,
        count=len(graduating),
        students=_students_summary(graduating),
    )


async def _promote_pair(
    conn: AsyncConnection,
    source: RosterBucket,
    target: RosterBucket,
    promoted_at: datetime,
    batch: str,
) -> Optional[PromotionStep]:
    from_sem, to_sem = source.key.semester, target.key.semester
    try:
        rows = await source.find_active(conn, order_by=source.c.student_id)
        logger.info("Promoting %s Semester %d→%d: %d students", source.key.stream.value, from_sem, to_sem, len(rows))
        if not rows:
            return None
        promoted = [
            build_promoted_record(StudentRecord.from_row(row), from_sem, to_sem, promoted_at, batch)
            for row in rows
        ]
        await target.insert_many(conn, [record.to_row() for record in promoted])
        # Source is cleared only once the target insert has gone through.
        await source.delete_all(conn)
    except (SQLAlchemyError, ValueError) as e:
        logger.error("Error promoting from Semester %d to %d: %s", from_sem, to_sem, e)
        raise PromotionError(
            f"Promotion failed at Semester {from_sem} → {to_sem}: {e}",
            stage="promotion",
            from_semester=from_sem,
            to_semester=to_sem,
        ) from e
    return PromotionStep(
        action="promotion",
        from_semester=from_sem,
        to_semester=to_sem,
        count=len(rows),
        students=_students_summary(rows),
    )


async def promote_stream(
    registry: RosterRegistry,
    stream_value: str,
    *,
    now: Optional[datetime] = None,
) -> PromotionReport:
    """Graduate the terminal semester and move every other semester of the stream up by one."""
    stream = Stream.parse(stream_value)
    promoted_at = now or datetime.now(timezone.utc)
    batch = make_promotion_batch(stream, promoted_at)
    semesters = semester_range(stream)
    buckets: Dict[int, RosterBucket] = {sem: registry.students(stream, sem) for sem in semesters}

    logger.info("Starting simple promotion for %s (semesters %s, batch %s)", stream.value, semesters, batch)
    try:
        await registry.ensure(*buckets.values())
    except SQLAlchemyError as e:
        raise PromotionError(f"Roster store unavailable: {e}", stage="store") from e

    details: List[PromotionStep] = []
    async with registry.stream_lock(stream):
        try:
            async with registry.transaction() as conn:
                if TERMINAL_SEMESTER in buckets:
                    graduation = await _graduate(conn, buckets[TERMINAL_SEMESTER])
                    if graduation:
                        details.append(graduation)
                for from_sem, to_sem in promotion_pairs(stream):
                    step = await _promote_pair(conn, buckets[from_sem], buckets[to_sem], promoted_at, batch)
                    if step:
                        details.append(step)
        except SQLAlchemyError as e:
            raise PromotionError(f"Promotion could not be committed: {e}", stage="store") from e

    total_graduated = sum(s.count for s in details if s.action == "graduation")
    total_promoted = sum(s.count for s in details if s.action == "promotion")
    logger.info("Simple promotion completed: %d promoted, %d graduated", total_promoted, total_graduated)

    limited = is_limited_stream(stream)
    first = semesters[0]
    return PromotionReport(
        message=f"Simple Promotion Completed for {stream.value.upper()}!",
        stream=stream.value.upper(),
        stream_type=f"Limited Stream ({first}-{semesters[-1]})" if limited else f"Full Stream ({first}-{semesters[-1]})",
        promotion_date=promoted_at,
        promotion_batch=batch,
        total_promoted=total_promoted,
        total_graduated=total_graduated,
        promotion_flow=build_promotion_flow(stream, total_graduated),
        promotion_details=details,
        note=(
            f"{stream.value} students promoted. Only semester {first} is now empty for new admissions."
            if limited
            else f"All students moved up one semester. Semester {first} is now empty for new admissions."
        ),
    )
