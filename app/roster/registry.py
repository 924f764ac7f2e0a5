"""
Roster store: one table per (stream, semester, entity type).

The registry owns the SQLAlchemy MetaData for every bucket it has handed out,
builds each Table the first time a bucket is addressed, and creates the table
in the database lazily (CREATE TABLE IF NOT EXISTS) on first use. Business
code never touches the tables directly; it goes through RosterBucket handles
and runs them inside ``registry.transaction()``.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from sqlalchemy import MetaData, Table, delete, func, inspect, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from app.core.enums import Stream
from app.core.streams import validate_semester

from .naming import EntityType, bucket_name
from .tables import attendance_table, student_table, subject_table

logger = logging.getLogger(__name__)

_TABLE_FACTORIES: Dict[EntityType, Callable[[str, MetaData], Table]] = {
    EntityType.STUDENTS: student_table,
    EntityType.SUBJECTS: subject_table,
    EntityType.ATTENDANCE: attendance_table,
}


@dataclass(frozen=True)
class BucketKey:
    stream: Stream
    semester: int
    entity_type: EntityType
    subject: Optional[str] = None


class RosterBucket:
    """Handle on one bucket. Every operation is scoped to this bucket's table."""

    def __init__(self, key: BucketKey, table: Table) -> None:
        self.key = key
        self.table = table

    def __repr__(self) -> str:
        return f"RosterBucket({self.name!r})"

    @property
    def name(self) -> str:
        return self.table.name

    @property
    def c(self):
        return self.table.c

    def active_clause(self):
        """True or NULL both count as active."""
        return or_(self.table.c.is_active.is_(True), self.table.c.is_active.is_(None))

    async def find(self, conn: AsyncConnection, *criteria, order_by=None) -> List[Dict[str, Any]]:
        stmt = select(self.table)
        if criteria:
            stmt = stmt.where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        result = await conn.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def find_active(self, conn: AsyncConnection, *criteria, order_by=None) -> List[Dict[str, Any]]:
        return await self.find(conn, self.active_clause(), *criteria, order_by=order_by)

    async def find_one(self, conn: AsyncConnection, *criteria) -> Optional[Dict[str, Any]]:
        result = await conn.execute(select(self.table).where(*criteria).limit(1))
        row = result.mappings().first()
        return dict(row) if row is not None else None

    async def insert_many(self, conn: AsyncConnection, rows: Iterable[Mapping[str, Any]]) -> int:
        rows = [dict(r) for r in rows]
        if not rows:
            return 0
        await conn.execute(insert(self.table), rows)
        return len(rows)

    async def insert_one(self, conn: AsyncConnection, row: Mapping[str, Any]) -> int:
        result = await conn.execute(insert(self.table).values(**row))
        return result.inserted_primary_key[0]

    async def update_where(self, conn: AsyncConnection, values: Mapping[str, Any], *criteria) -> int:
        result = await conn.execute(update(self.table).where(*criteria).values(**values))
        return result.rowcount

    async def delete_where(self, conn: AsyncConnection, *criteria) -> int:
        result = await conn.execute(delete(self.table).where(*criteria))
        return result.rowcount

    async def delete_all(self, conn: AsyncConnection) -> int:
        result = await conn.execute(delete(self.table))
        return result.rowcount

    async def count(self, conn: AsyncConnection, *criteria) -> int:
        stmt = select(func.count()).select_from(self.table)
        if criteria:
            stmt = stmt.where(*criteria)
        result = await conn.execute(stmt)
        return result.scalar_one()

    async def value_range(self, conn: AsyncConnection, column) -> Tuple[Any, Any]:
        result = await conn.execute(select(func.min(column), func.max(column)).select_from(self.table))
        low, high = result.one()
        return low, high


class RosterRegistry:
    """Lazily-initialised mapping from bucket key to handle, plus per-stream locks."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._metadata = MetaData()
        self._buckets: Dict[str, RosterBucket] = {}
        self._created: Set[str] = set()
        self._ddl_lock = asyncio.Lock()
        self._stream_locks: Dict[Stream, asyncio.Lock] = {}

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    # ----- Bucket resolution -----
    def bucket(self, stream: Stream, semester: int, entity_type: EntityType, subject: Optional[str] = None) -> RosterBucket:
        validate_semester(semester)
        name = bucket_name(stream, semester, entity_type, subject)
        cached = self._buckets.get(name)
        if cached is not None:
            return cached
        table = _TABLE_FACTORIES[entity_type](name, self._metadata)
        handle = RosterBucket(BucketKey(stream, semester, entity_type, subject), table)
        self._buckets[name] = handle
        logger.debug("Registered roster bucket %s", name)
        return handle

    def students(self, stream: Stream, semester: int) -> RosterBucket:
        return self.bucket(stream, semester, EntityType.STUDENTS)

    def subjects(self, stream: Stream, semester: int) -> RosterBucket:
        return self.bucket(stream, semester, EntityType.SUBJECTS)

    def attendance(self, stream: Stream, semester: int, subject: str) -> RosterBucket:
        return self.bucket(stream, semester, EntityType.ATTENDANCE, subject)

    def list_buckets(self) -> List[str]:
        return sorted(self._buckets)

    # ----- Lazy creation -----
    async def ensure(self, *buckets: RosterBucket) -> None:
        """Create any bucket table not yet known to exist. Runs outside business transactions."""
        pending = [b for b in buckets if b.name not in self._created]
        if not pending:
            return
        async with self._ddl_lock:
            pending = [b for b in pending if b.name not in self._created]
            if not pending:
                return
            async with self._engine.begin() as conn:
                for b in pending:
                    await conn.run_sync(b.table.create, checkfirst=True)
            for b in pending:
                self._created.add(b.name)
                logger.info("Roster bucket ready: %s", b.name)

    async def existing_tables(self) -> List[str]:
        async with self._engine.connect() as conn:
            return await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())

    # ----- Transactions and locks -----
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """One connection, one transaction, spanning every bucket touched inside it."""
        async with self._engine.begin() as conn:
            yield conn

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        async with self._engine.connect() as conn:
            yield conn

    def stream_lock(self, stream: Stream) -> asyncio.Lock:
        lock = self._stream_locks.get(stream)
        if lock is None:
            lock = self._stream_locks[stream] = asyncio.Lock()
        return lock

    async def dispose(self) -> None:
        self._buckets.clear()
        self._created.clear()
        self._stream_locks.clear()
        await self._engine.dispose()
