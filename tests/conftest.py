import os
from datetime import date, datetime, timezone
from typing import AsyncGenerator, Dict, List, Optional

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./roster-test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from app.auth.security import issue_token
from app.core.config import Settings
from app.core.enums import Language, Stream, UserRole
from app.db.schema_check import ensure_tables
from app.db.session import create_engine, create_session_factory, get_db, get_registry
from app.main import app
from app.notifications.whatsapp import WhatsAppClient, get_whatsapp_client
from app.roster.records import new_student_record
from app.roster.registry import RosterRegistry


@pytest.fixture()
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite file per test so roster buckets never leak between tests."""
    db_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'roster.db'}")
    await ensure_tables(db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture()
def registry(engine: AsyncEngine) -> RosterRegistry:
    return RosterRegistry(engine)


@pytest.fixture()
def session_factory(engine: AsyncEngine):
    return create_session_factory(engine)


@pytest.fixture()
def whatsapp_settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'roster.db'}",
        JWT_SECRET_KEY="test-secret-key",
        WHATSAPP_ACCESS_TOKEN="test-token",
        WHATSAPP_PHONE_NUMBER_ID="1234567890",
        WHATSAPP_BATCH_SIZE=3,
        WHATSAPP_BATCH_DELAY_SECONDS=0,
    )


@pytest.fixture()
def whatsapp_requests() -> List[httpx.Request]:
    return []


@pytest.fixture()
def whatsapp_handler(whatsapp_requests):
    """Default fake Graph API: every send succeeds. Tests replace it to simulate failures."""

    def handler(request: httpx.Request) -> httpx.Response:
        whatsapp_requests.append(request)
        return httpx.Response(200, json={"messages": [{"id": f"wamid.{len(whatsapp_requests)}"}]})

    return handler


@pytest.fixture()
async def whatsapp_client(whatsapp_settings, whatsapp_handler) -> AsyncGenerator[WhatsAppClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(whatsapp_handler)) as http:
        yield WhatsAppClient(whatsapp_settings, http_client=http)


@pytest.fixture()
async def client(registry, session_factory, whatsapp_client) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, with the store and WhatsApp client overridden."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_whatsapp_client] = lambda: whatsapp_client
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _auth_headers(role: UserRole) -> Dict[str, str]:
    token = issue_token(f"{role.value}-1", role, email=f"{role.value}@college.test")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers() -> Dict[str, str]:
    return _auth_headers(UserRole.ADMIN)


@pytest.fixture()
def teacher_headers() -> Dict[str, str]:
    return _auth_headers(UserRole.TEACHER)


class RosterSeeder:
    """Writes rows straight into roster buckets, bypassing the API."""

    def __init__(self, registry: RosterRegistry) -> None:
        self.registry = registry

    async def students(
        self,
        stream: Stream,
        semester: int,
        *student_ids: str,
        language: Optional[Language] = None,
        phone: Optional[str] = "9876543210",
        **overrides,
    ) -> None:
        bucket = self.registry.students(stream, semester)
        await self.registry.ensure(bucket)
        rows = []
        for student_id in student_ids:
            row = new_student_record(
                student_id=student_id,
                name=f"Student {student_id}",
                stream=stream,
                semester=semester,
                parent_phone="9876543210",
                language_subject=language,
                enrolled_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
            ).to_row()
            row["parent_phone"] = phone and row["parent_phone"]
            row.update(overrides)
            rows.append(row)
        async with self.registry.transaction() as conn:
            await bucket.insert_many(conn, rows)

    async def rows(self, stream: Stream, semester: int) -> List[Dict]:
        bucket = self.registry.students(stream, semester)
        await self.registry.ensure(bucket)
        async with self.registry.connect() as conn:
            return await bucket.find(conn, order_by=bucket.c.student_id)

    async def ids(self, stream: Stream, semester: int) -> List[str]:
        return [r["student_id"] for r in await self.rows(stream, semester)]

    async def subject(
        self,
        stream: Stream,
        semester: int,
        name: str,
        language: Optional[Language] = None,
    ) -> None:
        bucket = self.registry.subjects(stream, semester)
        await self.registry.ensure(bucket)
        now = datetime.now(timezone.utc)
        async with self.registry.transaction() as conn:
            await bucket.insert_one(
                conn,
                {
                    "subject_name": name.upper(),
                    "stream": stream.value,
                    "semester": semester,
                    "credits": 4,
                    "subject_type": "LANGUAGE" if language else "CORE",
                    "is_language_subject": language is not None,
                    "language_type": language.value if language else None,
                    "is_active": True,
                    "created_at": now,
                    "updated_at": now,
                },
            )

    async def attendance(self, stream: Stream, semester: int, subject: str, day: date, present: List[str]) -> None:
        bucket = self.registry.attendance(stream, semester, subject)
        await self.registry.ensure(bucket)
        async with self.registry.transaction() as conn:
            await bucket.insert_one(
                conn,
                {
                    "date": day,
                    "subject": subject.upper(),
                    "stream": stream.value,
                    "semester": semester,
                    "students_present": present,
                    "total_students": 0,
                    "total_possible_students": 0,
                    "attendance_percentage": 0.0,
                },
            )


@pytest.fixture()
def roster(registry) -> RosterSeeder:
    return RosterSeeder(registry)
