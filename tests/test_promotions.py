import asyncio
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import SQLAlchemyError

from app.api.v1.promotions.service import make_promotion_batch, promote_stream
from app.core.enums import Language, Stream
from app.core.exceptions import InvalidStreamError, PromotionError
from app.db.session import Base
from app.roster.registry import RosterBucket, RosterRegistry

PROMOTED_AT = datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_bca_concrete_scenario(registry: RosterRegistry, roster) -> None:
    await roster.students(Stream.BCA, 6, "BCAS01", "BCAS02")
    await roster.students(Stream.BCA, 5, "BCAS03")

    report = await promote_stream(registry, "BCA", now=PROMOTED_AT)

    assert report.total_graduated == 2
    assert report.total_promoted == 1
    graduation = report.promotion_details[0]
    assert graduation.action == "graduation"
    assert graduation.semester == 6
    assert [s.id for s in graduation.students] == ["BCAS01", "BCAS02"]

    assert await roster.ids(Stream.BCA, 5) == []
    sem6 = await roster.rows(Stream.BCA, 6)
    assert [r["student_id"] for r in sem6] == ["BCAS03"]
    assert sem6[0]["migration_generation"] == 1
    assert sem6[0]["semester"] == 6
    assert sem6[0]["original_semester"] == 5
    assert sem6[0]["migration_batch"] == make_promotion_batch(Stream.BCA, PROMOTED_AT)


@pytest.mark.asyncio
async def test_full_range_moves_every_semester_up(registry: RosterRegistry, roster) -> None:
    for sem in range(1, 7):
        await roster.students(Stream.BBA, sem, f"BBA00{sem}")

    report = await promote_stream(registry, "BBA", now=PROMOTED_AT)

    assert report.total_graduated == 1
    assert report.total_promoted == 5
    assert report.stream_type == "Full Stream (1-6)"
    assert await roster.ids(Stream.BBA, 1) == []
    for sem in range(2, 7):
        assert await roster.ids(Stream.BBA, sem) == [f"BBA00{sem - 1}"]
    # Pairs are reported highest source first.
    pairs = [(s.from_semester, s.to_semester) for s in report.promotion_details if s.action == "promotion"]
    assert pairs == [(5, 6), (4, 5), (3, 4), (2, 3), (1, 2)]


@pytest.mark.asyncio
async def test_limited_stream_only_touches_semesters_five_and_six(registry: RosterRegistry, roster) -> None:
    await roster.students(Stream.BCOM_SECTION_B, 4, "SECB004")
    await roster.students(Stream.BCOM_SECTION_B, 5, "SECB005")
    await roster.students(Stream.BCOM_SECTION_B, 6, "SECB006")

    report = await promote_stream(registry, "BCom Section B", now=PROMOTED_AT)

    assert report.stream_type == "Limited Stream (5-6)"
    assert report.total_graduated == 1
    assert report.total_promoted == 1
    assert await roster.ids(Stream.BCOM_SECTION_B, 5) == []
    assert await roster.ids(Stream.BCOM_SECTION_B, 6) == ["SECB005"]
    assert await roster.ids(Stream.BCOM_SECTION_B, 4) == ["SECB004"]


@pytest.mark.asyncio
async def test_two_promotions_record_two_hops_in_order(registry: RosterRegistry, roster) -> None:
    await roster.students(Stream.BCA, 4, "BCA404")

    await promote_stream(registry, "BCA", now=PROMOTED_AT)
    # One run moves a student exactly one semester, never two.
    assert await roster.ids(Stream.BCA, 5) == ["BCA404"]
    assert await roster.ids(Stream.BCA, 6) == []

    await promote_stream(registry, "BCA", now=PROMOTED_AT.replace(year=2026))
    (row,) = await roster.rows(Stream.BCA, 6)
    history = row["migration_history"]
    assert row["migration_generation"] == len(history) == 2
    assert [(h["fromSemester"], h["toSemester"]) for h in history] == [(4, 5), (5, 6)]
    assert [h["generation"] for h in history] == [1, 2]
    assert row["original_semester"] == 4


@pytest.mark.asyncio
async def test_concurrent_promotions_of_one_stream_run_one_after_the_other(registry: RosterRegistry, roster) -> None:
    await roster.students(Stream.BCA, 4, "BCA404")

    first, second = await asyncio.gather(
        promote_stream(registry, "BCA", now=PROMOTED_AT),
        promote_stream(registry, "BCA", now=PROMOTED_AT),
    )

    assert first.total_promoted == second.total_promoted == 1
    assert await roster.ids(Stream.BCA, 5) == []
    (row,) = await roster.rows(Stream.BCA, 6)
    assert row["student_id"] == "BCA404"
    assert row["migration_generation"] == len(row["migration_history"]) == 2
    assert [(h["fromSemester"], h["toSemester"]) for h in row["migration_history"]] == [(4, 5), (5, 6)]


@pytest.mark.asyncio
async def test_no_duplication_across_buckets(registry: RosterRegistry, roster) -> None:
    await roster.students(Stream.BCOM, 1, "BCOM101", "BCOM102")
    await roster.students(Stream.BCOM, 3, "BCOM301")
    await roster.students(Stream.BCOM, 5, "BCOM501", "BCOM502")
    await roster.students(Stream.BCOM, 6, "BCOM601")
    before = sum([len(await roster.ids(Stream.BCOM, s)) for s in range(1, 7)])

    report = await promote_stream(registry, "BCom", now=PROMOTED_AT)

    ids = []
    for sem in range(1, 7):
        ids.extend(await roster.ids(Stream.BCOM, sem))
    assert len(ids) == len(set(ids))
    assert len(ids) == before - report.total_graduated


@pytest.mark.asyncio
async def test_failed_pair_rolls_back_every_bucket(registry: RosterRegistry, roster, monkeypatch) -> None:
    for sem in range(1, 7):
        await roster.students(Stream.BCA, sem, f"BCA00{sem}")
    before = {sem: await roster.rows(Stream.BCA, sem) for sem in range(1, 7)}

    original_insert = RosterBucket.insert_many

    async def failing_insert(self, conn, rows):
        if self.key.semester == 4:
            raise SQLAlchemyError("simulated constraint violation")
        return await original_insert(self, conn, rows)

    monkeypatch.setattr(RosterBucket, "insert_many", failing_insert)

    with pytest.raises(PromotionError) as exc_info:
        await promote_stream(registry, "BCA", now=PROMOTED_AT)

    assert exc_info.value.stage == "promotion"
    assert (exc_info.value.from_semester, exc_info.value.to_semester) == (3, 4)
    for sem in range(1, 7):
        assert await roster.rows(Stream.BCA, sem) == before[sem]


@pytest.mark.asyncio
async def test_graduation_failure_does_not_block_promotion(registry: RosterRegistry, roster, monkeypatch) -> None:
    await roster.students(Stream.BCA, 6, "BCA601")
    await roster.students(Stream.BCA, 5, "BCA501")

    original_delete = RosterBucket.delete_all

    async def failing_delete(self, conn):
        if self.key.semester == 6:
            raise SQLAlchemyError("graduation delete failed")
        return await original_delete(self, conn)

    monkeypatch.setattr(RosterBucket, "delete_all", failing_delete)

    report = await promote_stream(registry, "BCA", now=PROMOTED_AT)

    assert report.total_graduated == 0
    assert report.total_promoted == 1
    assert await roster.ids(Stream.BCA, 6) == ["BCA501", "BCA601"]


@pytest.mark.asyncio
async def test_inactive_and_legacy_rows(registry: RosterRegistry, roster) -> None:
    await roster.students(Stream.BCA, 2, "BCA201")
    await roster.students(Stream.BCA, 2, "BCA202", is_active=None, migration_generation=None)
    await roster.students(Stream.BCA, 2, "BCA203", is_active=False)

    await promote_stream(registry, "BCA", now=PROMOTED_AT)

    assert await roster.ids(Stream.BCA, 3) == ["BCA201", "BCA202"]
    legacy = [r for r in await roster.rows(Stream.BCA, 3) if r["student_id"] == "BCA202"][0]
    assert legacy["migration_generation"] == 1
    assert legacy["is_active"] is True
    # Deactivated students are not carried forward and are cleared with the source bucket.
    assert await roster.ids(Stream.BCA, 2) == []


@pytest.mark.asyncio
async def test_language_group_follows_the_new_semester(registry: RosterRegistry, roster) -> None:
    await roster.students(Stream.BCA, 3, "BCA301", language=Language.HINDI)

    await promote_stream(registry, "BCA", now=PROMOTED_AT)

    (row,) = await roster.rows(Stream.BCA, 4)
    assert row["language_subject"] == "HINDI"
    assert row["language_group"] == "BCA_SEM4_HINDI"


@pytest.mark.asyncio
async def test_unknown_stream_is_rejected_before_any_io(registry: RosterRegistry) -> None:
    with pytest.raises(InvalidStreamError):
        await promote_stream(registry, "MBA")
    assert registry.list_buckets() == []
    assert set(await registry.existing_tables()) == set(Base.metadata.tables)


@pytest.mark.asyncio
async def test_promotion_endpoint(client: AsyncClient, roster, admin_headers, teacher_headers) -> None:
    await roster.students(Stream.BCA, 1, "BCA101")

    response = await client.post("/api/v1/promotions/BCA", headers=teacher_headers)
    assert response.status_code == 403

    response = await client.post("/api/v1/promotions/BCA", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["totalPromoted"] == 1
    assert data["totalGraduated"] == 0
    assert data["promotionFlow"][0] == "Semester 1 → Semester 2"
    assert data["promotionDetails"][0]["fromSemester"] == 1
    assert data["promotionBatch"].startswith("simple_promotion_BCA_")

    response = await client.post("/api/v1/promotions/Physics", headers=admin_headers)
    assert response.status_code == 400
