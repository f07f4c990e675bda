"""
Integration Tests for the SQL-backed Remote Store

Runs against in-memory SQLite through aiosqlite.
"""
from datetime import datetime
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from tabulation.database import build_session_factory
from tabulation.exceptions import StoreReadError
from tabulation.models import JudgeContext, SCORE_CONFLICT_KEY
from tabulation.orm.base import Base
from tabulation.services.scoring_session import JudgeScoringSession
from tabulation.store import SQLAlchemyStore
from tabulation.tests.factories import (
    CRITERION_A,
    CRITERION_B,
    JUDGE_A,
    P1,
    P2,
    P3,
    SCORING_CATEGORY,
    event_rows,
    score_row,
)

# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def sql_store() -> AsyncGenerator[SQLAlchemyStore, None]:
    """SQLAlchemyStore over a fresh in-memory database with the event seeded."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    store = SQLAlchemyStore(build_session_factory(engine))
    for entity, rows in event_rows().items():
        for row in rows:
            await store.append(entity, row)

    yield store

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# ============================================================================
# Reads
# ============================================================================

@pytest.mark.asyncio
async def test_fetch_with_filters_and_order(sql_store: SQLAlchemyStore):
    rows = await sql_store.fetch("participants", {"id": [P3, P1]}, order=["-number"])
    assert [r["id"] for r in rows] == [P3, P1]

    categories = await sql_store.fetch("categories", {"tabular_type": "ranking"})
    assert len(categories) == 1
    assert categories[0]["name"] == "Overall Impression"


@pytest.mark.asyncio
async def test_null_filter_matches_is_null(sql_store: SQLAlchemyStore):
    await sql_store.upsert("scores", [
        score_row(JUDGE_A, P1, CRITERION_A, 10),
        score_row(JUDGE_A, P2, CRITERION_A, 20, submitted_at=datetime(2026, 1, 1)),
    ], SCORE_CONFLICT_KEY)

    drafts = await sql_store.fetch("scores", {"submitted_at": None})
    assert [r["participant_id"] for r in drafts] == [P1]


@pytest.mark.asyncio
async def test_unknown_entity_is_a_read_error(sql_store: SQLAlchemyStore):
    with pytest.raises(StoreReadError):
        await sql_store.fetch("users")


# ============================================================================
# Writes
# ============================================================================

@pytest.mark.asyncio
async def test_upsert_is_idempotent_on_conflict_key(sql_store: SQLAlchemyStore):
    for score in (10, 20, 35):
        await sql_store.upsert("scores", [score_row(JUDGE_A, P1, CRITERION_A, score)], SCORE_CONFLICT_KEY)

    rows = await sql_store.fetch("scores")
    assert len(rows) == 1
    assert rows[0]["score"] == 35


@pytest.mark.asyncio
async def test_update_returns_rows_touched(sql_store: SQLAlchemyStore):
    stamp = datetime(2026, 2, 2)
    await sql_store.upsert("scores", [
        score_row(JUDGE_A, pid, cid, 5, submitted_at=stamp)
        for pid in (P1, P2, P3) for cid in (CRITERION_A, CRITERION_B)
    ], SCORE_CONFLICT_KEY)

    touched = await sql_store.update(
        "scores",
        {"judge_id": JUDGE_A, "participant_id": [P1, P2], "criteria_id": [CRITERION_A, CRITERION_B]},
        {"submitted_at": None},
    )
    assert touched == 4
    still_locked = await sql_store.fetch("scores", {"participant_id": P3})
    assert all(r["submitted_at"] == stamp for r in still_locked)


@pytest.mark.asyncio
async def test_append_activity_keeps_metadata(sql_store: SQLAlchemyStore):
    stored = await sql_store.append("judge_activity_logs", {
        "judge_id": JUDGE_A,
        "category_id": SCORING_CATEGORY,
        "action": "submit",
        "description": "Submitted Talent",
        "metadata": {"participants": [P1, P2]},
    })
    assert stored["id"] is not None

    rows = await sql_store.fetch("judge_activity_logs", {"action": "submit"})
    assert rows[0]["metadata"] == {"participants": [P1, P2]}


# ============================================================================
# Session round trip
# ============================================================================

@pytest.mark.asyncio
async def test_session_submit_and_unlock_against_sql(sql_store: SQLAlchemyStore, settings):
    session = JudgeScoringSession(sql_store, JudgeContext(JUDGE_A, SCORING_CATEGORY), settings=settings)
    await session.load()
    session.set_score(P1, CRITERION_A, 45)

    assert await session.submit() is True
    rows = await sql_store.fetch("scores", {"judge_id": JUDGE_A})
    assert len(rows) == 6
    assert all(r["submitted_at"] is not None for r in rows)

    reloaded = JudgeScoringSession(sql_store, JudgeContext(JUDGE_A, SCORING_CATEGORY), settings=settings)
    await reloaded.load()
    assert reloaded.locked is True
    assert reloaded.total(P1) == 45.0

    assert await reloaded.unlock() is True
    rows = await sql_store.fetch("scores", {"judge_id": JUDGE_A})
    assert all(r["submitted_at"] is None for r in rows)
    await session.close()
    await reloaded.close()
