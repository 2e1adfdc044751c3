"""Shared test fixtures for knowledge query tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from knowledge_query.models import PatternRecord, PlanRecord, Project, SessionRecord
from knowledge_query.store import SQLiteRecordStore


PROJECT_ID = "proj-1"
SHARED_AUTHOR = "arno"


# ---------------------------------------------------------------------------
# Record factory fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def session_factory() -> Callable[..., SessionRecord]:
    """Factory for creating test sessions.

    Usage:
        session = session_factory()  # Default values
        session = session_factory(date="2026-02-11", topics=["mcp"])
    """
    counter = [0]

    def _create(
        session_id: str | None = None,
        date: str = "2026-02-10",
        title: str = "Test session",
        topics: list[str] | None = None,
        status: str | None = "complete",
        content: str | None = "Session notes",
        created_at: str | None = None,
        project_id: str = PROJECT_ID,
    ) -> SessionRecord:
        counter[0] += 1
        timestamp = created_at or f"{date}T09:00:{counter[0] % 60:02d}Z"
        return SessionRecord(
            id=session_id or f"session-{counter[0]}",
            project_id=project_id,
            date=date,
            title=title,
            status=status,
            created_at=timestamp,
            updated_at=timestamp,
            topics=topics if topics is not None else ["testing"],
            content=content,
        )

    return _create


@pytest.fixture
def plan_factory() -> Callable[..., PlanRecord]:
    """Factory for creating test plans."""
    counter = [0]

    def _create(
        plan_id: str | None = None,
        title: str = "Test plan",
        status: str = "ACTIVE",
        author: str = SHARED_AUTHOR,
        priority: str | None = "medium",
        topics: list[str] | None = None,
        content: str | None = "Plan body",
        created_at: str = "2026-02-10T10:00:00Z",
        project_id: str | None = PROJECT_ID,
    ) -> PlanRecord:
        counter[0] += 1
        return PlanRecord(
            id=plan_id or f"PLAN_test_{counter[0]}",
            project_id=project_id,
            title=title,
            status=status,
            author=author,
            created_at=created_at,
            updated_at=created_at,
            priority=priority,
            type="feature",
            topics=topics if topics is not None else [],
            content=content,
        )

    return _create


@pytest.fixture
def pattern_factory() -> Callable[..., PatternRecord]:
    """Factory for creating test learned patterns."""
    counter = [0]

    def _create(
        pattern_id: str | None = None,
        title: str = "Test pattern",
        category: str = "testing",
        keywords: list[str] | None = None,
        content: str | None = "Pattern body",
        created_at: str = "2026-02-10T11:00:00Z",
        project_id: str | None = PROJECT_ID,
    ) -> PatternRecord:
        counter[0] += 1
        return PatternRecord(
            id=pattern_id or f"learned_pattern_{counter[0]}",
            project_id=project_id,
            title=title,
            category=category,
            created_at=created_at,
            updated_at=created_at,
            keywords=keywords if keywords is not None else [],
            content=content,
        )

    return _create


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Database location inside a temporary project root."""
    return tmp_path / ".aiknowsys" / "knowledge.db"


@pytest.fixture
async def store(db_path: Path) -> SQLiteRecordStore:
    """Initialized, empty store with one project.

    Use this for tests that need a clean database.
    """
    db = SQLiteRecordStore(db_path, create=True)
    await db.initialize()
    await db.insert_project(
        Project(
            id=PROJECT_ID,
            name="test-project",
            path="/work/test-project",
            created_at="2026-01-01T00:00:00Z",
            updated_at="2026-01-01T00:00:00Z",
        )
    )
    yield db
    await db.close()


@pytest.fixture
async def scenario_store(
    store: SQLiteRecordStore,
    session_factory: Callable[..., SessionRecord],
    plan_factory: Callable[..., PlanRecord],
    pattern_factory: Callable[..., PatternRecord],
) -> SQLiteRecordStore:
    """Store seeded with two sessions, two plans and two patterns."""
    await store.insert_session(
        session_factory(
            session_id="s-0210",
            date="2026-02-10",
            title="SQLite storage layer",
            topics=["testing", "sqlite"],
            content="Wrote the sqlite adapter and its tests.",
        )
    )
    await store.insert_session(
        session_factory(
            session_id="s-0211",
            date="2026-02-11",
            title="MCP tool wiring",
            topics=["testing", "mcp"],
            content="Exposed query tools over MCP.",
        )
    )
    await store.insert_plan(
        plan_factory(
            plan_id="PLAN_active",
            title="Query engine",
            status="ACTIVE",
            priority="high",
            topics=["query"],
            created_at="2026-02-12T08:00:00Z",
        )
    )
    await store.insert_plan(
        plan_factory(
            plan_id="PLAN_done",
            title="Migration tooling",
            status="COMPLETE",
            priority="medium",
            topics=["migration"],
            created_at="2026-02-03T08:00:00Z",
        )
    )
    await store.insert_pattern(
        pattern_factory(
            pattern_id="learned_mock_cleanup",
            title="Reset mocks between tests",
            category="testing",
            keywords=["mocks", "pytest"],
            created_at="2026-02-09T12:00:00Z",
        )
    )
    await store.insert_pattern(
        pattern_factory(
            pattern_id="learned_wal_mode",
            title="Enable WAL for concurrent readers",
            category="database",
            keywords=["sqlite", "wal"],
            created_at="2026-02-13T12:00:00Z",
        )
    )
    return store
