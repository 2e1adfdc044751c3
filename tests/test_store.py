"""Tests for the SQLite record store."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Callable

import pytest

from knowledge_query.errors import CORRUPT, InvalidParameterError, NotFoundError, StorageError
from knowledge_query.models import PatternRecord, PlanRecord, RecordKind, SessionRecord
from knowledge_query.protocol import RecordStore
from knowledge_query.store import SQLiteRecordStore


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    """Tests for opening and closing stores."""

    @pytest.mark.asyncio
    async def test_missing_file_raises_not_found(self, tmp_path: Path) -> None:
        """Opening without create never creates the file."""
        path = tmp_path / "missing.db"
        store = SQLiteRecordStore(path)

        with pytest.raises(NotFoundError) as exc_info:
            await store.initialize()

        assert exc_info.value.searched == [path]
        assert str(path) in str(exc_info.value)
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_create_makes_parent_directories(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / ".aiknowsys" / "knowledge.db"
        async with SQLiteRecordStore(path, create=True) as store:
            assert await store.verify_integrity()
        assert path.exists()

    @pytest.mark.asyncio
    async def test_corrupt_file_raises_storage_error(self, tmp_path: Path) -> None:
        path = tmp_path / "knowledge.db"
        path.write_bytes(b"this is definitely not a sqlite database " * 64)

        with pytest.raises(StorageError) as exc_info:
            await SQLiteRecordStore(path).initialize()

        error = exc_info.value
        assert error.reason == CORRUPT
        assert error.path == str(path)
        assert "corrupted" in str(error)
        assert "Troubleshooting" in str(error)

    @pytest.mark.asyncio
    async def test_in_memory_store(self) -> None:
        async with SQLiteRecordStore(":memory:") as store:
            assert store.location == ":memory:"
            assert store.size_bytes() == 0
            counts = await store.count_records()
            assert counts == {kind: 0 for kind in RecordKind}

    @pytest.mark.asyncio
    async def test_satisfies_protocol(self, store: SQLiteRecordStore) -> None:
        assert isinstance(store, RecordStore)

    @pytest.mark.asyncio
    async def test_reopen_existing_store(self, store: SQLiteRecordStore, db_path: Path) -> None:
        await store.close()
        async with SQLiteRecordStore(db_path) as reopened:
            assert await reopened.verify_integrity()


# ---------------------------------------------------------------------------
# Databases written by other tools
# ---------------------------------------------------------------------------


def _create_plans_only_db(path: Path) -> None:
    """Write a database holding just a plans table, as other writers produce."""
    conn = sqlite3.connect(path)
    try:
        conn.executescript(
            """
            CREATE TABLE plans (
                id TEXT PRIMARY KEY,
                project_id TEXT,
                title TEXT NOT NULL,
                status TEXT NOT NULL,
                author TEXT NOT NULL,
                priority TEXT,
                type TEXT,
                description TEXT,
                content TEXT,
                topics JSON,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            INSERT INTO plans VALUES (
                'PLAN_legacy', NULL, 'Legacy plan', 'ACTIVE', 'arno', 'high',
                'feature', NULL, 'body', '["legacy"]',
                '2026-01-05T10:00:00Z', '2026-01-05T10:00:00Z'
            );
            INSERT INTO plans VALUES (
                'learned_legacy_tip', NULL, 'Legacy tip', 'COMPLETE', 'system', NULL,
                NULL, NULL, 'tip body', '["tips"]',
                '2026-01-06T10:00:00Z', '2026-01-06T10:00:00Z'
            );
            """
        )
        conn.commit()
    finally:
        conn.close()


def _schema_snapshot(path: Path) -> list[tuple]:
    conn = sqlite3.connect(path)
    try:
        objects = conn.execute("SELECT type, name, sql FROM sqlite_master ORDER BY name").fetchall()
        columns = conn.execute("PRAGMA table_info(plans)").fetchall()
        return objects + columns
    finally:
        conn.close()


def _insert_raw_plan_row(path: Path, plan_id: str, title: str) -> None:
    """Insert a plans row directly, bypassing the store's write helpers."""
    conn = sqlite3.connect(path)
    try:
        conn.execute(
            """
            INSERT INTO plans (id, project_id, title, status, author, content, topics,
                               created_at, updated_at)
            VALUES (?, NULL, ?, 'COMPLETE', 'system', '', '[]', ?, ?)
            """,
            (plan_id, title, "2026-02-01T10:00:00Z", "2026-02-01T10:00:00Z"),
        )
        conn.commit()
    finally:
        conn.close()


class TestExternallyWrittenStores:
    """The pattern kind is derived from the id on every read."""

    @pytest.mark.asyncio
    async def test_prefixed_rows_read_as_patterns(self, tmp_path: Path) -> None:
        path = tmp_path / "legacy.db"
        _create_plans_only_db(path)

        async with SQLiteRecordStore(path) as store:
            plans = await store.read_plans(kind=RecordKind.PLAN)
            patterns = await store.read_plans(kind=RecordKind.LEARNED)
            counts = await store.count_records()

        assert [p.id for p in plans] == ["PLAN_legacy"]
        assert isinstance(plans[0], PlanRecord)
        assert [p.id for p in patterns] == ["learned_legacy_tip"]
        assert isinstance(patterns[0], PatternRecord)
        assert patterns[0].kind is RecordKind.LEARNED
        # Missing type column value falls back to the default category
        assert patterns[0].category == "general"
        assert counts == {
            RecordKind.SESSION: 0,
            RecordKind.PLAN: 1,
            RecordKind.LEARNED: 1,
        }

    @pytest.mark.asyncio
    async def test_reads_leave_schema_untouched(self, tmp_path: Path) -> None:
        """Opening and querying an existing store performs no writes."""
        path = tmp_path / "legacy.db"
        _create_plans_only_db(path)
        before = _schema_snapshot(path)

        async with SQLiteRecordStore(path) as store:
            await store.read_sessions()
            await store.read_plans(kind=RecordKind.LEARNED, include_content=True)
            await store.search_candidates(["tip"])
            await store.count_records()

        assert _schema_snapshot(path) == before

    @pytest.mark.asyncio
    async def test_rows_added_after_creation(
        self, store: SQLiteRecordStore, db_path: Path
    ) -> None:
        """Rows written by other tools after the store exists are classified on read."""
        await store.close()
        _insert_raw_plan_row(db_path, "learned_tip", "Late tip")
        _insert_raw_plan_row(db_path, "LEARNED_shouting", "Not a pattern")

        async with SQLiteRecordStore(db_path) as reopened:
            plans = await reopened.read_plans(kind=RecordKind.PLAN)
            patterns = await reopened.read_plans(kind=RecordKind.LEARNED)
            candidates = await reopened.search_candidates(["tip"])
            counts = await reopened.count_records()

        assert [p.id for p in patterns] == ["learned_tip"]
        # The prefix test is case-sensitive
        assert [p.id for p in plans] == ["LEARNED_shouting"]
        assert [(c.id, c.kind) for c in candidates] == [("learned_tip", RecordKind.LEARNED)]
        assert counts[RecordKind.PLAN] == 1
        assert counts[RecordKind.LEARNED] == 1


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:
    """Tests for read operations."""

    @pytest.mark.asyncio
    async def test_read_sessions_metadata_only(self, scenario_store: SQLiteRecordStore) -> None:
        sessions = await scenario_store.read_sessions()

        assert [s.id for s in sessions] == ["s-0211", "s-0210"]
        assert all(s.content is None for s in sessions)
        assert sessions[0].topics == ["testing", "mcp"]
        assert sessions[0].title == "MCP tool wiring"

    @pytest.mark.asyncio
    async def test_read_sessions_with_content(self, scenario_store: SQLiteRecordStore) -> None:
        sessions = await scenario_store.read_sessions(include_content=True)
        assert sessions[0].content == "Exposed query tools over MCP."

    @pytest.mark.asyncio
    async def test_read_sessions_date_bounds(self, scenario_store: SQLiteRecordStore) -> None:
        sessions = await scenario_store.read_sessions(
            date_after="2026-02-10", date_before="2026-02-10"
        )
        assert [s.id for s in sessions] == ["s-0210"]

    @pytest.mark.asyncio
    async def test_read_plans_by_kind(self, scenario_store: SQLiteRecordStore) -> None:
        plans = await scenario_store.read_plans(kind=RecordKind.PLAN)
        patterns = await scenario_store.read_plans(kind=RecordKind.LEARNED)

        assert {p.id for p in plans} == {"PLAN_active", "PLAN_done"}
        assert all(p.kind is RecordKind.PLAN for p in plans)
        assert {p.id for p in patterns} == {"learned_mock_cleanup", "learned_wal_mode"}
        assert all(p.kind is RecordKind.LEARNED for p in patterns)

    @pytest.mark.asyncio
    async def test_read_plans_rejects_session_kind(self, store: SQLiteRecordStore) -> None:
        with pytest.raises(ValueError):
            await store.read_plans(kind=RecordKind.SESSION)

    @pytest.mark.asyncio
    async def test_insert_plan_rejects_pattern_prefix(
        self,
        store: SQLiteRecordStore,
        plan_factory: Callable[..., PlanRecord],
    ) -> None:
        """A plan cannot take an id that every reader treats as a pattern."""
        with pytest.raises(InvalidParameterError) as exc_info:
            await store.insert_plan(plan_factory(plan_id="learned_but_a_plan"))
        assert exc_info.value.field == "id"
        assert await store.read_plans(kind=RecordKind.PLAN) == []

    @pytest.mark.asyncio
    async def test_insert_pattern_requires_prefix(
        self,
        store: SQLiteRecordStore,
        pattern_factory: Callable[..., PatternRecord],
    ) -> None:
        with pytest.raises(InvalidParameterError) as exc_info:
            await store.insert_pattern(pattern_factory(pattern_id="tip_without_prefix"))
        assert exc_info.value.field == "id"
    @pytest.mark.asyncio
    async def test_unicode_topics_round_trip(
        self,
        store: SQLiteRecordStore,
        session_factory: Callable[..., SessionRecord],
    ) -> None:
        await store.insert_session(session_factory(topics=["données", "テスト"]))
        sessions = await store.read_sessions()
        assert sessions[0].topics == ["données", "テスト"]


# ---------------------------------------------------------------------------
# Search candidates
# ---------------------------------------------------------------------------


class TestSearchCandidates:
    """Tests for the LIKE prefilter used by search."""

    @pytest.mark.asyncio
    async def test_candidates_span_all_kinds(self, scenario_store: SQLiteRecordStore) -> None:
        candidates = await scenario_store.search_candidates(["sqlite"])
        kinds = {c.kind for c in candidates}
        assert kinds == {RecordKind.SESSION, RecordKind.LEARNED}

    @pytest.mark.asyncio
    async def test_candidates_carry_content(self, scenario_store: SQLiteRecordStore) -> None:
        candidates = await scenario_store.search_candidates(["mcp"])
        assert candidates[0].content == "Exposed query tools over MCP."

    @pytest.mark.asyncio
    async def test_wildcards_match_literally(
        self,
        store: SQLiteRecordStore,
        plan_factory: Callable[..., PlanRecord],
    ) -> None:
        await store.insert_plan(plan_factory(plan_id="PLAN_pct", title="Reach 100% coverage", content=""))
        await store.insert_plan(plan_factory(plan_id="PLAN_num", title="Reach 1000 coverage", content=""))

        candidates = await store.search_candidates(["100%"])

        assert [c.id for c in candidates] == ["PLAN_pct"]

    @pytest.mark.asyncio
    async def test_non_ascii_case_folding(
        self,
        store: SQLiteRecordStore,
        plan_factory: Callable[..., PlanRecord],
    ) -> None:
        await store.insert_plan(
            plan_factory(plan_id="PLAN_uber", title="Über refactor", content="Über alles")
        )
        await store.insert_plan(plan_factory(plan_id="PLAN_other", title="Unrelated"))

        candidates = await store.search_candidates(["über"])

        assert [c.id for c in candidates] == ["PLAN_uber"]

    @pytest.mark.asyncio
    async def test_no_terms(self, scenario_store: SQLiteRecordStore) -> None:
        assert await scenario_store.search_candidates([]) == []


# ---------------------------------------------------------------------------
# Writes and counts
# ---------------------------------------------------------------------------


class TestWritesAndCounts:
    """Tests for write helpers and record counts."""

    @pytest.mark.asyncio
    async def test_count_records(self, scenario_store: SQLiteRecordStore) -> None:
        counts = await scenario_store.count_records()
        assert counts == {
            RecordKind.SESSION: 2,
            RecordKind.PLAN: 2,
            RecordKind.LEARNED: 2,
        }

    @pytest.mark.asyncio
    async def test_empty_store_counts_zero(self, store: SQLiteRecordStore) -> None:
        counts = await store.count_records()
        assert all(n == 0 for n in counts.values())

    @pytest.mark.asyncio
    async def test_size_bytes_includes_file(self, store: SQLiteRecordStore, db_path: Path) -> None:
        assert store.size_bytes() > 0
        assert store.size_bytes() >= db_path.stat().st_size

    @pytest.mark.asyncio
    async def test_insert_plan_rejects_unknown_status(
        self,
        store: SQLiteRecordStore,
        plan_factory: Callable[..., PlanRecord],
    ) -> None:
        with pytest.raises(InvalidParameterError) as exc_info:
            await store.insert_plan(plan_factory(status="DONE"))
        assert exc_info.value.field == "status"

    @pytest.mark.asyncio
    async def test_insert_plan_rejects_unknown_priority(
        self,
        store: SQLiteRecordStore,
        plan_factory: Callable[..., PlanRecord],
    ) -> None:
        with pytest.raises(InvalidParameterError) as exc_info:
            await store.insert_plan(plan_factory(priority="urgent"))
        assert exc_info.value.field == "priority"

    @pytest.mark.asyncio
    async def test_duplicate_id_raises_storage_error(
        self,
        store: SQLiteRecordStore,
        plan_factory: Callable[..., PlanRecord],
    ) -> None:
        await store.insert_plan(plan_factory(plan_id="PLAN_dup"))
        with pytest.raises(StorageError) as exc_info:
            await store.insert_plan(plan_factory(plan_id="PLAN_dup"))
        assert exc_info.value.operation == "insert plan"
