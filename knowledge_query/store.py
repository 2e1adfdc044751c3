"""SQLite-backed record store.

This module provides:
- SQLiteRecordStore: aiosqlite implementation of the RecordStore protocol
- Write helpers used by migrations and tests (insert_project, insert_session,
  insert_plan, insert_pattern)

The plans table holds both plans and learned patterns. Rows whose id
carries the reserved ``learned_`` prefix are patterns; the adapter derives
the ``kind`` discriminant in SQL on every read so records written by any
tool are classified the same way. Nothing above this module inspects ids.

Opening an existing store never writes to it: the schema is only created
when the store is opened with ``create=True``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

import aiosqlite

from .errors import InvalidParameterError, NotFoundError, StorageError
from .models import (
    PATTERN_ID_PREFIX,
    PatternRecord,
    PlanRecord,
    PlanStatus,
    Priority,
    Project,
    Record,
    RecordKind,
    SessionRecord,
    kind_for_plan_id,
)

logger = logging.getLogger(__name__)


MEMORY = ":memory:"


# ---------------------------------------------------------------------------
# SQL Schema Constants
# ---------------------------------------------------------------------------


CORE_SCHEMA = """
-- Projects (repositories using the knowledge store)
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    path TEXT,
    tech_stack JSON,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Plans and learned patterns (learned_ id prefix)
CREATE TABLE IF NOT EXISTS plans (
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
    updated_at TEXT NOT NULL,
    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_plans_project ON plans(project_id);
CREATE INDEX IF NOT EXISTS idx_plans_status ON plans(status);
CREATE INDEX IF NOT EXISTS idx_plans_author ON plans(author);

-- Sessions (dated work logs)
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    date TEXT NOT NULL,
    topic TEXT NOT NULL,
    status TEXT,
    plan_id TEXT,
    content TEXT,
    topics JSON,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
    FOREIGN KEY (plan_id) REFERENCES plans(id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_date ON sessions(date);
CREATE INDEX IF NOT EXISTS idx_sessions_project ON sessions(project_id);
"""

# Case-sensitive prefix test; LIKE would also match "LEARNED_"
KIND_EXPR = (
    f"CASE WHEN substr(id, 1, {len(PATTERN_ID_PREFIX)}) = '{PATTERN_ID_PREFIX}' "
    f"THEN '{RecordKind.LEARNED.value}' ELSE '{RecordKind.PLAN.value}' END"
)

SESSION_METADATA_COLUMNS = (
    "id, project_id, date, topic, status, plan_id, topics, created_at, updated_at"
)
SESSION_CONTENT_COLUMNS = SESSION_METADATA_COLUMNS + ", content"
PLAN_METADATA_COLUMNS = (
    "id, project_id, title, status, author, priority, type, topics, "
    f"created_at, updated_at, {KIND_EXPR} AS kind"
)
PLAN_CONTENT_COLUMNS = PLAN_METADATA_COLUMNS + ", content"


def _fold_case(value: object) -> object:
    """Unicode-aware lowercase for SQL; SQLite's LOWER only folds ASCII."""
    return value.lower() if isinstance(value, str) else value


def _plan_from_row(row: aiosqlite.Row) -> PlanRecord | PatternRecord:
    if RecordKind(row["kind"]) is RecordKind.LEARNED:
        return PatternRecord.from_row(row)
    return PlanRecord.from_row(row)


# ---------------------------------------------------------------------------
# SQLiteRecordStore Class
# ---------------------------------------------------------------------------


class SQLiteRecordStore:
    """Knowledge store backed by a single SQLite file.

    Usage:
        async with SQLiteRecordStore(Path(".aiknowsys/knowledge.db")) as store:
            sessions = await store.read_sessions(date_after="2026-02-01")

    Opening an existing database never creates or alters it; pass
    ``create=True`` to initialize a fresh store with the schema.
    """

    def __init__(self, db_path: Path | str, create: bool = False) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the database file, or ":memory:".
            create: Create the file and schema if they don't exist.
        """
        self._in_memory = str(db_path) == MEMORY
        self.db_path = Path(db_path) if not self._in_memory else Path(MEMORY)
        self.create = create or self._in_memory
        self._connection: aiosqlite.Connection | None = None
        self._tables: set[str] = set()

    @property
    def location(self) -> str:
        return MEMORY if self._in_memory else str(self.db_path)

    # ================================================================
    # Lifecycle
    # ================================================================

    async def initialize(self) -> None:
        """Open the connection and check the schema.

        Only a store opened with ``create=True`` gets the schema written;
        otherwise the existing tables are listed and the file is left untouched.

        Raises:
            NotFoundError: If the file is missing and ``create`` is False.
            StorageError: If the file cannot be opened or is not a database.
        """
        if not self._in_memory:
            if not self.db_path.exists():
                if not self.create:
                    raise NotFoundError([self.db_path])
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = await self._get_connection()
            await conn.execute("PRAGMA busy_timeout = 5000")
            await conn.execute("PRAGMA foreign_keys = ON")

            # Listing tables first makes corrupt files fail before anything else
            self._tables = await self._list_tables(conn)

            if self.create:
                if not self._in_memory:
                    await conn.execute("PRAGMA journal_mode = WAL")
                await conn.executescript(CORE_SCHEMA)
                await conn.commit()
                self._tables = await self._list_tables(conn)
        except sqlite3.Error as e:
            await self.close()
            raise self._storage_error("initialize database", e) from e

        for table in ("sessions", "plans"):
            if table not in self._tables:
                logger.warning(f"Knowledge store {self.location} has no {table} table")
        logger.info(f"Knowledge store opened at {self.location}")

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.debug("Knowledge store connection closed")

    async def __aenter__(self) -> SQLiteRecordStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.location)
            self._connection.row_factory = aiosqlite.Row
            await self._connection.create_function(
                "fold_case", 1, _fold_case, deterministic=True
            )
        return self._connection

    @staticmethod
    async def _list_tables(conn: aiosqlite.Connection) -> set[str]:
        async with conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'") as cursor:
            return {row["name"] for row in await cursor.fetchall()}

    def _storage_error(self, operation: str, error: Exception) -> StorageError:
        logger.error(f"Storage failure during {operation} at {self.location}: {error}")
        return StorageError(self.location, operation, str(error))

    async def _fetchall(self, sql: str, params: list, operation: str) -> list[aiosqlite.Row]:
        """Run a read query, translating driver failures into StorageError."""
        try:
            conn = await self._get_connection()
            async with conn.execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except sqlite3.Error as e:
            raise self._storage_error(operation, e) from e

    # ================================================================
    # Read Operations (RecordStore protocol)
    # ================================================================

    async def read_sessions(
        self,
        *,
        date_after: str | None = None,
        date_before: str | None = None,
        include_content: bool = False,
    ) -> list[SessionRecord]:
        """Read sessions whose date falls within the optional bounds."""
        if "sessions" not in self._tables:
            return []

        columns = SESSION_CONTENT_COLUMNS if include_content else SESSION_METADATA_COLUMNS
        conditions: list[str] = []
        params: list = []

        if date_after:
            conditions.append("date >= ?")
            params.append(date_after)
        if date_before:
            conditions.append("date <= ?")
            params.append(date_before)

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        sql = f"""
            SELECT {columns} FROM sessions
            WHERE {where_clause}
            ORDER BY date DESC, created_at DESC, id DESC
        """
        rows = await self._fetchall(sql, params, "read sessions")
        logger.debug(f"Read {len(rows)} sessions from {self.location}")
        return [SessionRecord.from_row(row) for row in rows]

    async def read_plans(
        self,
        *,
        kind: RecordKind,
        date_after: str | None = None,
        date_before: str | None = None,
        include_content: bool = False,
    ) -> list[PlanRecord | PatternRecord]:
        """Read plan-table records of one kind."""
        if kind is RecordKind.SESSION:
            raise ValueError("read_plans does not serve sessions")
        if "plans" not in self._tables:
            return []

        columns = PLAN_CONTENT_COLUMNS if include_content else PLAN_METADATA_COLUMNS
        conditions = [f"({KIND_EXPR}) = ?"]
        params: list = [kind.value]

        if date_after:
            conditions.append("substr(created_at, 1, 10) >= ?")
            params.append(date_after)
        if date_before:
            conditions.append("substr(created_at, 1, 10) <= ?")
            params.append(date_before)

        sql = f"""
            SELECT {columns} FROM plans
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at DESC, id DESC
        """
        rows = await self._fetchall(sql, params, f"read {kind.plural}")
        logger.debug(f"Read {len(rows)} {kind.plural} from {self.location}")
        return [_plan_from_row(row) for row in rows]

    async def search_candidates(self, terms: list[str]) -> list[Record]:
        """Return every record whose title, topics or content mention a term.

        Matching folds case for any script, not only ASCII.
        """
        if not terms:
            return []

        needles = [_fold_case(term) for term in terms]

        def _match_clause(title_column: str) -> tuple[str, list]:
            clauses = []
            params: list = []
            for needle in needles:
                clauses.append(
                    f"(instr(fold_case({title_column}), ?) > 0 "
                    "OR instr(fold_case(COALESCE(content, '')), ?) > 0 "
                    "OR instr(fold_case(COALESCE(topics, '')), ?) > 0)"
                )
                params.extend([needle, needle, needle])
            return " OR ".join(clauses), params

        candidates: list[Record] = []

        if "sessions" in self._tables:
            session_where, session_params = _match_clause("topic")
            session_rows = await self._fetchall(
                f"SELECT {SESSION_CONTENT_COLUMNS} FROM sessions WHERE {session_where}",
                session_params,
                "search sessions",
            )
            candidates.extend(SessionRecord.from_row(row) for row in session_rows)

        if "plans" in self._tables:
            plan_where, plan_params = _match_clause("title")
            plan_rows = await self._fetchall(
                f"SELECT {PLAN_CONTENT_COLUMNS} FROM plans WHERE {plan_where}",
                plan_params,
                "search plans",
            )
            candidates.extend(_plan_from_row(row) for row in plan_rows)

        return candidates

    async def count_records(self) -> dict[RecordKind, int]:
        """Count records per kind with COUNT(*) queries."""
        counts = {kind: 0 for kind in RecordKind}

        if "sessions" in self._tables:
            rows = await self._fetchall("SELECT COUNT(*) AS n FROM sessions", [], "count sessions")
            counts[RecordKind.SESSION] = rows[0]["n"]

        if "plans" in self._tables:
            rows = await self._fetchall(
                f"SELECT {KIND_EXPR} AS kind, COUNT(*) AS n FROM plans GROUP BY 1",
                [],
                "count plans",
            )
            for row in rows:
                counts[RecordKind(row["kind"])] = row["n"]
        return counts

    def size_bytes(self) -> int:
        """Database file size plus its WAL, 0 for in-memory stores."""
        if self._in_memory:
            return 0
        total = 0
        for path in (self.db_path, self.db_path.with_name(self.db_path.name + "-wal")):
            if path.exists():
                total += path.stat().st_size
        return total

    async def verify_integrity(self) -> bool:
        """Check database integrity."""
        rows = await self._fetchall("PRAGMA integrity_check", [], "verify integrity")
        return rows[0][0] == "ok"

    # ================================================================
    # Write Helpers (migrations and tests)
    # ================================================================

    async def _write(self, sql: str, params: tuple, operation: str) -> None:
        try:
            conn = await self._get_connection()
            await conn.execute(sql, params)
            await conn.commit()
        except sqlite3.Error as e:
            raise self._storage_error(operation, e) from e

    async def insert_project(self, project: Project) -> None:
        """Insert a project."""
        await self._write(
            """
            INSERT INTO projects (id, name, path, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (project.id, project.name, project.path, project.created_at, project.updated_at),
            "insert project",
        )

    async def insert_session(self, session: SessionRecord) -> None:
        """Insert a session; its project must already exist."""
        await self._write(
            """
            INSERT INTO sessions (
                id, project_id, date, topic, status, plan_id,
                content, topics, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session.id,
                session.project_id,
                session.date,
                session.title,
                session.status,
                session.plan_id,
                session.content or "",
                json.dumps(session.topics, ensure_ascii=False),
                session.created_at,
                session.updated_at,
            ),
            "insert session",
        )

    async def insert_plan(self, plan: PlanRecord) -> None:
        """Insert a plan.

        Raises:
            InvalidParameterError: If status or priority is outside its enum,
                or the id carries the reserved pattern prefix.
        """
        if kind_for_plan_id(plan.id) is not RecordKind.PLAN:
            raise InvalidParameterError(
                "id", f"plan ids must not start with {PATTERN_ID_PREFIX!r}, got {plan.id!r}"
            )
        valid_statuses = {s.value for s in PlanStatus}
        if plan.status not in valid_statuses:
            raise InvalidParameterError(
                "status", f"must be one of {', '.join(sorted(valid_statuses))}, got {plan.status!r}"
            )
        if plan.priority is not None and plan.priority not in {p.value for p in Priority}:
            raise InvalidParameterError("priority", f"must be high, medium or low, got {plan.priority!r}")

        await self._insert_plan_row(
            plan.id,
            plan.project_id,
            plan.title,
            plan.status,
            plan.author,
            plan.priority,
            plan.type,
            plan.content,
            plan.topics,
            plan.created_at,
            plan.updated_at,
        )

    async def insert_pattern(
        self,
        pattern: PatternRecord,
        author: str = "system",
        status: str = PlanStatus.COMPLETE.value,
    ) -> None:
        """Insert a learned pattern as a plans-table row.

        Raises:
            InvalidParameterError: If the id lacks the reserved pattern prefix.
        """
        if kind_for_plan_id(pattern.id) is not RecordKind.LEARNED:
            raise InvalidParameterError(
                "id", f"pattern ids must start with {PATTERN_ID_PREFIX!r}, got {pattern.id!r}"
            )

        await self._insert_plan_row(
            pattern.id,
            pattern.project_id,
            pattern.title,
            status,
            author,
            None,
            pattern.category,
            pattern.content,
            pattern.keywords,
            pattern.created_at,
            pattern.updated_at,
        )

    async def _insert_plan_row(
        self,
        plan_id: str,
        project_id: str | None,
        title: str,
        status: str,
        author: str,
        priority: str | None,
        type_: str | None,
        content: str | None,
        topics: list[str],
        created_at: str,
        updated_at: str,
    ) -> None:
        await self._write(
            """
            INSERT INTO plans (
                id, project_id, title, status, author, priority, type,
                content, topics, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                plan_id,
                project_id,
                title,
                status,
                author,
                priority,
                type_,
                content or "",
                json.dumps(topics, ensure_ascii=False),
                created_at,
                updated_at,
            ),
            f"insert {kind_for_plan_id(plan_id).value}",
        )
