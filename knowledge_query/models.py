"""Domain records for the knowledge store.

Sessions, plans and learned patterns share common fields but carry
kind-specific semantics. Every record exposes an explicit ``kind``
discriminant so query logic never has to inspect identifiers to tell
them apart.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

import aiosqlite


# Reserved identifier prefix marking learned patterns in the plans table.
# Only the SQLite adapter consults it; records carry RecordKind instead.
PATTERN_ID_PREFIX = "learned_"


class RecordKind(Enum):
    """Discriminant for knowledge records."""

    SESSION = "session"
    PLAN = "plan"
    LEARNED = "learned"

    @property
    def plural(self) -> str:
        """Key used for record lists in result payloads."""
        return {
            RecordKind.SESSION: "sessions",
            RecordKind.PLAN: "plans",
            RecordKind.LEARNED: "patterns",
        }[self]


class PlanStatus(Enum):
    """Closed set of plan lifecycle states."""

    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETE = "COMPLETE"
    CANCELLED = "CANCELLED"


class Priority(Enum):
    """Plan priority levels."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def kind_for_plan_id(plan_id: str) -> RecordKind:
    """Derive the kind of a plans-table row from its identifier."""
    if plan_id.startswith(PATTERN_ID_PREFIX):
        return RecordKind.LEARNED
    return RecordKind.PLAN


def _load_list(raw: str | None) -> list[str]:
    """Decode a JSON list column, tolerating NULL and malformed values."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def _optional(row: aiosqlite.Row, column: str) -> str | None:
    """Read a column that may be missing from metadata-only selects."""
    return row[column] if column in row.keys() else None


@dataclass
class Project:
    """Identity root owning sessions and plans."""

    id: str
    name: str
    created_at: str
    updated_at: str
    path: str | None = None

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class SessionRecord:
    """A dated work-log entry."""

    id: str
    project_id: str
    date: str
    title: str
    status: str | None
    created_at: str
    updated_at: str
    topics: list[str] = field(default_factory=list)
    content: str | None = None
    plan_id: str | None = None
    kind: RecordKind = RecordKind.SESSION

    @property
    def recency(self) -> tuple[str, str]:
        """Sort key, newest first when reversed."""
        return (self.date, self.created_at)

    def to_dict(self) -> dict:
        """Serialize to dictionary; content only when it was loaded."""
        result = {
            "kind": self.kind.value,
            "id": self.id,
            "project_id": self.project_id,
            "date": self.date,
            "title": self.title,
            "status": self.status,
            "topics": list(self.topics),
            "plan_id": self.plan_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.content is not None:
            result["content"] = self.content
        return result

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> SessionRecord:
        """Create from SQLite row."""
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            date=row["date"],
            title=row["topic"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            topics=_load_list(row["topics"]),
            content=_optional(row, "content"),
            plan_id=row["plan_id"],
        )


@dataclass
class PlanRecord:
    """A longer-lived, status-tracked work item."""

    id: str
    project_id: str | None
    title: str
    status: str
    author: str
    created_at: str
    updated_at: str
    priority: str | None = None
    type: str | None = None
    topics: list[str] = field(default_factory=list)
    content: str | None = None
    kind: RecordKind = RecordKind.PLAN

    @property
    def recency(self) -> tuple[str, str]:
        return (self.created_at[:10], self.created_at)

    def to_dict(self) -> dict:
        """Serialize to dictionary; content only when it was loaded."""
        result = {
            "kind": self.kind.value,
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "status": self.status,
            "author": self.author,
            "priority": self.priority,
            "type": self.type,
            "topics": list(self.topics),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.content is not None:
            result["content"] = self.content
        return result

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> PlanRecord:
        """Create from SQLite row."""
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            title=row["title"],
            status=row["status"],
            author=row["author"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            priority=row["priority"],
            type=row["type"],
            topics=_load_list(row["topics"]),
            content=_optional(row, "content"),
        )


@dataclass
class PatternRecord:
    """A reusable insight; physically a row of the plans table.

    The physical ``type`` column is read as ``category`` and ``topics``
    as ``keywords``.
    """

    id: str
    project_id: str | None
    title: str
    category: str
    created_at: str
    updated_at: str
    keywords: list[str] = field(default_factory=list)
    content: str | None = None
    kind: RecordKind = RecordKind.LEARNED

    @property
    def topics(self) -> list[str]:
        return self.keywords

    @property
    def recency(self) -> tuple[str, str]:
        return (self.created_at[:10], self.created_at)

    def to_dict(self) -> dict:
        """Serialize to dictionary; content only when it was loaded."""
        result = {
            "kind": self.kind.value,
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "category": self.category,
            "keywords": list(self.keywords),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.content is not None:
            result["content"] = self.content
        return result

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> PatternRecord:
        """Create from a plans-table SQLite row."""
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            title=row["title"],
            category=row["type"] or "general",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            keywords=_load_list(row["topics"]),
            content=_optional(row, "content"),
        )


Record = Union[SessionRecord, PlanRecord, PatternRecord]
