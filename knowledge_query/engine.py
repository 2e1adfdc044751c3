"""Filtered queries over sessions, plans and learned patterns.

Every provided filter is combined with AND:
- dates: session ``date`` / plan and pattern creation day, inclusive bounds
- topic: case-insensitive substring of any topic (pattern keywords)
- status, author, priority, category: exact match
- keywords: at least one keyword in common (case-insensitive)

Results are ordered newest first with the id as final tiebreaker, so
identical queries against an unchanged store return identical sequences.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field

from .errors import QueryError
from .models import PatternRecord, PlanRecord, Record, RecordKind, SessionRecord
from .normalizer import PatternFilter, PlanFilter, SessionFilter
from .protocol import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Records of one kind matching a filter."""

    kind: RecordKind
    records: list[Record] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)

    def to_dict(self) -> dict:
        """Serialize as ``{"count": n, "<kind plural>": [...]}``."""
        return {
            "count": self.count,
            self.kind.plural: [record.to_dict() for record in self.records],
        }


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def in_date_range(day: str, date_after: str | None, date_before: str | None) -> bool:
    """Inclusive ISO calendar-day comparison (lexical == chronological)."""
    day = day[:10]
    if date_after is not None and day < date_after:
        return False
    if date_before is not None and day > date_before:
        return False
    return True


def matches_topic(topics: list[str], topic: str | None) -> bool:
    """Case-insensitive substring match against any topic."""
    if not topic:
        return True
    needle = topic.lower()
    return any(needle in candidate.lower() for candidate in topics)


def matches_keywords(record_keywords: list[str], keywords: list[str]) -> bool:
    """True when the record shares at least one keyword with the filter."""
    if not keywords:
        return True
    wanted = {k.lower() for k in keywords}
    return any(k.lower() in wanted for k in record_keywords)


def _check_bounds(date_after: str | None, date_before: str | None) -> None:
    if date_after is not None and date_before is not None and date_after > date_before:
        raise QueryError(f"Empty date window reached the engine: {date_after} > {date_before}")


def _strip_content(records: list, include_content: bool) -> list:
    if include_content:
        return records
    return [dataclasses.replace(r, content=None) for r in records]


def _newest_first(records: list) -> list:
    return sorted(records, key=lambda r: (r.recency, r.id), reverse=True)


# ---------------------------------------------------------------------------
# QueryEngine
# ---------------------------------------------------------------------------


class QueryEngine:
    """Runs entity-specific queries against an injected RecordStore.

    The engine never writes; store failures propagate unchanged.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def query_sessions(self, filters: SessionFilter) -> QueryResult:
        """Query sessions.

        Args:
            filters: Narrowed session filter.

        Returns:
            QueryResult of SessionRecord, newest date first.

        Raises:
            QueryError: If the filter is not a SessionFilter or its window is empty.
        """
        if not isinstance(filters, SessionFilter):
            raise QueryError(f"query_sessions expects SessionFilter, got {type(filters).__name__}")
        _check_bounds(filters.date_after, filters.date_before)

        rows = await self.store.read_sessions(
            date_after=filters.date_after,
            date_before=filters.date_before,
            include_content=filters.include_content,
        )

        records: list[SessionRecord] = [
            s
            for s in rows
            if in_date_range(s.date, filters.date_after, filters.date_before)
            and matches_topic(s.topics, filters.topic)
            and (filters.status is None or s.status == filters.status)
        ]
        records = _newest_first(_strip_content(records, filters.include_content))

        logger.debug(f"query_sessions matched {len(records)} of {len(rows)} sessions")
        return QueryResult(kind=RecordKind.SESSION, records=records)

    async def query_plans(self, filters: PlanFilter) -> QueryResult:
        """Query plans (learned patterns excluded).

        Args:
            filters: Narrowed plan filter.

        Returns:
            QueryResult of PlanRecord, most recently created first.

        Raises:
            QueryError: If the filter is not a PlanFilter or its window is empty.
        """
        if not isinstance(filters, PlanFilter):
            raise QueryError(f"query_plans expects PlanFilter, got {type(filters).__name__}")
        _check_bounds(filters.date_after, filters.date_before)

        rows = await self.store.read_plans(
            kind=RecordKind.PLAN,
            date_after=filters.date_after,
            date_before=filters.date_before,
            include_content=filters.include_content,
        )

        records: list[PlanRecord] = [
            p
            for p in rows
            if p.kind is RecordKind.PLAN
            and in_date_range(p.created_at, filters.date_after, filters.date_before)
            and matches_topic(p.topics, filters.topic)
            and (filters.status is None or p.status == filters.status)
            and (filters.author is None or p.author == filters.author)
            and (filters.priority is None or p.priority == filters.priority)
        ]
        records = _newest_first(_strip_content(records, filters.include_content))

        logger.debug(f"query_plans matched {len(records)} of {len(rows)} plans")
        return QueryResult(kind=RecordKind.PLAN, records=records)

    async def query_patterns(self, filters: PatternFilter) -> QueryResult:
        """Query learned patterns.

        Args:
            filters: Narrowed pattern filter.

        Returns:
            QueryResult of PatternRecord, most recently created first.

        Raises:
            QueryError: If the filter is not a PatternFilter or its window is empty.
        """
        if not isinstance(filters, PatternFilter):
            raise QueryError(f"query_patterns expects PatternFilter, got {type(filters).__name__}")
        _check_bounds(filters.date_after, filters.date_before)

        rows = await self.store.read_plans(
            kind=RecordKind.LEARNED,
            date_after=filters.date_after,
            date_before=filters.date_before,
            include_content=filters.include_content,
        )

        records: list[PatternRecord] = [
            p
            for p in rows
            if p.kind is RecordKind.LEARNED
            and in_date_range(p.created_at, filters.date_after, filters.date_before)
            and matches_topic(p.keywords, filters.topic)
            and (filters.category is None or p.category == filters.category)
            and matches_keywords(p.keywords, filters.keywords)
        ]
        records = _newest_first(_strip_content(records, filters.include_content))

        logger.debug(f"query_patterns matched {len(records)} of {len(rows)} patterns")
        return QueryResult(kind=RecordKind.LEARNED, records=records)
