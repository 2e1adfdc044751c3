"""Record store protocol consumed by the query engine.

The engine, ranker and stats aggregator only read through this protocol;
any backend that implements it (SQLite, in-memory, remote) can be injected.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import PatternRecord, PlanRecord, Record, RecordKind, SessionRecord


@runtime_checkable
class RecordStore(Protocol):
    """Read-only view of a knowledge store.

    Implementations may pre-filter on the bounds they are given, but the
    engine re-applies every filter, so returning a superset is allowed.
    Failures must surface as StorageError or NotFoundError.
    """

    @property
    def location(self) -> str:
        """Human-readable store location (path or URI)."""
        ...

    async def read_sessions(
        self,
        *,
        date_after: str | None = None,
        date_before: str | None = None,
        include_content: bool = False,
    ) -> list[SessionRecord]:
        """Read sessions whose date falls within the optional bounds.

        Args:
            date_after: Inclusive lower bound (YYYY-MM-DD).
            date_before: Inclusive upper bound (YYYY-MM-DD).
            include_content: Load the full body text.

        Returns:
            Matching session records.
        """
        ...

    async def read_plans(
        self,
        *,
        kind: RecordKind,
        date_after: str | None = None,
        date_before: str | None = None,
        include_content: bool = False,
    ) -> list[PlanRecord | PatternRecord]:
        """Read plan-table records of one kind.

        Args:
            kind: RecordKind.PLAN or RecordKind.LEARNED.
            date_after: Inclusive lower bound on the creation day.
            date_before: Inclusive upper bound on the creation day.
            include_content: Load the full body text.

        Returns:
            PlanRecord instances for PLAN, PatternRecord instances for LEARNED.
        """
        ...

    async def search_candidates(self, terms: list[str]) -> list[Record]:
        """Return records of every kind mentioning any of the terms.

        Candidates always carry their content so they can be scored.
        """
        ...

    async def count_records(self) -> dict[RecordKind, int]:
        """Count records per kind."""
        ...

    def size_bytes(self) -> int:
        """On-disk size of the store in bytes (0 when not file-backed)."""
        ...
