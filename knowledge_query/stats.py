"""Record counts and storage size summary."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .models import RecordKind
from .protocol import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class DbStats:
    """Store summary.

    ``plans`` excludes learned patterns, so ``total`` is always
    ``sessions + plans + learned`` with nothing counted twice.
    """

    sessions: int
    plans: int
    learned: int
    db_size: int
    db_path: str

    @property
    def total(self) -> int:
        return self.sessions + self.plans + self.learned

    def to_dict(self) -> dict:
        """Serialize using wire key names."""
        return {
            "sessions": self.sessions,
            "plans": self.plans,
            "learned": self.learned,
            "total": self.total,
            "dbSize": self.db_size,
            "dbPath": self.db_path,
        }


class StatsAggregator:
    """Summarizes an injected RecordStore."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def get_stats(self) -> DbStats:
        """Count records per kind and measure the backing file.

        Returns:
            DbStats for the store.
        """
        counts = await self.store.count_records()
        stats = DbStats(
            sessions=counts.get(RecordKind.SESSION, 0),
            plans=counts.get(RecordKind.PLAN, 0),
            learned=counts.get(RecordKind.LEARNED, 0),
            db_size=max(0, self.store.size_bytes()),
            db_path=self.store.location,
        )
        logger.debug(f"Stats for {stats.db_path}: {stats.total} records, {stats.db_size} bytes")
        return stats
