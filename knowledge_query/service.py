"""Library boundary consumed by CLI and RPC transports.

KnowledgeService accepts the raw parameter bag, normalizes it, opens the
configured store for the duration of a single call and returns JSON-ready
dicts. Parameter errors are raised before the store is touched.

Usage:
    service = KnowledgeService(ConfigManager().load())
    result = await service.query_sessions({"when": "last week", "about": "sqlite"})
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from typing import AsyncIterator, Callable

from .config import KnowledgeConfig
from .engine import QueryEngine
from .errors import InvalidParameterError
from .locator import resolve_db_path
from .normalizer import CanonicalFilter, QueryParams, normalize_query_params
from .search import SearchRanker
from .stats import StatsAggregator
from .store import SQLiteRecordStore

logger = logging.getLogger(__name__)


class KnowledgeService:
    """Runs normalized queries, searches and stats against a per-call store."""

    def __init__(
        self,
        config: KnowledgeConfig | None = None,
        cwd: Path | None = None,
        store_factory: Callable[[Path], SQLiteRecordStore] = SQLiteRecordStore,
    ) -> None:
        """Initialize the service.

        Args:
            config: Settings; defaults to KnowledgeConfig().
            cwd: Directory relative db paths resolve against (defaults to
                the process working directory at call time).
            store_factory: Builds an async-context-managed store for a path.
        """
        self.config = config or KnowledgeConfig()
        self.cwd = cwd
        self.store_factory = store_factory

    def normalize(
        self,
        params: QueryParams | dict | None,
        now: datetime | date | None = None,
    ) -> CanonicalFilter:
        """Normalize a parameter bag using the configured default db path."""
        return normalize_query_params(params or {}, now=now, default_db_path=self.config.db_path)

    @asynccontextmanager
    async def open_store(self, db_path: str) -> AsyncIterator[SQLiteRecordStore]:
        """Locate and open the store for a single call."""
        path = resolve_db_path(
            db_path,
            start_dir=self.cwd,
            auto_locate=self.config.auto_locate,
            default_db_path=self.config.db_path,
        )
        logger.debug(f"Opening store {path} for {db_path!r}")
        async with self.store_factory(path) as store:
            yield store

    # ================================================================
    # Entity queries
    # ================================================================

    async def query_sessions(
        self,
        params: QueryParams | dict | None = None,
        now: datetime | date | None = None,
    ) -> dict:
        """Query sessions; returns ``{"count", "sessions"}``."""
        canonical = self.normalize(params, now)
        async with self.open_store(canonical.db_path) as store:
            result = await QueryEngine(store).query_sessions(canonical.for_sessions())
        return result.to_dict()

    async def query_plans(
        self,
        params: QueryParams | dict | None = None,
        now: datetime | date | None = None,
    ) -> dict:
        """Query plans; returns ``{"count", "plans"}``."""
        canonical = self.normalize(params, now)
        async with self.open_store(canonical.db_path) as store:
            result = await QueryEngine(store).query_plans(canonical.for_plans())
        return result.to_dict()

    async def query_patterns(
        self,
        params: QueryParams | dict | None = None,
        now: datetime | date | None = None,
    ) -> dict:
        """Query learned patterns; returns ``{"count", "patterns"}``."""
        canonical = self.normalize(params, now)
        async with self.open_store(canonical.db_path) as store:
            result = await QueryEngine(store).query_patterns(canonical.for_patterns())
        return result.to_dict()

    # ================================================================
    # Search and stats
    # ================================================================

    async def search_context(self, params: dict) -> dict:
        """Ranked full-text search; returns ``{"count", "results", "query"}``.

        Args:
            params: ``query`` (required), optional ``limit`` and ``dbPath``.

        Raises:
            InvalidParameterError: If the query is missing or limit is invalid.
        """
        params = dict(params)
        query = params.pop("query", None)
        if not isinstance(query, str) or not query.strip():
            raise InvalidParameterError("query", "search query must be a non-empty string")

        canonical = self.normalize(params)
        limit = canonical.limit if canonical.limit is not None else self.config.search_limit

        async with self.open_store(canonical.db_path) as store:
            ranker = SearchRanker(store, snippet_radius=self.config.snippet_radius)
            response = await ranker.search_context(query, limit=limit)
        return response.to_dict()

    async def get_stats(self, params: dict | None = None) -> dict:
        """Store statistics; returns ``{"sessions", "plans", "learned", "total", "dbSize", "dbPath"}``."""
        canonical = self.normalize(params)
        async with self.open_store(canonical.db_path) as store:
            stats = await StatsAggregator(store).get_stats()
        return stats.to_dict()
