"""Knowledge Query: filtered queries and ranked search over an AIKnowSys knowledge store."""

from knowledge_query.config import ConfigManager, KnowledgeConfig
from knowledge_query.engine import QueryEngine, QueryResult
from knowledge_query.errors import (
    InvalidParameterError,
    KnowledgeQueryError,
    NotFoundError,
    QueryError,
    StorageError,
)
from knowledge_query.locator import find_knowledge_db
from knowledge_query.models import (
    PatternRecord,
    PlanRecord,
    RecordKind,
    SessionRecord,
)
from knowledge_query.normalizer import CanonicalFilter, QueryParams, normalize_query_params
from knowledge_query.protocol import RecordStore
from knowledge_query.search import SearchRanker, SearchResponse
from knowledge_query.service import KnowledgeService
from knowledge_query.stats import DbStats, StatsAggregator
from knowledge_query.store import SQLiteRecordStore
from knowledge_query.time_parser import TimeRange, parse_time_expression

__version__ = "0.1.0"

__all__ = [
    # Models module
    "RecordKind",
    "SessionRecord",
    "PlanRecord",
    "PatternRecord",
    # Time parser module
    "TimeRange",
    "parse_time_expression",
    # Normalizer module
    "QueryParams",
    "CanonicalFilter",
    "normalize_query_params",
    # Store modules
    "RecordStore",
    "SQLiteRecordStore",
    "find_knowledge_db",
    # Query modules
    "QueryEngine",
    "QueryResult",
    "SearchRanker",
    "SearchResponse",
    "StatsAggregator",
    "DbStats",
    # Service and config
    "KnowledgeService",
    "KnowledgeConfig",
    "ConfigManager",
    # Errors
    "KnowledgeQueryError",
    "InvalidParameterError",
    "NotFoundError",
    "StorageError",
    "QueryError",
]
