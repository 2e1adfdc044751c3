"""Query parameter normalization.

Callers may express the same filter several ways: a natural-language
``when``, a relative ``last``/``unit`` window, or absolute ``dateAfter``/
``dateBefore`` bounds; a natural-language ``about`` or a structured
``topic``. This module reconciles them into one CanonicalFilter and then
narrows it into the filter type each entity query understands.

Time resolution priority (first match wins):
1. ``when``  -> parse_time_expression
2. ``last`` + ``unit`` -> now minus N days/weeks/calendar months
3. ``dateAfter`` / ``dateBefore`` verbatim
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields
from datetime import date, datetime

from .errors import InvalidParameterError
from .time_parser import UNITS, format_date, parse_time_expression, subtract_units, utc_today

logger = logging.getLogger(__name__)


DEFAULT_DB_PATH = ".aiknowsys/knowledge.db"
MAX_LAST = 3650

_ISO_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Wire (camelCase) names accepted alongside the Python attribute names
_ALIASES = {
    "dateAfter": "date_after",
    "dateBefore": "date_before",
    "dbPath": "db_path",
    "includeContent": "include_content",
}


# ---------------------------------------------------------------------------
# Input bag
# ---------------------------------------------------------------------------


@dataclass
class QueryParams:
    """Superset of every parameter any query style accepts."""

    when: str | None = None
    about: str | None = None
    last: int | None = None
    unit: str | None = None
    date_after: str | None = None
    date_before: str | None = None
    topic: str | None = None
    status: str | None = None
    author: str | None = None
    priority: str | None = None
    category: str | None = None
    keywords: list[str] | None = None
    db_path: str | None = None
    include_content: bool | None = None
    limit: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> QueryParams:
        """Build from a raw parameter dict (camelCase or snake_case keys).

        Raises:
            InvalidParameterError: If an unknown key is present.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict = {}
        for key, value in data.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise InvalidParameterError(key, "unknown parameter")
            kwargs[name] = value
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Canonical and narrowed filters
# ---------------------------------------------------------------------------


@dataclass
class SessionFilter:
    """Filters understood by session queries."""

    date_after: str | None = None
    date_before: str | None = None
    topic: str | None = None
    status: str | None = None
    include_content: bool = False


@dataclass
class PlanFilter:
    """Filters understood by plan queries."""

    date_after: str | None = None
    date_before: str | None = None
    topic: str | None = None
    status: str | None = None
    author: str | None = None
    priority: str | None = None
    include_content: bool = False


@dataclass
class PatternFilter:
    """Filters understood by learned-pattern queries."""

    date_after: str | None = None
    date_before: str | None = None
    topic: str | None = None
    category: str | None = None
    keywords: list[str] = field(default_factory=list)
    include_content: bool = False


@dataclass
class CanonicalFilter:
    """Single normalized representation of a query."""

    db_path: str = DEFAULT_DB_PATH
    date_after: str | None = None
    date_before: str | None = None
    topic: str | None = None
    status: str | None = None
    author: str | None = None
    priority: str | None = None
    category: str | None = None
    keywords: list[str] = field(default_factory=list)
    include_content: bool = False
    limit: int | None = None

    def for_sessions(self) -> SessionFilter:
        return SessionFilter(
            date_after=self.date_after,
            date_before=self.date_before,
            topic=self.topic,
            status=self.status,
            include_content=self.include_content,
        )

    def for_plans(self) -> PlanFilter:
        return PlanFilter(
            date_after=self.date_after,
            date_before=self.date_before,
            topic=self.topic,
            status=self.status,
            author=self.author,
            priority=self.priority,
            include_content=self.include_content,
        )

    def for_patterns(self) -> PatternFilter:
        return PatternFilter(
            date_after=self.date_after,
            date_before=self.date_before,
            topic=self.topic,
            category=self.category,
            keywords=list(self.keywords),
            include_content=self.include_content,
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_iso_day(name: str, value: object) -> None:
    if not isinstance(value, str) or not _ISO_DAY_RE.match(value):
        raise InvalidParameterError(name, f"expected an ISO date (YYYY-MM-DD), got {value!r}")
    try:
        date.fromisoformat(value)
    except ValueError:
        raise InvalidParameterError(name, f"not a valid calendar date: {value!r}") from None


def _check_positive_int(name: str, value: object, maximum: int | None = None) -> None:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameterError(name, f"expected an integer, got {value!r}")
    if value < 1 or (maximum is not None and value > maximum):
        upper = f"..{maximum}" if maximum is not None else " or greater"
        raise InvalidParameterError(name, f"must be in range 1{upper}, got {value}")


def validate_query_params(params: QueryParams) -> None:
    """Check structural constraints of a parameter bag.

    Raises:
        InvalidParameterError: On the first violated constraint.
    """
    for name in ("when", "about", "topic", "status", "author", "priority", "category", "db_path"):
        value = getattr(params, name)
        if value is not None and not isinstance(value, str):
            raise InvalidParameterError(name, f"expected a string, got {value!r}")

    # Only the time style that wins is checked; overridden ones are ignored
    _validate_time_style(params)

    if params.keywords is not None:
        if not isinstance(params.keywords, (list, tuple)) or not all(
            isinstance(k, str) for k in params.keywords
        ):
            raise InvalidParameterError("keywords", "expected a list of strings")

    if params.include_content is not None and not isinstance(params.include_content, bool):
        raise InvalidParameterError("includeContent", "expected a boolean")

    if params.limit is not None:
        _check_positive_int("limit", params.limit)


def _validate_time_style(params: QueryParams) -> None:
    if params.when:
        return
    if params.last is not None or params.unit is not None:
        if params.last is None or params.unit is None:
            missing = "unit" if params.unit is None else "last"
            raise InvalidParameterError(missing, "'last' and 'unit' must be given together")
        _check_positive_int("last", params.last, MAX_LAST)
        if params.unit not in UNITS:
            raise InvalidParameterError("unit", f"must be one of {', '.join(UNITS)}, got {params.unit!r}")
        return
    if params.date_after is not None:
        _check_iso_day("dateAfter", params.date_after)
    if params.date_before is not None:
        _check_iso_day("dateBefore", params.date_before)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_query_params(
    params: QueryParams | dict,
    now: datetime | date | None = None,
    default_db_path: str = DEFAULT_DB_PATH,
) -> CanonicalFilter:
    """Merge the competing filter styles into one CanonicalFilter.

    Args:
        params: Parameter bag (QueryParams or raw dict).
        now: Reference instant for relative expressions.
        default_db_path: Store location used when ``db_path`` is omitted.

    Returns:
        The canonical filter.

    Raises:
        InvalidParameterError: If a parameter fails a structural constraint.
    """
    if isinstance(params, dict):
        params = QueryParams.from_dict(params)
    validate_query_params(params)

    result = CanonicalFilter(
        db_path=params.db_path or default_db_path,
        include_content=bool(params.include_content),
        limit=params.limit,
    )

    if params.when:
        time_range = parse_time_expression(params.when, now)
        if time_range.is_empty():
            logger.warning(f"Could not interpret time expression {params.when!r}; no time filter applied")
        result.date_after = time_range.date_after
        result.date_before = time_range.date_before
    elif params.last is not None and params.unit:
        try:
            start = subtract_units(utc_today(now), params.last, params.unit)
        except (ValueError, OverflowError) as e:
            raise InvalidParameterError("last", str(e)) from e
        result.date_after = format_date(start)
    else:
        result.date_after = params.date_after or None
        result.date_before = params.date_before or None

    if (
        result.date_after is not None
        and result.date_before is not None
        and result.date_after > result.date_before
    ):
        raise InvalidParameterError(
            "dateAfter",
            f"{result.date_after} is later than dateBefore {result.date_before}",
        )

    # about is used verbatim; no stemming or keyword extraction
    if params.about:
        result.topic = params.about
    elif params.topic:
        result.topic = params.topic

    result.status = params.status or None
    result.author = params.author or None
    result.priority = params.priority or None
    result.category = params.category or None
    result.keywords = list(params.keywords or [])

    logger.debug(f"Normalized query parameters: {result}")
    return result
