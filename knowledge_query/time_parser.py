"""Natural language time expression parsing.

Turns conversational phrases into absolute calendar-day bounds:
- Named windows: "today", "yesterday", "this week", "last week",
  "this month", "last month"; "since" or "until" in front keeps
  only one side of the window
- Relative offsets: "3 days ago", "2 weeks ago", "1 month ago"
- Absolute ISO dates embedded in the phrase: "since 2026-02-01",
  "between 2026-01-01 and 2026-01-31"

All arithmetic happens on the UTC calendar day of the reference instant.
Unparseable phrases produce an empty range instead of an error.
"""

from __future__ import annotations

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

logger = logging.getLogger(__name__)


UNITS = ("days", "weeks", "months")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass
class TimeRange:
    """Inclusive calendar-day bounds; either side may be open."""

    date_after: str | None = None
    date_before: str | None = None

    def is_empty(self) -> bool:
        """Return True when neither bound is set."""
        return self.date_after is None and self.date_before is None

    def to_dict(self) -> dict:
        """Serialize the bounds that are set, using wire key names."""
        result: dict = {}
        if self.date_after is not None:
            result["dateAfter"] = self.date_after
        if self.date_before is not None:
            result["dateBefore"] = self.date_before
        return result


# ---------------------------------------------------------------------------
# Calendar arithmetic
# ---------------------------------------------------------------------------


def format_date(day: date) -> str:
    """Format a calendar day as zero-padded YYYY-MM-DD."""
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def utc_today(now: datetime | date | None = None) -> date:
    """Resolve the UTC calendar day of a reference instant.

    Naive datetimes are taken to already be in UTC.

    Args:
        now: Reference instant. Defaults to the current time.

    Returns:
        The calendar day in UTC.
    """
    if now is None:
        return datetime.now(timezone.utc).date()
    if isinstance(now, datetime):
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return now.date()
    return now


def subtract_months(day: date, months: int) -> date:
    """Step back whole calendar months, clamping to the target month's end.

    Jan 31 minus one month is Feb 28 (Feb 29 in leap years), never March.

    Raises:
        ValueError: If the result would precede year 1.
    """
    total = day.year * 12 + (day.month - 1) - months
    year, month_index = divmod(total, 12)
    month = month_index + 1
    if year < 1:
        raise ValueError(f"Cannot subtract {months} months from {day}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def subtract_units(day: date, amount: int, unit: str) -> date:
    """Subtract ``amount`` days, weeks or calendar months from ``day``.

    Raises:
        ValueError: If ``unit`` is unknown or the result is out of range.
        OverflowError: If a day offset leaves the supported date range.
    """
    if unit == "days":
        return day - timedelta(days=amount)
    elif unit == "weeks":
        return day - timedelta(weeks=amount)
    elif unit == "months":
        return subtract_months(day, amount)
    raise ValueError(f"Unknown unit: {unit}")


def start_of_week(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def end_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


# ---------------------------------------------------------------------------
# Phrase patterns
# ---------------------------------------------------------------------------


_RELATIVE_RE = re.compile(r"\b(\d+|a|an|one)\s+(day|week|month)s?\s+ago\b")
_ISO_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
_BEFORE_RE = re.compile(r"\b(?:before|until|till|to)\s+$")
_AFTER_RE = re.compile(r"\b(?:after|since|from)\s+$")
# Named windows only open on explicit words; "from last week" means the whole week
_WINDOW_BEFORE_RE = re.compile(r"\b(?:before|until|till)\s+$")
_WINDOW_AFTER_RE = re.compile(r"\b(?:after|since)\s+$")


def _today(day: date) -> TimeRange:
    return TimeRange(format_date(day), format_date(day))


def _yesterday(day: date) -> TimeRange:
    previous = day - timedelta(days=1)
    return TimeRange(format_date(previous), format_date(previous))


def _this_week(day: date) -> TimeRange:
    return TimeRange(format_date(start_of_week(day)), format_date(day))


def _last_week(day: date) -> TimeRange:
    monday = start_of_week(day) - timedelta(weeks=1)
    return TimeRange(format_date(monday), format_date(monday + timedelta(days=6)))


def _this_month(day: date) -> TimeRange:
    return TimeRange(format_date(start_of_month(day)), format_date(day))


def _last_month(day: date) -> TimeRange:
    last_day = start_of_month(day) - timedelta(days=1)
    return TimeRange(format_date(start_of_month(last_day)), format_date(last_day))


# Checked in order; first match wins
_NAMED_WINDOWS = [
    (re.compile(r"\byesterday\b"), _yesterday),
    (re.compile(r"\btoday\b"), _today),
    (re.compile(r"\bthis\s+week\b"), _this_week),
    (re.compile(r"\blast\s+week\b"), _last_week),
    (re.compile(r"\bthis\s+month\b"), _this_month),
    (re.compile(r"\blast\s+month\b"), _last_month),
]


def _bound_window(window: TimeRange, prefix: str) -> TimeRange:
    if _WINDOW_AFTER_RE.search(prefix):
        return TimeRange(date_after=window.date_after)
    if _WINDOW_BEFORE_RE.search(prefix):
        return TimeRange(date_before=window.date_before)
    return window


def _parse_relative(text: str, day: date) -> TimeRange | None:
    match = _RELATIVE_RE.search(text)
    if not match:
        return None
    raw_count = match.group(1)
    count = int(raw_count) if raw_count.isdigit() else 1
    unit = match.group(2) + "s"
    return TimeRange(date_after=format_date(subtract_units(day, count, unit)))


def _parse_absolute(text: str) -> TimeRange | None:
    found: list[tuple[int, date]] = []
    for match in _ISO_DATE_RE.finditer(text):
        try:
            found.append((match.start(), date.fromisoformat(match.group(1))))
        except ValueError:
            logger.debug(f"Ignoring invalid calendar date: {match.group(1)}")

    if not found:
        return None

    if len(found) >= 2:
        days = sorted(d for _, d in found)
        return TimeRange(format_date(days[0]), format_date(days[-1]))

    position, day = found[0]
    prefix = text[:position]
    if _BEFORE_RE.search(prefix):
        return TimeRange(date_before=format_date(day))
    if _AFTER_RE.search(prefix):
        return TimeRange(date_after=format_date(day))
    return TimeRange(format_date(day), format_date(day))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_time_expression(
    phrase: str | None,
    now: datetime | date | None = None,
) -> TimeRange:
    """Parse a natural language time phrase into calendar-day bounds.

    Args:
        phrase: Free text such as "last week" or "sessions from 3 days ago".
        now: Reference instant (defaults to the current UTC time).

    Returns:
        TimeRange with the resolved bounds; empty when the phrase cannot
        be interpreted.

    Example:
        >>> parse_time_expression("3 days ago", date(2026, 2, 14))
        TimeRange(date_after='2026-02-11', date_before=None)
    """
    if not phrase or not isinstance(phrase, str):
        return TimeRange()

    text = phrase.lower().strip()
    day = utc_today(now)

    try:
        for pattern, handler in _NAMED_WINDOWS:
            match = pattern.search(text)
            if match:
                return _bound_window(handler(day), text[:match.start()])

        relative = _parse_relative(text, day)
        if relative is not None:
            return relative

        absolute = _parse_absolute(text)
        if absolute is not None:
            return absolute
    except (ValueError, OverflowError) as e:
        logger.warning(f"Time expression out of range, ignoring: {phrase!r} ({e})")
        return TimeRange()

    logger.debug(f"Unrecognized time expression: {phrase!r}")
    return TimeRange()
