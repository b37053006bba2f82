"""
Date range selectors for call listings.

A selector is 'all', 'today' or a day count such as '7'. It is used two
ways: to filter calls already in memory, and to build the day-count
parameter of a repository query. The two conventions differ ('today' is
midnight-based locally but 1 day for queries, 'all' is 0 days for queries)
so callers must not mix them.
"""

from datetime import datetime, time, timedelta
from typing import List, Optional, Sequence, Tuple

from call_billing.storage.models import CallRecord

RANGE_ALL = "all"
RANGE_TODAY = "today"

# Selector values offered to users, in display order
DATE_RANGE_OPTIONS: Tuple[Tuple[str, str], ...] = (
    ("today", "Today"),
    ("7", "Last 7 Days"),
    ("30", "Last 30 Days"),
    ("90", "Last 90 Days"),
    ("all", "All Time"),
)


class InvalidDateRangeError(ValueError):
    """Raised when a date range selector is neither a keyword nor a day count."""
    def __init__(self, date_range: str):
        super().__init__(
            f"Invalid date range: {date_range!r} "
            f"(expected '{RANGE_ALL}', '{RANGE_TODAY}' or a number of days)"
        )
        self.date_range = date_range


def filter_calls_by_date(
    calls: Sequence[CallRecord],
    date_range: str,
    now: Optional[datetime] = None
) -> Sequence[CallRecord]:
    """Keep calls that started on or after the cutoff for a date range.

    'all' returns the input unchanged (the same object, not a copy).
    'today' cuts off at local midnight of the current day. A day count N
    cuts off at local midnight N calendar days before now.

    Args:
        calls: Calls to filter
        date_range: Date range selector
        now: Current time; defaults to the local wall clock

    Returns:
        Matching calls in their original order

    Raises:
        InvalidDateRangeError: If date_range cannot be parsed
    """
    date_range = _normalize(date_range)
    if date_range == RANGE_ALL:
        return calls

    cutoff = range_cutoff(date_range, now)
    return [call for call in calls if _as_comparable(call.start_time, cutoff) >= cutoff]


def range_cutoff(date_range: str, now: Optional[datetime] = None) -> datetime:
    """Local-midnight cutoff for a 'today' or day-count selector."""
    if now is None:
        now = datetime.now()

    date_range = _normalize(date_range)
    if date_range == RANGE_TODAY:
        days = 0
    else:
        days = _parse_day_count(date_range)

    cutoff_day = now.date() - timedelta(days=days)
    return datetime.combine(cutoff_day, time.min, tzinfo=now.tzinfo)


def range_to_day_count(date_range: str) -> int:
    """Convert a selector into the day count used by repository queries.

    'all' maps to 0 (no day limit), 'today' to 1, anything else to its
    numeric value.

    Raises:
        InvalidDateRangeError: If date_range cannot be parsed
    """
    date_range = _normalize(date_range)
    if date_range == RANGE_ALL:
        return 0
    if date_range == RANGE_TODAY:
        return 1
    return _parse_day_count(date_range)


def range_label(date_range: str) -> str:
    """Human-readable label for a selector."""
    date_range = _normalize(date_range)
    if date_range == RANGE_ALL:
        return "All Time"
    if date_range == RANGE_TODAY:
        return "Today"
    return f"Last {date_range} Days"


def range_options() -> List[str]:
    """Selector values accepted by the CLI, in display order."""
    return [value for value, _ in DATE_RANGE_OPTIONS]


def _parse_day_count(date_range: str) -> int:
    try:
        return int(date_range)
    except (TypeError, ValueError):
        raise InvalidDateRangeError(date_range)


def _normalize(date_range: str) -> str:
    """Selector with surrounding whitespace removed."""
    if isinstance(date_range, str):
        return date_range.strip()
    return date_range


def _as_comparable(value: datetime, reference: datetime) -> datetime:
    """Bring value into the same naive/aware form as reference."""
    if value.tzinfo is None and reference.tzinfo is not None:
        return value.astimezone(reference.tzinfo)
    if value.tzinfo is not None and reference.tzinfo is None:
        return value.astimezone().replace(tzinfo=None)
    return value
