"""
Billable minutes and usage calculations.

Converts raw call durations into billable minutes, plan usage and overage
charges. These are plain formulas: numeric inputs are not validated and
malformed values simply produce nonsensical results.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Union

from call_billing.storage.models import CallRecord, parse_timestamp

# Usage thresholds, in percent of included minutes
WARNING_THRESHOLD = 70
DANGER_THRESHOLD = 90

_MONTH_ABBR = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"
)

DateLike = Union[datetime, date, str]


class UsageStatus(Enum):
    """Display severity of plan usage."""
    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class UsageSummary:
    """Plan usage derived from a set of calls. Never persisted."""
    used_minutes: int
    included_minutes: int
    overage_minutes: int
    overage_cost: float
    percentage: int
    status: UsageStatus

    @property
    def remaining_minutes(self) -> int:
        return remaining_minutes(self.used_minutes, self.included_minutes)

    @property
    def is_overage(self) -> bool:
        return self.used_minutes > self.included_minutes


def per_call_billable_minutes(duration_seconds: float) -> int:
    """Billable minutes for a single call, rounded up to the next whole minute.

    65 seconds bills 2 minutes, 60 seconds bills 1, 0 seconds bills 0.
    """
    return math.ceil(duration_seconds / 60)


def total_billable_minutes(calls: Iterable[CallRecord]) -> int:
    """Sum billable minutes over calls, rounding each call independently.

    Because rounding happens per call, the result is never less than the
    rounded-up combined duration: 30s + 90s bills 1 + 2 = 3 minutes.
    """
    return sum(per_call_billable_minutes(call.duration_seconds) for call in calls)


def usage_percentage(used: float, included: float) -> int:
    """Share of included minutes consumed, as a whole percent in [0, 100].

    Returns 0 when the plan includes no minutes.
    """
    if included == 0:
        return 0
    # Round half up, not to even: 62.5% shows as 63%
    percent = math.floor(used / included * 100 + 0.5)
    return max(0, min(percent, 100))


def usage_status(percentage: float) -> UsageStatus:
    """Map a usage percentage onto a display severity.

    Below 70 is success, below 90 is warning, anything else is danger.
    """
    if percentage < WARNING_THRESHOLD:
        return UsageStatus.SUCCESS
    if percentage < DANGER_THRESHOLD:
        return UsageStatus.WARNING
    return UsageStatus.DANGER


def overage_minutes(used: float, included: float) -> float:
    """Minutes used beyond the included quota."""
    return max(0, used - included)


def remaining_minutes(used: float, included: float) -> float:
    """Included minutes not yet used."""
    return max(0, included - used)


def overage_cost(overage: float, rate: float) -> float:
    """Charge for overage minutes. No currency rounding is applied."""
    return overage * rate


def summarize_usage(
    calls: Iterable[CallRecord],
    included_minutes: int,
    overage_rate: float
) -> UsageSummary:
    """Compute the usage summary for a set of calls against a plan quota.

    Args:
        calls: Calls to bill
        included_minutes: Minutes covered by the plan
        overage_rate: Charge per minute beyond the quota

    Returns:
        UsageSummary recomputed from scratch on every call
    """
    used = total_billable_minutes(calls)
    overage = overage_minutes(used, included_minutes)
    percentage = usage_percentage(used, included_minutes)
    return UsageSummary(
        used_minutes=used,
        included_minutes=included_minutes,
        overage_minutes=overage,
        overage_cost=overage_cost(overage, overage_rate),
        percentage=percentage,
        status=usage_status(percentage)
    )


def format_minutes(minutes: float) -> str:
    """Format minutes for display, e.g. '1,234 min'."""
    return f"{minutes:,} min"


def format_billing_period(start: DateLike, end: DateLike) -> str:
    """Render a billing period as 'Mon D - D' or 'Mon D - Mon D'.

    The month is repeated only when the two dates fall in different months.
    Timezone-aware timestamps are shown in local time.
    """
    start_date = _to_local_date(start)
    end_date = _to_local_date(end)

    start_month = _MONTH_ABBR[start_date.month - 1]
    end_month = _MONTH_ABBR[end_date.month - 1]

    if start_month == end_month:
        return f"{start_month} {start_date.day} - {end_date.day}"

    return f"{start_month} {start_date.day} - {end_month} {end_date.day}"


def _to_local_date(value: DateLike) -> date:
    if isinstance(value, str):
        value = parse_timestamp(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    return value
