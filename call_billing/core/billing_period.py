"""
Monthly billing periods and bills.

An account's billing period restarts on its billing reset day each month.
The monthly bill covers calls that started inside the current period.
"""

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from .billing import UsageStatus, UsageSummary, format_billing_period, summarize_usage
from call_billing.config.loader import BillingPlan
from call_billing.storage.models import CallRecord


@dataclass(frozen=True)
class BillingPeriod:
    """Inclusive time window of one billing period."""
    start: datetime
    end: datetime

    def __post_init__(self):
        """Validate time window is logical."""
        if self.start > self.end:
            raise ValueError("period start must be before period end")

    def contains(self, ts: datetime) -> bool:
        """Whether a timestamp falls inside the period, bounds included."""
        if ts.tzinfo is not None and self.start.tzinfo is None:
            ts = ts.astimezone().replace(tzinfo=None)
        elif ts.tzinfo is None and self.start.tzinfo is not None:
            ts = ts.replace(tzinfo=self.start.tzinfo)
        return self.start <= ts <= self.end

    @property
    def billing_month(self) -> str:
        """'YYYY-MM' of the period start, used to key billing history."""
        return self.start.strftime("%Y-%m")

    @property
    def label(self) -> str:
        return format_billing_period(self.start, self.end)


@dataclass(frozen=True)
class MonthlyBill:
    """Bill for the calls of one billing period."""
    period: BillingPeriod
    usage: UsageSummary
    monthly_charge: float
    overage_rate: float
    billing_reset_day: int

    @property
    def billable_minutes(self) -> int:
        return self.usage.used_minutes

    @property
    def included_minutes(self) -> int:
        return self.usage.included_minutes

    @property
    def overage_minutes(self) -> int:
        return self.usage.overage_minutes

    @property
    def overage_charge(self) -> float:
        return self.usage.overage_cost

    @property
    def total_monthly_bill(self) -> float:
        return self.monthly_charge + self.usage.overage_cost

    @property
    def usage_percentage(self) -> int:
        return self.usage.percentage

    @property
    def usage_status(self) -> UsageStatus:
        return self.usage.status

    @property
    def is_overage(self) -> bool:
        return self.usage.is_overage

    @property
    def remaining_minutes(self) -> int:
        return self.usage.remaining_minutes


def current_billing_period(reset_day: int, now: Optional[datetime] = None) -> BillingPeriod:
    """Billing period containing 'now' for a given reset day.

    Before this month's reset date the period started on the reset date of
    the previous month; on or after it, on this month's. The period ends at
    the last instant of the day before the next reset date. A reset day past
    the end of a short month is clamped to that month's last day, so a reset
    day of 31 resets on Feb 28, Apr 30 and so on.

    Args:
        reset_day: Day of month on which the period restarts
        now: Current time; defaults to the local wall clock

    Returns:
        BillingPeriod with local-midnight start and end-of-day end
    """
    if now is None:
        now = datetime.now()

    start_day = _reset_date(now.year, now.month, reset_day)
    if now.date() < start_day:
        start_day = _reset_date(now.year, now.month - 1, reset_day)

    next_reset = _reset_date(start_day.year, start_day.month + 1, reset_day)
    end_day = next_reset - timedelta(days=1)

    return BillingPeriod(
        start=datetime.combine(start_day, time.min, tzinfo=now.tzinfo),
        end=datetime.combine(end_day, time.max, tzinfo=now.tzinfo)
    )


def compute_monthly_bill(
    calls: Iterable[CallRecord],
    plan: BillingPlan,
    now: Optional[datetime] = None
) -> MonthlyBill:
    """Compute the bill for the current billing period of an account.

    Calls outside the period are ignored, so the full call history can be
    passed in.

    Args:
        calls: Calls of the account
        plan: Billing plan of the account
        now: Current time; defaults to the local wall clock

    Returns:
        MonthlyBill for the period containing now
    """
    period = current_billing_period(plan.billing_reset_day, now)
    in_period = [call for call in calls if period.contains(call.start_time)]

    return MonthlyBill(
        period=period,
        usage=summarize_usage(in_period, plan.included_minutes, plan.overage_rate),
        monthly_charge=plan.monthly_charge,
        overage_rate=plan.overage_rate,
        billing_reset_day=plan.billing_reset_day
    )


def _reset_date(year: int, month: int, reset_day: int) -> date:
    """Reset date of a month, clamped to the month's last day.

    Month 0 is December of the previous year and month 13 is January of
    the next.
    """
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return date(year, month, min(reset_day, monthrange(year, month)[1]))
