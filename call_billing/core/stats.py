"""
Call statistics for an account over a date range.
"""

from dataclasses import dataclass
from typing import Sequence

from .billing import overage_cost, overage_minutes, total_billable_minutes
from call_billing.config.loader import BillingPlan
from call_billing.storage.models import CallRecord, CallStatus


@dataclass(frozen=True)
class CallBreakdown:
    """Call counts by outcome."""
    successful: int
    transferred: int
    failed: int


@dataclass(frozen=True)
class CallStats:
    """Totals and charges for a set of calls."""
    total_calls: int
    total_duration: float  # seconds
    billable_minutes: int
    total_cost: float
    monthly_charge: float
    price_per_minute: float
    included_minutes: int
    overage_rate: float
    overage_minutes: int
    overage_charge: float
    breakdown: CallBreakdown

    @property
    def total_monthly_bill(self) -> float:
        return self.monthly_charge + self.overage_charge


def compute_call_stats(calls: Sequence[CallRecord], plan: BillingPlan) -> CallStats:
    """Summarize calls against an account's billing plan.

    total_cost is the per-minute price applied to billable minutes plus the
    flat monthly charge. Overage is measured against the plan quota over the
    same calls.

    Args:
        calls: Calls already narrowed to the wanted date range
        plan: Billing plan of the account

    Returns:
        CallStats for the calls
    """
    billable = total_billable_minutes(calls)
    overage = overage_minutes(billable, plan.included_minutes)

    breakdown = CallBreakdown(
        successful=sum(1 for call in calls if call.status == CallStatus.COMPLETED),
        transferred=sum(1 for call in calls if call.status == CallStatus.TRANSFERRED),
        failed=sum(1 for call in calls if call.status == CallStatus.FAILED)
    )

    return CallStats(
        total_calls=len(calls),
        total_duration=sum(call.duration_seconds for call in calls),
        billable_minutes=billable,
        total_cost=billable * plan.price_per_minute + plan.monthly_charge,
        monthly_charge=plan.monthly_charge,
        price_per_minute=plan.price_per_minute,
        included_minutes=plan.included_minutes,
        overage_rate=plan.overage_rate,
        overage_minutes=overage,
        overage_charge=overage_cost(overage, plan.overage_rate),
        breakdown=breakdown
    )
