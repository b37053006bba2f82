"""
Billing period closing.

Meant to run once a day. On an account's reset date the period that ended
yesterday is snapshotted into billing history, unless a snapshot for that
month already exists.
"""

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Optional

from .billing_period import MonthlyBill, compute_monthly_bill, current_billing_period
from call_billing.config.loader import BillingPlan, PlanConfig
from call_billing.storage.models import BillingHistoryRecord
from call_billing.storage.repository import CallRepository

logger = logging.getLogger(__name__)


def close_billing_periods(
    config: PlanConfig,
    repository: CallRepository,
    now: Optional[datetime] = None
) -> int:
    """Save billing history for every account whose period reset today.

    Accounts come from the plan configuration. A failure for one account is
    logged and does not stop the others.

    Args:
        config: Plan configuration listing the accounts
        repository: Repository holding calls and billing history
        now: Current time; defaults to the local wall clock

    Returns:
        Number of billing history records saved
    """
    if now is None:
        now = datetime.now()

    logger.info("Running daily billing period check for %s", now.date().isoformat())

    saved_count = 0
    for account_id, plan in config.accounts.items():
        if not period_ended_yesterday(plan.billing_reset_day, now):
            continue
        try:
            if close_account_period(account_id, plan, repository, now):
                saved_count += 1
        except (sqlite3.Error, ValueError):
            logger.exception("Failed to save billing history for account %s", account_id)

    logger.info("Daily billing check complete. Saved %d billing record(s).", saved_count)
    return saved_count


def close_account_period(
    account_id: str,
    plan: BillingPlan,
    repository: CallRepository,
    now: Optional[datetime] = None
) -> bool:
    """Snapshot the billing period that contains yesterday for one account.

    Args:
        account_id: Account to close
        plan: Billing plan of the account
        repository: Repository holding calls and billing history
        now: Current time; defaults to the local wall clock

    Returns:
        True if a record was saved, False if the month was already closed
    """
    if now is None:
        now = datetime.now()

    yesterday = now - timedelta(days=1)
    period = current_billing_period(plan.billing_reset_day, yesterday)
    calls = repository.get_calls(account_id, start=period.start, end=period.end)
    bill = compute_monthly_bill(calls, plan, now=yesterday)

    if repository.has_billing_history(account_id, bill.period.billing_month):
        logger.debug(
            "Billing history already exists for %s - Period: %s",
            account_id, bill.period.billing_month
        )
        return False

    repository.save_billing_history(bill_to_history(account_id, bill, plan))
    return True


def bill_to_history(account_id: str, bill: MonthlyBill, plan: BillingPlan) -> BillingHistoryRecord:
    """Convert a monthly bill into a billing history record."""
    return BillingHistoryRecord(
        account_id=account_id,
        billing_month=bill.period.billing_month,
        billing_period_start=bill.period.start,
        billing_period_end=bill.period.end,
        total_minutes=bill.billable_minutes,
        included_minutes=bill.included_minutes,
        overage_minutes=bill.overage_minutes,
        monthly_charge=bill.monthly_charge,
        overage_charge=bill.overage_charge,
        total_charge=bill.total_monthly_bill,
        price_per_minute=plan.price_per_minute,
        overage_rate=bill.overage_rate
    )


def period_ended_yesterday(reset_day: int, now: datetime) -> bool:
    """Whether a billing period with this reset day ended on the previous day.

    True on the reset date, which for a reset day past the end of a short
    month is that month's last day.
    """
    yesterday = now - timedelta(days=1)
    period = current_billing_period(reset_day, yesterday)
    return period.end.date() == yesterday.date()
