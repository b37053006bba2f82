"""
Data models for storage layer.

Defines call records and billing history entities.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class CallStatus(Enum):
    """Final state of a call as reported by the voice platform."""
    COMPLETED = "COMPLETED"
    TRANSFERRED = "TRANSFERRED"
    FAILED = "FAILED"
    IN_PROGRESS = "IN_PROGRESS"


@dataclass(frozen=True)
class CallRecord:
    """Immutable record of a single call.

    Only duration_seconds and start_time take part in billing; the other
    fields are carried along for display.
    """
    call_id: str
    duration_seconds: float
    start_time: datetime
    status: CallStatus = CallStatus.COMPLETED
    assistant_id: Optional[str] = None
    customer_phone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "call") -> "CallRecord":
        """Build a call record from an imported mapping.

        Args:
            data: Mapping with call_id, duration_seconds and start_time keys
            path: Location used in error messages

        Returns:
            Validated CallRecord

        Raises:
            ValueError: If a required field is missing or malformed
        """
        allowed_keys = {
            'call_id', 'duration_seconds', 'start_time',
            'status', 'assistant_id', 'customer_phone'
        }
        unknown_keys = set(data.keys()) - allowed_keys
        if unknown_keys:
            raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

        for key in ('call_id', 'duration_seconds', 'start_time'):
            if key not in data:
                raise ValueError(f"Missing required '{key}' in {path}")

        duration = data['duration_seconds']
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration < 0:
            raise ValueError(f"'duration_seconds' in {path} must be a number >= 0")

        start_time = data['start_time']
        if isinstance(start_time, str):
            try:
                start_time = parse_timestamp(start_time)
            except ValueError:
                raise ValueError(f"'start_time' in {path} is not an ISO-8601 timestamp")
        elif not isinstance(start_time, datetime):
            raise ValueError(f"'start_time' in {path} must be a timestamp")

        status_str = str(data.get('status', CallStatus.COMPLETED.value))
        try:
            status = CallStatus(status_str.upper())
        except ValueError:
            valid = [status.value for status in CallStatus]
            raise ValueError(f"'status' in {path} must be one of: {valid}")

        return cls(
            call_id=str(data['call_id']),
            duration_seconds=duration,
            start_time=start_time,
            status=status,
            assistant_id=data.get('assistant_id'),
            customer_phone=data.get('customer_phone')
        )


@dataclass(frozen=True)
class BillingHistoryRecord:
    """Snapshot of a closed billing period for one account."""
    account_id: str
    billing_month: str  # "YYYY-MM" of the period start
    billing_period_start: datetime
    billing_period_end: datetime
    total_minutes: int
    included_minutes: int
    overage_minutes: int
    monthly_charge: float
    overage_charge: float
    total_charge: float
    price_per_minute: float
    overage_rate: float


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing 'Z' for UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)
