"""
Repository pattern for data access.

Handles the call ledger and billing history tables.

Timestamps are stored as naive local ISO-8601 text so that range queries
can compare them as strings.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import BillingHistoryRecord, CallRecord, CallStatus

logger = logging.getLogger(__name__)

_CALL_COLUMNS = (
    "call_id, account_id, duration_seconds, start_time, "
    "status, assistant_id, customer_phone"
)

_HISTORY_COLUMNS = (
    "account_id, billing_month, billing_period_start, billing_period_end, "
    "total_minutes, included_minutes, overage_minutes, monthly_charge, "
    "overage_charge, total_charge, price_per_minute, overage_rate"
)


class CallRepository:
    """Repository for call records and billing history of all accounts."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_calls(
        self,
        account_id: str,
        days: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        assistant_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[CallRecord]:
        """Get calls of an account within a time window.

        When start is not given it is derived from days: None means the
        first of the current month, 0 means no lower bound and N means
        N days before now.

        Args:
            account_id: Account whose calls to load
            days: Optional number of days to look back
            start: Optional explicit lower bound (inclusive)
            end: Optional upper bound (inclusive)
            assistant_id: Optional filter for a specific assistant
            now: Current time; defaults to the local wall clock

        Returns:
            List of calls ordered by start time (oldest first)
        """
        if start is None:
            start = _days_to_start(days, now)

        query = f"SELECT {_CALL_COLUMNS} FROM call_record WHERE account_id = ?"
        params: list = [account_id]

        if start is not None:
            query += " AND start_time >= ?"
            params.append(_to_db_timestamp(start))
        if end is not None:
            query += " AND start_time <= ?"
            params.append(_to_db_timestamp(end))
        if assistant_id:
            query += " AND assistant_id = ?"
            params.append(assistant_id)

        query += " ORDER BY start_time ASC"

        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(query, params)
            return [_row_to_call(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def list_accounts(self) -> List[str]:
        """Account ids that have at least one recorded call."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT DISTINCT account_id FROM call_record ORDER BY account_id"
            )
            return [row[0] for row in cursor.fetchall()]
        finally:
            conn.close()

    def save_billing_history(self, record: BillingHistoryRecord) -> None:
        """Save a billing period snapshot, replacing any row for the same month.

        Args:
            record: Snapshot to store
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute(f"""
                INSERT INTO billing_history ({_HISTORY_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id, billing_month) DO UPDATE SET
                    billing_period_start = excluded.billing_period_start,
                    billing_period_end = excluded.billing_period_end,
                    total_minutes = excluded.total_minutes,
                    included_minutes = excluded.included_minutes,
                    overage_minutes = excluded.overage_minutes,
                    monthly_charge = excluded.monthly_charge,
                    overage_charge = excluded.overage_charge,
                    total_charge = excluded.total_charge,
                    price_per_minute = excluded.price_per_minute,
                    overage_rate = excluded.overage_rate
            """, (
                record.account_id,
                record.billing_month,
                _to_db_timestamp(record.billing_period_start),
                _to_db_timestamp(record.billing_period_end),
                record.total_minutes,
                record.included_minutes,
                record.overage_minutes,
                record.monthly_charge,
                record.overage_charge,
                record.total_charge,
                record.price_per_minute,
                record.overage_rate
            ))
            conn.commit()
        finally:
            conn.close()
        logger.info(
            "Saved billing history for %s - Period: %s",
            record.account_id, record.billing_month
        )

    def get_billing_history(
        self,
        account_id: str,
        billing_month: Optional[str] = None
    ) -> List[BillingHistoryRecord]:
        """Get billing history of an account, newest month first.

        Args:
            account_id: Account whose history to load
            billing_month: Optional 'YYYY-MM' to fetch a single month

        Returns:
            List of billing history records
        """
        query = f"SELECT {_HISTORY_COLUMNS} FROM billing_history WHERE account_id = ?"
        params = [account_id]
        if billing_month:
            query += " AND billing_month = ?"
            params.append(billing_month)
        query += " ORDER BY billing_month DESC"

        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(query, params)
            return [
                BillingHistoryRecord(
                    account_id=row[0],
                    billing_month=row[1],
                    billing_period_start=datetime.fromisoformat(row[2]),
                    billing_period_end=datetime.fromisoformat(row[3]),
                    total_minutes=row[4],
                    included_minutes=row[5],
                    overage_minutes=row[6],
                    monthly_charge=row[7],
                    overage_charge=row[8],
                    total_charge=row[9],
                    price_per_minute=row[10],
                    overage_rate=row[11]
                )
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()

    def has_billing_history(self, account_id: str, billing_month: str) -> bool:
        """Whether a snapshot exists for an account and month."""
        return bool(self.get_billing_history(account_id, billing_month))


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the call_record and billing_history tables if they don't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS call_record (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                call_id TEXT NOT NULL UNIQUE,
                account_id TEXT NOT NULL,
                duration_seconds REAL NOT NULL,
                start_time TEXT NOT NULL,
                status TEXT NOT NULL,
                assistant_id TEXT,
                customer_phone TEXT
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_call_record_account_start
            ON call_record (account_id, start_time)
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS billing_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                account_id TEXT NOT NULL,
                billing_month TEXT NOT NULL,
                billing_period_start TEXT NOT NULL,
                billing_period_end TEXT NOT NULL,
                total_minutes INTEGER NOT NULL,
                included_minutes INTEGER NOT NULL,
                overage_minutes INTEGER NOT NULL,
                monthly_charge REAL NOT NULL,
                overage_charge REAL NOT NULL,
                total_charge REAL NOT NULL,
                price_per_minute REAL NOT NULL,
                overage_rate REAL NOT NULL,
                UNIQUE (account_id, billing_month)
            )
        """)
        conn.commit()
    finally:
        conn.close()


def insert_calls(
    calls: Iterable[CallRecord],
    account_id: str,
    db_path: str = DEFAULT_DB_PATH
) -> int:
    """Insert multiple calls atomically.

    All calls are inserted in a single transaction; a duplicate call_id
    rolls back the whole batch.

    Args:
        calls: Calls to record
        account_id: Account the calls belong to
        db_path: Path to SQLite database file

    Returns:
        Number of calls inserted
    """
    rows = [_call_to_row(call, account_id) for call in calls]
    if not rows:
        return 0

    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN TRANSACTION")
        conn.executemany(
            f"INSERT INTO call_record ({_CALL_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            rows
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    logger.debug("Inserted %d call(s) for %s", len(rows), account_id)
    return len(rows)


def _days_to_start(days: Optional[int], now: Optional[datetime]) -> Optional[datetime]:
    if now is None:
        now = datetime.now()
    if days is None:
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if days == 0:
        return None
    return now - timedelta(days=days)


def _to_db_timestamp(ts: datetime) -> str:
    if ts.tzinfo is not None:
        ts = ts.astimezone().replace(tzinfo=None)
    return ts.isoformat()


def _call_to_row(call: CallRecord, account_id: str) -> tuple:
    return (
        call.call_id,
        account_id,
        call.duration_seconds,
        _to_db_timestamp(call.start_time),
        call.status.value,
        call.assistant_id,
        call.customer_phone
    )


def _row_to_call(row: tuple) -> CallRecord:
    return CallRecord(
        call_id=row[0],
        duration_seconds=row[2],
        start_time=datetime.fromisoformat(row[3]),
        status=CallStatus(row[4]),
        assistant_id=row[5],
        customer_phone=row[6]
    )
