"""
Unit tests for storage layer.

Tests schema creation, call insertion, range queries and billing history.
"""

import os
import sqlite3
import tempfile
from datetime import datetime, timezone

import pytest

from call_billing.storage.db import get_connection
from call_billing.storage.models import BillingHistoryRecord, CallRecord, CallStatus
from call_billing.storage.repository import (
    CallRepository,
    initialize_schema,
    insert_calls
)


@pytest.fixture
def db_path():
    """Initialized database in a temporary directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        path = os.path.join(temp_dir, "test.db")
        initialize_schema(path)
        yield path


def _history(month: str, total_minutes: int = 120) -> BillingHistoryRecord:
    year, mon = (int(part) for part in month.split("-"))
    return BillingHistoryRecord(
        account_id="acme",
        billing_month=month,
        billing_period_start=datetime(year, mon, 1),
        billing_period_end=datetime(year, mon, 28, 23, 59, 59),
        total_minutes=total_minutes,
        included_minutes=100,
        overage_minutes=max(0, total_minutes - 100),
        monthly_charge=50.0,
        overage_charge=max(0, total_minutes - 100) * 0.5,
        total_charge=50.0 + max(0, total_minutes - 100) * 0.5,
        price_per_minute=0.0,
        overage_rate=0.5
    )


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self, db_path):
        """Verify tables are created correctly."""
        conn = get_connection(db_path)
        try:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
            )
            tables = [row[0] for row in cursor.fetchall()]
            assert "call_record" in tables
            assert "billing_history" in tables

            cursor = conn.execute("PRAGMA table_info(call_record)")
            column_names = [col[1] for col in cursor.fetchall()]
            assert column_names == [
                'id', 'call_id', 'account_id', 'duration_seconds', 'start_time',
                'status', 'assistant_id', 'customer_phone'
            ]
        finally:
            conn.close()

    def test_schema_is_idempotent(self, db_path):
        initialize_schema(db_path)
        initialize_schema(db_path)

    def test_foreign_keys_enabled(self, db_path):
        conn = get_connection(db_path)
        try:
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        finally:
            conn.close()


class TestCallInsertion:
    """Test call insertion operations."""

    def _stored(self, db_path, account_id="acme"):
        return CallRepository(db_path).get_calls(account_id, days=0)

    def test_insert_single_call(self, db_path):
        call = CallRecord(
            call_id="call_1",
            duration_seconds=95,
            start_time=datetime(2026, 10, 1, 12, 0, 0),
            status=CallStatus.TRANSFERRED,
            assistant_id="asst_1",
            customer_phone="+15550100"
        )

        assert insert_calls([call], "acme", db_path) == 1

        assert self._stored(db_path) == [call]

    def test_insert_multiple_calls(self, db_path):
        calls = [
            CallRecord("b", 90, datetime(2026, 10, 1, 12, 5)),
            CallRecord("a", 30, datetime(2026, 10, 1, 12, 0)),
        ]

        assert insert_calls(calls, "acme", db_path) == 2

        stored = self._stored(db_path)
        assert [c.call_id for c in stored] == ["a", "b"]  # Oldest first

    def test_insert_empty_list(self, db_path):
        assert insert_calls([], "acme", db_path) == 0
        assert self._stored(db_path) == []

    def test_duplicate_call_rolls_back_batch(self, db_path):
        calls = [
            CallRecord("a", 30, datetime(2026, 10, 1, 12, 0)),
            CallRecord("a", 90, datetime(2026, 10, 1, 12, 5)),
        ]

        with pytest.raises(sqlite3.IntegrityError):
            insert_calls(calls, "acme", db_path)

        assert self._stored(db_path) == []

    def test_aware_start_time_stored_as_local(self, db_path):
        start = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
        insert_calls([CallRecord("a", 30, start)], "acme", db_path)

        stored = self._stored(db_path)[0]
        assert stored.start_time.tzinfo is None
        assert stored.start_time == start.astimezone().replace(tzinfo=None)

    def test_missing_table_raises_operational_error(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "empty.db")
            with pytest.raises(sqlite3.OperationalError, match="no such table"):
                CallRepository(path).get_calls("acme", days=0)


class TestCallRepository:
    """Test account-scoped range queries."""

    NOW = datetime(2026, 10, 18, 15, 0)

    @pytest.fixture
    def repository(self, db_path):
        insert_calls([
            CallRecord("sep_old", 60, datetime(2026, 9, 1, 9, 0), assistant_id="x"),
            CallRecord("sep_late", 60, datetime(2026, 9, 30, 23, 0), assistant_id="y"),
            CallRecord("oct_first", 60, datetime(2026, 10, 1, 0, 0), assistant_id="x"),
            CallRecord("oct_recent", 60, datetime(2026, 10, 17, 10, 0), assistant_id="x"),
        ], "acme", db_path)
        insert_calls([
            CallRecord("other", 60, datetime(2026, 10, 17, 10, 0)),
        ], "globex", db_path)
        return CallRepository(db_path)

    def _ids(self, calls):
        return [c.call_id for c in calls]

    def test_default_window_is_current_month(self, repository):
        calls = repository.get_calls("acme", now=self.NOW)
        assert self._ids(calls) == ["oct_first", "oct_recent"]

    def test_zero_days_is_all_time(self, repository):
        calls = repository.get_calls("acme", days=0, now=self.NOW)
        assert self._ids(calls) == ["sep_old", "sep_late", "oct_first", "oct_recent"]

    def test_day_count(self, repository):
        calls = repository.get_calls("acme", days=18, now=self.NOW)
        assert self._ids(calls) == ["sep_late", "oct_first", "oct_recent"]

    def test_explicit_bounds(self, repository):
        calls = repository.get_calls(
            "acme",
            start=datetime(2026, 9, 30),
            end=datetime(2026, 10, 1, 0, 0)
        )
        assert self._ids(calls) == ["sep_late", "oct_first"]

    def test_assistant_filter(self, repository):
        calls = repository.get_calls("acme", days=0, assistant_id="y")
        assert self._ids(calls) == ["sep_late"]

    def test_accounts_are_isolated(self, repository):
        assert self._ids(repository.get_calls("globex", days=0)) == ["other"]
        assert repository.list_accounts() == ["acme", "globex"]


class TestBillingHistory:
    """Test billing history persistence."""

    def test_save_and_fetch(self, db_path):
        repository = CallRepository(db_path)
        record = _history("2026-09")

        repository.save_billing_history(record)

        assert repository.get_billing_history("acme") == [record]
        assert repository.has_billing_history("acme", "2026-09")
        assert not repository.has_billing_history("acme", "2026-08")

    def test_resave_updates_existing_month(self, db_path):
        repository = CallRepository(db_path)
        repository.save_billing_history(_history("2026-09", total_minutes=120))
        repository.save_billing_history(_history("2026-09", total_minutes=150))

        records = repository.get_billing_history("acme")
        assert len(records) == 1
        assert records[0].total_minutes == 150
        assert records[0].total_charge == 75.0

    def test_newest_month_first(self, db_path):
        repository = CallRepository(db_path)
        for month in ("2026-07", "2026-09", "2026-08"):
            repository.save_billing_history(_history(month))

        months = [r.billing_month for r in repository.get_billing_history("acme")]
        assert months == ["2026-09", "2026-08", "2026-07"]


class TestCallRecordFromDict:
    """Test building call records from imported mappings."""

    def test_minimal_mapping(self):
        call = CallRecord.from_dict({
            "call_id": 42,
            "duration_seconds": 61,
            "start_time": "2026-10-01T10:00:00"
        })
        assert call.call_id == "42"
        assert call.start_time == datetime(2026, 10, 1, 10, 0)
        assert call.status == CallStatus.COMPLETED

    def test_utc_suffix(self):
        call = CallRecord.from_dict({
            "call_id": "a", "duration_seconds": 0, "start_time": "2026-10-01T10:00:00Z"
        })
        assert call.start_time == datetime(2026, 10, 1, 10, 0, tzinfo=timezone.utc)

    def test_status_is_case_insensitive(self):
        call = CallRecord.from_dict({
            "call_id": "a", "duration_seconds": 5,
            "start_time": datetime(2026, 10, 1), "status": "transferred"
        })
        assert call.status == CallStatus.TRANSFERRED

    def test_negative_duration_raises_error(self):
        with pytest.raises(ValueError, match="'duration_seconds' in call must be a number >= 0"):
            CallRecord.from_dict({
                "call_id": "a", "duration_seconds": -1, "start_time": "2026-10-01T10:00:00"
            })

    def test_bad_timestamp_raises_error(self):
        with pytest.raises(ValueError, match="'start_time' in row is not an ISO-8601 timestamp"):
            CallRecord.from_dict(
                {"call_id": "a", "duration_seconds": 1, "start_time": "yesterday"},
                "row"
            )

    def test_unknown_status_raises_error(self):
        with pytest.raises(ValueError, match="'status' in call must be one of"):
            CallRecord.from_dict({
                "call_id": "a", "duration_seconds": 1,
                "start_time": "2026-10-01T10:00:00", "status": "ringing"
            })

    def test_unknown_key_raises_error(self):
        with pytest.raises(ValueError, match="Unknown keys in call"):
            CallRecord.from_dict({
                "call_id": "a", "duration_seconds": 1,
                "start_time": "2026-10-01T10:00:00", "cost": 0.3
            })
