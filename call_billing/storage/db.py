"""
SQLite connections for the call ledger.

One database file holds the imported call records of every account and
the billing history snapshots saved when a billing period closes.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "call_billing.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
