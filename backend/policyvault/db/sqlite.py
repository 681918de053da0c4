"""SQLite storage for ingested policy records and scheduled messages.

SQLiteDB opens the database in WAL mode and creates one table per record
collection plus the scheduled_messages table when first constructed.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Sequence


# Reference columns are free-form: rows arrive with unresolved identifiers,
# so no foreign key constraints are declared.
_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    agent_name TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    first_name TEXT,
    date_of_birth TEXT,
    address TEXT,
    phone_number TEXT,
    state TEXT,
    zip_code TEXT,
    email TEXT,
    gender TEXT,
    user_type TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    account_name TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS policy_categories (
    id TEXT PRIMARY KEY,
    category_name TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS policy_carriers (
    id TEXT PRIMARY KEY,
    company_name TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS policy_infos (
    id TEXT PRIMARY KEY,
    policy_number TEXT,
    policy_start_date TEXT,
    policy_end_date TEXT,
    policy_category_ref TEXT,
    account_ref TEXT,
    carrier_ref TEXT,
    user_ref TEXT,
    policy_amount REAL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS scheduled_messages (
    id TEXT PRIMARY KEY,
    message TEXT,
    scheduled_time TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_users_first_name ON users(first_name);
CREATE INDEX IF NOT EXISTS idx_policy_infos_user_ref ON policy_infos(user_ref);
"""


class SQLiteDB:
    """SQLite connection manager with schema auto-creation.

    Usage:
        db = SQLiteDB("/path/to/db.sqlite")
        db.execute("INSERT INTO ...", params)
        rows = db.fetchall("SELECT * FROM ...")

    Or as a context manager:
        with SQLiteDB("/path/to/db.sqlite") as db:
            db.execute(...)

    The connection may be created on one thread and used on the event-loop
    thread; callers must not use it from several threads at once.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._configure()
        self._create_schema()

    def _configure(self) -> None:
        """Enable WAL mode."""
        self._conn.execute("PRAGMA journal_mode=WAL")

    def _create_schema(self) -> None:
        """Create all tables if they don't exist."""
        self._conn.executescript(_SCHEMA_SQL)
        self._conn.commit()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Execute a single SQL statement and commit."""
        try:
            cursor = self._conn.execute(sql, params)
        except sqlite3.Error:
            self._conn.rollback()
            raise
        self._conn.commit()
        return cursor

    def executemany(self, sql: str, params_seq: Sequence[Sequence[Any]]) -> sqlite3.Cursor:
        """Execute a SQL statement for each set of params in one transaction.

        Either every row is committed or, on error, none are.
        """
        try:
            cursor = self._conn.executemany(sql, params_seq)
        except sqlite3.Error:
            self._conn.rollback()
            raise
        self._conn.commit()
        return cursor

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        """Execute a query and return the first row as a dict, or None."""
        cursor = self._conn.execute(sql, params)
        row = cursor.fetchone()
        if row is None:
            return None
        return dict(row)

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute a query and return all rows as a list of dicts."""
        cursor = self._conn.execute(sql, params)
        return [dict(row) for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> "SQLiteDB":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
