"""SQLite database schema and connection manager for ledgerchat.

Provides the SQLiteDB class — the single entry point for all relational
persistence. Enables WAL mode and foreign keys on connect. Creates the
full schema (6 tables) on initialization.

Money columns are TEXT holding fixed two-decimal strings; repositories
convert them to ``decimal.Decimal`` on the way out.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Sequence


# Full schema for all 6 tables.
_SCHEMA_SQL = """
-- Users (identity is resolved elsewhere; this is the lookup table)
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL
);

-- Accounts
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    type TEXT NOT NULL CHECK(type IN ('checking','savings','investment')),
    balance TEXT NOT NULL DEFAULT '0.00',
    currency TEXT NOT NULL DEFAULT 'USD',
    created_at TEXT NOT NULL
);

-- Ledger transactions (insert-only)
CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
    date TEXT NOT NULL,
    amount TEXT NOT NULL,
    merchant TEXT NOT NULL,
    category TEXT NOT NULL,
    balance_after TEXT NOT NULL,
    is_anomaly INTEGER NOT NULL DEFAULT 0,
    description TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transactions_account_date
    ON transactions(account_id, date);

-- Stored spending analyses
CREATE TABLE IF NOT EXISTS summaries (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    period TEXT NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    total_income TEXT NOT NULL DEFAULT '0.00',
    total_expenses TEXT NOT NULL DEFAULT '0.00',
    net_change TEXT NOT NULL DEFAULT '0.00',
    top_category TEXT,
    insights TEXT,
    created_at TEXT NOT NULL
);

-- Chat sessions
CREATE TABLE IF NOT EXISTS chat_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Chat messages (append-only transcript)
CREATE TABLE IF NOT EXISTS chat_messages (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK(role IN ('user','assistant')),
    content TEXT NOT NULL,
    tool_calls TEXT,
    created_at TEXT NOT NULL
);
"""


class SQLiteDB:
    """SQLite connection manager with schema auto-creation.

    Usage:
        db = SQLiteDB("/path/to/db.sqlite")
        db.execute("INSERT INTO ...", params)
        rows = db.fetchall("SELECT * FROM ...")

    Multi-statement units of work go through ``transaction()``:
        with db.transaction():
            row = db.fetchone("SELECT balance FROM accounts WHERE id = ?", (acc_id,))
            db.execute("UPDATE accounts SET balance = ? WHERE id = ?", (...))

    The connection runs in autocommit mode, so a statement outside a
    transaction commits on its own. A single re-entrant lock guards the
    connection; ``transaction()`` holds it from ``BEGIN IMMEDIATE`` to
    ``COMMIT``, which serializes every read-check-write sequence against
    all other writers in the process, while SQLite's RESERVED lock does
    the same across processes.
    """

    def __init__(self, db_path: str, timeout: float = 30.0) -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(
            db_path,
            timeout=timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._configure()
        self._create_schema()

    def _configure(self) -> None:
        """Enable WAL mode and foreign keys."""
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

    def _create_schema(self) -> None:
        """Create all tables if they don't exist."""
        with self._lock:
            self._conn.executescript(_SCHEMA_SQL)

    @contextmanager
    def transaction(self) -> Iterator["SQLiteDB"]:
        """Run a block as one all-or-nothing unit holding the write lock.

        Nested calls join the outermost transaction. Any exception rolls
        back every statement issued since the outermost ``BEGIN``.
        """
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._depth = 0

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Execute a single SQL statement (committed unless inside a transaction)."""
        with self._lock:
            return self._conn.execute(sql, params)

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        """Execute a query and return the first row as a dict, or None."""
        with self._lock:
            row = self._conn.execute(sql, params).fetchone()
        if row is None:
            return None
        return dict(row)

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute a query and return all rows as a list of dicts."""
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "SQLiteDB":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
