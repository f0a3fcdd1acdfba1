"""Data access repositories over SQLite.

Each repo takes a SQLiteDB instance via dependency injection.
Repositories are the single entry point for all persistence — no direct
DB access from tools or API routes. Rows come back as dicts with money
columns already converted to ``Decimal``.

Repositories never open transactions themselves; ledger writes are
grouped by the transaction engine inside ``SQLiteDB.transaction()``.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from ledgerchat.db.sqlite import SQLiteDB
from ledgerchat.ledger.money import from_db, to_db


def _iso(value: datetime) -> str:
    """Serialize a datetime as a sortable UTC ISO 8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return _iso(datetime.now(timezone.utc))


def _new_id() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _account_row(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    row["balance"] = from_db(row["balance"])
    return row


def _transaction_row(row: dict[str, Any]) -> dict[str, Any]:
    row["amount"] = from_db(row["amount"])
    row["balance_after"] = from_db(row["balance_after"])
    row["is_anomaly"] = bool(row["is_anomaly"])
    return row


def _summary_row(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    for key in ("total_income", "total_expenses", "net_change"):
        row[key] = from_db(row[key])
    return row


def _message_row(row: dict[str, Any]) -> dict[str, Any]:
    raw = row.get("tool_calls")
    row["tool_calls"] = json.loads(raw) if raw else None
    return row


class UserRepo:
    """Repository for users (the identity lookup table)."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def create(self, name: str, email: str) -> dict[str, Any]:
        """Create a user and return it as a dict."""
        user_id = _new_id()
        self._db.execute(
            "INSERT INTO users (id, name, email, created_at) VALUES (?, ?, ?, ?)",
            (user_id, name, email, _now_iso()),
        )
        return self.get(user_id)  # type: ignore[return-value]

    def get(self, user_id: str) -> dict[str, Any] | None:
        """Get a user by ID."""
        return self._db.fetchone("SELECT * FROM users WHERE id = ?", (user_id,))

    def get_by_email(self, email: str) -> dict[str, Any] | None:
        """Get a user by exact e-mail match."""
        return self._db.fetchone("SELECT * FROM users WHERE email = ?", (email,))


class AccountRepo:
    """Repository for ledger accounts."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def create(
        self,
        user_id: str,
        name: str,
        account_type: str,
        currency: str = "USD",
    ) -> dict[str, Any]:
        """Create an empty account. Money only arrives through ledger entries."""
        account_id = _new_id()
        self._db.execute(
            "INSERT INTO accounts (id, user_id, name, type, balance, currency, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (account_id, user_id, name, account_type, "0.00", currency, _now_iso()),
        )
        return self.get(account_id)  # type: ignore[return-value]

    def get(self, account_id: str) -> dict[str, Any] | None:
        """Get an account by ID."""
        return _account_row(
            self._db.fetchone("SELECT * FROM accounts WHERE id = ?", (account_id,))
        )

    def list_by_user(self, user_id: str) -> list[dict[str, Any]]:
        """All accounts of a user, oldest first."""
        rows = self._db.fetchall(
            "SELECT * FROM accounts WHERE user_id = ? ORDER BY created_at, id",
            (user_id,),
        )
        return [_account_row(row) for row in rows]  # type: ignore[misc]

    def get_by_user_and_type(self, user_id: str, account_type: str) -> dict[str, Any] | None:
        """The user's oldest account of the given type."""
        return _account_row(self._db.fetchone(
            "SELECT * FROM accounts WHERE user_id = ? AND type = ? "
            "ORDER BY created_at, id LIMIT 1",
            (user_id, account_type),
        ))

    def get_primary(self, user_id: str) -> dict[str, Any] | None:
        """The user's primary account: oldest checking, else oldest of any type."""
        checking = self.get_by_user_and_type(user_id, "checking")
        if checking is not None:
            return checking
        return _account_row(self._db.fetchone(
            "SELECT * FROM accounts WHERE user_id = ? ORDER BY created_at, id LIMIT 1",
            (user_id,),
        ))

    def set_balance(self, account_id: str, balance: Decimal) -> None:
        """Overwrite the stored balance. Only the transaction engine calls this."""
        self._db.execute(
            "UPDATE accounts SET balance = ? WHERE id = ?",
            (to_db(balance), account_id),
        )


class TransactionRepo:
    """Repository for insert-only ledger transactions."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def insert(
        self,
        account_id: str,
        amount: Decimal,
        merchant: str,
        category: str,
        balance_after: Decimal,
        description: str | None = None,
        date: datetime | None = None,
        is_anomaly: bool = False,
    ) -> dict[str, Any]:
        """Insert one ledger row and return it."""
        tx_id = _new_id()
        now = _now_iso()
        self._db.execute(
            "INSERT INTO transactions "
            "(id, account_id, date, amount, merchant, category, balance_after, "
            "is_anomaly, description, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                tx_id, account_id, _iso(date) if date else now, to_db(amount),
                merchant, category, to_db(balance_after), int(is_anomaly),
                description, now,
            ),
        )
        return self.get(tx_id)  # type: ignore[return-value]

    def get(self, transaction_id: str) -> dict[str, Any] | None:
        """Get a transaction by ID."""
        row = self._db.fetchone("SELECT * FROM transactions WHERE id = ?", (transaction_id,))
        return _transaction_row(row) if row else None

    def list_by_account(
        self, account_id: str, limit: int = 50, offset: int = 0,
    ) -> list[dict[str, Any]]:
        """One page of an account's history, newest first."""
        rows = self._db.fetchall(
            "SELECT * FROM transactions WHERE account_id = ? "
            "ORDER BY date DESC, created_at DESC LIMIT ? OFFSET ?",
            (account_id, limit, offset),
        )
        return [_transaction_row(row) for row in rows]

    def count_by_account(self, account_id: str) -> int:
        """Number of ledger rows on an account."""
        row = self._db.fetchone(
            "SELECT COUNT(*) AS n FROM transactions WHERE account_id = ?", (account_id,)
        )
        return int(row["n"]) if row else 0

    def query_for_accounts(
        self,
        account_ids: Sequence[str],
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Transactions across several accounts, newest first.

        ``since`` keeps rows dated at or after the given instant; ``limit``
        caps the result after ordering.
        """
        if not account_ids:
            return []
        sql = f"SELECT * FROM transactions WHERE account_id IN ({_placeholders(account_ids)})"
        params: list[Any] = list(account_ids)

        if since is not None:
            sql += " AND date >= ?"
            params.append(_iso(since))

        sql += " ORDER BY date DESC, created_at DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [_transaction_row(row) for row in self._db.fetchall(sql, params)]


class SummaryRepo:
    """Repository for stored spending analyses."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def create(
        self,
        user_id: str,
        period: str,
        start_date: datetime,
        end_date: datetime,
        total_income: Decimal,
        total_expenses: Decimal,
        net_change: Decimal,
        top_category: str | None = None,
        insights: str | None = None,
    ) -> dict[str, Any]:
        """Store a summary and return it."""
        summary_id = _new_id()
        self._db.execute(
            "INSERT INTO summaries "
            "(id, user_id, period, start_date, end_date, total_income, "
            "total_expenses, net_change, top_category, insights, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                summary_id, user_id, period, _iso(start_date), _iso(end_date),
                to_db(total_income), to_db(total_expenses), to_db(net_change),
                top_category, insights, _now_iso(),
            ),
        )
        return _summary_row(  # type: ignore[return-value]
            self._db.fetchone("SELECT * FROM summaries WHERE id = ?", (summary_id,))
        )

    def latest(self, user_id: str) -> dict[str, Any] | None:
        """The most recently created summary for a user."""
        return _summary_row(self._db.fetchone(
            "SELECT * FROM summaries WHERE user_id = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (user_id,),
        ))


class ChatSessionRepo:
    """Repository for chat sessions."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def create(self, user_id: str, title: str | None) -> dict[str, Any]:
        """Create a session and return it."""
        session_id = _new_id()
        now = _now_iso()
        self._db.execute(
            "INSERT INTO chat_sessions (id, user_id, title, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (session_id, user_id, title, now, now),
        )
        return self.get(session_id)  # type: ignore[return-value]

    def get(self, session_id: str) -> dict[str, Any] | None:
        """Get a session by ID."""
        return self._db.fetchone("SELECT * FROM chat_sessions WHERE id = ?", (session_id,))

    def touch(self, session_id: str) -> dict[str, Any] | None:
        """Bump ``updated_at`` and return the session."""
        self._db.execute(
            "UPDATE chat_sessions SET updated_at = ? WHERE id = ?",
            (_now_iso(), session_id),
        )
        return self.get(session_id)

    def list_by_user(self, user_id: str) -> list[dict[str, Any]]:
        """A user's sessions sorted by updated_at descending."""
        return self._db.fetchall(
            "SELECT * FROM chat_sessions WHERE user_id = ? ORDER BY updated_at DESC",
            (user_id,),
        )


class ChatMessageRepo:
    """Repository for chat transcript messages."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def append(
        self,
        session_id: str,
        role: str,
        content: str,
        tool_calls: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Append a message to the session transcript."""
        msg_id = _new_id()
        self._db.execute(
            "INSERT INTO chat_messages (id, session_id, role, content, tool_calls, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                msg_id, session_id, role, content,
                json.dumps(tool_calls) if tool_calls else None,
                _now_iso(),
            ),
        )
        return _message_row(  # type: ignore[arg-type]
            self._db.fetchone("SELECT * FROM chat_messages WHERE id = ?", (msg_id,))
        )

    def get_history(self, session_id: str) -> list[dict[str, Any]]:
        """Get a session transcript in chronological order."""
        rows = self._db.fetchall(
            "SELECT * FROM chat_messages WHERE session_id = ? ORDER BY created_at, rowid",
            (session_id,),
        )
        return [_message_row(row) for row in rows]
