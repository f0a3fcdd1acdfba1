"""Pydantic models matching the SQLite table schemas.

These are shared between the DB layer and API responses. Money fields
are ``Decimal`` and serialize to JSON as two-decimal strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel

AccountType = Literal["checking", "savings", "investment"]


class User(BaseModel):
    """A person who owns accounts and chat sessions."""

    id: str
    name: str
    email: str
    created_at: datetime


class Account(BaseModel):
    """A ledger account. ``balance`` always equals the sum of its transactions."""

    id: str
    user_id: str
    name: str
    type: AccountType
    balance: Decimal
    currency: str = "USD"
    created_at: datetime


class Transaction(BaseModel):
    """An immutable ledger row. Positive amount = credit, negative = debit."""

    id: str
    account_id: str
    date: datetime
    amount: Decimal
    merchant: str
    category: str
    balance_after: Decimal
    is_anomaly: bool = False
    description: str | None = None
    created_at: datetime


class Summary(BaseModel):
    """A stored spending analysis with optional AI-written insights."""

    id: str
    user_id: str
    period: str  # last_6_months
    start_date: datetime
    end_date: datetime
    total_income: Decimal
    total_expenses: Decimal
    net_change: Decimal
    top_category: str | None = None
    insights: str | None = None
    created_at: datetime


class ChatSession(BaseModel):
    """A conversation between one user and the assistant."""

    id: str
    user_id: str
    title: str | None = None
    created_at: datetime
    updated_at: datetime


class ChatMessage(BaseModel):
    """One transcript entry in a chat session."""

    id: str
    session_id: str
    role: Literal["user", "assistant"]
    content: str
    tool_calls: list[dict[str, Any]] | None = None
    created_at: datetime
