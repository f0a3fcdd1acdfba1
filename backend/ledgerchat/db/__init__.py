"""ledgerchat persistence layer — SQLite ledger, chat transcript and summaries."""

from ledgerchat.db.models import (
    Account,
    ChatMessage,
    ChatSession,
    Summary,
    Transaction,
    User,
)
from ledgerchat.db.repositories import (
    AccountRepo,
    ChatMessageRepo,
    ChatSessionRepo,
    SummaryRepo,
    TransactionRepo,
    UserRepo,
)
from ledgerchat.db.sqlite import SQLiteDB

__all__ = [
    "SQLiteDB",
    "User",
    "Account",
    "Transaction",
    "Summary",
    "ChatSession",
    "ChatMessage",
    "UserRepo",
    "AccountRepo",
    "TransactionRepo",
    "SummaryRepo",
    "ChatSessionRepo",
    "ChatMessageRepo",
]
