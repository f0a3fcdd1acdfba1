"""Financial context digest used to ground the chat model.

The builder returns a structured ``FinancialContext``; text is produced
only by ``to_prompt_text()`` when the system prompt is assembled.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from ledgerchat.db.repositories import AccountRepo, SummaryRepo, TransactionRepo
from ledgerchat.ledger.money import ZERO, format_usd

INSIGHT_EXCERPT_CHARS = 200
TOP_CATEGORY_COUNT = 3


@dataclass
class AccountLine:
    id: str
    name: str
    type: str
    balance: Decimal
    currency: str = "USD"


@dataclass
class ActivitySummary:
    transaction_count: int
    total_spent: Decimal
    total_income: Decimal
    window_days: int


@dataclass
class FinancialContext:
    """What the assistant is told about the user before each turn."""

    accounts: list[AccountLine] = field(default_factory=list)
    recent_activity: ActivitySummary | None = None
    top_categories: list[tuple[str, Decimal]] = field(default_factory=list)
    last_insight: str | None = None

    def to_prompt_text(self) -> str:
        """Render the multi-line digest. Empty context renders as ''."""
        parts: list[str] = []

        if self.accounts:
            listed = ", ".join(
                f"{acc.name} ({acc.type}, id {acc.id}): {format_usd(acc.balance)}"
                for acc in self.accounts
            )
            parts.append(f"User's accounts: {listed}")

        if self.recent_activity is not None:
            act = self.recent_activity
            parts.append(
                f"Recent activity (last {act.window_days} days): "
                f"{act.transaction_count} transactions, "
                f"{format_usd(act.total_spent)} spent, {format_usd(act.total_income)} income"
            )

        if self.top_categories:
            listed = ", ".join(f"{name}: {format_usd(total)}" for name, total in self.top_categories)
            parts.append(f"Top spending categories: {listed}")

        if self.last_insight:
            parts.append(f"Recent insights: {self.last_insight}")

        return "\n".join(parts)


def _excerpt(text: str, limit: int = INSIGHT_EXCERPT_CHARS) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


class FinancialContextBuilder:
    """Assembles a bounded digest of one user's accounts and recent activity.

    Parameters
    ----------
    accounts : AccountRepo
    transactions : TransactionRepo
    summaries : SummaryRepo
    window_days : int
        Look-back window for recent activity.
    max_transactions : int
        Cap on the number of most recent transactions considered.
    """

    def __init__(
        self,
        accounts: AccountRepo,
        transactions: TransactionRepo,
        summaries: SummaryRepo,
        window_days: int = 30,
        max_transactions: int = 20,
    ) -> None:
        self._accounts = accounts
        self._transactions = transactions
        self._summaries = summaries
        self._window_days = window_days
        self._max_transactions = max_transactions

    def build(self, user_id: str, now: datetime | None = None) -> FinancialContext:
        now = now or datetime.now(timezone.utc)
        context = FinancialContext()

        accounts = self._accounts.list_by_user(user_id)
        context.accounts = [
            AccountLine(
                id=acc["id"],
                name=acc["name"],
                type=acc["type"],
                balance=acc["balance"],
                currency=acc["currency"],
            )
            for acc in accounts
        ]

        recent = self._transactions.query_for_accounts(
            [acc["id"] for acc in accounts],
            since=now - timedelta(days=self._window_days),
            limit=self._max_transactions,
        )
        if recent:
            debits = [tx for tx in recent if tx["amount"] < 0]
            credits = [tx for tx in recent if tx["amount"] > 0]
            context.recent_activity = ActivitySummary(
                transaction_count=len(recent),
                total_spent=sum((-tx["amount"] for tx in debits), ZERO),
                total_income=sum((tx["amount"] for tx in credits), ZERO),
                window_days=self._window_days,
            )

            by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
            for tx in debits:
                if tx["category"]:
                    by_category[tx["category"]] += -tx["amount"]
            ranked = sorted(by_category.items(), key=lambda item: (-item[1], item[0]))
            context.top_categories = ranked[:TOP_CATEGORY_COUNT]

        summary = self._summaries.latest(user_id)
        if summary and summary.get("insights"):
            context.last_insight = _excerpt(summary["insights"])

        return context
