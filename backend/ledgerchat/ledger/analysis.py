"""Spending analysis over the last six months of a user's ledger.

Aggregates income/expenses per month and per category, flags anomalous
transactions, and stores the result (optionally with AI-written
insights) as a Summary row that later grounds the chat assistant.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from ledgerchat.db.repositories import AccountRepo, SummaryRepo, TransactionRepo
from ledgerchat.errors import NotFoundError
from ledgerchat.ledger.money import CENT, ZERO

ANALYSIS_PERIOD = "last_6_months"
ANALYSIS_MONTHS = 6
# A transaction this many times above its category's average is anomalous.
ANOMALY_FACTOR = Decimal("2.5")


def months_before(moment: datetime, months: int) -> datetime:
    """Same day-of-month ``months`` earlier, clamped to the month's length."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


@dataclass
class Anomaly:
    transaction_id: str
    merchant: str
    amount: Decimal
    date: str
    reason: str


@dataclass
class SpendingAnalysis:
    start: datetime
    end: datetime
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    monthly: list[dict[str, Any]] = field(default_factory=list)
    categories: list[dict[str, Any]] = field(default_factory=list)
    anomalies: list[Anomaly] = field(default_factory=list)

    @property
    def net_change(self) -> Decimal:
        return self.total_income - self.total_expenses

    @property
    def top_category(self) -> str | None:
        return self.categories[0]["category"] if self.categories else None

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe view (money as 2-decimal strings) for prompts and responses."""
        return {
            "period": {"start": self.start.isoformat(), "end": self.end.isoformat()},
            "totalIncome": str(self.total_income),
            "totalExpenses": str(self.total_expenses),
            "netChange": str(self.net_change),
            "topCategory": self.top_category,
            "monthlyBreakdown": [
                {"month": m["month"], "income": str(m["income"]), "expenses": str(m["expenses"])}
                for m in self.monthly
            ],
            "categoryBreakdown": [
                {"category": c["category"], "total": str(c["total"])} for c in self.categories
            ],
            "anomalies": [
                {
                    "transactionId": a.transaction_id,
                    "merchant": a.merchant,
                    "amount": str(a.amount),
                    "date": a.date,
                    "reason": a.reason,
                }
                for a in self.anomalies
            ],
        }


def aggregate(transactions: list[dict[str, Any]], start: datetime, end: datetime) -> SpendingAnalysis:
    """Build monthly/category breakdowns and anomalies from ledger rows."""
    analysis = SpendingAnalysis(start=start, end=end)

    monthly: dict[str, dict[str, Decimal]] = defaultdict(
        lambda: {"income": ZERO, "expenses": ZERO}
    )
    by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
    category_stats: dict[str, list[Decimal]] = defaultdict(list)

    for tx in transactions:
        amount = tx["amount"]
        month = tx["date"][:7]
        if amount > 0:
            monthly[month]["income"] += amount
            analysis.total_income += amount
        elif amount < 0:
            monthly[month]["expenses"] += -amount
            analysis.total_expenses += -amount
            by_category[tx["category"]] += -amount
        category_stats[tx["category"]].append(abs(amount))

    analysis.monthly = [
        {"month": month, **totals} for month, totals in sorted(monthly.items())
    ]
    analysis.categories = [
        {"category": name, "total": total}
        for name, total in sorted(by_category.items(), key=lambda item: (-item[1], item[0]))
    ]

    for tx in transactions:
        amounts = category_stats[tx["category"]]
        average = sum(amounts, ZERO) / len(amounts)
        amount = abs(tx["amount"])
        if tx["is_anomaly"]:
            reason = "Flagged as anomaly"
        elif average > 0 and amount > average * ANOMALY_FACTOR:
            ratio = (amount / average).quantize(Decimal("0.1"))
            reason = f"{ratio}x higher than average {tx['category']} transaction"
        else:
            continue
        analysis.anomalies.append(Anomaly(
            transaction_id=tx["id"],
            merchant=tx["merchant"],
            amount=amount.quantize(CENT),
            date=tx["date"],
            reason=reason,
        ))

    return analysis


class SpendingAnalyzer:
    """Runs the six-month analysis for a user and stores summaries."""

    def __init__(
        self,
        accounts: AccountRepo,
        transactions: TransactionRepo,
        summaries: SummaryRepo,
    ) -> None:
        self._accounts = accounts
        self._transactions = transactions
        self._summaries = summaries

    def analyze(self, user_id: str, now: datetime | None = None) -> SpendingAnalysis:
        """Aggregate the user's last six months.

        Raises NotFoundError when the user has no accounts or no
        transactions inside the window.
        """
        end = now or datetime.now(timezone.utc)
        start = months_before(end, ANALYSIS_MONTHS)

        accounts = self._accounts.list_by_user(user_id)
        if not accounts:
            raise NotFoundError("No accounts found for this user")

        rows = self._transactions.query_for_accounts(
            [acc["id"] for acc in accounts], since=start,
        )
        if not rows:
            raise NotFoundError("No transactions found for analysis")

        return aggregate(rows, start, end)

    def store(
        self, user_id: str, analysis: SpendingAnalysis, insights: str | None = None,
    ) -> dict[str, Any]:
        """Persist the analysis as a Summary row."""
        return self._summaries.create(
            user_id=user_id,
            period=ANALYSIS_PERIOD,
            start_date=analysis.start,
            end_date=analysis.end,
            total_income=analysis.total_income,
            total_expenses=analysis.total_expenses,
            net_change=analysis.net_change,
            top_category=analysis.top_category,
            insights=insights,
        )
