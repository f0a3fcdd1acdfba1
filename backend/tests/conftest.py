"""Shared fixtures for ledgerchat tests."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

import pytest

from ledgerchat.db.repositories import AccountRepo, TransactionRepo
from ledgerchat.db.sqlite import SQLiteDB
from ledgerchat.ledger.money import to_money


@pytest.fixture
def post_entry() -> Callable[..., dict[str, Any]]:
    """Write one signed ledger row straight to the store, bypassing the engine.

    Seeds dated spending history that deposit/withdraw cannot backdate.
    """

    def _post(
        db: SQLiteDB,
        account_id: str,
        amount: Any,
        merchant: str,
        category: str,
        date: datetime | None = None,
    ) -> dict[str, Any]:
        accounts, transactions = AccountRepo(db), TransactionRepo(db)
        value = to_money(amount)
        with db.transaction():
            account = accounts.get(account_id)
            assert account is not None, f"no account {account_id}"
            balance = account["balance"] + value
            row = transactions.insert(
                account_id=account_id,
                amount=value,
                merchant=merchant,
                category=category,
                balance_after=balance,
                date=date,
            )
            accounts.set_balance(account_id, balance)
        return row

    return _post
