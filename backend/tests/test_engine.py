"""Tests for ledgerchat.ledger.engine — atomic deposits, withdrawals and transfers."""

import threading
from decimal import Decimal
from pathlib import Path

import pytest

from ledgerchat.db.repositories import AccountRepo, TransactionRepo, UserRepo
from ledgerchat.db.sqlite import SQLiteDB
from ledgerchat.errors import (
    AuthorizationError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from ledgerchat.ledger.engine import TransactionEngine
from ledgerchat.ledger.money import MAX_BALANCE


@pytest.fixture
def db(tmp_path: Path) -> SQLiteDB:
    return SQLiteDB(str(tmp_path / "ledger.db"))


@pytest.fixture
def users(db: SQLiteDB) -> UserRepo:
    return UserRepo(db)


@pytest.fixture
def accounts(db: SQLiteDB) -> AccountRepo:
    return AccountRepo(db)


@pytest.fixture
def transactions(db: SQLiteDB) -> TransactionRepo:
    return TransactionRepo(db)


@pytest.fixture
def engine(db, users, accounts, transactions) -> TransactionEngine:
    return TransactionEngine(db, users, accounts, transactions)


@pytest.fixture
def ana(users: UserRepo) -> dict:
    return users.create("Ana Lima", "ana@example.com")


@pytest.fixture
def bo(users: UserRepo) -> dict:
    return users.create("Bo Chen", "bo@example.com")


def _account(engine, accounts, user, name, account_type, opening=None) -> dict:
    account = accounts.create(user["id"], name, account_type)
    if opening is not None:
        engine.deposit(user["id"], account["id"], opening, description="Opening balance")
    return accounts.get(account["id"])


def _balance(accounts: AccountRepo, account: dict) -> Decimal:
    return accounts.get(account["id"])["balance"]


# -- Balance lookup -----------------------------------------------------------

class TestGetBalance:

    def test_owned_account(self, engine, accounts, ana):
        checking = _account(engine, accounts, ana, "Checking", "checking", "100")
        assert engine.get_balance(ana["id"], checking["id"])["balance"] == Decimal("100.00")

    def test_primary_when_no_id(self, engine, accounts, ana):
        _account(engine, accounts, ana, "Savings", "savings", "5")
        checking = _account(engine, accounts, ana, "Checking", "checking", "7")
        assert engine.get_balance(ana["id"])["id"] == checking["id"]

    def test_other_users_account_is_forbidden(self, engine, accounts, ana, bo):
        theirs = _account(engine, accounts, bo, "Checking", "checking", "100")
        with pytest.raises(AuthorizationError):
            engine.get_balance(ana["id"], theirs["id"])

    def test_unknown_account(self, engine, ana):
        with pytest.raises(NotFoundError):
            engine.get_balance(ana["id"], "missing")

    def test_no_accounts(self, engine, ana):
        with pytest.raises(NotFoundError, match="no accounts"):
            engine.get_balance(ana["id"])


# -- Deposits and withdrawals ---------------------------------------------------

class TestDepositWithdraw:

    def test_deposit_then_overdrawn_withdrawal(self, engine, accounts, transactions, ana):
        """$100 + $50 deposit = $150; a $200 withdrawal then fails and changes nothing."""
        checking = _account(engine, accounts, ana, "Checking", "checking", "100.00")

        receipt = engine.deposit(ana["id"], checking["id"], Decimal("50.00"))
        assert receipt.account["balance"] == Decimal("150.00")
        assert receipt.transaction["amount"] == Decimal("50.00")
        assert receipt.transaction["balance_after"] == Decimal("150.00")
        assert receipt.transaction["category"] == "income"
        assert transactions.count_by_account(checking["id"]) == 2

        with pytest.raises(InsufficientFundsError):
            engine.withdraw(ana["id"], checking["id"], Decimal("200.00"))
        assert _balance(accounts, checking) == Decimal("150.00")
        assert transactions.count_by_account(checking["id"]) == 2

    def test_withdraw_records_debit(self, engine, accounts, ana):
        checking = _account(engine, accounts, ana, "Checking", "checking", "80")
        receipt = engine.withdraw(ana["id"], checking["id"], 30, merchant="ATM", description="Cash")
        assert receipt.account["balance"] == Decimal("50.00")
        assert receipt.transaction["amount"] == Decimal("-30.00")
        assert receipt.transaction["merchant"] == "ATM"
        assert receipt.transaction["description"] == "Cash"
        assert _balance(accounts, checking) == Decimal("50.00")

    def test_commit_logs_mask_account_id(self, engine, accounts, ana, caplog):
        checking = _account(engine, accounts, ana, "Checking", "checking", "20")
        with caplog.at_level("INFO", logger="ledgerchat.ledger.engine"):
            engine.withdraw(ana["id"], checking["id"], "5.00")
        assert "withdrawal committed" in caplog.text
        assert checking["id"] not in caplog.text
        assert checking["id"][-4:] in caplog.text

    def test_withdraw_entire_balance(self, engine, accounts, ana):
        checking = _account(engine, accounts, ana, "Checking", "checking", "20")
        engine.withdraw(ana["id"], checking["id"], "20.00")
        assert _balance(accounts, checking) == Decimal("0.00")

    @pytest.mark.parametrize("amount", [0, -5, "1.001"])
    def test_invalid_amounts(self, engine, accounts, ana, amount):
        checking = _account(engine, accounts, ana, "Checking", "checking", "20")
        with pytest.raises(ValidationError):
            engine.deposit(ana["id"], checking["id"], amount)
        with pytest.raises(ValidationError):
            engine.withdraw(ana["id"], checking["id"], amount)

    def test_cannot_touch_another_users_account(self, engine, accounts, ana, bo):
        theirs = _account(engine, accounts, bo, "Checking", "checking", "100")
        with pytest.raises(AuthorizationError):
            engine.withdraw(ana["id"], theirs["id"], 10)
        with pytest.raises(AuthorizationError):
            engine.deposit(ana["id"], theirs["id"], 10)
        assert _balance(accounts, theirs) == Decimal("100.00")

    def test_oversized_amount_is_a_validation_error(self, engine, accounts, transactions, ana):
        checking = _account(engine, accounts, ana, "Checking", "checking", "10.00")
        with pytest.raises(ValidationError, match="out of range"):
            engine.deposit(ana["id"], checking["id"], "99999999999999999999999999.99")
        assert _balance(accounts, checking) == Decimal("10.00")
        assert transactions.count_by_account(checking["id"]) == 1

    def test_deposit_past_max_balance_leaves_ledger_untouched(self, engine, accounts, transactions, ana):
        checking = _account(engine, accounts, ana, "Checking", "checking", MAX_BALANCE)
        with pytest.raises(ValidationError, match="maximum"):
            engine.deposit(ana["id"], checking["id"], "1.00")
        assert _balance(accounts, checking) == MAX_BALANCE
        assert transactions.count_by_account(checking["id"]) == 1

    def test_transfer_credit_past_max_balance_rolls_back_debit(self, engine, accounts, ana):
        source = _account(engine, accounts, ana, "Checking", "checking", "50.00")
        full = _account(engine, accounts, ana, "Savings", "savings", MAX_BALANCE)
        with pytest.raises(ValidationError):
            engine.transfer_between_accounts(ana["id"], source["id"], full["id"], "5.00")
        assert _balance(accounts, source) == Decimal("50.00")
        assert _balance(accounts, full) == MAX_BALANCE


# -- Transfers ----------------------------------------------------------------

class TestTransfers:

    def test_between_own_accounts(self, engine, accounts, transactions, ana):
        """$25 from A ($100) to B ($10) leaves A at $75 and B at $35."""
        a = _account(engine, accounts, ana, "Everyday", "checking", "100.00")
        b = _account(engine, accounts, ana, "Rainy Day", "savings", "10.00")

        receipt = engine.transfer_between_accounts(ana["id"], a["id"], b["id"], Decimal("25.00"))

        assert _balance(accounts, a) == Decimal("75.00")
        assert _balance(accounts, b) == Decimal("35.00")
        assert receipt.debit["amount"] == Decimal("-25.00")
        assert receipt.credit["amount"] == Decimal("25.00")
        assert receipt.debit["merchant"] == "Transfer to Rainy Day (savings)"
        assert receipt.credit["merchant"] == "Transfer from Everyday"
        assert transactions.count_by_account(a["id"]) == 2
        assert transactions.count_by_account(b["id"]) == 2

    def test_same_account_rejected(self, engine, accounts, ana):
        a = _account(engine, accounts, ana, "Everyday", "checking", "100")
        with pytest.raises(ValidationError):
            engine.transfer_between_accounts(ana["id"], a["id"], a["id"], 5)

    def test_destination_must_be_owned(self, engine, accounts, ana, bo):
        mine = _account(engine, accounts, ana, "Everyday", "checking", "100")
        theirs = _account(engine, accounts, bo, "Savings", "savings")
        with pytest.raises(AuthorizationError):
            engine.transfer_between_accounts(ana["id"], mine["id"], theirs["id"], 5)
        assert _balance(accounts, mine) == Decimal("100.00")

    def test_insufficient_funds_changes_nothing(self, engine, accounts, transactions, ana):
        a = _account(engine, accounts, ana, "Everyday", "checking", "10")
        b = _account(engine, accounts, ana, "Savings", "savings")
        with pytest.raises(InsufficientFundsError):
            engine.transfer_between_accounts(ana["id"], a["id"], b["id"], 10.01)
        assert _balance(accounts, a) == Decimal("10.00")
        assert _balance(accounts, b) == Decimal("0.00")
        assert transactions.count_by_account(b["id"]) == 0

    def test_to_recipient_lands_in_savings(self, engine, accounts, ana, bo):
        mine = _account(engine, accounts, ana, "Everyday", "checking", "100")
        _account(engine, accounts, bo, "Bo Checking", "checking")
        their_savings = _account(engine, accounts, bo, "Bo Savings", "savings")

        receipt = engine.transfer_to_recipient(ana["id"], mine["id"], "bo@example.com", "40")

        assert _balance(accounts, mine) == Decimal("60.00")
        assert _balance(accounts, their_savings) == Decimal("40.00")
        assert receipt.recipient_label == "Bo Chen (bo@example.com)"
        assert receipt.debit["merchant"] == "Transfer to Bo Chen (bo@example.com)"
        assert receipt.credit["merchant"] == "Transfer from Ana Lima"

    def test_recipient_label_prefix(self, engine, accounts, ana, bo):
        mine = _account(engine, accounts, ana, "Everyday", "checking", "100")
        _account(engine, accounts, bo, "Bo Savings", "savings")
        receipt = engine.transfer_to_recipient(
            ana["id"], mine["id"], "bo@example.com", 1, label_prefix="AI Transfer",
        )
        assert receipt.credit["merchant"] == "AI Transfer from Ana Lima"

    def test_unknown_recipient(self, engine, accounts, ana):
        mine = _account(engine, accounts, ana, "Everyday", "checking", "100")
        with pytest.raises(NotFoundError, match="Recipient user not found"):
            engine.transfer_to_recipient(ana["id"], mine["id"], "nobody@example.com", 5)

    def test_recipient_without_savings(self, engine, accounts, ana, bo):
        mine = _account(engine, accounts, ana, "Everyday", "checking", "100")
        _account(engine, accounts, bo, "Bo Checking", "checking")
        with pytest.raises(NotFoundError, match="no savings account"):
            engine.transfer_to_recipient(ana["id"], mine["id"], "bo@example.com", 5)
        assert _balance(accounts, mine) == Decimal("100.00")

    def test_self_as_recipient_rejected(self, engine, accounts, ana):
        mine = _account(engine, accounts, ana, "Everyday", "checking", "100")
        _account(engine, accounts, ana, "Savings", "savings")
        with pytest.raises(ValidationError):
            engine.transfer_to_recipient(ana["id"], mine["id"], "ana@example.com", 5)

    def test_failure_after_debit_rolls_back(self, engine, accounts, transactions, ana, monkeypatch):
        """A crash between the debit and the credit leaves both balances untouched."""
        a = _account(engine, accounts, ana, "Everyday", "checking", "100.00")
        b = _account(engine, accounts, ana, "Savings", "savings", "10.00")

        original_insert = transactions.insert
        calls = {"n": 0}

        def flaky_insert(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("disk full")
            return original_insert(*args, **kwargs)

        monkeypatch.setattr(transactions, "insert", flaky_insert)

        with pytest.raises(RuntimeError):
            engine.transfer_between_accounts(ana["id"], a["id"], b["id"], Decimal("25.00"))

        assert calls["n"] == 2
        assert _balance(accounts, a) == Decimal("100.00")
        assert _balance(accounts, b) == Decimal("10.00")
        assert transactions.count_by_account(a["id"]) == 1
        assert transactions.count_by_account(b["id"]) == 1


# -- Concurrency --------------------------------------------------------------

class TestConcurrency:

    def test_concurrent_withdrawals_cannot_overdraw(self, engine, accounts, transactions, ana):
        """Two $80 withdrawals against $100: exactly one succeeds."""
        checking = _account(engine, accounts, ana, "Checking", "checking", "100.00")
        barrier = threading.Barrier(2)
        outcomes: list[str] = []
        outcomes_lock = threading.Lock()

        def attempt() -> None:
            barrier.wait()
            try:
                engine.withdraw(ana["id"], checking["id"], Decimal("80.00"))
                outcome = "ok"
            except InsufficientFundsError:
                outcome = "insufficient"
            with outcomes_lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["insufficient", "ok"]
        assert _balance(accounts, checking) == Decimal("20.00")
        assert transactions.count_by_account(checking["id"]) == 2

    def test_many_small_withdrawals_keep_ledger_consistent(self, engine, accounts, transactions, ana):
        checking = _account(engine, accounts, ana, "Checking", "checking", "10.00")
        successes: list[int] = []

        def attempt() -> None:
            try:
                engine.withdraw(ana["id"], checking["id"], Decimal("1.00"))
                successes.append(1)
            except InsufficientFundsError:
                pass

        threads = [threading.Thread(target=attempt) for _ in range(15)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(successes) == 10
        assert _balance(accounts, checking) == Decimal("0.00")
        rows = transactions.list_by_account(checking["id"], limit=100)
        assert sum(row["amount"] for row in rows) == Decimal("0.00")
