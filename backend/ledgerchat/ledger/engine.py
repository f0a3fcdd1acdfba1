"""Transaction engine — every balance change in ledgerchat goes through here.

Each operation runs inside one ``SQLiteDB.transaction()`` unit: account
rows are re-read under the write lock, ownership and sufficiency are
checked, and the transaction rows plus balance updates are written
before the unit commits. A failure at any point rolls back every write
of the operation, so a transfer can never leave a debit without its
matching credit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ledgerchat.db.repositories import AccountRepo, TransactionRepo, UserRepo
from ledgerchat.db.sqlite import SQLiteDB
from ledgerchat.errors import (
    AuthorizationError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from ledgerchat.ledger.money import check_balance, require_positive
from ledgerchat.security import mask_id

logger = logging.getLogger(__name__)


@dataclass
class EntryReceipt:
    """Outcome of a single-account operation (deposit or withdrawal)."""

    account: dict[str, Any]
    transaction: dict[str, Any]


@dataclass
class TransferReceipt:
    """Outcome of a transfer: both accounts after the move and both ledger rows."""

    amount: Decimal
    source: dict[str, Any]
    destination: dict[str, Any]
    debit: dict[str, Any]
    credit: dict[str, Any]
    recipient_label: str


class TransactionEngine:
    """Atomic money-movement primitives over the ledger store.

    Parameters
    ----------
    db : SQLiteDB
        Connection manager providing ``transaction()``.
    users : UserRepo
        Used to resolve transfer recipients by e-mail and sender names.
    accounts : AccountRepo
        Account reads and balance writes.
    transactions : TransactionRepo
        Insert-only ledger rows.
    """

    def __init__(
        self,
        db: SQLiteDB,
        users: UserRepo,
        accounts: AccountRepo,
        transactions: TransactionRepo,
    ) -> None:
        self._db = db
        self._users = users
        self._accounts = accounts
        self._transactions = transactions

    # -- internal helpers ----------------------------------------------------

    def _owned_account(self, user_id: str, account_id: str, label: str = "Account") -> dict[str, Any]:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError(f"{label} not found")
        if account["user_id"] != user_id:
            raise AuthorizationError(f"{label} does not belong to you")
        return account

    def _apply(
        self,
        account: dict[str, Any],
        amount: Decimal,
        merchant: str,
        category: str,
        description: str | None,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Insert one signed ledger row and move the balance to match it."""
        new_balance = check_balance(account["balance"] + amount)
        row = self._transactions.insert(
            account_id=account["id"],
            amount=amount,
            merchant=merchant,
            category=category,
            balance_after=new_balance,
            description=description,
        )
        self._accounts.set_balance(account["id"], new_balance)
        updated = dict(account, balance=new_balance)
        return updated, row

    # -- public operations ---------------------------------------------------

    def get_balance(self, user_id: str, account_id: str | None = None) -> dict[str, Any]:
        """Return an owned account, or the user's primary account when no id is given.

        The ownership check is the same one every mutating operation applies.
        """
        if account_id:
            return self._owned_account(user_id, account_id)
        account = self._accounts.get_primary(user_id)
        if account is None:
            raise NotFoundError("You have no accounts")
        return account

    def deposit(
        self,
        user_id: str,
        account_id: str,
        amount: Any,
        description: str = "External deposit",
    ) -> EntryReceipt:
        """Credit an owned account.

        Raises ValidationError (amount <= 0), NotFoundError (no such account)
        or AuthorizationError (account owned by someone else).
        """
        value = require_positive(amount)
        with self._db.transaction():
            account = self._owned_account(user_id, account_id)
            updated, row = self._apply(account, value, "Deposit", "income", description)
        logger.info("deposit committed on account %s", mask_id(account_id))
        return EntryReceipt(account=updated, transaction=row)

    def withdraw(
        self,
        user_id: str,
        account_id: str,
        amount: Any,
        merchant: str = "Withdrawal",
        description: str | None = None,
    ) -> EntryReceipt:
        """Debit an owned account that holds at least ``amount``.

        Raises InsufficientFundsError when the balance is lower than the
        amount; the ledger is left untouched.
        """
        value = require_positive(amount)
        with self._db.transaction():
            account = self._owned_account(user_id, account_id)
            if account["balance"] < value:
                raise InsufficientFundsError("Insufficient funds")
            updated, row = self._apply(account, -value, merchant, "transfer", description)
        logger.info("withdrawal committed on account %s", mask_id(account_id))
        return EntryReceipt(account=updated, transaction=row)

    def transfer_between_accounts(
        self,
        user_id: str,
        from_account_id: str,
        to_account_id: str,
        amount: Any,
        description: str | None = None,
        label_prefix: str = "Transfer",
    ) -> TransferReceipt:
        """Move money between two accounts that both belong to ``user_id``."""
        value = require_positive(amount)
        if from_account_id == to_account_id:
            raise ValidationError("Source and destination accounts must differ")

        with self._db.transaction():
            source = self._owned_account(user_id, from_account_id, "Source account")
            destination = self._owned_account(user_id, to_account_id, "Destination account")
            receipt = self._move(
                source,
                destination,
                value,
                description,
                debit_label=f"{label_prefix} to {destination['name']} ({destination['type']})",
                credit_label=f"{label_prefix} from {source['name']}",
                recipient_label=f"{destination['name']} ({destination['type']})",
            )
        logger.info("transfer committed %s -> %s", mask_id(from_account_id), mask_id(to_account_id))
        return receipt

    def transfer_to_recipient(
        self,
        user_id: str,
        from_account_id: str,
        recipient_email: str,
        amount: Any,
        description: str | None = None,
        label_prefix: str = "Transfer",
    ) -> TransferReceipt:
        """Send money to another user's savings account, found by exact e-mail."""
        value = require_positive(amount)

        with self._db.transaction():
            source = self._owned_account(user_id, from_account_id, "Source account")
            recipient = self._users.get_by_email(recipient_email)
            if recipient is None:
                raise NotFoundError("Recipient user not found")
            if recipient["id"] == user_id:
                raise ValidationError(
                    "Use an account-to-account transfer to move money between your own accounts"
                )
            destination = self._accounts.get_by_user_and_type(recipient["id"], "savings")
            if destination is None:
                raise NotFoundError("Recipient has no savings account")

            sender = self._users.get(user_id)
            sender_name = sender["name"] if sender else "another user"
            receipt = self._move(
                source,
                destination,
                value,
                description,
                debit_label=f"{label_prefix} to {recipient['name']} ({recipient_email})",
                credit_label=f"{label_prefix} from {sender_name}",
                recipient_label=f"{recipient['name']} ({recipient_email})",
            )
        logger.info("recipient transfer committed from %s", mask_id(from_account_id))
        return receipt

    def _move(
        self,
        source: dict[str, Any],
        destination: dict[str, Any],
        amount: Decimal,
        description: str | None,
        debit_label: str,
        credit_label: str,
        recipient_label: str,
    ) -> TransferReceipt:
        """Debit ``source`` and credit ``destination``. Caller holds the transaction."""
        if source["balance"] < amount:
            raise InsufficientFundsError("Insufficient funds")
        new_source, debit = self._apply(source, -amount, debit_label, "transfer", description)
        new_destination, credit = self._apply(
            destination, amount, credit_label, "transfer", description,
        )
        return TransferReceipt(
            amount=amount,
            source=new_source,
            destination=new_destination,
            debit=debit,
            credit=credit,
            recipient_label=recipient_label,
        )
