"""Money-moving agent tools: withdrawals and transfers.

Each function checks what it can locally (positive amount, exactly one
transfer target) before touching the engine, then converts any
``LedgerError`` into a failed outcome so the conversation can explain it.
"""

from __future__ import annotations

from typing import Any

from ledgerchat.errors import LedgerError
from ledgerchat.ledger.engine import TransactionEngine
from ledgerchat.ledger.money import format_usd, to_money

ASSISTANT_WITHDRAWAL_MERCHANT = "AI Assistant Withdrawal"
ASSISTANT_WITHDRAWAL_NOTE = "Withdrawal via AI chat"
ASSISTANT_TRANSFER_PREFIX = "AI Transfer"
ASSISTANT_TRANSFER_NOTE = "Transfer via AI chat"


def _failure(message: str) -> dict[str, Any]:
    return {"success": False, "error": message}


async def withdraw_money(
    engine: TransactionEngine,
    user_id: str,
    account_id: str,
    amount: float,
) -> dict[str, Any]:
    """Withdraw cash from one of the caller's accounts."""
    if amount <= 0:
        return _failure("Amount must be positive")

    try:
        value = to_money(amount)
        receipt = engine.withdraw(
            user_id,
            account_id,
            value,
            merchant=ASSISTANT_WITHDRAWAL_MERCHANT,
            description=ASSISTANT_WITHDRAWAL_NOTE,
        )
    except LedgerError as exc:
        return _failure(str(exc))

    return {
        "success": True,
        "data": {
            "message": f"Successfully withdrew {format_usd(value)}",
            "amount": str(value),
            "accountId": account_id,
            "newBalance": str(receipt.account["balance"]),
            "transactionId": receipt.transaction["id"],
        },
    }


async def transfer_money(
    engine: TransactionEngine,
    user_id: str,
    from_account_id: str,
    amount: float,
    to_account_id: str | None = None,
    recipient_email: str | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    """Transfer between own accounts or to another user by e-mail.

    Exactly one of ``to_account_id`` / ``recipient_email`` must be given.
    """
    if amount <= 0:
        return _failure("Amount must be positive")
    if bool(to_account_id) == bool(recipient_email):
        return _failure("Provide exactly one of toAccountId or recipientEmail")

    note = description or ASSISTANT_TRANSFER_NOTE
    try:
        value = to_money(amount)
        if to_account_id:
            receipt = engine.transfer_between_accounts(
                user_id, from_account_id, to_account_id, value,
                description=note, label_prefix=ASSISTANT_TRANSFER_PREFIX,
            )
        else:
            receipt = engine.transfer_to_recipient(
                user_id, from_account_id, recipient_email, value,  # type: ignore[arg-type]
                description=note, label_prefix=ASSISTANT_TRANSFER_PREFIX,
            )
    except LedgerError as exc:
        return _failure(str(exc))

    return {
        "success": True,
        "data": {
            "message": f"Successfully transferred {format_usd(value)} to {receipt.recipient_label}",
            "amount": str(value),
            "fromAccountId": from_account_id,
            "newBalance": str(receipt.source["balance"]),
        },
    }
