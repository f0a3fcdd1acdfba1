"""Balance lookup agent tool.

Plain async function with dependency injection; the tool server binds
the engine and the acting user's id. Returns the normalized
``{success, data?, error?}`` outcome and never raises for ledger errors.
"""

from __future__ import annotations

from typing import Any

from ledgerchat.errors import LedgerError
from ledgerchat.ledger.engine import TransactionEngine


async def get_account_balance(
    engine: TransactionEngine,
    user_id: str,
    account_id: str | None = None,
) -> dict[str, Any]:
    """Report the balance of one of the caller's accounts.

    Parameters
    ----------
    engine : TransactionEngine
        Injected engine; performs the ownership check.
    user_id : str
        The acting user (bound by the tool server, never model-supplied).
    account_id : str | None
        Account to inspect; None selects the primary account.

    Returns
    -------
    dict
        ``{"success": True, "data": {...}}`` with id, name, type, balance
        and currency, or ``{"success": False, "error": "..."}``.
    """
    try:
        account = engine.get_balance(user_id, account_id)
    except LedgerError as exc:
        return {"success": False, "error": str(exc)}

    return {
        "success": True,
        "data": {
            "accountId": account["id"],
            "accountName": account["name"],
            "accountType": account["type"],
            "balance": str(account["balance"]),
            "currency": account["currency"],
        },
    }
