"""ledgerchat agent tools — the three financial operations exposed to the model.

Each tool is a plain async function with dependency injection. This module
creates ToolDefinition entries and assembles them into a ToolServer bound
to one acting user.
"""

from __future__ import annotations

from typing import Any

from ledgerchat.agent.sdk_adapter import ToolDefinition, ToolName, ToolServer
from ledgerchat.agent.tools.accounts import get_account_balance
from ledgerchat.agent.tools.payments import transfer_money, withdraw_money
from ledgerchat.agent.tools.schemas import (
    GetAccountBalanceArgs,
    TransferMoneyArgs,
    WithdrawMoneyArgs,
)
from ledgerchat.ledger.engine import TransactionEngine


def create_tool_server(engine: TransactionEngine, user_id: str) -> ToolServer:
    """Create a ToolServer with all financial tools registered for ``user_id``.

    The acting user's id is bound via closures, so the model only supplies
    the parameters it controls (account ids, amounts, recipient).

    Parameters
    ----------
    engine : TransactionEngine
        Ledger engine every tool delegates to.
    user_id : str
        Identity of the caller; never taken from model output.
    """
    server = ToolServer("ledgerchat")

    # -- get_account_balance --------------------------------------------------
    async def _get_account_balance(args: GetAccountBalanceArgs) -> dict[str, Any]:
        return await get_account_balance(engine, user_id, args.account_id)

    server.register(ToolDefinition(
        name=ToolName.GET_ACCOUNT_BALANCE,
        description=(
            "Get the current balance of one of the user's accounts. Use this when "
            "the user asks about their balance or available funds."
        ),
        args_model=GetAccountBalanceArgs,
        handler=_get_account_balance,
    ))

    # -- withdraw_money -------------------------------------------------------
    async def _withdraw_money(args: WithdrawMoneyArgs) -> dict[str, Any]:
        return await withdraw_money(engine, user_id, args.account_id, args.amount)

    server.register(ToolDefinition(
        name=ToolName.WITHDRAW_MONEY,
        description=(
            "Withdraw money from one of the user's accounts. Use this when the user "
            "wants to take out cash or move money out to an external destination."
        ),
        args_model=WithdrawMoneyArgs,
        handler=_withdraw_money,
    ))

    # -- transfer_money -------------------------------------------------------
    async def _transfer_money(args: TransferMoneyArgs) -> dict[str, Any]:
        return await transfer_money(
            engine,
            user_id,
            args.from_account_id,
            args.amount,
            to_account_id=args.to_account_id,
            recipient_email=args.recipient_email,
            description=args.description,
        )

    server.register(ToolDefinition(
        name=ToolName.TRANSFER_MONEY,
        description=(
            "Transfer money between the user's own accounts (toAccountId) or to "
            "another user by e-mail (recipientEmail). Give exactly one of the two."
        ),
        args_model=TransferMoneyArgs,
        handler=_transfer_money,
    ))

    return server
