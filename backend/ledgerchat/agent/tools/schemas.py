"""Argument models for the assistant's financial tools.

Each model is both the JSON schema shown to the model and the strict
validator applied to whatever arguments the model sends back: unknown
keys are rejected, strings must be strings and amounts must be numbers.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class GetAccountBalanceArgs(_ToolArgs):
    account_id: StrictStr | None = Field(
        default=None,
        alias="accountId",
        description=(
            "The account ID to check. Omit it to use the user's primary account "
            "(their oldest checking account)."
        ),
    )


class WithdrawMoneyArgs(_ToolArgs):
    account_id: StrictStr = Field(alias="accountId", description="The account ID to withdraw from.")
    amount: float = Field(
        strict=True,
        allow_inf_nan=False,
        description="The amount to withdraw in dollars, at most 2 decimal places.",
    )


class TransferMoneyArgs(_ToolArgs):
    from_account_id: StrictStr = Field(
        alias="fromAccountId", description="The account ID to transfer from.",
    )
    to_account_id: StrictStr | None = Field(
        default=None,
        alias="toAccountId",
        description="Destination account ID, only for transfers between the user's own accounts.",
    )
    recipient_email: StrictStr | None = Field(
        default=None,
        alias="recipientEmail",
        description="E-mail of another user to pay; the money lands in their savings account.",
    )
    amount: float = Field(
        strict=True,
        allow_inf_nan=False,
        description="The amount to transfer in dollars, at most 2 decimal places.",
    )
    description: StrictStr | None = Field(
        default=None, description="Optional note stored on both ledger entries.",
    )
