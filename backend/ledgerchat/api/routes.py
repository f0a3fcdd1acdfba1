"""REST API routes for the ledgerchat backend.

All endpoints are under /api/v1. Routes receive dependencies
(repos, engine, agent) via FastAPI's dependency injection or app.state.
Ledger errors become HTTP errors carrying the error's own status code.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import AliasChoices, BaseModel, Field

from ledgerchat.agent.client import validate_chat_messages
from ledgerchat.db.models import Account, ChatMessage, ChatSession, Summary, Transaction, User
from ledgerchat.errors import LedgerError, UpstreamServiceError
from ledgerchat.ledger.analysis import ANALYSIS_MONTHS, aggregate, months_before
from ledgerchat.ledger.money import ZERO

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")

MAX_PAGE_SIZE = 100
RECENT_TRANSACTION_COUNT = 10


# -- Request models -----------------------------------------------------------

class DepositRequest(BaseModel):
    account_id: str = Field(alias="accountId")
    amount: Decimal


class WithdrawRequest(BaseModel):
    account_id: str = Field(alias="accountId")
    amount: Decimal


class TransferRequest(BaseModel):
    from_account_id: str = Field(alias="fromAccountId")
    amount: Decimal
    to_account_id: str | None = Field(default=None, alias="toAccountId")
    recipient_email: str | None = Field(default=None, alias="recipientEmail")
    description: str | None = None


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessageIn] = []
    session_id: str | None = Field(
        default=None, validation_alias=AliasChoices("session_id", "sessionId"),
    )


# -- Helpers ------------------------------------------------------------------

def _get_state(request: Request) -> Any:
    """Get app state (repos, engine, agent, settings)."""
    return request.app.state


def _http_error(exc: LedgerError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def _dump(model: type[BaseModel], row: dict[str, Any]) -> dict[str, Any]:
    """Validate a repository row and render it JSON-safe (money as strings)."""
    return model.model_validate(row).model_dump(mode="json")


def current_user(
    request: Request,
    x_user_id: str | None = Header(default=None),
) -> dict[str, Any]:
    """Resolve the acting user from the ``X-User-Id`` header."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = _get_state(request).user_repo.get(x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


# -- Identity and accounts ----------------------------------------------------

@router.get("/me")
async def get_me(
    request: Request,
    user: dict[str, Any] = Depends(current_user),
) -> dict[str, Any]:
    """The acting user and their accounts."""
    state = _get_state(request)
    accounts = state.account_repo.list_by_user(user["id"])
    return {
        "user": _dump(User, user),
        "accounts": [_dump(Account, acc) for acc in accounts],
    }


@router.get("/accounts")
async def list_accounts(
    request: Request,
    user: dict[str, Any] = Depends(current_user),
) -> list[dict[str, Any]]:
    """List the acting user's accounts, oldest first."""
    state = _get_state(request)
    return [_dump(Account, acc) for acc in state.account_repo.list_by_user(user["id"])]


@router.get("/accounts/{account_id}/transactions")
async def list_transactions(
    account_id: str,
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    user: dict[str, Any] = Depends(current_user),
) -> dict[str, Any]:
    """Paginated transaction history for one owned account, newest first."""
    state = _get_state(request)
    try:
        account = state.engine.get_balance(user["id"], account_id)
    except LedgerError as exc:
        raise _http_error(exc)

    total = state.transaction_repo.count_by_account(account["id"])
    rows = state.transaction_repo.list_by_account(
        account["id"], limit=limit, offset=(page - 1) * limit,
    )
    return {
        "data": [_dump(Transaction, row) for row in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
    }


# -- Money movement -----------------------------------------------------------

@router.post("/deposit")
async def deposit(
    body: DepositRequest,
    request: Request,
    user: dict[str, Any] = Depends(current_user),
) -> dict[str, Any]:
    """Deposit into one of the acting user's accounts."""
    state = _get_state(request)
    try:
        receipt = state.engine.deposit(user["id"], body.account_id, body.amount)
    except LedgerError as exc:
        raise _http_error(exc)
    return {
        "account": _dump(Account, receipt.account),
        "transaction": _dump(Transaction, receipt.transaction),
    }


@router.post("/withdraw")
async def withdraw(
    body: WithdrawRequest,
    request: Request,
    user: dict[str, Any] = Depends(current_user),
) -> dict[str, Any]:
    """Withdraw from one of the acting user's accounts."""
    state = _get_state(request)
    try:
        receipt = state.engine.withdraw(user["id"], body.account_id, body.amount)
    except LedgerError as exc:
        raise _http_error(exc)
    return {
        "account": _dump(Account, receipt.account),
        "transaction": _dump(Transaction, receipt.transaction),
    }


@router.post("/transfer")
async def transfer(
    body: TransferRequest,
    request: Request,
    user: dict[str, Any] = Depends(current_user),
) -> dict[str, Any]:
    """Transfer to an own account (toAccountId) or another user (recipientEmail)."""
    if bool(body.to_account_id) == bool(body.recipient_email):
        raise HTTPException(
            status_code=400, detail="Provide exactly one of toAccountId or recipientEmail",
        )

    state = _get_state(request)
    try:
        if body.to_account_id:
            receipt = state.engine.transfer_between_accounts(
                user["id"], body.from_account_id, body.to_account_id, body.amount,
                description=body.description,
            )
        else:
            receipt = state.engine.transfer_to_recipient(
                user["id"], body.from_account_id, body.recipient_email, body.amount,
                description=body.description,
            )
    except LedgerError as exc:
        raise _http_error(exc)

    return {
        "amount": str(receipt.amount),
        "recipient": receipt.recipient_label,
        "fromAccount": _dump(Account, receipt.source),
        "debit": _dump(Transaction, receipt.debit),
    }


# -- Dashboard and analysis ---------------------------------------------------

@router.get("/dashboard")
async def get_dashboard(
    request: Request,
    user: dict[str, Any] = Depends(current_user),
) -> dict[str, Any]:
    """Balances, six-month totals, recent activity and breakdowns."""
    state = _get_state(request)
    accounts = state.account_repo.list_by_user(user["id"])
    account_ids = [acc["id"] for acc in accounts]

    now = datetime.now(timezone.utc)
    start = months_before(now, ANALYSIS_MONTHS)
    window = state.transaction_repo.query_for_accounts(account_ids, since=start)
    recent = state.transaction_repo.query_for_accounts(
        account_ids, limit=RECENT_TRANSACTION_COUNT,
    )
    payload = aggregate(window, start, now).to_payload()

    return {
        "accounts": [_dump(Account, acc) for acc in accounts],
        "totalBalance": str(sum((acc["balance"] for acc in accounts), ZERO)),
        "totalIncome": payload["totalIncome"],
        "totalExpenses": payload["totalExpenses"],
        "netChange": payload["netChange"],
        "recentTransactions": [_dump(Transaction, row) for row in recent],
        "monthlyBreakdown": payload["monthlyBreakdown"],
        "categoryBreakdown": payload["categoryBreakdown"],
    }


@router.post("/analyze")
async def analyze_spending(
    request: Request,
    user: dict[str, Any] = Depends(current_user),
) -> dict[str, Any]:
    """Run the six-month spending analysis and store it as a summary.

    Insights are generated only when the chat agent is configured; a
    failed insights call still stores the numbers.
    """
    state = _get_state(request)
    try:
        analysis = state.analyzer.analyze(user["id"])
    except LedgerError as exc:
        raise _http_error(exc)

    insights = None
    if state.agent is not None:
        try:
            insights = await state.agent.generate_insights(analysis)
        except UpstreamServiceError as exc:
            logger.warning("Insights generation failed: %s", exc)

    summary = state.analyzer.store(user["id"], analysis, insights)
    return {
        "summary": _dump(Summary, summary),
        "analysis": analysis.to_payload(),
    }


# -- Chat ---------------------------------------------------------------------

@router.post("/chat")
async def chat(
    body: ChatRequest,
    request: Request,
    user: dict[str, Any] = Depends(current_user),
) -> dict[str, Any]:
    """Run one assistant turn, possibly executing financial tools."""
    messages = [msg.model_dump() for msg in body.messages]
    try:
        validate_chat_messages(messages)
    except LedgerError as exc:
        raise _http_error(exc)

    state = _get_state(request)
    if state.agent is None:
        raise HTTPException(status_code=503, detail="Chat assistant is not configured")

    try:
        turn = await state.agent.chat(user["id"], messages, session_id=body.session_id)
    except LedgerError as exc:
        raise _http_error(exc)

    response: dict[str, Any] = {
        "session_id": turn.session_id,
        "message": turn.message,
    }
    if turn.tool_results:
        response["tool_calls"] = [item.to_dict() for item in turn.tool_results]
    return response


@router.get("/chat/sessions")
async def list_chat_sessions(
    request: Request,
    user: dict[str, Any] = Depends(current_user),
) -> list[dict[str, Any]]:
    """The acting user's chat sessions, most recently updated first."""
    state = _get_state(request)
    return [_dump(ChatSession, row) for row in state.session_repo.list_by_user(user["id"])]


@router.get("/chat/sessions/{session_id}")
async def get_chat_session(
    session_id: str,
    request: Request,
    user: dict[str, Any] = Depends(current_user),
) -> dict[str, Any]:
    """A session and its transcript."""
    state = _get_state(request)
    session = state.session_repo.get(session_id)
    if session is None or session["user_id"] != user["id"]:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return {
        "session": _dump(ChatSession, session),
        "messages": [_dump(ChatMessage, row) for row in state.message_repo.get_history(session_id)],
    }
