"""ledgerchat agent client — wires together tools, prompts, and the completion adapter.

The LedgerChatAgent is the orchestrator for chat turns. A turn is a small
state machine:

    AWAITING_FIRST_COMPLETION -> DISPATCHING_TOOLS -> AWAITING_SECOND_COMPLETION -> DONE
                              \\-------------------(no tool calls)---------------->/

The first completion runs with tools enabled. Requested tools execute
against the ledger, and a second completion (tools declared but disabled)
narrates their outcomes. Each state carries its own failure policy:
an upstream failure before any tool ran aborts the turn, while one after
money has moved falls back to a narration built from the tool results.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ledgerchat.agent.prompts import (
    INSIGHTS_PROMPT_TEMPLATE,
    INSIGHTS_SYSTEM_PROMPT,
    build_system_prompt,
)
from ledgerchat.agent.sdk_adapter import (
    AnthropicCompletionClient,
    CompletionClient,
    CompletionResult,
    ToolServer,
    encode_tool_result,
)
from ledgerchat.agent.tools import create_tool_server
from ledgerchat.config import Settings
from ledgerchat.db.repositories import ChatMessageRepo, ChatSessionRepo
from ledgerchat.errors import NotFoundError, UpstreamServiceError, ValidationError
from ledgerchat.ledger.analysis import SpendingAnalysis
from ledgerchat.ledger.context import FinancialContextBuilder
from ledgerchat.ledger.engine import TransactionEngine
from ledgerchat.security import mask_id

logger = logging.getLogger(__name__)

SESSION_TITLE_CHARS = 100
COMPLETED_ACKNOWLEDGEMENT = "I completed your request."
NO_RESPONSE_APOLOGY = "I apologize, but I was unable to generate a response."


class TurnState(str, Enum):
    AWAITING_FIRST_COMPLETION = "awaiting_first_completion"
    DISPATCHING_TOOLS = "dispatching_tools"
    AWAITING_SECOND_COMPLETION = "awaiting_second_completion"
    DONE = "done"
    NARRATED_LOCALLY = "narrated_locally"


# Completion policy per state: whether tools may be requested, and whether a
# failure ends the turn. Once tools have run the turn always completes.
TOOL_CALLS_ALLOWED = frozenset({TurnState.AWAITING_FIRST_COMPLETION})
ABORT_ON_FAILURE = frozenset({TurnState.AWAITING_FIRST_COMPLETION})


@dataclass
class ToolInvocationResult:
    """One executed tool call within a turn (transient, never its own table)."""

    tool_name: str
    args: dict[str, Any]
    result: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"toolName": self.tool_name, "args": self.args, "result": self.result}


@dataclass
class ChatTurnResult:
    session_id: str
    message: dict[str, Any]
    tool_results: list[ToolInvocationResult] = field(default_factory=list)
    state: TurnState = TurnState.DONE


@dataclass
class Repositories:
    """Container for the chat transcript repositories used by the agent."""

    session_repo: ChatSessionRepo
    message_repo: ChatMessageRepo


def validate_chat_messages(messages: list[dict[str, Any]]) -> None:
    """Reject an empty conversation or one whose last entry is not the user's."""
    if not messages:
        raise ValidationError("messages array cannot be empty")
    if messages[-1].get("role") != "user":
        raise ValidationError("Last message must be from user")


def narrate_tool_results(results: list[ToolInvocationResult]) -> str:
    """Plain-text account of tool outcomes, used when narration is unavailable."""
    lines = []
    for item in results:
        if item.result.get("success"):
            data = item.result.get("data") or {}
            detail = data.get("message")
            if detail is None and "balance" in data:
                detail = f"{data.get('accountName', 'Account')} balance is ${data['balance']}"
            lines.append(f"- {item.tool_name}: {detail or 'done'}")
        else:
            lines.append(f"- {item.tool_name} failed: {item.result.get('error', 'unknown error')}")
    return "Here is what happened with your request:\n" + "\n".join(lines)


class LedgerChatAgent:
    """Central agent client for chat turns.

    Parameters
    ----------
    settings : Settings
        Application settings (API key, model, limits, timeouts).
    engine : TransactionEngine
        Ledger engine the tools delegate to.
    context_builder : FinancialContextBuilder
        Produces the grounding digest for each turn.
    repos : Repositories
        Chat session and message repositories.
    client : CompletionClient | None
        Completion backend; when omitted an AnthropicCompletionClient is
        built from ``settings`` if an API key is configured.
    """

    def __init__(
        self,
        settings: Settings,
        engine: TransactionEngine,
        context_builder: FinancialContextBuilder,
        repos: Repositories,
        client: CompletionClient | None = None,
    ) -> None:
        self._settings = settings
        self._engine = engine
        self._context_builder = context_builder
        self._repos = repos

        if client is not None:
            self._client: CompletionClient | None = client
        elif settings.ANTHROPIC_API_KEY:
            self._client = AnthropicCompletionClient(
                api_key=settings.ANTHROPIC_API_KEY,
                model=settings.ANTHROPIC_MODEL,
                max_tokens=settings.COMPLETION_MAX_TOKENS,
                timeout=settings.COMPLETION_TIMEOUT_SECONDS,
            )
        else:
            self._client = None

    def tool_server_for(self, user_id: str) -> ToolServer:
        """The tool server bound to one acting user."""
        return create_tool_server(self._engine, user_id)

    async def _complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: ToolServer | None,
        allow_tool_calls: bool,
    ) -> CompletionResult:
        if self._client is None:
            raise UpstreamServiceError("ANTHROPIC_API_KEY is not configured")
        try:
            return await asyncio.wait_for(
                self._client.complete(system, messages, tools, allow_tool_calls),
                timeout=self._settings.COMPLETION_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as exc:
            raise UpstreamServiceError("Completion service timed out") from exc

    async def _turn_completion(
        self,
        state: TurnState,
        system: str,
        messages: list[dict[str, Any]],
        tools: ToolServer,
    ) -> CompletionResult | None:
        """Run the completion owed in ``state``. None means the call failed
        in a state that does not abort the turn."""
        try:
            return await self._complete(
                system, messages, tools, allow_tool_calls=state in TOOL_CALLS_ALLOWED,
            )
        except UpstreamServiceError as exc:
            if state in ABORT_ON_FAILURE:
                raise
            logger.warning("Completion failed in state %s: %s", state.value, exc)
            return None

    def _resolve_session(self, user_id: str, session_id: str | None, first_message: str) -> str:
        if not session_id:
            session = self._repos.session_repo.create(
                user_id, first_message[:SESSION_TITLE_CHARS],
            )
            return session["id"]

        session = self._repos.session_repo.get(session_id)
        if session is None or session["user_id"] != user_id:
            raise NotFoundError("Chat session not found")
        self._repos.session_repo.touch(session_id)
        return session_id

    async def chat(
        self,
        user_id: str,
        messages: list[dict[str, str]],
        session_id: str | None = None,
    ) -> ChatTurnResult:
        """Run one chat turn and persist its transcript entries.

        1. Resolves (or creates) the session
        2. Persists the user message
        3. Builds the financial context
        4. First completion with tools enabled
        5. Dispatches requested tools (failures become results, not errors)
        6. Second completion narrating the tool outcomes
        7. Persists and returns the assistant message

        Parameters
        ----------
        user_id : str
            The acting user, supplied by the identity provider.
        messages : list[dict]
            Conversation so far as ``{"role", "content"}``; the last entry
            must come from the user.
        session_id : str | None
            Existing session to continue, or None to start a new one.

        Raises
        ------
        ValidationError
            Empty message list or last message not from the user.
        NotFoundError
            ``session_id`` is unknown or belongs to another user.
        UpstreamServiceError
            The first completion failed; the user message stays persisted.
        """
        validate_chat_messages(messages)
        latest = messages[-1]
        if self._client is None:
            raise UpstreamServiceError("ANTHROPIC_API_KEY is not configured")

        session_id = self._resolve_session(user_id, session_id, latest["content"])
        self._repos.message_repo.append(session_id, "user", latest["content"])

        context = self._context_builder.build(user_id)
        system = build_system_prompt(context.to_prompt_text())
        history = [
            {"role": msg["role"], "content": msg["content"]}
            for msg in messages[-self._settings.CHAT_HISTORY_LIMIT:]
        ]
        tools = self.tool_server_for(user_id)

        state = TurnState.AWAITING_FIRST_COMPLETION
        first = await self._turn_completion(state, system, history, tools)
        tool_results: list[ToolInvocationResult] = []

        if first.tool_calls:
            state = TurnState.DISPATCHING_TOOLS
            tool_messages: list[dict[str, Any]] = []
            for call in first.tool_calls:
                result = await tools.call_tool(call.name, call.arguments)
                tool_results.append(ToolInvocationResult(call.name, call.arguments, result))
                tool_messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "name": call.name,
                    "content": encode_tool_result(result),
                })

            state = TurnState.AWAITING_SECOND_COMPLETION
            follow_up = history + [
                {
                    "role": "assistant",
                    "content": first.text,
                    "tool_calls": [
                        {"id": c.id, "name": c.name, "arguments": c.arguments}
                        for c in first.tool_calls
                    ],
                },
                *tool_messages,
            ]
            second = await self._turn_completion(state, system, follow_up, tools)
            if second is None:
                final_text = narrate_tool_results(tool_results)
                state = TurnState.NARRATED_LOCALLY
            else:
                if second.tool_calls:
                    logger.warning("Ignoring %d tool calls requested during narration", len(second.tool_calls))
                final_text = second.text.strip() or COMPLETED_ACKNOWLEDGEMENT
                state = TurnState.DONE
        else:
            final_text = first.text.strip() or NO_RESPONSE_APOLOGY
            state = TurnState.DONE

        saved = self._repos.message_repo.append(
            session_id,
            "assistant",
            final_text,
            tool_calls=[r.to_dict() for r in tool_results] or None,
        )
        logger.info(
            "Chat turn finished in session %s with %d tool calls", mask_id(session_id), len(tool_results),
        )

        return ChatTurnResult(
            session_id=session_id,
            message={
                "id": saved["id"],
                "role": "assistant",
                "content": final_text,
                "createdAt": saved["created_at"],
            },
            tool_results=tool_results,
            state=state,
        )

    async def generate_insights(self, analysis: SpendingAnalysis) -> str:
        """Ask the completion service for a written summary of an analysis.

        Raises UpstreamServiceError if the service fails.
        """
        prompt = INSIGHTS_PROMPT_TEMPLATE.format(
            financial_data=json.dumps(analysis.to_payload(), indent=2),
        )
        result = await self._complete(
            INSIGHTS_SYSTEM_PROMPT,
            [{"role": "user", "content": prompt}],
            tools=None,
            allow_tool_calls=False,
        )
        return result.text.strip() or "Unable to generate summary."
