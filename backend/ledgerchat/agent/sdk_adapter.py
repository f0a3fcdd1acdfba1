"""Adapter layer between ledgerchat and the completion service.

This module isolates all anthropic SDK specifics behind a small,
provider-neutral interface: the orchestrator speaks in plain message
dicts and ``CompletionResult`` values, and only ``AnthropicCompletionClient``
knows about content blocks, ``tool_use`` ids and ``tool_choice``.

Neutral message shapes:
    {"role": "user" | "assistant", "content": "text"}
    {"role": "assistant", "content": "text", "tool_calls": [{"id", "name", "arguments"}]}
    {"role": "tool", "tool_call_id": "...", "name": "...", "content": "json text"}
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

import anthropic
import pydantic
from pydantic import BaseModel

from ledgerchat.errors import UpstreamServiceError
from ledgerchat.security import sanitize_log_entry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Completion results
# ---------------------------------------------------------------------------

@dataclass
class ToolCallRequest:
    """A tool call the model asked for.

    Attributes
    ----------
    id : str
        Provider-assigned call id, echoed back with the tool outcome.
    name : str
        Requested tool name (untrusted until checked against ToolName).
    arguments : dict
        Raw JSON arguments (untrusted until validated).
    """

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class CompletionResult:
    """Text and/or tool-call requests returned by one completion call."""

    text: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Tool registration
# ---------------------------------------------------------------------------

class ToolName(str, Enum):
    """The closed set of tools the model may call."""

    GET_ACCOUNT_BALANCE = "get_account_balance"
    WITHDRAW_MONEY = "withdraw_money"
    TRANSFER_MONEY = "transfer_money"


ToolHandler = Callable[[Any], Awaitable[dict[str, Any]]]


@dataclass
class ToolDefinition:
    """A tool that can be called by the agent.

    Attributes
    ----------
    name : ToolName
        The tool name as exposed to the agent.
    description : str
        Description of what the tool does and when to use it.
    args_model : type[BaseModel]
        Pydantic model that both declares the JSON schema and validates
        arguments before the handler runs.
    handler : Callable
        Async function receiving the validated ``args_model`` instance.
    """

    name: ToolName
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for the tool's parameters."""
        return self.args_model.model_json_schema()


def _describe_validation_error(exc: pydantic.ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{location}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class ToolServer:
    """Registry of tools available to the agent for one acting user.

    Wraps tool definitions into the format expected by the Anthropic API
    and is the hard validation boundary: unknown names and arguments that
    do not match the declared schema are rejected before any handler runs.
    """

    def __init__(self, name: str, tools: list[ToolDefinition] | None = None) -> None:
        self.name = name
        self._tools: dict[ToolName, ToolDefinition] = {}
        if tools:
            for tool in tools:
                self._tools[tool.name] = tool

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool."""
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> ToolDefinition | None:
        """Look up a tool by name; names outside ToolName return None."""
        try:
            return self._tools.get(ToolName(name))
        except ValueError:
            return None

    def list_tools(self) -> list[str]:
        """Return all registered tool names."""
        return [tool_name.value for tool_name in self._tools]

    def to_anthropic_tools(self) -> list[dict[str, Any]]:
        """Convert tools to the Anthropic API tool format."""
        tools = []
        for td in self._tools.values():
            tools.append({
                "name": td.name.value,
                "description": td.description,
                "input_schema": td.parameters,
            })
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Validate and run a tool, always returning ``{success, data?, error?}``.

        Never raises: unknown tools, schema violations and handler errors
        all come back as ``success: False``.
        """
        started = time.perf_counter()
        result = await self._dispatch(name, arguments)
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(sanitize_log_entry(name, duration_ms, bool(result.get("success"))))
        return result

    async def _dispatch(self, name: str, arguments: Any) -> dict[str, Any]:
        tool_def = self.get_tool(name)
        if tool_def is None:
            return {"success": False, "error": f"Unknown tool: {name}"}

        if not isinstance(arguments, dict):
            return {"success": False, "error": f"Invalid arguments for {name}: expected an object"}
        try:
            args = tool_def.args_model.model_validate(arguments)
        except pydantic.ValidationError as exc:
            return {
                "success": False,
                "error": f"Invalid arguments for {name}: {_describe_validation_error(exc)}",
            }

        try:
            return await tool_def.handler(args)
        except Exception as exc:
            logger.exception("Tool %s raised", name)
            return {"success": False, "error": f"Tool error: {exc}"}


# ---------------------------------------------------------------------------
# Completion client protocol
# ---------------------------------------------------------------------------

class CompletionClient(Protocol):
    """Protocol for completion backends (anthropic, or fakes in tests)."""

    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: ToolServer | None = None,
        allow_tool_calls: bool = True,
    ) -> CompletionResult:
        """Run one completion. Raises UpstreamServiceError on any failure."""
        ...


# ---------------------------------------------------------------------------
# Anthropic implementation
# ---------------------------------------------------------------------------

def to_anthropic_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Translate neutral messages into Anthropic content-block messages.

    Consecutive ``tool`` entries are folded into one user turn of
    ``tool_result`` blocks, and leading assistant turns are dropped since
    a conversation must open with the user.
    """
    converted: list[dict[str, Any]] = []
    for msg in messages:
        role = msg["role"]
        if role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg["tool_call_id"],
                "content": msg["content"],
            }
            previous = converted[-1] if converted else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(b.get("type") == "tool_result" for b in previous["content"])
            ):
                previous["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
        elif role == "assistant" and msg.get("tool_calls"):
            blocks: list[dict[str, Any]] = []
            if msg.get("content"):
                blocks.append({"type": "text", "text": msg["content"]})
            for call in msg["tool_calls"]:
                blocks.append({
                    "type": "tool_use",
                    "id": call["id"],
                    "name": call["name"],
                    "input": call.get("arguments") or {},
                })
            converted.append({"role": "assistant", "content": blocks})
        else:
            converted.append({"role": role, "content": msg["content"]})

    while converted and converted[0]["role"] != "user":
        converted.pop(0)
    return converted


class AnthropicCompletionClient:
    """Completion client using the anthropic Python SDK's Messages API.

    One ``complete()`` call is one API request; the tool loop is driven
    by the orchestrator, not here.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-6",
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key, timeout=timeout, max_retries=1,
        )

    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: ToolServer | None = None,
        allow_tool_calls: bool = True,
    ) -> CompletionResult:
        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system,
            "messages": to_anthropic_messages(messages),
        }
        if tools is not None:
            request["tools"] = tools.to_anthropic_tools()
            if not allow_tool_calls:
                request["tool_choice"] = {"type": "none"}

        try:
            response = await self._client.messages.create(**request)
        except anthropic.APIError as exc:
            logger.warning("Completion request failed: %s", type(exc).__name__)
            raise UpstreamServiceError(f"Completion service error: {exc}") from exc

        content = getattr(response, "content", None)
        if not isinstance(content, list):
            raise UpstreamServiceError("Malformed completion response")

        result = CompletionResult()
        for block in content:
            if block.type == "text":
                result.text += block.text
            elif block.type == "tool_use":
                result.tool_calls.append(ToolCallRequest(
                    id=block.id,
                    name=block.name,
                    arguments=block.input if isinstance(block.input, dict) else {},
                ))
        return result


def encode_tool_result(result: dict[str, Any]) -> str:
    """Serialize a tool outcome for the ``tool`` message content."""
    return json.dumps(result, default=str)
