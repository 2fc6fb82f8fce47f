"""Turn building for OpenCode sessions.

OpenCode keeps its history in a SQLite database (see
`session_lens.discovery.opencode`). Each ``message`` row carries a JSON
``data`` payload:
- role: "user" or "assistant"
- modelID, providerID: model used for an assistant reply
- tokens: {input, output, reasoning, cache: {read, write}}
- finish: stop reason

and owns ordered ``part`` rows, each a JSON object with a ``type``:
- text: {text, synthetic?, ignored?}
- reasoning: {text}
- tool: {callID, tool, state: {status, input, output | error}}
- step-finish: {reason, cost, tokens}
- file, snapshot, patch, step-start, ...: not rendered

Unlike the JSONL sources there is no stream to fold: every message becomes
exactly one turn.
"""

from dataclasses import dataclass, field
from typing import Any

from session_lens.models import (
    AssistantTurn,
    ContentBlock,
    TextContent,
    ThinkingBlock,
    ThinkingContent,
    TokenUsage,
    ToolCallContent,
    ToolCallWithResult,
    Turn,
    UserTurn,
)
from session_lens.parsers.base import IdSequence, optional_int
from session_lens.timeutil import epoch_ms_to_iso

INTERRUPTED_TOOL_RESULT = "[Tool execution was interrupted]"


@dataclass
class OpenCodeMessage:
    """A message row with its decoded payload and parts."""

    id: str
    data: dict[str, Any]
    time_created: float
    parts: list[dict[str, Any]] = field(default_factory=list)

    @property
    def role(self) -> str | None:
        return self.data.get("role")


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _is_visible_text(part: dict[str, Any]) -> bool:
    return part.get("type") == "text" and not part.get("ignored")


def collect_user_text(parts: list[dict[str, Any]]) -> str:
    return "\n".join(_str(part.get("text")) for part in parts if _is_visible_text(part))


def _tokens_to_usage(tokens: Any) -> TokenUsage | None:
    if not isinstance(tokens, dict):
        return None
    cache = tokens.get("cache")
    if not isinstance(cache, dict):
        cache = {}
    return TokenUsage(
        input_tokens=optional_int(tokens.get("input")) or 0,
        output_tokens=optional_int(tokens.get("output")) or 0,
        cache_read_tokens=optional_int(cache.get("read")),
        cache_creation_tokens=optional_int(cache.get("write")),
    )


def _step_finish_usage(parts: list[dict[str, Any]]) -> TokenUsage | None:
    for part in parts:
        if part.get("type") == "step-finish":
            return _tokens_to_usage(part.get("tokens"))
    return None


def build_tool_call(part: dict[str, Any], ids: IdSequence) -> ToolCallWithResult:
    """Build a tool call from a ``tool`` part.

    Calls still ``pending`` or ``running`` when the session was recorded are
    reported as interrupted errors.
    """
    state = part.get("state")
    if not isinstance(state, dict):
        state = {}
    raw_input = state.get("input")
    call = ToolCallWithResult(
        tool_use_id=_str(part.get("callID")) or ids.next("opencode-tool"),
        name=_str(part.get("tool")),
        input=raw_input if isinstance(raw_input, dict) else {},
    )

    status = state.get("status")
    if status == "completed":
        call.result = _str(state.get("output"))
    elif status == "error":
        call.result = _str(state.get("error"))
        call.is_error = True
    elif status in ("pending", "running"):
        call.result = INTERRUPTED_TOOL_RESULT
        call.is_error = True
    return call


def _content_block(part: dict[str, Any], ids: IdSequence) -> ContentBlock | None:
    part_type = part.get("type")
    if part_type == "text":
        return None if part.get("ignored") else TextContent(_str(part.get("text")))
    if part_type == "reasoning":
        return ThinkingContent(ThinkingBlock(_str(part.get("text"))))
    if part_type == "tool":
        return ToolCallContent(build_tool_call(part, ids))
    return None


def _assistant_turn(message: OpenCodeMessage, timestamp: str, ids: IdSequence) -> AssistantTurn:
    blocks: list[ContentBlock] = []
    for part in message.parts:
        block = _content_block(part, ids)
        if block is not None:
            blocks.append(block)
    usage = _tokens_to_usage(message.data.get("tokens")) or _step_finish_usage(message.parts)
    return AssistantTurn(
        uuid=message.id,
        timestamp=timestamp,
        model=_str(message.data.get("modelID")) or "unknown",
        content_blocks=blocks,
        usage=usage,
        stop_reason=_str(message.data.get("finish")) or None,
    )


def build_opencode_turns(messages: list[OpenCodeMessage]) -> list[Turn]:
    """Build one turn per message, in the order given.

    Args:
        messages: Messages ordered by creation time

    Returns:
        Turns; messages with an unknown role are dropped
    """
    ids = IdSequence()
    turns: list[Turn] = []

    for message in messages:
        timestamp = epoch_ms_to_iso(message.time_created)
        if message.role == "user":
            turns.append(
                UserTurn(uuid=message.id, timestamp=timestamp, text=collect_user_text(message.parts))
            )
        elif message.role == "assistant":
            turns.append(_assistant_turn(message, timestamp, ids))

    return turns
