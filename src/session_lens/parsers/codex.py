"""Parser for OpenAI Codex CLI session files.

Codex CLI stores sessions as JSONL files under ~/.codex/sessions/ in one of
two layouts:
    <provider>/<date>/<uuid>.jsonl                (legacy)
    <yyyy>/<mm>/<dd>/rollout-<ts>-<uuid>.jsonl    (current)

The first line is a session header. Legacy headers are a flat object:
    {"uuid": ..., "cwd": ..., "timestamps": {"created": ..., "updated": ...},
     "model": ..., "provider_id": ..., "name": ...}
Current headers wrap the same data in an envelope:
    {"type": "session_meta", "payload": {"id": ..., "cwd": ..., "model_provider": ...}}

Every following line is an event. Legacy events are flat (``turn.started``,
``item.completed``, ``turn.completed``); current events are envelopes of type
``event_msg`` or ``response_item``. Both are normalized into `CodexEvent`
before turns are built.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from session_lens.jsonl import iterate_jsonl
from session_lens.models import (
    AssistantTurn,
    ContentBlock,
    ParseErrorTurn,
    TextContent,
    ThinkingBlock,
    ThinkingContent,
    TokenUsage,
    ToolCallContent,
    ToolCallWithResult,
    Turn,
    UserTurn,
)
from session_lens.parsers.base import (
    IdSequence,
    ParsedTranscript,
    Parser,
    make_parse_error,
    optional_int,
)
from session_lens.timeutil import epoch_seconds_to_iso, parse_iso

LEGACY_EVENT_TYPES = frozenset({"turn.started", "turn.completed", "item.completed", "thread.started"})

FIRST_MESSAGE_MAX_CHARS = 200

_USAGE_KEYS = ("input_tokens", "cached_input_tokens", "output_tokens")


@dataclass
class CodexSessionMeta:
    """Normalized session header."""

    uuid: str
    cwd: str
    created: float
    updated: float
    model: str
    provider_id: str
    name: str = ""


@dataclass
class CodexEvent:
    """One normalized event from either envelope format."""

    type: str
    item: dict[str, Any] | None = None
    usage: dict[str, Any] | None = None
    text: str = ""
    call_id: str | None = None
    tool_name: str | None = None
    tool_input: dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _iso_to_epoch(value: str) -> float:
    dt = parse_iso(value)
    return dt.timestamp() if dt else 0.0


def normalize_session_meta(parsed: Any, file_mtime: float | None = None) -> CodexSessionMeta | None:
    """Normalize a legacy or current session header.

    Args:
        parsed: Decoded first line of the session file
        file_mtime: File modification time, used as the update time for
            current-format headers

    Returns:
        CodexSessionMeta, or None when the line is not a session header
    """
    if not isinstance(parsed, dict):
        return None

    if isinstance(parsed.get("uuid"), str) and isinstance(parsed.get("cwd"), str) and "timestamps" in parsed:
        timestamps = parsed.get("timestamps")
        if not isinstance(timestamps, dict):
            timestamps = {}
        created = _number(timestamps.get("created"))
        updated = _number(timestamps.get("updated")) or created
        return CodexSessionMeta(
            uuid=parsed["uuid"],
            cwd=parsed["cwd"],
            created=created,
            updated=updated,
            model=_str(parsed.get("model")) or "unknown",
            provider_id=_str(parsed.get("provider_id")) or "unknown",
            name=_str(parsed.get("name")),
        )

    payload = parsed.get("payload")
    if (
        parsed.get("type") == "session_meta"
        and isinstance(payload, dict)
        and isinstance(payload.get("id"), str)
        and isinstance(payload.get("cwd"), str)
    ):
        iso_timestamp = _str(payload.get("timestamp")) or _str(parsed.get("timestamp"))
        created = _iso_to_epoch(iso_timestamp) if iso_timestamp else 0.0
        provider = _str(payload.get("model_provider"))
        return CodexSessionMeta(
            uuid=payload["id"],
            cwd=payload["cwd"],
            created=created,
            updated=file_mtime if file_mtime is not None else created,
            model=_str(payload.get("model")) or provider or "unknown",
            provider_id=provider or "unknown",
        )

    return None


def parse_arguments(args: Any) -> dict[str, Any]:
    """Decode tool call arguments, keeping undecodable strings as ``raw``."""
    if not args:
        return {}
    if isinstance(args, str):
        try:
            decoded = json.loads(args)
        except json.JSONDecodeError:
            return {"raw": args}
        return decoded if isinstance(decoded, dict) else {"raw": args}
    if isinstance(args, dict):
        return args
    return {}


def _normalize_event_msg(payload: dict[str, Any]) -> CodexEvent | None:
    payload_type = payload.get("type")
    text = _str(payload.get("message")) or _str(payload.get("text"))

    if payload_type == "task_started":
        return CodexEvent(type="turn.started")
    if payload_type == "user_message":
        return CodexEvent(type="user_message", text=text)
    if payload_type == "agent_message":
        return CodexEvent(type="item.completed", item={"type": "agent_message", "text": text})
    if payload_type == "agent_reasoning":
        return CodexEvent(
            type="item.completed",
            item={"type": "reasoning", "text": _str(payload.get("text"))},
        )
    if payload_type == "token_count":
        info = payload.get("info")
        source = payload
        if isinstance(info, dict) and isinstance(info.get("last_token_usage"), dict):
            source = info["last_token_usage"]
        if not any(key in source for key in _USAGE_KEYS):
            return None
        return CodexEvent(
            type="usage_update",
            usage={
                "input_tokens": source.get("input_tokens"),
                "cached_input_tokens": source.get("cached_input_tokens"),
                "output_tokens": source.get("output_tokens"),
            },
        )
    if payload_type == "task_complete":
        return CodexEvent(type="turn.completed")
    return None


def _normalize_response_item(payload: dict[str, Any]) -> CodexEvent | None:
    payload_type = payload.get("type")
    call_id = _str(payload.get("call_id")) or None

    if payload_type in ("function_call", "custom_tool_call"):
        arguments = payload.get("arguments")
        if arguments is None:
            arguments = payload.get("input")
        return CodexEvent(
            type="item.completed",
            call_id=call_id,
            tool_name=_str(payload.get("name")) or "unknown",
            tool_input=parse_arguments(arguments),
        )
    if payload_type in ("function_call_output", "custom_tool_call_output"):
        output = payload.get("output")
        if isinstance(output, dict):
            output = output.get("content")
        return CodexEvent(type="tool_output", call_id=call_id, text=_str(output))
    return None


def normalize_event(raw: Any) -> CodexEvent | None:
    """Normalize a decoded event line, or return None for lines to ignore."""
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        return None

    timestamp = _str(raw.get("timestamp"))
    event_type = raw["type"]

    if event_type in LEGACY_EVENT_TYPES:
        item = raw.get("item")
        usage = raw.get("usage")
        return CodexEvent(
            type=event_type,
            item=item if isinstance(item, dict) else None,
            usage=usage if isinstance(usage, dict) else None,
            text=_str(raw.get("text")),
            timestamp=timestamp,
        )

    payload = raw.get("payload")
    if not isinstance(payload, dict):
        return None

    if event_type == "event_msg":
        event = _normalize_event_msg(payload)
    elif event_type == "response_item":
        event = _normalize_response_item(payload)
    else:
        return None

    if event is not None:
        event.timestamp = timestamp
    return event


def _usage(raw: dict[str, Any]) -> TokenUsage:
    return TokenUsage(
        input_tokens=optional_int(raw.get("input_tokens")) or 0,
        output_tokens=optional_int(raw.get("output_tokens")) or 0,
        cache_read_tokens=optional_int(raw.get("cached_input_tokens")),
    )


class _CodexTurnBuilder:
    """State machine that folds normalized events into turns for one parse."""

    def __init__(self, model: str, fallback_timestamp: str) -> None:
        self.model = model
        self.fallback_timestamp = fallback_timestamp
        self.ids = IdSequence()
        self.turns: list[Turn] = []
        self.current: AssistantTurn | None = None
        self.turn_count = 0
        self.pending_calls: dict[str, ToolCallWithResult] = {}

    def flush(self) -> None:
        if self.current is not None and self.current.content_blocks:
            self.turns.append(self.current)
        self.current = None

    def add_error(self, error: ParseErrorTurn) -> None:
        self.flush()
        self.turns.append(error)

    def dispatch(self, event: CodexEvent) -> None:
        timestamp = event.timestamp or self.fallback_timestamp

        if event.type == "turn.started":
            self.flush()
            self.turn_count += 1
            if self.turn_count > 1:
                self.turns.append(UserTurn(uuid=self.ids.next("codex-user"), timestamp=timestamp, text=event.text))
        elif event.type == "turn.completed":
            if self.current is not None and event.usage:
                self.current.usage = _usage(event.usage)
            self.flush()
        elif event.type == "usage_update":
            if self.current is not None and event.usage:
                self.current.usage = _usage(event.usage)
        elif event.type == "item.completed":
            if event.tool_name:
                self._add_generic_tool_call(event, timestamp)
            elif event.item is not None:
                self._add_item(event.item, timestamp)
        elif event.type == "user_message":
            self._add_user_message(event, timestamp)
        elif event.type == "tool_output":
            call = self.pending_calls.get(event.call_id or "")
            if call is not None:
                call.result = event.text

    def _open_assistant(self, timestamp: str) -> AssistantTurn:
        if self.current is None:
            self.current = AssistantTurn(
                uuid=self.ids.next("codex-assistant"),
                timestamp=timestamp,
                model=self.model,
            )
        return self.current

    def _add_item(self, item: dict[str, Any], timestamp: str) -> None:
        current = self._open_assistant(timestamp)
        block = self._content_block(item)
        if block is not None:
            current.content_blocks.append(block)

    def _add_generic_tool_call(self, event: CodexEvent, timestamp: str) -> None:
        current = self._open_assistant(timestamp)
        call = ToolCallWithResult(
            tool_use_id=event.call_id or self.ids.next("codex-tool"),
            name=event.tool_name or "unknown",
            input=event.tool_input,
        )
        if event.call_id:
            self.pending_calls[event.call_id] = call
        current.content_blocks.append(ToolCallContent(call))

    def _add_user_message(self, event: CodexEvent, timestamp: str) -> None:
        # Only the placeholder opened by the turn that is starting gets filled
        last = self.turns[-1] if self.turns else None
        if self.current is None and isinstance(last, UserTurn) and not last.text:
            last.text = event.text
            return

        self.flush()
        if self.turn_count == 0:
            self.turn_count += 1
        self.turns.append(UserTurn(uuid=self.ids.next("codex-user"), timestamp=timestamp, text=event.text))

    def _content_block(self, item: dict[str, Any]) -> ContentBlock | None:
        item_type = item.get("type")
        if item_type == "agent_message":
            return TextContent(_str(item.get("text")))
        if item_type == "reasoning":
            return ThinkingContent(ThinkingBlock(_str(item.get("text"))))

        call = self._tool_call(item)
        return ToolCallContent(call) if call is not None else None

    def _tool_call(self, item: dict[str, Any]) -> ToolCallWithResult | None:
        item_type = item.get("type")
        if item_type == "command_execution":
            exit_code = item.get("exit_code")
            return ToolCallWithResult(
                tool_use_id=self.ids.next("codex-tool"),
                name="command_execution",
                input={"command": item.get("command")},
                result=_str(item.get("aggregated_output")),
                is_error=exit_code is not None and exit_code != 0,
            )
        if item_type == "file_change":
            return ToolCallWithResult(
                tool_use_id=self.ids.next("codex-tool"),
                name="file_change",
                input={"changes": item.get("changes")},
            )
        if item_type == "mcp_tool_call":
            arguments = item.get("arguments")
            return ToolCallWithResult(
                tool_use_id=self.ids.next("codex-tool"),
                name=_str(item.get("tool")),
                input=arguments if isinstance(arguments, dict) else {},
                result=_str(item.get("result")),
            )
        if item_type == "web_search":
            return ToolCallWithResult(
                tool_use_id=self.ids.next("codex-tool"),
                name="web_search",
                input={"query": item.get("query")},
            )
        return None


def build_codex_turns(
    events: list[CodexEvent | ParseErrorTurn],
    model: str,
    timestamp: str,
) -> list[Turn]:
    """Fold normalized events into turns.

    Args:
        events: Normalized events and parse errors in stream order
        model: Model name recorded on every assistant turn
        timestamp: Session creation time, used for events without their own

    Returns:
        Turns in stream order
    """
    builder = _CodexTurnBuilder(model, timestamp)
    for event in events:
        if isinstance(event, ParseErrorTurn):
            builder.add_error(event)
        else:
            builder.dispatch(event)
    builder.flush()
    return builder.turns


def extract_first_user_message(text: str) -> str | None:
    """Find the first user prompt in a session, skipping the header line."""
    for item in iterate_jsonl(text, start_at=1):
        event = item.parsed
        if not isinstance(event, dict):
            continue

        message = ""
        if event.get("type") == "item.completed":
            inner = event.get("item")
            if isinstance(inner, dict) and inner.get("type") == "agent_message":
                message = _str(inner.get("text"))
        elif event.get("type") == "event_msg":
            payload = event.get("payload")
            if isinstance(payload, dict) and payload.get("type") == "user_message":
                message = _str(payload.get("message")) or _str(payload.get("text"))

        if message:
            return message[:FIRST_MESSAGE_MAX_CHARS]
    return None


class CodexParser(Parser):
    """Parser for Codex CLI JSONL session files."""

    def parse(self, text: str) -> ParsedTranscript:
        meta: CodexSessionMeta | None = None
        events: list[CodexEvent | ParseErrorTurn] = []
        last_timestamp = ""

        def on_malformed(line: str, line_number: int, error: json.JSONDecodeError) -> None:
            events.append(make_parse_error(line_number, line, "json_parse", last_timestamp, str(error)))

        for item in iterate_jsonl(text, on_malformed=on_malformed):
            if item.line_number == 1 and meta is None:
                meta = normalize_session_meta(item.parsed)
                if meta is not None:
                    last_timestamp = epoch_seconds_to_iso(meta.created)
                    continue

            event = normalize_event(item.parsed)
            if event is None:
                continue
            if event.timestamp:
                last_timestamp = event.timestamp
            events.append(event)

        model = meta.model if meta else "unknown"
        created = epoch_seconds_to_iso(meta.created) if meta else ""
        turns = build_codex_turns(events, model, created)
        return ParsedTranscript(turns=turns, slug=meta.uuid if meta else None)
