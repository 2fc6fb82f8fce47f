"""Parser for Claude Code conversation transcripts.

Claude Code stores conversations as JSONL files at:
    ~/.claude/projects/<encoded-project-path>/<session-id>.jsonl

Each line is a JSON object with:
- type: "user", "assistant", "system", "progress", "summary", ...
- message.content: string or array of content blocks
- message.model / message.usage / message.stop_reason on assistant lines
- timestamp: ISO 8601 timestamp
- cwd, slug, gitBranch: session metadata repeated on most lines

A single assistant reply is usually spread over several lines (one per
content block). Consecutive assistant lines are folded into one turn; tool
results arrive on later user lines and are matched back to their call by id.
"""

import json
from dataclasses import dataclass
from typing import Any

from session_lens.jsonl import iterate_jsonl
from session_lens.markup import (
    extract_agent_id,
    is_skipped_user_text,
    parse_bash_envelope,
    parse_command_message,
    parse_ide_opened_file,
)
from session_lens.models import (
    AssistantTurn,
    Attachment,
    ParseErrorTurn,
    SystemTurn,
    TextContent,
    ThinkingBlock,
    ThinkingContent,
    TokenUsage,
    ToolCallContent,
    ToolCallWithResult,
    ToolResultImage,
    Turn,
    UserTurn,
)
from session_lens.parsers.base import ParsedTranscript, Parser, make_parse_error, optional_int

HIDDEN_TYPES = frozenset({"progress", "file-history-snapshot", "summary"})


@dataclass
class ClaudeRecord:
    """One decoded transcript line."""

    type: str
    line_number: int
    uuid: str = ""
    timestamp: str = ""
    is_meta: bool = False
    cwd: str = ""
    slug: str = ""
    git_branch: str = ""
    message: dict[str, Any] | None = None
    parent_tool_use_id: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def from_json(cls, obj: dict[str, Any], line_number: int) -> "ClaudeRecord":
        message = obj.get("message")
        data = obj.get("data")
        return cls(
            type=_str(obj.get("type")),
            line_number=line_number,
            uuid=_str(obj.get("uuid")),
            timestamp=_str(obj.get("timestamp")),
            is_meta=bool(obj.get("isMeta")),
            cwd=_str(obj.get("cwd")),
            slug=_str(obj.get("slug")),
            git_branch=_str(obj.get("gitBranch")),
            message=message if isinstance(message, dict) else None,
            parent_tool_use_id=obj.get("parentToolUseID") or None,
            data=data if isinstance(data, dict) else None,
        )

    @property
    def content(self) -> Any:
        return self.message.get("content") if self.message else None

    @property
    def is_displayable(self) -> bool:
        return self.type not in HIDDEN_TYPES and not self.is_meta and self.message is not None


@dataclass
class _ToolResult:
    text: str
    is_error: bool
    images: list[ToolResultImage]


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _json_type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


def _blocks(content: Any) -> list[dict[str, Any]]:
    if not isinstance(content, list):
        return []
    return [block for block in content if isinstance(block, dict)]


def read_records(text: str) -> list[ClaudeRecord | ParseErrorTurn]:
    """Decode every line of a transcript, keeping parse errors in stream order.

    Lines that are not JSON objects, assistant lines whose content is not an
    array, and user lines whose content is neither a string nor an array
    become parse error turns at their physical line number.
    """
    entries: list[ClaudeRecord | ParseErrorTurn] = []
    last_timestamp = ""

    def on_malformed(line: str, line_number: int, error: json.JSONDecodeError) -> None:
        entries.append(
            make_parse_error(line_number, line, "json_parse", last_timestamp, str(error))
        )

    for item in iterate_jsonl(text, on_malformed=on_malformed):
        if not isinstance(item.parsed, dict):
            entries.append(
                make_parse_error(
                    item.line_number,
                    item.line,
                    "invalid_structure",
                    last_timestamp,
                    f"Line is {_json_type_name(item.parsed)}, expected object",
                )
            )
            continue

        record = ClaudeRecord.from_json(item.parsed, item.line_number)
        if record.timestamp:
            last_timestamp = record.timestamp

        if record.type == "assistant" and record.message is not None:
            content = record.message.get("content")
            if not isinstance(content, list):
                entries.append(
                    make_parse_error(
                        item.line_number,
                        item.line,
                        "invalid_structure",
                        record.timestamp or last_timestamp,
                        f"Assistant message content is {_json_type_name(content)}, expected array",
                    )
                )
                continue

        if record.type == "user" and record.message is not None:
            content = record.message.get("content")
            if not isinstance(content, (str, list)):
                entries.append(
                    make_parse_error(
                        item.line_number,
                        item.line,
                        "invalid_structure",
                        record.timestamp or last_timestamp,
                        f"User message content is {_json_type_name(content)}, expected string or array",
                    )
                )
                continue

        entries.append(record)

    return entries


def _tool_result_payload(block: dict[str, Any]) -> tuple[str, list[ToolResultImage]]:
    content = block.get("content")
    if isinstance(content, str):
        return content, []

    text_parts: list[str] = []
    images: list[ToolResultImage] = []
    for part in _blocks(content):
        if part.get("type") == "text" and isinstance(part.get("text"), str):
            text_parts.append(part["text"])
        elif part.get("type") == "image" and isinstance(part.get("source"), dict):
            source = part["source"]
            images.append(
                ToolResultImage(
                    media_type=_str(source.get("media_type")),
                    data=_str(source.get("data")),
                )
            )
    return "\n".join(text_parts), images


def collect_tool_results(records: list[ClaudeRecord]) -> dict[str, _ToolResult]:
    """Index every tool result by the id of the call it answers."""
    results: dict[str, _ToolResult] = {}
    for record in records:
        if record.type != "user" or not record.is_displayable:
            continue
        for block in _blocks(record.content):
            if block.get("type") != "tool_result":
                continue
            tool_use_id = _str(block.get("tool_use_id"))
            if not tool_use_id:
                continue
            text, images = _tool_result_payload(block)
            results[tool_use_id] = _ToolResult(
                text=text,
                is_error=bool(block.get("is_error")),
                images=images,
            )
    return results


def extract_sub_agent_map(records: list[ClaudeRecord]) -> dict[str, str]:
    """Map Task tool-use ids to the sub-agents they spawned.

    Two signals are used: ``agent_progress`` events, which name the parent
    tool use directly, and ``agentId: <id>`` markers inside tool result text.
    """
    sub_agents: dict[str, str] = {}
    for record in records:
        if (
            record.type == "progress"
            and record.parent_tool_use_id
            and record.data
            and record.data.get("type") == "agent_progress"
            and record.data.get("agentId")
        ):
            sub_agents[record.parent_tool_use_id] = str(record.data["agentId"])

        if record.type != "user" or record.message is None:
            continue
        for block in _blocks(record.content):
            if block.get("type") != "tool_result":
                continue
            text, _ = _tool_result_payload(block)
            agent_id = extract_agent_id(text)
            if agent_id and block.get("tool_use_id"):
                sub_agents[str(block["tool_use_id"])] = agent_id
    return sub_agents


def extract_slug(records: list[ClaudeRecord]) -> str | None:
    for record in records:
        if record.slug:
            return record.slug
    return None


def _user_content(content: Any) -> tuple[str, list[Attachment]]:
    if isinstance(content, str):
        return content, []

    blocks = _blocks(content)
    text = "\n".join(
        _str(block.get("text")) for block in blocks if block.get("type") == "text"
    )
    attachments = [
        Attachment(media_type=_str(block["source"].get("media_type")))
        for block in blocks
        if block.get("type") == "image" and isinstance(block.get("source"), dict)
    ]
    return text, attachments


def _is_tool_result_only(content: Any) -> bool:
    if not isinstance(content, list):
        return False
    return all(isinstance(block, dict) and block.get("type") == "tool_result" for block in content)


def _usage(raw: Any) -> TokenUsage | None:
    if not isinstance(raw, dict):
        return None
    return TokenUsage(
        input_tokens=optional_int(raw.get("input_tokens")) or 0,
        output_tokens=optional_int(raw.get("output_tokens")) or 0,
        cache_read_tokens=optional_int(raw.get("cache_read_input_tokens")) or None,
        cache_creation_tokens=optional_int(raw.get("cache_creation_input_tokens")) or None,
    )


class _TurnBuilder:
    """Folds decoded records into turns for one parse."""

    def __init__(self, tool_results: dict[str, _ToolResult]) -> None:
        self.tool_results = tool_results
        self.turns: list[Turn] = []
        self.current: AssistantTurn | None = None

    def flush(self) -> None:
        if self.current is not None:
            self.turns.append(self.current)
            self.current = None

    def add_error(self, error: ParseErrorTurn) -> None:
        self.flush()
        self.turns.append(error)

    def add(self, record: ClaudeRecord) -> None:
        if not record.is_displayable:
            return
        if record.type == "user":
            self._add_user(record)
        elif record.type == "assistant":
            self._add_assistant(record)
        elif record.type == "system":
            self.flush()
            content = record.content
            self.turns.append(
                SystemTurn(
                    uuid=record.uuid,
                    timestamp=record.timestamp,
                    text=content if isinstance(content, str) else "",
                )
            )

    def _add_user(self, record: ClaudeRecord) -> None:
        content = record.content
        if _is_tool_result_only(content):
            return

        self.flush()
        text, attachments = _user_content(content)

        bash = parse_bash_envelope(text)
        if bash is not None:
            previous = self.turns[-1] if self.turns else None
            if (
                bash.is_output_only
                and isinstance(previous, UserTurn)
                and previous.bash_input is not None
                and previous.bash_stdout is None
                and previous.bash_stderr is None
            ):
                previous.bash_stdout = bash.bash_stdout
                previous.bash_stderr = bash.bash_stderr
                return
            self.turns.append(
                UserTurn(
                    uuid=record.uuid,
                    timestamp=record.timestamp,
                    bash_input=bash.bash_input,
                    bash_stdout=bash.bash_stdout,
                    bash_stderr=bash.bash_stderr,
                )
            )
            return

        opened_file = parse_ide_opened_file(text)
        if opened_file is not None:
            self.turns.append(
                UserTurn(uuid=record.uuid, timestamp=record.timestamp, ide_opened_file=opened_file)
            )
            return

        if is_skipped_user_text(text):
            return

        command = parse_command_message(text)
        self.turns.append(
            UserTurn(
                uuid=record.uuid,
                timestamp=record.timestamp,
                text=command.args if command else text,
                command=command,
                attachments=attachments or None,
            )
        )

    def _add_assistant(self, record: ClaudeRecord) -> None:
        message = record.message or {}
        if self.current is None:
            self.current = AssistantTurn(
                uuid=record.uuid,
                timestamp=record.timestamp,
                model=_str(message.get("model")),
            )
        current = self.current

        usage = _usage(message.get("usage"))
        if usage is not None:
            current.usage = usage
        if message.get("stop_reason"):
            current.stop_reason = str(message["stop_reason"])

        for block in _blocks(message.get("content")):
            block_type = block.get("type")
            if block_type == "thinking" and isinstance(block.get("thinking"), str):
                current.content_blocks.append(ThinkingContent(ThinkingBlock(block["thinking"])))
            elif block_type == "text" and _str(block.get("text")).strip():
                current.content_blocks.append(TextContent(block["text"]))
            elif block_type == "tool_use" and block.get("id"):
                current.content_blocks.append(ToolCallContent(self._tool_call(block)))

    def _tool_call(self, block: dict[str, Any]) -> ToolCallWithResult:
        tool_use_id = str(block["id"])
        raw_input = block.get("input")
        result = self.tool_results.get(tool_use_id)
        return ToolCallWithResult(
            tool_use_id=tool_use_id,
            name=_str(block.get("name")),
            input=raw_input if isinstance(raw_input, dict) else {},
            result=result.text if result else "",
            is_error=result.is_error if result else False,
            result_images=result.images if result and result.images else None,
        )


def attach_sub_agents(turns: list[Turn], sub_agents: dict[str, str]) -> None:
    """Set ``sub_agent_id`` on Task tool calls that spawned a sub-agent."""
    for turn in turns:
        if not isinstance(turn, AssistantTurn):
            continue
        for call in turn.tool_calls():
            if call.name == "Task" and call.tool_use_id in sub_agents:
                call.sub_agent_id = sub_agents[call.tool_use_id]


def build_turns(entries: list[ClaudeRecord | ParseErrorTurn]) -> list[Turn]:
    """Build turns from decoded records, keeping parse errors in place."""
    records = [entry for entry in entries if isinstance(entry, ClaudeRecord)]
    builder = _TurnBuilder(collect_tool_results(records))
    for entry in entries:
        if isinstance(entry, ParseErrorTurn):
            builder.add_error(entry)
        else:
            builder.add(entry)
    builder.flush()
    return builder.turns


class ClaudeCodeParser(Parser):
    """Parser for Claude Code JSONL transcript files."""

    def parse(self, text: str) -> ParsedTranscript:
        entries = read_records(text)
        records = [entry for entry in entries if isinstance(entry, ClaudeRecord)]

        sub_agents = extract_sub_agent_map(records)
        turns = build_turns(entries)
        attach_sub_agents(turns, sub_agents)

        return ParsedTranscript(turns=turns, slug=extract_slug(records), sub_agents=sub_agents)
