"""Tests for the Codex CLI session parser."""

import json
from typing import Any

import pytest

from session_lens.models import (
    AssistantTurn,
    ParseErrorTurn,
    TextContent,
    ThinkingContent,
    ToolCallContent,
    UserTurn,
)
from session_lens.parsers.codex import (
    CodexParser,
    extract_first_user_message,
    normalize_event,
    normalize_session_meta,
    parse_arguments,
)

LEGACY_HEADER = {
    "uuid": "0199-legacy",
    "cwd": "/home/user/project",
    "timestamps": {"created": 1700000000, "updated": 1700000500},
    "model": "gpt-5-codex",
    "provider_id": "openai",
}

CREATED_ISO = "2023-11-14T22:13:20.000Z"


def session_text(*events: Any, header: dict | None = None) -> str:
    lines = [json.dumps(header or LEGACY_HEADER)]
    lines.extend(event if isinstance(event, str) else json.dumps(event) for event in events)
    return "\n".join(lines)


def event_msg(payload: dict, timestamp: str = "") -> dict:
    event: dict[str, Any] = {"type": "event_msg", "payload": payload}
    if timestamp:
        event["timestamp"] = timestamp
    return event


def response_item(payload: dict) -> dict:
    return {"type": "response_item", "payload": payload}


def agent_message(text: str) -> dict:
    return {"type": "item.completed", "item": {"type": "agent_message", "text": text}}


TURN_STARTED = {"type": "turn.started"}


@pytest.fixture
def parser() -> CodexParser:
    return CodexParser()


class TestSessionMeta:
    """Tests for normalize_session_meta."""

    def test_legacy_header(self) -> None:
        meta = normalize_session_meta({**LEGACY_HEADER, "name": "Refactor auth"})

        assert meta is not None
        assert meta.uuid == "0199-legacy"
        assert meta.cwd == "/home/user/project"
        assert meta.created == 1700000000.0
        assert meta.updated == 1700000500.0
        assert meta.model == "gpt-5-codex"
        assert meta.provider_id == "openai"
        assert meta.name == "Refactor auth"

    def test_legacy_header_without_updated(self) -> None:
        header = {**LEGACY_HEADER, "timestamps": {"created": 1700000000.5}}

        meta = normalize_session_meta(header)

        assert meta is not None
        assert meta.updated == 1700000000.5

    def test_current_header(self) -> None:
        header = {
            "type": "session_meta",
            "timestamp": "2026-01-02T00:00:00.000Z",
            "payload": {
                "id": "0199-new",
                "cwd": "/work",
                "timestamp": "2026-01-01T00:00:00.000Z",
                "model_provider": "openai",
            },
        }

        meta = normalize_session_meta(header, file_mtime=1800000000.0)

        assert meta is not None
        assert meta.uuid == "0199-new"
        assert meta.cwd == "/work"
        assert meta.created == 1767225600.0
        assert meta.updated == 1800000000.0
        assert meta.model == "openai"
        assert meta.provider_id == "openai"
        assert meta.name == ""

    def test_current_header_without_mtime(self) -> None:
        header = {
            "type": "session_meta",
            "timestamp": "2026-01-01T00:00:00.000Z",
            "payload": {"id": "x", "cwd": "/w", "model": "o4"},
        }

        meta = normalize_session_meta(header)

        assert meta is not None
        assert meta.updated == meta.created
        assert meta.model == "o4"
        assert meta.provider_id == "unknown"

    @pytest.mark.parametrize(
        "parsed",
        [
            {"type": "turn.started"},
            {"type": "session_meta", "payload": {"id": "x"}},
            {"uuid": "x", "cwd": "/w"},
            [1, 2],
            None,
        ],
    )
    def test_not_a_header(self, parsed: Any) -> None:
        assert normalize_session_meta(parsed) is None


class TestNormalizeEvent:
    """Tests for event normalization."""

    def test_legacy_passthrough(self) -> None:
        event = normalize_event(
            {"type": "turn.completed", "usage": {"input_tokens": 1}, "timestamp": "t1"}
        )

        assert event is not None
        assert event.type == "turn.completed"
        assert event.usage == {"input_tokens": 1}
        assert event.timestamp == "t1"

    def test_event_msg_mapping(self) -> None:
        assert normalize_event(event_msg({"type": "task_started"})).type == "turn.started"
        assert normalize_event(event_msg({"type": "task_complete"})).type == "turn.completed"

        user_event = normalize_event(event_msg({"type": "user_message", "message": "hi"}, "t2"))
        assert user_event.type == "user_message"
        assert user_event.text == "hi"
        assert user_event.timestamp == "t2"

        reasoning = normalize_event(event_msg({"type": "agent_reasoning", "text": "think"}))
        assert reasoning.item == {"type": "reasoning", "text": "think"}

    def test_token_count_prefers_last_usage(self) -> None:
        event = normalize_event(
            event_msg(
                {
                    "type": "token_count",
                    "input_tokens": 999,
                    "info": {
                        "total_token_usage": {"input_tokens": 500},
                        "last_token_usage": {
                            "input_tokens": 100,
                            "cached_input_tokens": 20,
                            "output_tokens": 7,
                        },
                    },
                }
            )
        )

        assert event is not None
        assert event.type == "usage_update"
        assert event.usage == {"input_tokens": 100, "cached_input_tokens": 20, "output_tokens": 7}

    def test_token_count_flat_counts(self) -> None:
        event = normalize_event(event_msg({"type": "token_count", "input_tokens": 3, "output_tokens": 4}))

        assert event is not None
        assert event.usage == {"input_tokens": 3, "cached_input_tokens": None, "output_tokens": 4}

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "token_count", "info": None},
            {"type": "token_count"},
            {"type": "token_count", "info": {"total_token_usage": {"input_tokens": 500}}},
        ],
    )
    def test_token_count_without_counts(self, payload: dict) -> None:
        assert normalize_event(event_msg(payload)) is None

    def test_function_call(self) -> None:
        event = normalize_event(
            response_item(
                {
                    "type": "function_call",
                    "name": "shell",
                    "arguments": '{"command": ["ls"]}',
                    "call_id": "c1",
                }
            )
        )

        assert event is not None
        assert event.type == "item.completed"
        assert event.tool_name == "shell"
        assert event.tool_input == {"command": ["ls"]}
        assert event.call_id == "c1"

    def test_function_call_output(self) -> None:
        event = normalize_event(
            response_item({"type": "function_call_output", "call_id": "c1", "output": {"content": "ok"}})
        )

        assert event is not None
        assert event.type == "tool_output"
        assert event.text == "ok"

    @pytest.mark.parametrize(
        "raw",
        [
            {"type": "event_msg", "payload": {"type": "exec_command_begin"}},
            {"type": "response_item", "payload": {"type": "message", "role": "user"}},
            {"type": "turn_context", "payload": {}},
            {"type": "event_msg"},
            {"no": "type"},
            "string",
        ],
    )
    def test_ignored(self, raw: Any) -> None:
        assert normalize_event(raw) is None

    def test_parse_arguments(self) -> None:
        assert parse_arguments('{"a": 1}') == {"a": 1}
        assert parse_arguments("not json") == {"raw": "not json"}
        assert parse_arguments("[1]") == {"raw": "[1]"}
        assert parse_arguments({"b": 2}) == {"b": 2}
        assert parse_arguments(None) == {}
        assert parse_arguments("") == {}


class TestTurnBuilding:
    """Tests for the Codex turn state machine."""

    def test_single_turn_with_usage(self, parser: CodexParser) -> None:
        """Three legacy events become exactly one assistant turn."""
        text = session_text(
            TURN_STARTED,
            agent_message("hi"),
            {"type": "turn.completed", "usage": {"input_tokens": 10, "output_tokens": 5}},
        )

        turns = parser.parse(text).turns

        assert len(turns) == 1
        turn = turns[0]
        assert isinstance(turn, AssistantTurn)
        assert turn.content_blocks == [TextContent("hi")]
        assert turn.usage is not None
        assert turn.usage.to_dict() == {"inputTokens": 10, "outputTokens": 5}
        assert turn.model == "gpt-5-codex"
        assert turn.timestamp == CREATED_ISO

    def test_cached_tokens_zero_kept(self, parser: CodexParser) -> None:
        text = session_text(
            TURN_STARTED,
            agent_message("hi"),
            {
                "type": "turn.completed",
                "usage": {"input_tokens": 1, "output_tokens": 1, "cached_input_tokens": 0},
            },
        )

        turn = parser.parse(text).turns[0]

        assert turn.usage.cache_read_tokens == 0

    def test_empty_token_count_keeps_usage(self, parser: CodexParser) -> None:
        """A token_count carrying no counts leaves earlier usage on the turn."""
        text = session_text(
            event_msg({"type": "task_started"}),
            event_msg({"type": "agent_message", "message": "hi"}),
            event_msg(
                {
                    "type": "token_count",
                    "info": {"last_token_usage": {"input_tokens": 10, "output_tokens": 5}},
                }
            ),
            event_msg({"type": "token_count", "info": None}),
            event_msg({"type": "task_complete"}),
        )

        turn = parser.parse(text).turns[0]

        assert isinstance(turn, AssistantTurn)
        assert turn.usage is not None
        assert turn.usage.input_tokens == 10
        assert turn.usage.output_tokens == 5

    def test_placeholder_user_turns(self, parser: CodexParser) -> None:
        """From the second turn on an empty user turn separates assistant turns."""
        text = session_text(
            TURN_STARTED,
            agent_message("one"),
            {"type": "turn.completed"},
            TURN_STARTED,
            agent_message("two"),
            {"type": "turn.completed"},
        )

        turns = parser.parse(text).turns

        assert [type(turn) for turn in turns] == [AssistantTurn, UserTurn, AssistantTurn]
        assert turns[1].text == ""
        assert turns[1].uuid == "codex-user-1"
        assert [turn.uuid for turn in turns if isinstance(turn, AssistantTurn)] == [
            "codex-assistant-1",
            "codex-assistant-2",
        ]

    def test_user_messages_fill_placeholders(self, parser: CodexParser) -> None:
        text = session_text(
            event_msg({"type": "task_started"}),
            event_msg({"type": "user_message", "message": "first prompt"}, "2026-01-01T00:00:00.000Z"),
            event_msg({"type": "agent_message", "message": "answer one"}),
            event_msg({"type": "task_complete"}),
            event_msg({"type": "task_started"}),
            event_msg({"type": "user_message", "message": "second prompt"}),
            event_msg({"type": "agent_message", "message": "answer two"}),
            event_msg({"type": "task_complete"}),
        )

        turns = parser.parse(text).turns

        assert [type(turn) for turn in turns] == [UserTurn, AssistantTurn, UserTurn, AssistantTurn]
        assert [turn.uuid for turn in turns if isinstance(turn, UserTurn)] == ["codex-user-1", "codex-user-2"]
        assert turns[0].text == "first prompt"
        assert turns[0].timestamp == "2026-01-01T00:00:00.000Z"
        assert turns[2].text == "second prompt"

    def test_user_messages_without_task_started(self, parser: CodexParser) -> None:
        """Each user message closes the open assistant turn and keeps stream order."""
        text = session_text(
            event_msg({"type": "user_message", "message": "first"}),
            event_msg({"type": "agent_message", "message": "reply1"}),
            event_msg({"type": "user_message", "message": "second"}),
            event_msg({"type": "agent_message", "message": "reply2"}),
        )

        turns = parser.parse(text).turns

        assert [type(turn) for turn in turns] == [UserTurn, AssistantTurn, UserTurn, AssistantTurn]
        assert [turn.text for turn in turns if isinstance(turn, UserTurn)] == ["first", "second"]
        assert [turn.content_blocks for turn in turns if isinstance(turn, AssistantTurn)] == [
            [TextContent("reply1")],
            [TextContent("reply2")],
        ]
        assert len({turn.uuid for turn in turns}) == 4

    def test_old_placeholder_not_refilled(self, parser: CodexParser) -> None:
        """A late user message never fills an empty user turn further back."""
        text = session_text(
            TURN_STARTED,
            agent_message("one"),
            {"type": "turn.completed"},
            TURN_STARTED,
            agent_message("two"),
            event_msg({"type": "user_message", "message": "late"}),
        )

        turns = parser.parse(text).turns

        assert [type(turn) for turn in turns] == [AssistantTurn, UserTurn, AssistantTurn, UserTurn]
        assert turns[1].text == ""
        assert turns[3].text == "late"

    def test_generic_tool_call_and_output(self, parser: CodexParser) -> None:
        text = session_text(
            event_msg({"type": "task_started"}),
            response_item(
                {"type": "function_call", "name": "shell", "arguments": '{"command":["ls"]}', "call_id": "c1"}
            ),
            response_item({"type": "function_call_output", "call_id": "c1", "output": "file.txt"}),
            response_item({"type": "custom_tool_call", "name": "apply_patch", "input": "*** Begin Patch"}),
            event_msg({"type": "agent_message", "message": "done"}),
            event_msg(
                {
                    "type": "token_count",
                    "info": {"last_token_usage": {"input_tokens": 100, "cached_input_tokens": 20, "output_tokens": 7}},
                }
            ),
            event_msg({"type": "task_complete"}),
        )

        turns = parser.parse(text).turns

        assert len(turns) == 1
        turn = turns[0]
        assert isinstance(turn, AssistantTurn)
        calls = turn.tool_calls()
        assert calls[0].tool_use_id == "c1"
        assert calls[0].name == "shell"
        assert calls[0].input == {"command": ["ls"]}
        assert calls[0].result == "file.txt"
        assert calls[1].tool_use_id == "codex-tool-1"
        assert calls[1].input == {"raw": "*** Begin Patch"}
        assert isinstance(turn.content_blocks[-1], TextContent)
        assert turn.usage.input_tokens == 100
        assert turn.usage.output_tokens == 7
        assert turn.usage.cache_read_tokens == 20

    def test_item_types(self, parser: CodexParser) -> None:
        text = session_text(
            TURN_STARTED,
            {"type": "item.completed", "item": {"type": "reasoning", "text": "plan"}},
            {
                "type": "item.completed",
                "item": {"type": "command_execution", "command": "make", "aggregated_output": "err", "exit_code": 2},
            },
            {
                "type": "item.completed",
                "item": {"type": "command_execution", "command": "ls", "aggregated_output": "ok", "exit_code": 0},
            },
            {"type": "item.completed", "item": {"type": "file_change", "changes": [{"path": "a.py"}]}},
            {
                "type": "item.completed",
                "item": {"type": "mcp_tool_call", "tool": "search", "arguments": {"q": "x"}, "result": "found"},
            },
            {"type": "item.completed", "item": {"type": "web_search", "query": "python"}},
            {"type": "item.completed", "item": {"type": "todo_list"}},
            {"type": "turn.completed"},
        )

        turn = parser.parse(text).turns[0]

        assert isinstance(turn.content_blocks[0], ThinkingContent)
        assert turn.content_blocks[0].block.text == "plan"
        calls = turn.tool_calls()
        assert [call.name for call in calls] == [
            "command_execution",
            "command_execution",
            "file_change",
            "search",
            "web_search",
        ]
        assert [call.tool_use_id for call in calls] == [f"codex-tool-{n}" for n in range(1, 6)]
        assert calls[0].input == {"command": "make"}
        assert calls[0].is_error is True
        assert calls[1].is_error is False
        assert calls[2].input == {"changes": [{"path": "a.py"}]}
        assert calls[2].is_error is False
        assert calls[3].input == {"q": "x"}
        assert calls[3].result == "found"
        assert calls[4].input == {"query": "python"}
        assert all(isinstance(block, (ThinkingContent, ToolCallContent)) for block in turn.content_blocks)

    def test_empty_assistant_turn_discarded(self, parser: CodexParser) -> None:
        text = session_text(
            TURN_STARTED,
            {"type": "item.completed", "item": {"type": "todo_list"}},
            {"type": "turn.completed"},
        )

        assert parser.parse(text).turns == []

    def test_event_timestamp_used(self, parser: CodexParser) -> None:
        event = {**agent_message("hi"), "timestamp": "2026-05-01T10:00:00.000Z"}

        turn = parser.parse(session_text(TURN_STARTED, event)).turns[0]

        assert turn.timestamp == "2026-05-01T10:00:00.000Z"

    def test_malformed_lines(self, parser: CodexParser) -> None:
        text = session_text(TURN_STARTED, agent_message("before"), "{broken", agent_message("after"))

        turns = parser.parse(text).turns

        assert [type(turn) for turn in turns] == [AssistantTurn, ParseErrorTurn, AssistantTurn]
        error = turns[1]
        assert error.line_number == 4
        assert error.error_type == "json_parse"
        assert error.timestamp == CREATED_ISO

    def test_slug_is_session_uuid(self, parser: CodexParser) -> None:
        assert parser.parse(session_text()).slug == "0199-legacy"

    def test_missing_header(self, parser: CodexParser) -> None:
        parsed = parser.parse("\n".join(json.dumps(e) for e in [TURN_STARTED, agent_message("x")]))

        assert parsed.slug is None
        assert parsed.turns[0].model == "unknown"


class TestFirstUserMessage:
    """Tests for extract_first_user_message."""

    def test_current_format(self) -> None:
        text = session_text(
            event_msg({"type": "task_started"}),
            event_msg({"type": "user_message", "message": "please fix"}),
        )

        assert extract_first_user_message(text) == "please fix"

    def test_legacy_format_truncated(self) -> None:
        text = session_text(TURN_STARTED, agent_message("x" * 300))

        assert extract_first_user_message(text) == "x" * 200

    def test_header_line_skipped(self) -> None:
        header = {**LEGACY_HEADER, "type": "item.completed", "item": {"type": "agent_message", "text": "no"}}

        assert extract_first_user_message(session_text(header=header)) is None
