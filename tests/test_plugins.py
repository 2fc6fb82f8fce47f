"""Tests for the built-in tool plugins."""

from collections.abc import Callable
from pathlib import Path

import pytest

from conftest import OpenCodeDbBuilder, write_jsonl
from session_lens.models import AssistantTurn, Badge, SessionSummary, UserTurn
from session_lens.plugins import (
    ClaudeCodePlugin,
    CodexPlugin,
    OpenCodePlugin,
    SessionDetailSource,
    ToolPlugin,
    encode_session_id,
    parse_session_id,
)

PLAN_TEXT = "Implement the following plan:\n\n# Add caching"


def claude_user(text: str, timestamp: str, slug: str = "", uuid: str = "u1") -> dict:
    return {
        "type": "user",
        "uuid": uuid,
        "timestamp": timestamp,
        "cwd": "/work/app",
        "slug": slug,
        "message": {"role": "user", "content": text},
    }


def claude_assistant(content: list[dict], uuid: str = "a1") -> dict:
    return {
        "type": "assistant",
        "uuid": uuid,
        "timestamp": "2026-01-01T00:00:01.000Z",
        "message": {"role": "assistant", "model": "claude-opus-4", "content": content},
    }


@pytest.fixture
def claude_dir(tmp_path: Path) -> Path:
    data_dir = tmp_path / "claude"
    project = data_dir / "projects" / "-work-app"
    write_jsonl(
        project / "plan.jsonl",
        [
            claude_user("design a cache", "2026-01-01T00:00:00.000Z", slug="quiet-fox"),
            claude_assistant([{"type": "tool_use", "id": "t1", "name": "Task", "input": {}}]),
            {
                "type": "progress",
                "parentToolUseID": "t1",
                "data": {"type": "agent_progress", "agentId": "abc"},
            },
        ],
    )
    write_jsonl(
        project / "impl.jsonl",
        [claude_user(PLAN_TEXT, "2026-01-02T00:00:00.000Z", slug="quiet-fox")],
    )
    write_jsonl(
        project / "plan" / "subagents" / "agent-abc.jsonl",
        [
            claude_user("explore the code", "2026-01-01T00:00:02.000Z"),
            claude_assistant([{"type": "text", "text": "found it"}], uuid="a9"),
        ],
    )
    return data_dir


class TestSessionIds:
    """Tests for composite session ids."""

    def test_round_trip(self) -> None:
        encoded = encode_session_id("codex-cli", "0199-abc")

        assert encoded == "codex-cli::0199-abc"
        parsed = parse_session_id(encoded)
        assert parsed.plugin_id == "codex-cli"
        assert parsed.raw_session_id == "0199-abc"

    def test_bare_id(self) -> None:
        parsed = parse_session_id("0199-abc")

        assert parsed.plugin_id is None
        assert parsed.raw_session_id == "0199-abc"

    def test_splits_on_first_separator(self) -> None:
        parsed = parse_session_id("opencode::a::b")

        assert parsed.plugin_id == "opencode"
        assert parsed.raw_session_id == "a::b"


class TestProtocols:
    """Tests for protocol conformance of the built-in plugins."""

    def test_all_plugins_are_tool_plugins(self, tmp_path: Path) -> None:
        for plugin in (ClaudeCodePlugin(tmp_path), CodexPlugin(tmp_path), OpenCodePlugin(tmp_path)):
            assert isinstance(plugin, ToolPlugin)

    def test_only_claude_provides_details(self, tmp_path: Path) -> None:
        assert isinstance(ClaudeCodePlugin(tmp_path), SessionDetailSource)
        assert not isinstance(CodexPlugin(tmp_path), SessionDetailSource)
        assert not isinstance(OpenCodePlugin(tmp_path), SessionDetailSource)

    def test_default_data_dir(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("CODEX_HOME", str(tmp_path / "codex-home"))

        assert CodexPlugin().data_dir == tmp_path / "codex-home"
        assert ClaudeCodePlugin().data_dir == Path.home() / ".claude"


class TestClaudeCodePlugin:
    """Tests for ClaudeCodePlugin."""

    @pytest.mark.asyncio
    async def test_discover_and_list(self, claude_dir: Path) -> None:
        plugin = ClaudeCodePlugin(claude_dir)

        projects = await plugin.discover_projects()
        sessions = await plugin.list_sessions("-work-app")

        assert plugin.is_data_available()
        assert [p.resolved_path for p in projects] == ["/work/app"]
        assert [s.session_id for s in sessions] == ["impl", "plan"]
        assert [s.session_type for s in sessions] == ["implementation", "plan"]

    @pytest.mark.asyncio
    async def test_load_session(self, claude_dir: Path) -> None:
        session = await ClaudeCodePlugin(claude_dir).load_session("-work-app", "plan")

        assert session.session_id == "plan"
        assert session.project == "-work-app"
        assert session.plugin_id == "claude-code"
        assert isinstance(session.turns[0], UserTurn)
        assistant = session.turns[1]
        assert isinstance(assistant, AssistantTurn)
        assert assistant.tool_calls()[0].sub_agent_id == "abc"

    @pytest.mark.asyncio
    async def test_missing_session(self, claude_dir: Path) -> None:
        session = await ClaudeCodePlugin(claude_dir).load_session("-work-app", "nope")

        assert session.turns == []

    @pytest.mark.asyncio
    async def test_session_detail_links(self, claude_dir: Path) -> None:
        plugin = ClaudeCodePlugin(claude_dir)

        impl_detail = await plugin.load_session_detail("-work-app", "impl")
        plan_detail = await plugin.load_session_detail("-work-app", "plan")

        assert impl_detail.plan_session_id == "plan"
        assert impl_detail.impl_session_id is None
        assert impl_detail.session.plan_session_id == "plan"
        assert plan_detail.impl_session_id == "impl"
        assert plan_detail.plan_session_id is None

    @pytest.mark.asyncio
    async def test_sub_agent_session(self, claude_dir: Path) -> None:
        plugin = ClaudeCodePlugin(claude_dir)

        session = await plugin.load_sub_agent_session("-work-app", "plan", "abc")
        missing = await plugin.load_sub_agent_session("-work-app", "plan", "zzz")

        assert [turn.uuid for turn in session.turns] == ["u1", "a9"]
        assert missing.turns == []

    def test_resume_and_badges(self, tmp_path: Path) -> None:
        plugin = ClaudeCodePlugin(tmp_path)
        summary = SessionSummary(
            session_id="s", timestamp="", slug="", first_message="", model="", session_type="plan"
        )

        assert plugin.get_resume_command("s1") == "claude --resume s1"
        assert plugin.get_session_badges(summary) == [Badge(label="Plan", class_name="badge-plan")]
        summary.session_type = None
        assert plugin.get_session_badges(summary) == []

    def test_unavailable(self, tmp_path: Path) -> None:
        assert not ClaudeCodePlugin(tmp_path).is_data_available()


class TestCodexPlugin:
    """Tests for CodexPlugin."""

    @pytest.fixture
    def codex_dir(self, tmp_path: Path) -> Path:
        data_dir = tmp_path / "codex"
        write_jsonl(
            data_dir / "sessions" / "2026" / "01" / "01" / "rollout-2026-01-01T00-00-00-sess-1.jsonl",
            [
                {
                    "type": "session_meta",
                    "payload": {"id": "sess-1", "cwd": "/work/app", "timestamp": "2026-01-01T00:00:00.000Z"},
                },
                {"type": "event_msg", "payload": {"type": "task_started"}},
                {"type": "event_msg", "payload": {"type": "user_message", "message": "hello"}},
                {"type": "event_msg", "payload": {"type": "agent_message", "message": "hi"}},
            ],
        )
        return data_dir

    @pytest.mark.asyncio
    async def test_discover_populates_cache(self, codex_dir: Path) -> None:
        plugin = CodexPlugin(codex_dir)

        projects = await plugin.discover_projects()

        assert [p.native_id for p in projects] == ["/work/app"]
        assert "sess-1" in plugin.path_cache

    @pytest.mark.asyncio
    async def test_load_session(self, codex_dir: Path) -> None:
        plugin = CodexPlugin(codex_dir)

        session = await plugin.load_session("/work/app", "sess-1")

        assert session.plugin_id == "codex-cli"
        assert [type(turn) for turn in session.turns] == [UserTurn, AssistantTurn]
        assert "sess-1" in plugin.path_cache

    @pytest.mark.asyncio
    async def test_missing_session(self, codex_dir: Path) -> None:
        session = await CodexPlugin(codex_dir).load_session("/work/app", "missing")

        assert session.turns == []

    def test_resume_and_badges(self, tmp_path: Path) -> None:
        plugin = CodexPlugin(tmp_path)
        summary = SessionSummary(session_id="s", timestamp="", slug="", first_message="", model="")

        assert plugin.get_resume_command("sess-1") == "codex resume sess-1"
        assert plugin.get_session_badges(summary) == []
        assert not plugin.is_data_available()


class TestOpenCodePlugin:
    """Tests for OpenCodePlugin."""

    @pytest.mark.asyncio
    async def test_round_trip(self, opencode_db: Callable[..., OpenCodeDbBuilder], tmp_path: Path) -> None:
        db = opencode_db()
        db.project("proj", "/work/app")
        db.session("ses", "proj", "/work/app", 1_767_225_600_000)
        db.message("msg", "ses", 1_767_225_600_000, {"role": "user"})
        db.part("prt", "msg", "ses", {"type": "text", "text": "hello"})
        db.close()
        plugin = OpenCodePlugin(tmp_path / "opencode")

        projects = await plugin.discover_projects()
        sessions = await plugin.list_sessions("proj")
        session = await plugin.load_session("proj", "ses")

        assert plugin.is_data_available()
        assert projects[0].resolved_path == "/work/app"
        assert sessions[0].first_message == "hello"
        assert session.turns[0].text == "hello"
        assert plugin.get_resume_command("ses") is None

    def test_unavailable(self, tmp_path: Path) -> None:
        assert not OpenCodePlugin(tmp_path).is_data_available()
