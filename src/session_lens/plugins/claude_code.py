"""Claude Code plugin."""

import asyncio
from pathlib import Path

from session_lens.classify import find_impl_session_id, find_plan_session_id
from session_lens.discovery import claude_code as discovery
from session_lens.discovery.common import default_claude_dir
from session_lens.jsonl import read_text
from session_lens.logging import get_logger
from session_lens.models import Badge, PluginProject, Session, SessionDetail, SessionSummary
from session_lens.parsers import ClaudeCodeParser, ParsedTranscript

logger = get_logger("plugins.claude_code")

SESSION_BADGES = {
    "plan": Badge(label="Plan", class_name="badge-plan"),
    "implementation": Badge(label="Implementation", class_name="badge-implementation"),
}


class ClaudeCodePlugin:
    """Sessions recorded by Claude Code under ~/.claude/projects."""

    id = discovery.PLUGIN_ID
    display_name = "Claude Code"

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or self.get_default_data_dir()
        self._parser = ClaudeCodeParser()

    def get_default_data_dir(self) -> Path:
        return default_claude_dir()

    def is_data_available(self) -> bool:
        return discovery.projects_dir(self.data_dir).is_dir()

    async def discover_projects(self) -> list[PluginProject]:
        return await asyncio.to_thread(discovery.discover_projects, self.data_dir)

    async def list_sessions(self, native_id: str) -> list[SessionSummary]:
        return await asyncio.to_thread(discovery.list_sessions, self.data_dir, native_id)

    def _parse_file(self, path: Path) -> ParsedTranscript | None:
        text = read_text(path)
        if text is None:
            logger.debug("Session file not readable: %s", path)
            return None
        return self._parser.parse(text)

    async def _load(self, native_id: str, session_id: str) -> tuple[Session, str | None]:
        path = discovery.session_file(self.data_dir, native_id, session_id)
        parsed = await asyncio.to_thread(self._parse_file, path)
        session = Session(session_id=session_id, project=native_id, plugin_id=self.id)
        if parsed is None:
            return session, None
        session.turns = parsed.turns
        return session, parsed.slug

    async def load_session(self, native_id: str, session_id: str) -> Session:
        session, _ = await self._load(native_id, session_id)
        return session

    async def load_session_detail(self, native_id: str, session_id: str) -> SessionDetail:
        """Load a session together with its plan/implementation partner ids."""
        (session, slug), sessions = await asyncio.gather(
            self._load(native_id, session_id),
            self.list_sessions(native_id),
        )
        plan_session_id = find_plan_session_id(session.turns, slug, sessions, session_id)
        impl_session_id = find_impl_session_id(slug, sessions, session_id)
        session.plan_session_id = plan_session_id
        session.impl_session_id = impl_session_id
        return SessionDetail(
            session=session,
            plan_session_id=plan_session_id,
            impl_session_id=impl_session_id,
        )

    async def load_sub_agent_session(self, native_id: str, session_id: str, agent_id: str) -> Session:
        """Load the transcript of a sub-agent spawned by a Task tool call.

        A missing transcript yields a session without turns.
        """
        path = discovery.sub_agent_file(self.data_dir, native_id, session_id, agent_id)
        parsed = await asyncio.to_thread(self._parse_file, path)
        return Session(
            session_id=session_id,
            project=native_id,
            turns=parsed.turns if parsed else [],
            plugin_id=self.id,
        )

    def get_resume_command(self, session_id: str) -> str | None:
        return f"claude --resume {session_id}"

    def get_session_badges(self, summary: SessionSummary) -> list[Badge]:
        badge = SESSION_BADGES.get(summary.session_type) if summary.session_type else None
        return [badge] if badge else []
