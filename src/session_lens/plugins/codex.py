"""Codex CLI plugin."""

import asyncio
from pathlib import Path

from session_lens.discovery import codex as discovery
from session_lens.discovery.codex import SessionPathCache
from session_lens.discovery.common import default_codex_dir
from session_lens.jsonl import read_text
from session_lens.logging import get_logger
from session_lens.models import Badge, PluginProject, Session, SessionSummary
from session_lens.parsers import CodexParser

logger = get_logger("plugins.codex")


class CodexPlugin:
    """Sessions recorded by Codex CLI under ~/.codex/sessions."""

    id = discovery.PLUGIN_ID
    display_name = "Codex"

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or self.get_default_data_dir()
        self.path_cache = SessionPathCache()
        self._parser = CodexParser()

    def get_default_data_dir(self) -> Path:
        return default_codex_dir()

    def is_data_available(self) -> bool:
        return discovery.sessions_dir(self.data_dir).is_dir()

    async def discover_projects(self) -> list[PluginProject]:
        return await asyncio.to_thread(discovery.discover_projects, self.data_dir, self.path_cache)

    async def list_sessions(self, native_id: str) -> list[SessionSummary]:
        return await asyncio.to_thread(
            discovery.list_sessions, self.data_dir, native_id, self.path_cache
        )

    def _load(self, native_id: str, session_id: str) -> Session:
        session = Session(session_id=session_id, project=native_id, plugin_id=self.id)
        path = discovery.find_session_file(self.data_dir, session_id, self.path_cache)
        if path is None:
            logger.debug("Codex session not found: %s", session_id)
            return session
        text = read_text(path)
        if text is None:
            return session
        session.turns = self._parser.parse(text).turns
        return session

    async def load_session(self, native_id: str, session_id: str) -> Session:
        return await asyncio.to_thread(self._load, native_id, session_id)

    def get_resume_command(self, session_id: str) -> str | None:
        return f"codex resume {session_id}"

    def get_session_badges(self, summary: SessionSummary) -> list[Badge]:
        return []
