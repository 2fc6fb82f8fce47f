"""OpenCode plugin."""

import asyncio
from pathlib import Path

from session_lens.discovery import opencode as discovery
from session_lens.discovery.common import default_opencode_dir
from session_lens.models import Badge, PluginProject, Session, SessionSummary


class OpenCodePlugin:
    """Sessions stored in OpenCode's SQLite database."""

    id = discovery.PLUGIN_ID
    display_name = "OpenCode"

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or self.get_default_data_dir()

    def get_default_data_dir(self) -> Path:
        return default_opencode_dir()

    def is_data_available(self) -> bool:
        return discovery.db_path(self.data_dir).is_file()

    async def discover_projects(self) -> list[PluginProject]:
        return await asyncio.to_thread(discovery.discover_projects, self.data_dir)

    async def list_sessions(self, native_id: str) -> list[SessionSummary]:
        return await asyncio.to_thread(discovery.list_sessions, self.data_dir, native_id)

    async def load_session(self, native_id: str, session_id: str) -> Session:
        return await asyncio.to_thread(discovery.load_session, self.data_dir, native_id, session_id)

    def get_resume_command(self, session_id: str) -> str | None:
        # OpenCode cannot resume a session from the command line
        return None

    def get_session_badges(self, summary: SessionSummary) -> list[Badge]:
        return []
