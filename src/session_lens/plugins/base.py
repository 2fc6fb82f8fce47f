"""Plugin interface and composite session identifiers."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from session_lens.models import Badge, PluginProject, Session, SessionDetail, SessionSummary

SESSION_ID_SEPARATOR = "::"


class PluginNotFoundError(LookupError):
    """Raised when a plugin id is not registered."""

    def __init__(self, plugin_id: str) -> None:
        super().__init__(f"Plugin not found: {plugin_id}")
        self.plugin_id = plugin_id


@runtime_checkable
class ToolPlugin(Protocol):
    """One source of AI assistant sessions.

    All async methods are read-only and return empty results for missing or
    unreadable data instead of raising.
    """

    id: str
    display_name: str

    def get_default_data_dir(self) -> Path: ...

    def is_data_available(self) -> bool: ...

    async def discover_projects(self) -> list[PluginProject]: ...

    async def list_sessions(self, native_id: str) -> list[SessionSummary]: ...

    async def load_session(self, native_id: str, session_id: str) -> Session: ...

    def get_resume_command(self, session_id: str) -> str | None: ...

    def get_session_badges(self, summary: SessionSummary) -> list[Badge]: ...


@runtime_checkable
class SessionDetailSource(Protocol):
    """Optional capabilities of plugins that link related sessions."""

    async def load_session_detail(self, native_id: str, session_id: str) -> SessionDetail: ...

    async def load_sub_agent_session(self, native_id: str, session_id: str, agent_id: str) -> Session: ...


@dataclass(frozen=True)
class ParsedSessionId:
    plugin_id: str | None
    raw_session_id: str


def encode_session_id(plugin_id: str, raw_session_id: str) -> str:
    return f"{plugin_id}{SESSION_ID_SEPARATOR}{raw_session_id}"


def parse_session_id(session_id: str) -> ParsedSessionId:
    """Split a composite ``<pluginId>::<id>`` session id.

    Ids without a separator are returned with no plugin id.
    """
    plugin_id, separator, raw_session_id = session_id.partition(SESSION_ID_SEPARATOR)
    if not separator:
        return ParsedSessionId(plugin_id=None, raw_session_id=session_id)
    return ParsedSessionId(plugin_id=plugin_id, raw_session_id=raw_session_id)
