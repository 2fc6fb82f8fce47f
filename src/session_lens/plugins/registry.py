"""Plugin registry: merges every source into one view of projects and sessions."""

import asyncio
import re
from dataclasses import replace

from session_lens.logging import get_logger
from session_lens.models import (
    MergedProject,
    PluginProject,
    ProjectSource,
    Session,
    SessionDetail,
    SessionSummary,
)
from session_lens.plugins.base import (
    PluginNotFoundError,
    SessionDetailSource,
    ToolPlugin,
    encode_session_id,
    parse_session_id,
)
from session_lens.timeutil import max_iso, sort_by_iso_desc

logger = get_logger("registry")

_SEPARATOR_RE = re.compile(r"[/\\:]")


def encode_resolved_path(resolved_path: str) -> str:
    """Encode a project path the way Claude Code names its project directories.

    "/Users/foo/bar" -> "-Users-foo-bar"; Windows separators and drive colons
    are replaced as well.
    """
    if resolved_path.startswith("/"):
        return resolved_path.replace("/", "-")
    return _SEPARATOR_RE.sub("-", resolved_path)


def merge_projects(projects: list[PluginProject]) -> list[MergedProject]:
    """Merge plugin projects that resolve to exactly the same path.

    Returns:
        Merged projects sorted by last activity, newest first
    """
    by_path: dict[str, list[PluginProject]] = {}
    for project in projects:
        by_path.setdefault(project.resolved_path, []).append(project)

    merged = [
        MergedProject(
            encoded_path=encode_resolved_path(resolved_path),
            resolved_path=resolved_path,
            session_count=sum(project.session_count for project in group),
            last_activity=max_iso(project.last_activity for project in group),
            sources=[
                ProjectSource(plugin_id=project.plugin_id, native_id=project.native_id)
                for project in group
            ],
        )
        for resolved_path, group in by_path.items()
    ]
    sort_by_iso_desc(merged, lambda project: project.last_activity)
    return merged


class PluginRegistry:
    """Registry of tool plugins by id."""

    def __init__(self) -> None:
        self._plugins: dict[str, ToolPlugin] = {}

    def register(self, plugin: ToolPlugin) -> None:
        """Register a plugin, replacing any plugin with the same id."""
        self._plugins[plugin.id] = plugin

    def get_plugin(self, plugin_id: str) -> ToolPlugin:
        """Get plugin by id.

        Raises:
            PluginNotFoundError: If no plugin with that id is registered
        """
        plugin = self._plugins.get(plugin_id)
        if plugin is None:
            raise PluginNotFoundError(plugin_id)
        return plugin

    def get_all_plugins(self) -> list[ToolPlugin]:
        return list(self._plugins.values())

    async def discover_all_projects(self) -> list[MergedProject]:
        """Discover projects across every plugin and merge them by path.

        Plugins are queried concurrently. A plugin that fails is logged and
        left out of the result.
        """
        plugins = self.get_all_plugins()
        results = await asyncio.gather(
            *(plugin.discover_projects() for plugin in plugins),
            return_exceptions=True,
        )

        projects: list[PluginProject] = []
        for plugin, result in zip(plugins, results):
            if isinstance(result, BaseException):
                logger.warning("Project discovery failed for plugin %s: %s", plugin.id, result)
                continue
            projects.extend(result)

        return merge_projects(projects)

    async def find_project(self, key: str) -> MergedProject | None:
        """Find a merged project by its encoded path or its resolved path."""
        for project in await self.discover_all_projects():
            if key in (project.encoded_path, project.resolved_path):
                return project
        return None

    async def list_all_sessions(self, project: MergedProject) -> list[SessionSummary]:
        """List the sessions of a merged project across its sources.

        Session ids are rewritten to ``<pluginId>::<id>`` so they stay unique
        across sources. A source that fails is logged and left out.
        """
        sources = [source for source in project.sources if source.plugin_id in self._plugins]
        results = await asyncio.gather(
            *(self._plugins[source.plugin_id].list_sessions(source.native_id) for source in sources),
            return_exceptions=True,
        )

        sessions: list[SessionSummary] = []
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Session listing failed for plugin %s (%s): %s",
                    source.plugin_id,
                    source.native_id,
                    result,
                )
                continue
            for summary in result:
                sessions.append(
                    replace(
                        summary,
                        session_id=encode_session_id(source.plugin_id, summary.session_id),
                        plugin_id=source.plugin_id,
                    )
                )

        sort_by_iso_desc(sessions, lambda session: session.timestamp)
        return sessions

    def _resolve(self, project: MergedProject, session_id: str) -> tuple[ToolPlugin, str, str]:
        parsed = parse_session_id(session_id)
        if parsed.plugin_id is not None:
            plugin = self.get_plugin(parsed.plugin_id)
            source = project.source_for(parsed.plugin_id)
        else:
            # Merged projects always have at least one source
            source = project.sources[0]
            plugin = self.get_plugin(source.plugin_id)
        native_id = source.native_id if source else project.resolved_path
        return plugin, native_id, parsed.raw_session_id

    async def load_session(self, project: MergedProject, session_id: str) -> Session:
        """Load a session by composite or bare id.

        Bare ids are looked up in the project's first source.

        Raises:
            PluginNotFoundError: If the id names a plugin that is not registered
        """
        plugin, native_id, raw_session_id = self._resolve(project, session_id)
        return await plugin.load_session(native_id, raw_session_id)

    async def load_session_detail(self, project: MergedProject, session_id: str) -> SessionDetail:
        """Load a session with plan/implementation links where the plugin provides them."""
        plugin, native_id, raw_session_id = self._resolve(project, session_id)
        if isinstance(plugin, SessionDetailSource):
            return await plugin.load_session_detail(native_id, raw_session_id)
        session = await plugin.load_session(native_id, raw_session_id)
        return SessionDetail(session=session)

    async def load_sub_agent_session(
        self, project: MergedProject, session_id: str, agent_id: str
    ) -> Session | None:
        """Load a sub-agent transcript, or None when the plugin records none."""
        plugin, native_id, raw_session_id = self._resolve(project, session_id)
        if not isinstance(plugin, SessionDetailSource):
            return None
        return await plugin.load_sub_agent_session(native_id, raw_session_id, agent_id)
