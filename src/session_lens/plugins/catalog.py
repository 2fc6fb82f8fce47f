"""Built-in plugins and registry construction from configuration."""

from collections.abc import Callable
from pathlib import Path

from session_lens.config import Config
from session_lens.logging import get_logger
from session_lens.plugins.base import ToolPlugin
from session_lens.plugins.claude_code import ClaudeCodePlugin
from session_lens.plugins.codex import CodexPlugin
from session_lens.plugins.opencode import OpenCodePlugin
from session_lens.plugins.registry import PluginRegistry

logger = get_logger("catalog")

BUILTIN_PLUGINS: dict[str, Callable[[Path | None], ToolPlugin]] = {
    ClaudeCodePlugin.id: ClaudeCodePlugin,
    CodexPlugin.id: CodexPlugin,
    OpenCodePlugin.id: OpenCodePlugin,
}


def create_plugin(plugin_id: str, data_dir: Path | None = None) -> ToolPlugin:
    """Instantiate a built-in plugin.

    Raises:
        KeyError: If plugin_id is not a built-in plugin
    """
    return BUILTIN_PLUGINS[plugin_id](data_dir)


def create_registry(config: Config | None = None, skip_unavailable: bool = True) -> PluginRegistry:
    """Build a registry holding every enabled built-in plugin.

    Args:
        config: Loaded configuration (defaults apply when omitted)
        skip_unavailable: Leave out plugins whose data directory holds no data

    Returns:
        PluginRegistry
    """
    if config is None:
        config = Config()

    registry = PluginRegistry()
    for plugin_id in BUILTIN_PLUGINS:
        plugin_config = config.plugin(plugin_id)
        if not plugin_config.enabled:
            logger.info("Plugin %s disabled by configuration", plugin_id)
            continue

        plugin = create_plugin(plugin_id, plugin_config.data_dir)
        if skip_unavailable and not plugin.is_data_available():
            logger.debug(
                "Plugin %s has no data at %s",
                plugin_id,
                plugin_config.data_dir or plugin.get_default_data_dir(),
            )
            continue
        registry.register(plugin)

    return registry
