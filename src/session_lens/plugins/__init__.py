"""Tool plugins and the registry that merges them."""

from .base import (
    ParsedSessionId,
    PluginNotFoundError,
    SessionDetailSource,
    ToolPlugin,
    encode_session_id,
    parse_session_id,
)
from .catalog import BUILTIN_PLUGINS, create_plugin, create_registry
from .claude_code import ClaudeCodePlugin
from .codex import CodexPlugin
from .opencode import OpenCodePlugin
from .registry import PluginRegistry, encode_resolved_path, merge_projects

__all__ = [
    "BUILTIN_PLUGINS",
    "ClaudeCodePlugin",
    "CodexPlugin",
    "OpenCodePlugin",
    "ParsedSessionId",
    "PluginNotFoundError",
    "PluginRegistry",
    "SessionDetailSource",
    "ToolPlugin",
    "create_plugin",
    "create_registry",
    "encode_resolved_path",
    "encode_session_id",
    "merge_projects",
    "parse_session_id",
]
