"""Configuration loading and management."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class PluginConfig:
    enabled: bool = True
    data_dir: Path | None = None


@dataclass
class Config:
    log_dir: Path = field(default_factory=lambda: Path.home() / ".session-lens" / "logs")
    plugins: dict[str, PluginConfig] = field(default_factory=dict)

    def plugin(self, plugin_id: str) -> PluginConfig:
        """Settings for one plugin; unconfigured plugins get defaults."""
        return self.plugins.get(plugin_id, PluginConfig())


def expand_env_var(value: str) -> str:
    """Expand environment variables in string (e.g. ${VAR})."""
    if value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, value)
    return value


def expand_path(path_str: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expandvars(os.path.expanduser(path_str)))


def find_config_file() -> Path | None:
    """Return the first config file found in the standard locations."""
    search_paths = [
        Path.cwd() / "config.yaml",
        Path.home() / ".config" / "session-lens" / "config.yaml",
        Path("/etc/session-lens/config.yaml"),
    ]
    for path in search_paths:
        if path.exists():
            return path
    return None


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from YAML file.

    Example::

        log_dir: ~/.session-lens/logs
        plugins:
          claude-code:
            data_dir: ~/.claude
          opencode:
            enabled: false

    Args:
        config_path: Explicit config file; the standard locations are searched
            when omitted

    Returns:
        Config, with defaults for anything the file leaves out
    """
    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.exists():
        return Config()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    plugins = {}
    for plugin_id, plugin_data in (data.get("plugins") or {}).items():
        plugin_data = plugin_data or {}
        data_dir = plugin_data.get("data_dir")
        plugins[plugin_id] = PluginConfig(
            enabled=plugin_data.get("enabled", True),
            data_dir=expand_path(expand_env_var(str(data_dir))) if data_dir else None,
        )

    log_dir = data.get("log_dir")
    if log_dir:
        return Config(log_dir=expand_path(expand_env_var(str(log_dir))), plugins=plugins)
    return Config(plugins=plugins)
