"""Filesystem helpers shared by the discovery modules."""

import os
import re
import sys
from pathlib import Path

from session_lens.timeutil import epoch_seconds_to_iso

_DRIVE_PREFIX_RE = re.compile(r"^[A-Za-z]/")


def default_claude_dir() -> Path:
    return Path.home() / ".claude"


def default_codex_dir() -> Path:
    codex_home = os.environ.get("CODEX_HOME")
    return Path(codex_home) if codex_home else Path.home() / ".codex"


def default_opencode_dir() -> Path:
    """OpenCode data directory.

    Location: $XDG_DATA_HOME/opencode, else ~/.local/share/opencode
    """
    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg_data_home) if xdg_data_home else Path.home() / ".local" / "share"
    return base / "opencode"


def list_dirs(path: Path) -> list[Path]:
    """Subdirectories of a directory, sorted by name; empty when unreadable."""
    try:
        return sorted(entry for entry in path.iterdir() if entry.is_dir())
    except OSError:
        return []


def list_files_by_suffix(path: Path, suffix: str) -> list[Path]:
    try:
        return sorted(
            entry for entry in path.iterdir() if entry.name.endswith(suffix) and entry.is_file()
        )
    except OSError:
        return []


def file_mtime_iso(path: Path) -> str:
    """Modification time as an ISO timestamp, or "" when the file is gone."""
    try:
        return epoch_seconds_to_iso(path.stat().st_mtime)
    except OSError:
        return ""


def latest_mtime_iso(paths: list[Path]) -> str:
    latest = ""
    for path in paths:
        mtime = file_mtime_iso(path)
        if mtime > latest:
            latest = mtime
    return latest


def decode_encoded_path(encoded: str, platform: str | None = None) -> str:
    """Decode a project directory name back into a filesystem path.

    Claude Code names project directories after their path with every
    separator replaced by a dash:
        "-Users-foo-Workspace-bar" -> "/Users/foo/Workspace/bar"
        "-C-Users-foo-bar"         -> "C:/Users/foo/bar" (Windows)

    Dashes that were part of a directory name cannot be told apart from
    separators, so this is only used when no session records its cwd.

    Args:
        encoded: Directory name
        platform: Platform to decode for (defaults to sys.platform)

    Returns:
        Decoded path
    """
    if platform is None:
        platform = sys.platform

    if encoded.startswith("-"):
        with_slashes = encoded[1:].replace("-", "/")
        if platform == "win32" and _DRIVE_PREFIX_RE.match(with_slashes):
            return f"{with_slashes[0]}:{with_slashes[1:]}"
        return f"/{with_slashes}"
    return encoded.replace("-", "/")
