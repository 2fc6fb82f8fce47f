"""Project and session discovery for Codex CLI.

Sessions live anywhere below <data_dir>/sessions/ (default ~/.codex). Each
file's first line is its session header, which names the session id and the
working directory used to group sessions into projects.
"""

import json
from dataclasses import dataclass
from pathlib import Path

from session_lens.discovery.common import file_mtime_iso
from session_lens.jsonl import read_first_line, read_text, read_text_prefix
from session_lens.logging import get_logger
from session_lens.models import PluginProject, SessionSummary
from session_lens.parsers.codex import (
    CodexSessionMeta,
    extract_first_user_message,
    normalize_session_meta,
)
from session_lens.timeutil import epoch_seconds_to_iso, sort_by_iso_desc

logger = get_logger("discovery.codex")

PLUGIN_ID = "codex-cli"

TITLE_SCAN_BYTES = 256 * 1024
DEFAULT_FIRST_MESSAGE = "Codex session"


@dataclass
class SessionFileInfo:
    path: Path
    meta: CodexSessionMeta
    mtime: str


class SessionPathCache:
    """Maps Codex session ids to their files.

    The cache is bound to one sessions root at a time; asking about a
    different root drops every entry. Hits are re-checked against the
    filesystem and evicted when the file has gone away.
    """

    def __init__(self) -> None:
        self._root: Path | None = None
        self._paths: dict[str, Path] = {}

    def _bind(self, root: Path) -> None:
        if root != self._root:
            self._paths.clear()
            self._root = root

    def record(self, root: Path, session_id: str, path: Path) -> None:
        self._bind(root)
        self._paths[session_id] = path

    def get(self, root: Path, session_id: str) -> Path | None:
        self._bind(root)
        path = self._paths.get(session_id)
        if path is None:
            return None
        if not path.is_file():
            del self._paths[session_id]
            return None
        return path

    def clear(self) -> None:
        self._paths.clear()
        self._root = None

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._paths


def sessions_dir(data_dir: Path) -> Path:
    return data_dir / "sessions"


def walk_session_files(root: Path) -> list[Path]:
    """All ``*.jsonl`` files below root, in a stable order."""
    if not root.is_dir():
        return []
    try:
        return sorted(path for path in root.rglob("*.jsonl") if path.is_file())
    except OSError:
        return []


def read_session_meta(path: Path) -> CodexSessionMeta | None:
    """Read and normalize the header line of a session file."""
    first_line = read_first_line(path)
    if first_line is None:
        return None
    try:
        parsed = json.loads(first_line)
    except json.JSONDecodeError:
        return None

    try:
        mtime: float | None = path.stat().st_mtime
    except OSError:
        mtime = None
    return normalize_session_meta(parsed, mtime)


def scan_sessions(data_dir: Path, cache: SessionPathCache | None = None) -> list[SessionFileInfo]:
    """Read the header of every session file.

    Args:
        data_dir: Codex data directory
        cache: Path cache to populate with every session found

    Returns:
        One entry per file with a valid header
    """
    root = sessions_dir(data_dir)
    sessions: list[SessionFileInfo] = []

    for path in walk_session_files(root):
        meta = read_session_meta(path)
        if meta is None:
            logger.debug("Skipping Codex file without session header: %s", path)
            continue
        mtime = file_mtime_iso(path)
        if not mtime:
            continue
        sessions.append(SessionFileInfo(path=path, meta=meta, mtime=mtime))
        if cache is not None:
            cache.record(root, meta.uuid, path)

    return sessions


def _matches_session_id(path: Path, session_id: str) -> bool:
    return path.name == f"{session_id}.jsonl" or path.name.endswith(f"-{session_id}.jsonl")


def find_session_file(
    data_dir: Path,
    session_id: str,
    cache: SessionPathCache | None = None,
) -> Path | None:
    """Locate the file of a session by id.

    A cache hit is returned directly. On a miss the whole tree is walked
    once, recording every session it contains.
    """
    root = sessions_dir(data_dir)
    if cache is not None:
        path = cache.get(root, session_id)
        if path is not None:
            return path

    found: Path | None = None
    for path in walk_session_files(root):
        meta = read_session_meta(path)
        if meta is not None and cache is not None:
            cache.record(root, meta.uuid, path)
        if found is not None:
            continue
        if (meta is not None and meta.uuid == session_id) or _matches_session_id(path, session_id):
            found = path

    if found is not None and cache is not None:
        cache.record(root, session_id, found)
    return found


def discover_projects(data_dir: Path, cache: SessionPathCache | None = None) -> list[PluginProject]:
    """Group sessions into projects by working directory."""
    by_cwd: dict[str, list[SessionFileInfo]] = {}
    for info in scan_sessions(data_dir, cache):
        by_cwd.setdefault(info.meta.cwd, []).append(info)

    projects = [
        PluginProject(
            plugin_id=PLUGIN_ID,
            native_id=cwd,
            resolved_path=cwd,
            display_name=cwd,
            session_count=len(infos),
            last_activity=max(info.mtime for info in infos),
        )
        for cwd, infos in by_cwd.items()
    ]

    logger.debug("Discovered %d Codex projects in %s", len(projects), data_dir)
    sort_by_iso_desc(projects, lambda project: project.last_activity)
    return projects


def session_title(info: SessionFileInfo) -> str:
    """Pick the listing text for a session.

    Order: the header's name, the first user message within the first
    256 KiB, the first user message anywhere in the file, a fixed fallback.
    """
    if info.meta.name:
        return info.meta.name

    try:
        prefix = read_text_prefix(info.path, TITLE_SCAN_BYTES)
    except OSError:
        return DEFAULT_FIRST_MESSAGE
    message = extract_first_user_message(prefix)
    if message:
        return message

    full_text = read_text(info.path)
    if full_text is not None:
        message = extract_first_user_message(full_text)
    return message or DEFAULT_FIRST_MESSAGE


def list_sessions(
    data_dir: Path,
    native_id: str,
    cache: SessionPathCache | None = None,
) -> list[SessionSummary]:
    """List the sessions recorded in one working directory, newest first."""
    sessions = [
        SessionSummary(
            session_id=info.meta.uuid,
            timestamp=epoch_seconds_to_iso(info.meta.created),
            slug=info.meta.uuid,
            first_message=session_title(info),
            model=info.meta.model or "unknown",
            plugin_id=PLUGIN_ID,
        )
        for info in scan_sessions(data_dir, cache)
        if info.meta.cwd == native_id
    ]
    sort_by_iso_desc(sessions, lambda session: session.timestamp)
    return sessions
