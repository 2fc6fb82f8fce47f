"""Project and session discovery for Claude Code.

Layout under the data directory (default ~/.claude):
    projects/<encoded-project-path>/<session-id>.jsonl
    projects/<encoded-project-path>/<session-id>/subagents/agent-<id>.jsonl
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from session_lens.classify import classify_session_types
from session_lens.discovery.common import (
    decode_encoded_path,
    latest_mtime_iso,
    list_dirs,
    list_files_by_suffix,
)
from session_lens.jsonl import iterate_jsonl, read_text
from session_lens.logging import get_logger
from session_lens.markup import clean_command_message, is_skipped_user_text
from session_lens.models import PluginProject, SessionSummary
from session_lens.timeutil import sort_by_iso_desc

logger = get_logger("discovery.claude_code")

PLUGIN_ID = "claude-code"

CWD_SCAN_LINES = 20
META_SCAN_LINES = 50
FIRST_MESSAGE_MAX_CHARS = 200


def projects_dir(data_dir: Path) -> Path:
    return data_dir / "projects"


def session_file(data_dir: Path, native_id: str, session_id: str) -> Path:
    return projects_dir(data_dir) / native_id / f"{session_id}.jsonl"


def sub_agent_file(data_dir: Path, native_id: str, session_id: str, agent_id: str) -> Path:
    return projects_dir(data_dir) / native_id / session_id / "subagents" / f"agent-{agent_id}.jsonl"


def extract_cwd(path: Path) -> str:
    """Return the first ``cwd`` recorded in the first lines of a session."""
    text = read_text(path)
    if text is None:
        return ""
    for item in iterate_jsonl(text, max_lines=CWD_SCAN_LINES):
        if isinstance(item.parsed, dict) and isinstance(item.parsed.get("cwd"), str):
            if item.parsed["cwd"]:
                return item.parsed["cwd"]
    return ""


def discover_projects(data_dir: Path) -> list[PluginProject]:
    """Discover every project directory that holds at least one session.

    Args:
        data_dir: Claude Code data directory

    Returns:
        Projects sorted by last activity, newest first
    """
    projects: list[PluginProject] = []

    for project_dir in list_dirs(projects_dir(data_dir)):
        session_files = list_files_by_suffix(project_dir, ".jsonl")
        if not session_files:
            continue

        resolved_path = ""
        for path in session_files:
            resolved_path = extract_cwd(path)
            if resolved_path:
                break
        if not resolved_path:
            resolved_path = decode_encoded_path(project_dir.name)

        projects.append(
            PluginProject(
                plugin_id=PLUGIN_ID,
                native_id=project_dir.name,
                resolved_path=resolved_path,
                display_name=resolved_path,
                session_count=len(session_files),
                last_activity=latest_mtime_iso(session_files),
            )
        )

    logger.debug("Discovered %d Claude Code projects in %s", len(projects), data_dir)
    sort_by_iso_desc(projects, lambda project: project.last_activity)
    return projects


@dataclass
class _MetaFields:
    timestamp: str = ""
    slug: str = ""
    first_message: str = ""
    model: str = ""
    git_branch: str = ""

    def is_complete(self) -> bool:
        return all((self.timestamp, self.slug, self.first_message, self.model, self.git_branch))


def _first_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str):
                return block["text"]
    return ""


def _update_meta(obj: dict[str, Any], meta: _MetaFields) -> None:
    if not meta.timestamp and isinstance(obj.get("timestamp"), str):
        meta.timestamp = obj["timestamp"]
    if not meta.slug and isinstance(obj.get("slug"), str):
        meta.slug = obj["slug"]
    if not meta.git_branch and isinstance(obj.get("gitBranch"), str):
        meta.git_branch = obj["gitBranch"]

    message = obj.get("message")
    if not isinstance(message, dict):
        return
    if not meta.model and isinstance(message.get("model"), str):
        meta.model = message["model"]

    if not meta.first_message and obj.get("type") == "user" and not obj.get("isMeta"):
        raw = _first_text(message.get("content"))
        if raw and not is_skipped_user_text(raw):
            meta.first_message = clean_command_message(raw)[:FIRST_MESSAGE_MAX_CHARS]


def extract_session_meta(path: Path) -> SessionSummary | None:
    """Read listing metadata from the first lines of a session file.

    Returns:
        SessionSummary, or None when the file is unreadable or records no
        timestamp or user message in its first lines
    """
    text = read_text(path)
    if text is None:
        return None

    meta = _MetaFields()
    for item in iterate_jsonl(text, max_lines=META_SCAN_LINES):
        if not isinstance(item.parsed, dict):
            continue
        _update_meta(item.parsed, meta)
        if meta.is_complete():
            break

    if not meta.timestamp or not meta.first_message:
        return None

    return SessionSummary(
        session_id=path.stem,
        timestamp=meta.timestamp,
        slug=meta.slug,
        first_message=meta.first_message,
        model=meta.model or "unknown",
        git_branch=meta.git_branch,
        plugin_id=PLUGIN_ID,
    )


def list_sessions(data_dir: Path, native_id: str) -> list[SessionSummary]:
    """List and classify the sessions of one project, newest first."""
    sessions: list[SessionSummary] = []
    for path in list_files_by_suffix(projects_dir(data_dir) / native_id, ".jsonl"):
        summary = extract_session_meta(path)
        if summary is not None:
            sessions.append(summary)

    classify_session_types(sessions)
    sort_by_iso_desc(sessions, lambda session: session.timestamp)
    return sessions
