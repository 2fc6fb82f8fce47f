"""Shared fixtures for building on-disk session stores."""

import json
import os
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from session_lens.models import Badge, PluginProject, Session, SessionSummary

JsonlWriter = Callable[[Path, list[Any]], Path]


def write_jsonl(path: Path, lines: list[Any]) -> Path:
    """Write records as JSONL; str entries are written verbatim."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write(line if isinstance(line, str) else json.dumps(line))
            f.write("\n")
    return path


def set_mtime(path: Path, epoch_seconds: float) -> None:
    os.utime(path, (epoch_seconds, epoch_seconds))


@pytest.fixture
def jsonl_writer() -> JsonlWriter:
    return write_jsonl


OPENCODE_SCHEMA = """
CREATE TABLE project (id TEXT PRIMARY KEY, worktree TEXT, name TEXT, time_created INTEGER);
CREATE TABLE session (
    id TEXT PRIMARY KEY, project_id TEXT, directory TEXT, title TEXT, slug TEXT,
    time_created INTEGER, time_updated INTEGER
);
CREATE TABLE message (id TEXT PRIMARY KEY, session_id TEXT, time_created INTEGER, data TEXT);
CREATE TABLE part (
    id TEXT PRIMARY KEY, message_id TEXT, session_id TEXT, time_created INTEGER, data TEXT
);
"""


class OpenCodeDbBuilder:
    """Writes rows into a fresh opencode.db."""

    def __init__(self, data_dir: Path, schema: str = OPENCODE_SCHEMA) -> None:
        data_dir.mkdir(parents=True, exist_ok=True)
        self.path = data_dir / "opencode.db"
        self.conn = sqlite3.connect(self.path)
        self.conn.executescript(schema)

    def project(self, project_id: str, worktree: str, name: str | None = None, time_created: int = 0) -> None:
        self.conn.execute(
            "INSERT INTO project (id, worktree, name, time_created) VALUES (?, ?, ?, ?)",
            (project_id, worktree, name, time_created),
        )

    def session(
        self,
        session_id: str,
        project_id: str,
        directory: str,
        time_created: int,
        title: str = "",
        slug: str = "",
        time_updated: int | None = None,
    ) -> None:
        self.conn.execute(
            "INSERT INTO session (id, project_id, directory, title, slug, time_created, time_updated)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            (session_id, project_id, directory, title, slug, time_created, time_updated or time_created),
        )

    def message(self, message_id: str, session_id: str, time_created: int, data: dict[str, Any] | str) -> None:
        raw = data if isinstance(data, str) else json.dumps(data)
        self.conn.execute(
            "INSERT INTO message (id, session_id, time_created, data) VALUES (?, ?, ?, ?)",
            (message_id, session_id, time_created, raw),
        )

    def part(
        self, part_id: str, message_id: str, session_id: str, data: dict[str, Any] | str, time_created: int = 0
    ) -> None:
        raw = data if isinstance(data, str) else json.dumps(data)
        self.conn.execute(
            "INSERT INTO part (id, message_id, session_id, time_created, data) VALUES (?, ?, ?, ?, ?)",
            (part_id, message_id, session_id, time_created, raw),
        )

    def close(self) -> None:
        self.conn.commit()
        self.conn.close()


@pytest.fixture
def opencode_db(tmp_path: Path) -> Callable[..., OpenCodeDbBuilder]:
    """Factory for OpenCode databases under tmp_path/opencode."""

    def make(schema: str = OPENCODE_SCHEMA) -> OpenCodeDbBuilder:
        return OpenCodeDbBuilder(tmp_path / "opencode", schema)

    return make


class FakePlugin:
    """In-memory plugin returning canned data."""

    display_name = "Fake"

    def __init__(
        self,
        plugin_id: str,
        projects: list[PluginProject] | None = None,
        sessions: dict[str, list[SessionSummary]] | None = None,
        loaded_sessions: dict[str, Session] | None = None,
    ) -> None:
        self.id = plugin_id
        self.projects = projects or []
        self.sessions = sessions or {}
        self.loaded_sessions = loaded_sessions or {}
        self.loaded: list[tuple[str, str]] = []

    def get_default_data_dir(self) -> Path:
        return Path("/nonexistent")

    def is_data_available(self) -> bool:
        return True

    async def discover_projects(self) -> list[PluginProject]:
        return self.projects

    async def list_sessions(self, native_id: str) -> list[SessionSummary]:
        return self.sessions.get(native_id, [])

    async def load_session(self, native_id: str, session_id: str) -> Session:
        self.loaded.append((native_id, session_id))
        if session_id in self.loaded_sessions:
            return self.loaded_sessions[session_id]
        return Session(session_id=session_id, project=native_id, plugin_id=self.id)

    def get_resume_command(self, session_id: str) -> str | None:
        return None

    def get_session_badges(self, summary: SessionSummary) -> list[Badge]:
        return []
