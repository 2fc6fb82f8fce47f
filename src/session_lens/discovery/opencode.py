"""Project and session discovery for OpenCode.

OpenCode keeps everything in <data_dir>/opencode.db:
    project(id, worktree, name, time_created, ...)
    session(id, project_id, directory, title, slug, time_created, time_updated, ...)
    message(id, session_id, time_created, data)      -- data is JSON
    part(id, message_id, session_id, time_created, data)

The schema has changed between OpenCode releases, so it is inspected before
each query. The database is always opened read-only.
"""

import json
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

from session_lens.logging import get_logger
from session_lens.models import PluginProject, Session, SessionSummary
from session_lens.parsers.opencode import OpenCodeMessage, build_opencode_turns
from session_lens.timeutil import epoch_ms_to_iso

logger = get_logger("discovery.opencode")

PLUGIN_ID = "opencode"

DB_FILENAME = "opencode.db"
DEFAULT_FIRST_MESSAGE = "OpenCode session"
FIRST_MESSAGE_MAX_CHARS = 200
TITLE_SCAN_MESSAGES = 5
MODEL_SCAN_MESSAGES = 10


@dataclass
class OpenCodeSchema:
    """Tables and columns present in an OpenCode database."""

    tables: set[str] = field(default_factory=set)
    project_columns: set[str] = field(default_factory=set)
    session_columns: set[str] = field(default_factory=set)

    @property
    def has_required_tables(self) -> bool:
        return {"session", "message", "part"} <= self.tables

    @property
    def has_project_table(self) -> bool:
        return "project" in self.tables

    @property
    def uses_project_table(self) -> bool:
        """True when projects come from the project table rather than sessions."""
        return self.has_project_table and "worktree" in self.project_columns

    @property
    def session_group_column(self) -> str | None:
        """Session column that identifies a project, or None if there is none."""
        if self.uses_project_table:
            return "project_id"
        if "directory" in self.session_columns:
            return "directory"
        if "project_id" in self.session_columns:
            return "project_id"
        return None


def db_path(data_dir: Path) -> Path:
    return data_dir / DB_FILENAME


def _decode(raw: Any) -> dict[str, Any] | None:
    if not isinstance(raw, (str, bytes)):
        return None
    try:
        decoded = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return decoded if isinstance(decoded, dict) else None


class OpenCodeDatabase:
    """Read-only access to an OpenCode database.

    Use as a context manager so the connection is closed on every path::

        with OpenCodeDatabase(path) as db:
            projects = db.discover_projects()
    """

    def __init__(self, path: Path) -> None:
        """Open the database read-only.

        Args:
            path: Path to opencode.db

        Raises:
            sqlite3.Error: If the file does not exist or cannot be opened
        """
        self._path = path
        self._conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
        self._conn.row_factory = sqlite3.Row
        self._schema: OpenCodeSchema | None = None

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    @property
    def schema(self) -> OpenCodeSchema:
        if self._schema is None:
            self._schema = self._inspect_schema()
        return self._schema

    def _columns(self, table: str) -> set[str]:
        rows = self._conn.execute(f"PRAGMA table_info({table})").fetchall()
        return {row["name"] for row in rows}

    def _inspect_schema(self) -> OpenCodeSchema:
        rows = self._conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        tables = {row["name"] for row in rows}
        return OpenCodeSchema(
            tables=tables,
            project_columns=self._columns("project") if "project" in tables else set(),
            session_columns=self._columns("session") if "session" in tables else set(),
        )

    def discover_projects(self) -> list[PluginProject]:
        """Projects with at least one session, newest activity first."""
        if not self.schema.has_required_tables:
            return []
        if self.schema.uses_project_table:
            return self._projects_from_project_table()
        return self._projects_from_sessions()

    def _projects_from_project_table(self) -> list[PluginProject]:
        select_name = "p.name" if "name" in self.schema.project_columns else "NULL"
        project_created = "p.time_created" if "time_created" in self.schema.project_columns else "NULL"
        rows = self._conn.execute(
            f"""
            SELECT p.id AS id, p.worktree AS worktree, {select_name} AS name,
                   count(s.id) AS session_count,
                   coalesce(max(s.time_updated), max(s.time_created), {project_created}) AS last_activity
            FROM project p
            LEFT JOIN session s ON s.project_id = p.id
            GROUP BY p.id
            HAVING session_count > 0
            ORDER BY last_activity DESC
            """
        ).fetchall()

        return [
            PluginProject(
                plugin_id=PLUGIN_ID,
                native_id=row["id"],
                resolved_path=row["worktree"],
                display_name=row["name"] or row["worktree"],
                session_count=row["session_count"],
                last_activity=epoch_ms_to_iso(row["last_activity"] or 0),
            )
            for row in rows
        ]

    def _projects_from_sessions(self) -> list[PluginProject]:
        group_column = self.schema.session_group_column
        if group_column is None:
            return []
        rows = self._conn.execute(
            f"""
            SELECT {group_column} AS group_key,
                   count(*) AS session_count,
                   coalesce(max(time_updated), max(time_created)) AS last_activity
            FROM session
            GROUP BY {group_column}
            ORDER BY last_activity DESC
            """
        ).fetchall()

        return [
            PluginProject(
                plugin_id=PLUGIN_ID,
                native_id=row["group_key"],
                resolved_path=row["group_key"],
                display_name=row["group_key"],
                session_count=row["session_count"],
                last_activity=epoch_ms_to_iso(row["last_activity"] or 0),
            )
            for row in rows
            if row["group_key"]
        ]

    def list_sessions(self, native_id: str) -> list[SessionSummary]:
        """Sessions of one project, newest first.

        Sessions are selected by the same column discovery grouped on, so a
        project id always finds its own sessions.
        """
        group_column = self.schema.session_group_column
        if not self.schema.has_required_tables or group_column is None:
            return []

        title = "title" if "title" in self.schema.session_columns else "''"
        slug = "slug" if "slug" in self.schema.session_columns else "id"
        rows = self._conn.execute(
            f"""
            SELECT id, {title} AS title, {slug} AS slug, time_created
            FROM session
            WHERE {group_column} = ?
            ORDER BY time_created DESC
            """,
            (native_id,),
        ).fetchall()

        return [
            SessionSummary(
                session_id=row["id"],
                timestamp=epoch_ms_to_iso(row["time_created"] or 0),
                slug=row["slug"] or row["id"],
                first_message=row["title"] or self._first_user_message(row["id"]) or DEFAULT_FIRST_MESSAGE,
                model=self._session_model(row["id"]) or "unknown",
                plugin_id=PLUGIN_ID,
            )
            for row in rows
        ]

    def _message_rows(self, session_id: str, limit: int | None = None) -> list[sqlite3.Row]:
        query = "SELECT id, time_created, data FROM message WHERE session_id = ? ORDER BY time_created ASC"
        if limit is not None:
            return self._conn.execute(f"{query} LIMIT ?", (session_id, limit)).fetchall()
        return self._conn.execute(query, (session_id,)).fetchall()

    def _first_user_message(self, session_id: str) -> str | None:
        for message in self._message_rows(session_id, TITLE_SCAN_MESSAGES):
            data = _decode(message["data"])
            if data is None or data.get("role") != "user":
                continue
            parts = self._conn.execute(
                "SELECT data FROM part WHERE message_id = ? ORDER BY id ASC",
                (message["id"],),
            ).fetchall()
            for part in parts:
                part_data = _decode(part["data"])
                if part_data and part_data.get("type") == "text" and part_data.get("text"):
                    return str(part_data["text"])[:FIRST_MESSAGE_MAX_CHARS]
        return None

    def _session_model(self, session_id: str) -> str:
        for message in self._message_rows(session_id, MODEL_SCAN_MESSAGES):
            data = _decode(message["data"])
            if data and data.get("role") == "assistant" and data.get("modelID"):
                return str(data["modelID"])
        return ""

    def load_session(self, native_id: str, session_id: str) -> Session:
        """Load one session with its turns.

        Message and part rows whose JSON cannot be decoded are skipped.
        """
        if not self.schema.has_required_tables:
            return Session(session_id=session_id, project=native_id, plugin_id=PLUGIN_ID)

        project = native_id
        if "directory" in self.schema.session_columns:
            row = self._conn.execute(
                "SELECT directory FROM session WHERE id = ?", (session_id,)
            ).fetchone()
            if row is not None and row["directory"]:
                project = row["directory"]

        message_rows = self._message_rows(session_id)
        if not message_rows:
            return Session(session_id=session_id, project=project, plugin_id=PLUGIN_ID)

        part_rows = self._conn.execute(
            "SELECT message_id, data FROM part WHERE session_id = ? ORDER BY message_id, id ASC",
            (session_id,),
        ).fetchall()
        parts_by_message: dict[str, list[dict[str, Any]]] = {}
        for part in part_rows:
            part_data = _decode(part["data"])
            if part_data is not None:
                parts_by_message.setdefault(part["message_id"], []).append(part_data)

        messages = []
        for row in message_rows:
            data = _decode(row["data"])
            if data is None:
                continue
            messages.append(
                OpenCodeMessage(
                    id=row["id"],
                    data=data,
                    time_created=row["time_created"] or 0,
                    parts=parts_by_message.get(row["id"], []),
                )
            )

        return Session(
            session_id=session_id,
            project=project,
            turns=build_opencode_turns(messages),
            plugin_id=PLUGIN_ID,
        )


def open_database(data_dir: Path) -> OpenCodeDatabase | None:
    """Open the OpenCode database, or return None when it is missing or unreadable."""
    path = db_path(data_dir)
    if not path.is_file():
        return None
    try:
        return OpenCodeDatabase(path)
    except sqlite3.Error as e:
        logger.warning("Cannot open OpenCode database %s: %s", path, e)
        return None


def discover_projects(data_dir: Path) -> list[PluginProject]:
    db = open_database(data_dir)
    if db is None:
        return []
    with db:
        try:
            return db.discover_projects()
        except sqlite3.Error as e:
            logger.warning("OpenCode project discovery failed: %s", e)
            return []


def list_sessions(data_dir: Path, native_id: str) -> list[SessionSummary]:
    db = open_database(data_dir)
    if db is None:
        return []
    with db:
        try:
            return db.list_sessions(native_id)
        except sqlite3.Error as e:
            logger.warning("OpenCode session listing failed for %s: %s", native_id, e)
            return []


def load_session(data_dir: Path, native_id: str, session_id: str) -> Session:
    empty = Session(session_id=session_id, project=native_id, plugin_id=PLUGIN_ID)
    db = open_database(data_dir)
    if db is None:
        return empty
    with db:
        try:
            return db.load_session(native_id, session_id)
        except sqlite3.Error as e:
            logger.warning("OpenCode session %s could not be loaded: %s", session_id, e)
            return empty
