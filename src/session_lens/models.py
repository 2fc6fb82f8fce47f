"""Canonical data models.

Every source is normalized into these dataclasses. Field names are snake_case;
``to_dict()`` produces the camelCase shape consumed by the view layer.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal

SessionType = Literal["plan", "implementation"]
ParseErrorType = Literal["json_parse", "invalid_structure"]


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass
class TokenUsage:
    """Token accounting for one assistant turn."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int | None = None
    cache_creation_tokens: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "inputTokens": self.input_tokens,
                "outputTokens": self.output_tokens,
                "cacheReadTokens": self.cache_read_tokens,
                "cacheCreationTokens": self.cache_creation_tokens,
            }
        )


@dataclass
class ToolResultImage:
    media_type: str
    data: str

    def to_dict(self) -> dict[str, Any]:
        return {"mediaType": self.media_type, "data": self.data}


@dataclass
class ToolCallWithResult:
    """A tool invocation together with the result recorded for it."""

    tool_use_id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    result: str = ""
    is_error: bool = False
    result_images: list[ToolResultImage] | None = None
    sub_agent_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "toolUseId": self.tool_use_id,
                "name": self.name,
                "input": self.input,
                "result": self.result,
                "isError": self.is_error,
                "resultImages": (
                    [image.to_dict() for image in self.result_images]
                    if self.result_images
                    else None
                ),
                "subAgentId": self.sub_agent_id,
            }
        )


@dataclass
class ThinkingBlock:
    text: str


@dataclass
class ThinkingContent:
    block: ThinkingBlock

    type: ClassVar[str] = "thinking"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "block": {"text": self.block.text}}


@dataclass
class TextContent:
    text: str

    type: ClassVar[str] = "text"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ToolCallContent:
    call: ToolCallWithResult

    type: ClassVar[str] = "tool_call"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "call": self.call.to_dict()}


ContentBlock = ThinkingContent | TextContent | ToolCallContent


@dataclass
class Attachment:
    media_type: str
    type: str = "image"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "mediaType": self.media_type}


@dataclass
class CommandInfo:
    """A slash command invocation unwrapped from its text envelope."""

    name: str
    args: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "args": self.args}


@dataclass
class UserTurn:
    uuid: str
    timestamp: str
    text: str = ""
    command: CommandInfo | None = None
    attachments: list[Attachment] | None = None
    bash_input: str | None = None
    bash_stdout: str | None = None
    bash_stderr: str | None = None
    ide_opened_file: str | None = None

    kind: ClassVar[str] = "user"

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "kind": self.kind,
                "uuid": self.uuid,
                "timestamp": self.timestamp,
                "text": self.text,
                "command": self.command.to_dict() if self.command else None,
                "attachments": (
                    [attachment.to_dict() for attachment in self.attachments]
                    if self.attachments
                    else None
                ),
                "bashInput": self.bash_input,
                "bashStdout": self.bash_stdout,
                "bashStderr": self.bash_stderr,
                "ideOpenedFile": self.ide_opened_file,
            }
        )


@dataclass
class AssistantTurn:
    uuid: str
    timestamp: str
    model: str
    content_blocks: list[ContentBlock] = field(default_factory=list)
    usage: TokenUsage | None = None
    stop_reason: str | None = None

    kind: ClassVar[str] = "assistant"

    def tool_calls(self) -> list[ToolCallWithResult]:
        """Return the tool calls of this turn in emission order."""
        return [block.call for block in self.content_blocks if isinstance(block, ToolCallContent)]

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "kind": self.kind,
                "uuid": self.uuid,
                "timestamp": self.timestamp,
                "model": self.model,
                "contentBlocks": [block.to_dict() for block in self.content_blocks],
                "usage": self.usage.to_dict() if self.usage else None,
                "stopReason": self.stop_reason,
            }
        )


@dataclass
class SystemTurn:
    uuid: str
    timestamp: str
    text: str

    kind: ClassVar[str] = "system"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "uuid": self.uuid, "timestamp": self.timestamp, "text": self.text}


@dataclass
class ParseErrorTurn:
    """A source record that could not be turned into a regular turn."""

    uuid: str
    timestamp: str
    line_number: int
    raw_line: str
    error_type: ParseErrorType
    error_details: str | None = None

    kind: ClassVar[str] = "parse_error"

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "kind": self.kind,
                "uuid": self.uuid,
                "timestamp": self.timestamp,
                "lineNumber": self.line_number,
                "rawLine": self.raw_line,
                "errorType": self.error_type,
                "errorDetails": self.error_details,
            }
        )


Turn = UserTurn | AssistantTurn | SystemTurn | ParseErrorTurn


@dataclass
class PluginProject:
    """One source's view of a project."""

    plugin_id: str
    native_id: str
    resolved_path: str
    display_name: str
    session_count: int
    last_activity: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "pluginId": self.plugin_id,
            "nativeId": self.native_id,
            "resolvedPath": self.resolved_path,
            "displayName": self.display_name,
            "sessionCount": self.session_count,
            "lastActivity": self.last_activity,
        }


@dataclass
class ProjectSource:
    plugin_id: str
    native_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"pluginId": self.plugin_id, "nativeId": self.native_id}


@dataclass
class MergedProject:
    """All plugin projects that resolve to the same filesystem path."""

    encoded_path: str
    resolved_path: str
    session_count: int
    last_activity: str
    sources: list[ProjectSource] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.resolved_path

    @property
    def full_path(self) -> str:
        return self.resolved_path

    def source_for(self, plugin_id: str) -> ProjectSource | None:
        for source in self.sources:
            if source.plugin_id == plugin_id:
                return source
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "encodedPath": self.encoded_path,
            "resolvedPath": self.resolved_path,
            "name": self.name,
            "fullPath": self.full_path,
            "sessionCount": self.session_count,
            "lastActivity": self.last_activity,
            "sources": [source.to_dict() for source in self.sources],
        }


@dataclass
class SessionSummary:
    """Lightweight per-session listing row."""

    session_id: str
    timestamp: str
    slug: str
    first_message: str
    model: str
    git_branch: str = ""
    session_type: SessionType | None = None
    plugin_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "sessionId": self.session_id,
                "timestamp": self.timestamp,
                "slug": self.slug,
                "firstMessage": self.first_message,
                "model": self.model,
                "gitBranch": self.git_branch,
                "sessionType": self.session_type,
                "pluginId": self.plugin_id,
            }
        )


@dataclass
class Session:
    session_id: str
    project: str
    turns: list[Turn] = field(default_factory=list)
    plugin_id: str | None = None
    plan_session_id: str | None = None
    impl_session_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "sessionId": self.session_id,
                "project": self.project,
                "turns": [turn.to_dict() for turn in self.turns],
                "pluginId": self.plugin_id,
                "planSessionId": self.plan_session_id,
                "implSessionId": self.impl_session_id,
            }
        )


@dataclass
class SessionDetail:
    """A loaded session together with its plan/implementation cross-links."""

    session: Session
    plan_session_id: str | None = None
    impl_session_id: str | None = None


@dataclass
class Badge:
    label: str
    class_name: str

    def to_dict(self) -> dict[str, Any]:
        return {"label": self.label, "className": self.class_name}


@dataclass
class ModelTokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    def add(self, usage: TokenUsage) -> None:
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens
        self.cache_read_tokens += usage.cache_read_tokens or 0
        self.cache_creation_tokens += usage.cache_creation_tokens or 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "cacheReadTokens": self.cache_read_tokens,
            "cacheCreationTokens": self.cache_creation_tokens,
        }


@dataclass
class DashboardStats:
    """Aggregate counters across every project and session."""

    projects: int = 0
    sessions: int = 0
    messages: int = 0
    today_sessions: int = 0
    this_week_sessions: int = 0
    tool_calls: int = 0
    totals: ModelTokenUsage = field(default_factory=ModelTokenUsage)
    models: dict[str, ModelTokenUsage] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "projects": self.projects,
            "sessions": self.sessions,
            "messages": self.messages,
            "todaySessions": self.today_sessions,
            "thisWeekSessions": self.this_week_sessions,
            "inputTokens": self.totals.input_tokens,
            "outputTokens": self.totals.output_tokens,
            "cacheReadTokens": self.totals.cache_read_tokens,
            "cacheCreationTokens": self.totals.cache_creation_tokens,
            "toolCalls": self.tool_calls,
            "models": {name: usage.to_dict() for name, usage in self.models.items()},
        }
