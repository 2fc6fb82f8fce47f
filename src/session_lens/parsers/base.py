"""Base parser interface and shared helpers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from session_lens.jsonl import truncate_raw_line
from session_lens.models import ParseErrorTurn, ParseErrorType, Turn

__all__ = [
    "IdSequence",
    "ParsedTranscript",
    "Parser",
    "make_parse_error",
    "optional_int",
]


class IdSequence:
    """Synthetic identifier generator scoped to a single parse.

    Each prefix gets its own counter starting at 1, so ``next("codex-tool")``
    yields ``codex-tool-1``, ``codex-tool-2``, ...
    """

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}

    def next(self, prefix: str) -> str:
        count = self._counters.get(prefix, 0) + 1
        self._counters[prefix] = count
        return f"{prefix}-{count}"


@dataclass
class ParsedTranscript:
    """Result of parsing one transcript.

    Attributes:
        turns: Turns in source-stream order
        slug: Session slug when the source records one
        sub_agents: Map of tool-use id to spawned sub-agent id
    """

    turns: list[Turn] = field(default_factory=list)
    slug: str | None = None
    sub_agents: dict[str, str] = field(default_factory=dict)


def make_parse_error(
    line_number: int,
    raw_line: str,
    error_type: ParseErrorType,
    timestamp: str = "",
    details: str | None = None,
) -> ParseErrorTurn:
    """Build a parse error turn for a source line that could not be used.

    Args:
        line_number: 1-based physical line number in the source file
        raw_line: Original line text (truncated for storage)
        error_type: "json_parse" or "invalid_structure"
        timestamp: Timestamp of the nearest preceding record
        details: Human readable reason

    Returns:
        ParseErrorTurn positioned at the given line
    """
    return ParseErrorTurn(
        uuid=f"parse-error-line-{line_number}",
        timestamp=timestamp,
        line_number=line_number,
        raw_line=truncate_raw_line(raw_line),
        error_type=error_type,
        error_details=details,
    )


def optional_int(value: Any) -> int | None:
    """Coerce a token count, keeping None for missing values."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


class Parser(ABC):
    """Base class for transcript parsers.

    Subclasses implement `parse()` to turn the raw JSONL text of one session
    into canonical turns. Parsers hold no per-parse state on the instance, so
    one instance can serve concurrent parses.
    """

    @abstractmethod
    def parse(self, text: str) -> ParsedTranscript:
        """Parse the full text of a transcript.

        Args:
            text: Raw JSONL transcript text

        Returns:
            ParsedTranscript with turns in stream order
        """
