"""Shared JSONL reading utilities."""

import json
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Longest raw line kept on a parse error record
MAX_RAW_LINE_CHARS = 500


@dataclass
class JsonlLine:
    """One successfully decoded JSONL line."""

    parsed: Any
    line: str
    line_number: int  # 1-based, blank lines included in the count


MalformedCallback = Callable[[str, int, json.JSONDecodeError], None]


def iterate_jsonl(
    text: str,
    on_malformed: MalformedCallback | None = None,
    start_at: int = 0,
    max_lines: int | None = None,
) -> Iterator[JsonlLine]:
    """Iterate over the decoded lines of a JSONL document.

    Blank lines are skipped but still counted, so line numbers always match
    the physical line in the source file.

    Args:
        text: Full JSONL text
        on_malformed: Called with (line, line_number, error) for undecodable lines
        start_at: Zero-based index of the first physical line to visit
        max_lines: Maximum number of physical lines to visit

    Yields:
        JsonlLine for every line that decodes as JSON
    """
    lines = text.split("\n")
    start = max(0, start_at)
    end = len(lines) if max_lines is None else min(len(lines), start + max_lines)

    for index in range(start, end):
        line = lines[index]
        if not line.strip():
            continue
        try:
            parsed = json.loads(line)
        except json.JSONDecodeError as e:
            if on_malformed is not None:
                on_malformed(line, index + 1, e)
            continue
        yield JsonlLine(parsed=parsed, line=line, line_number=index + 1)


def truncate_raw_line(line: str) -> str:
    if len(line) > MAX_RAW_LINE_CHARS:
        return f"{line[:MAX_RAW_LINE_CHARS]}… (truncated)"
    return line


def read_text(path: Path) -> str | None:
    """Read a UTF-8 file, returning None when it cannot be read."""
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def read_text_prefix(path: Path, max_bytes: int) -> str:
    """Read at most ``max_bytes`` from the start of a file.

    A multi-byte character cut at the boundary is replaced rather than raising.
    """
    with open(path, "rb") as f:
        data = f.read(max_bytes)
    return data.decode("utf-8", errors="replace")


def read_first_line(path: Path, max_bytes: int = 64 * 1024) -> str | None:
    try:
        text = read_text_prefix(path, max_bytes)
    except OSError:
        return None
    first_line = text.split("\n", 1)[0]
    return first_line if first_line.strip() else None
