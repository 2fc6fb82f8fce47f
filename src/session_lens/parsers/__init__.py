"""Parsers for the supported transcript formats."""

from .base import IdSequence, ParsedTranscript, Parser, make_parse_error
from .claude_code import ClaudeCodeParser
from .codex import CodexParser
from .opencode import OpenCodeMessage, build_opencode_turns

__all__ = [
    "ClaudeCodeParser",
    "CodexParser",
    "IdSequence",
    "OpenCodeMessage",
    "ParsedTranscript",
    "Parser",
    "build_opencode_turns",
    "make_parse_error",
]
