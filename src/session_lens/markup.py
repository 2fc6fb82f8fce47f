"""Matchers for the text envelopes Claude Code embeds in user messages.

Slash commands look like::

    <command-message>feature-dev:feature-dev</command-message>
    <command-name>/feature-dev:feature-dev</command-name>
    <command-args>please create a pr...</command-args>

Shell escapes are recorded as ``<bash-input>``, ``<bash-stdout>`` and
``<bash-stderr>`` envelopes, and files opened in an IDE as an
``<ide_opened_file>`` sentence. Each matcher returns None when its envelope is
absent or does not have the expected shape; the caller then keeps the text as
written.
"""

import re
from dataclasses import dataclass

from session_lens.models import CommandInfo

PLAN_PREFIX = "Implement the following plan"

_COMMAND_NAME_RE = re.compile(r"<command-name>([\s\S]*?)</command-name>")
_COMMAND_ARGS_RE = re.compile(r"<command-args>([\s\S]*?)</command-args>")
_COMMAND_MESSAGE_TAG_RE = re.compile(r"<command-message>[\s\S]*?</command-message>")
_COMMAND_NAME_TAG_RE = re.compile(r"<command-name>[\s\S]*?</command-name>")

_BASH_INPUT_RE = re.compile(r"<bash-input>([\s\S]*?)</bash-input>")
_BASH_STDOUT_RE = re.compile(r"<bash-stdout>([\s\S]*?)</bash-stdout>")
_BASH_STDERR_RE = re.compile(r"<bash-stderr>([\s\S]*?)</bash-stderr>")
_IDE_OPENED_FILE_RE = re.compile(
    r"<ide_opened_file>[\s\S]*?opened the file (.*?) in the IDE[\s\S]*?</ide_opened_file>"
)
_AGENT_ID_RE = re.compile(r"agentId:\s*(\w+)")
_STATUS_RE = re.compile(r"^\[.+\]$")

_SKIPPED_PREFIXES = (
    "<local-command",
    "<command-name",
    "<task-notification",
    "<system-reminder",
)


def parse_command_message(text: str) -> CommandInfo | None:
    """Parse a slash command envelope into its name and arguments."""
    if "<command-message>" not in text:
        return None

    name_match = _COMMAND_NAME_RE.search(text)
    args_match = _COMMAND_ARGS_RE.search(text)
    name = name_match.group(1).strip() if name_match else ""
    args = args_match.group(1).strip() if args_match else ""

    if not name and not args:
        return None
    return CommandInfo(name=name, args=args)


def clean_command_message(text: str) -> str:
    """Reduce a slash command envelope to the user's own text (for previews)."""
    if "<command-message>" not in text:
        return text

    args_match = _COMMAND_ARGS_RE.search(text)
    if args_match and args_match.group(1):
        return args_match.group(1).strip()

    text = _COMMAND_MESSAGE_TAG_RE.sub("", text)
    text = _COMMAND_NAME_TAG_RE.sub("", text)
    return text.strip()


@dataclass
class BashEnvelope:
    """Fields unwrapped from bash escape envelopes; absent tags stay None."""

    bash_input: str | None = None
    bash_stdout: str | None = None
    bash_stderr: str | None = None

    @property
    def is_output_only(self) -> bool:
        return self.bash_input is None and (
            self.bash_stdout is not None or self.bash_stderr is not None
        )


def parse_bash_envelope(text: str) -> BashEnvelope | None:
    input_match = _BASH_INPUT_RE.search(text)
    if input_match:
        return BashEnvelope(bash_input=input_match.group(1))

    stdout_match = _BASH_STDOUT_RE.search(text)
    stderr_match = _BASH_STDERR_RE.search(text)
    if not stdout_match and not stderr_match:
        return None
    return BashEnvelope(
        bash_stdout=stdout_match.group(1) if stdout_match else None,
        bash_stderr=stderr_match.group(1) if stderr_match else None,
    )


def parse_ide_opened_file(text: str) -> str | None:
    """Extract the path from an IDE open-file notice.

    Returns None when the envelope does not contain the expected sentence.
    """
    match = _IDE_OPENED_FILE_RE.search(text)
    return match.group(1) if match else None


def extract_agent_id(text: str) -> str | None:
    """Find an ``agentId: <id>`` marker left by a background sub-agent."""
    match = _AGENT_ID_RE.search(text)
    return match.group(1) if match else None


def is_status_text(text: str) -> bool:
    """True for a bare bracketed status such as ``[Interrupted]``."""
    return bool(_STATUS_RE.match(text.strip()))


def is_skipped_user_text(text: str) -> bool:
    return text.startswith(_SKIPPED_PREFIXES) or is_status_text(text)


def is_plan_implementation(text: str) -> bool:
    return text.startswith(PLAN_PREFIX)
