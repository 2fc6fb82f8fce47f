"""CLI entry point.

Browse AI assistant sessions from the command line:
    session-lens projects
    session-lens sessions <project>
    session-lens show <project> <session-id>
    session-lens stats
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click

from session_lens.config import load_config
from session_lens.grouping import group_content_blocks
from session_lens.logging import setup_logging
from session_lens.models import (
    AssistantTurn,
    MergedProject,
    ParseErrorTurn,
    Session,
    SessionSummary,
    SystemTurn,
    TextContent,
    ThinkingContent,
    ToolCallContent,
    Turn,
    UserTurn,
)
from session_lens.plugins import PluginNotFoundError, PluginRegistry, create_registry, parse_session_id
from session_lens.stats import compute_stats

PREVIEW_CHARS = 80


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def shorten(text: str, limit: int = PREVIEW_CHARS) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else f"{text[: limit - 1]}…"


def require_project(registry: PluginRegistry, key: str) -> MergedProject:
    project = asyncio.run(registry.find_project(key))
    if project is None:
        click.echo(f"Project not found: {key}", err=True)
        sys.exit(1)
    return project


def print_session_row(registry: PluginRegistry, summary: SessionSummary) -> None:
    plugin = registry.get_plugin(summary.plugin_id) if summary.plugin_id else None
    badges = "".join(f" [{badge.label}]" for badge in plugin.get_session_badges(summary)) if plugin else ""
    click.echo(f"\033[36m[{summary.timestamp}]\033[0m \033[1m{summary.session_id}\033[0m{badges}")
    click.echo(f"Model: {summary.model}" + (f" | Branch: {summary.git_branch}" if summary.git_branch else ""))
    click.echo(f"Preview: {shorten(summary.first_message)}")
    resume = plugin.get_resume_command(parse_session_id(summary.session_id).raw_session_id) if plugin else None
    if resume:
        click.echo(f"Resume: {resume}")
    click.echo("-" * 40)


def print_assistant_turn(turn: AssistantTurn) -> None:
    click.echo(f"\033[32m[{turn.timestamp}] assistant\033[0m ({turn.model})")
    for group in group_content_blocks(turn.content_blocks):
        for block in group:
            if isinstance(block, TextContent):
                click.echo(block.text)
            elif isinstance(block, ThinkingContent):
                click.echo(f"  (thinking) {shorten(block.block.text)}")
            elif isinstance(block, ToolCallContent):
                call = block.call
                status = " error" if call.is_error else ""
                agent = f" -> agent {call.sub_agent_id}" if call.sub_agent_id else ""
                click.echo(f"  [tool{status}] {call.name}{agent}: {shorten(call.result)}")
    if turn.usage:
        click.echo(f"  tokens: in={turn.usage.input_tokens} out={turn.usage.output_tokens}")


def print_turn(turn: Turn) -> None:
    if isinstance(turn, UserTurn):
        click.echo(f"\033[35m[{turn.timestamp}] user\033[0m")
        if turn.command:
            click.echo(f"{turn.command.name} {turn.command.args}".rstrip())
        elif turn.bash_input is not None:
            click.echo(f"$ {turn.bash_input}")
            if turn.bash_stdout:
                click.echo(turn.bash_stdout)
            if turn.bash_stderr:
                click.echo(turn.bash_stderr)
        elif turn.ide_opened_file is not None:
            click.echo(f"(opened {turn.ide_opened_file})")
        else:
            click.echo(turn.text)
    elif isinstance(turn, AssistantTurn):
        print_assistant_turn(turn)
    elif isinstance(turn, SystemTurn):
        click.echo(f"[{turn.timestamp}] system: {turn.text}")
    elif isinstance(turn, ParseErrorTurn):
        click.echo(f"\033[31m[line {turn.line_number}] {turn.error_type}\033[0m: {shorten(turn.raw_line)}")
    click.echo("")


def print_session(session: Session) -> None:
    click.echo(f"Session: {session.session_id} ({session.plugin_id or 'unknown'})")
    if session.plan_session_id:
        click.echo(f"Plan session: {session.plan_session_id}")
    if session.impl_session_id:
        click.echo(f"Implementation session: {session.impl_session_id}")
    click.echo("=" * 40)
    for turn in session.turns:
        print_turn(turn)


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Path to config.yaml")
@click.option("--verbose", "-v", is_flag=True, help="Log to stderr as well")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """Browse AI coding assistant sessions."""
    config = load_config(config_path)
    setup_logging(
        "session-lens",
        log_dir=config.log_dir,
        level=logging.DEBUG if verbose else logging.INFO,
        console=verbose,
    )
    ctx.obj = create_registry(config)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_obj
def projects(registry: PluginRegistry, as_json: bool) -> None:
    """List projects across all sources."""
    merged = asyncio.run(registry.discover_all_projects())
    if as_json:
        echo_json([project.to_dict() for project in merged])
        return

    click.echo(f"Found {len(merged)} projects:\n")
    for project in merged:
        sources = ", ".join(source.plugin_id for source in project.sources)
        click.echo(f"\033[36m[{project.last_activity}]\033[0m \033[1m{project.resolved_path}\033[0m")
        click.echo(f"Sessions: {project.session_count} | Sources: {sources}")
        click.echo(f"ID: {project.encoded_path}")
        click.echo("-" * 40)


@cli.command()
@click.argument("project")
@click.option("--limit", "-n", default=0, help="Number of sessions (0 for all)")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_obj
def sessions(registry: PluginRegistry, project: str, limit: int, as_json: bool) -> None:
    """List sessions of PROJECT (encoded path or full path)."""
    merged = require_project(registry, project)
    summaries = asyncio.run(registry.list_all_sessions(merged))
    if limit > 0:
        summaries = summaries[:limit]

    if as_json:
        echo_json([summary.to_dict() for summary in summaries])
        return

    click.echo(f"Found {len(summaries)} sessions in {merged.resolved_path}:\n")
    for summary in summaries:
        print_session_row(registry, summary)


@cli.command()
@click.argument("project")
@click.argument("session_id")
@click.option("--agent", "agent_id", help="Show the transcript of a sub-agent instead")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_obj
def show(registry: PluginRegistry, project: str, session_id: str, agent_id: str | None, as_json: bool) -> None:
    """Show one session of PROJECT."""
    merged = require_project(registry, project)
    try:
        if agent_id:
            session = asyncio.run(registry.load_sub_agent_session(merged, session_id, agent_id))
            if session is None:
                click.echo("This source does not record sub-agent transcripts", err=True)
                sys.exit(1)
        else:
            session = asyncio.run(registry.load_session_detail(merged, session_id)).session
    except PluginNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if as_json:
        echo_json(session.to_dict())
        return
    print_session(session)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_obj
def stats(registry: PluginRegistry, as_json: bool) -> None:
    """Show usage statistics across all sessions."""
    result = asyncio.run(compute_stats(registry))
    if as_json:
        echo_json(result.to_dict())
        return

    click.echo(f"Projects: {result.projects}")
    click.echo(f"Sessions: {result.sessions} (today: {result.today_sessions}, last 7 days: {result.this_week_sessions})")
    click.echo(f"Messages: {result.messages}")
    click.echo(f"Tool calls: {result.tool_calls}")
    click.echo(
        f"Tokens: in={result.totals.input_tokens} out={result.totals.output_tokens} "
        f"cache_read={result.totals.cache_read_tokens} cache_write={result.totals.cache_creation_tokens}"
    )
    for model, usage in sorted(result.models.items()):
        click.echo(f"  {model}: in={usage.input_tokens} out={usage.output_tokens}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
