"""Dashboard statistics across every registered plugin."""

from datetime import datetime, timedelta

from session_lens.logging import get_logger
from session_lens.models import (
    AssistantTurn,
    DashboardStats,
    MergedProject,
    ModelTokenUsage,
    ParseErrorTurn,
    SessionSummary,
)
from session_lens.plugins.base import parse_session_id
from session_lens.plugins.registry import PluginRegistry
from session_lens.timeutil import parse_iso

logger = get_logger("stats")

RECENT_DAYS = 7


def count_recent_sessions(sessions: list[SessionSummary], now: datetime) -> tuple[int, int]:
    """Count sessions started today and within the last seven days.

    Days are calendar days in the timezone of ``now``.

    Returns:
        Tuple of (today, this week)
    """
    today = now.date()
    week_start = today - timedelta(days=RECENT_DAYS)

    today_sessions = 0
    week_sessions = 0
    for session in sessions:
        started = parse_iso(session.timestamp)
        if started is None:
            continue
        day = started.astimezone(now.tzinfo).date()
        if day == today:
            today_sessions += 1
        if day >= week_start:
            week_sessions += 1
    return today_sessions, week_sessions


async def compute_stats(registry: PluginRegistry, now: datetime | None = None) -> DashboardStats:
    """Walk every project and session and aggregate usage counters.

    Every session is fully loaded, so this is as slow as loading all of them.
    Sources that fail are logged by the registry and contribute nothing.

    Args:
        registry: Registry to read from
        now: Reference time for the recent-session counters (defaults to now,
            local time)

    Returns:
        DashboardStats
    """
    if now is None:
        now = datetime.now().astimezone()
    elif now.tzinfo is None:
        now = now.astimezone()

    projects = await registry.discover_all_projects()
    stats = DashboardStats(projects=len(projects))

    listed: list[tuple[MergedProject, SessionSummary]] = []
    for project in projects:
        for summary in await registry.list_all_sessions(project):
            listed.append((project, summary))
    stats.sessions = len(listed)
    stats.today_sessions, stats.this_week_sessions = count_recent_sessions(
        [summary for _, summary in listed], now
    )

    for project, summary in listed:
        if not summary.plugin_id:
            continue
        source = project.source_for(summary.plugin_id)
        if source is None:
            continue

        plugin = registry.get_plugin(summary.plugin_id)
        raw_session_id = parse_session_id(summary.session_id).raw_session_id
        try:
            session = await plugin.load_session(source.native_id, raw_session_id)
        except Exception as e:
            logger.warning("Skipping session %s in stats: %s", summary.session_id, e)
            continue

        stats.messages += sum(1 for turn in session.turns if not isinstance(turn, ParseErrorTurn))

        for turn in session.turns:
            if not isinstance(turn, AssistantTurn):
                continue
            stats.tool_calls += len(turn.tool_calls())

            model = turn.model or summary.model or "unknown"
            model_usage = stats.models.setdefault(model, ModelTokenUsage())
            if turn.usage is None:
                continue
            stats.totals.add(turn.usage)
            model_usage.add(turn.usage)

    return stats
