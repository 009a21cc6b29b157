"""Render restart notifications as Slack mrkdwn text.

Everything here is pure: no I/O, no Slack client.
"""

from __future__ import annotations

from typing import Iterable

from .models import CorrelatedEvent, Incident

TRUNCATION_SUFFIX = "... (truncated)"
COMMAND_PREFIXES = ("kubectl ", "bash ")
LOGS_LIMIT = 1000
ANALYSIS_LIMIT = 3000
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def render_summary(incident: Incident) -> str:
    return (
        "*🚨 Pod Restart Detected!*\n"
        f"> *Pod:* `{incident.name}`\n"
        f"> *Namespace:* `{incident.namespace}`\n"
        f"> *Restart Time:* `{incident.start_time.strftime(TIME_FORMAT)}`"
    )


def render_events(events: Iterable[CorrelatedEvent]) -> str:
    return "\n".join(f"{e.reason}: {e.message}" for e in events)


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, even mid-line."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_SUFFIX


def format_code_lines(lines: list[str]) -> list[str]:
    """Fence runs of shell command lines in ```bash blocks.

    A line counts as a command when its stripped content starts with one of
    ``COMMAND_PREFIXES``. Consecutive command lines share one fence. Output
    lines are stripped.
    """
    formatted: list[str] = []
    in_block = False
    for line in lines:
        stripped = line.strip()
        if stripped.startswith(COMMAND_PREFIXES):
            if not in_block:
                formatted.append("```bash")
                in_block = True
            formatted.append(stripped)
            continue
        if in_block:
            formatted.append("```")
            in_block = False
        formatted.append(stripped)
    if in_block:
        formatted.append("```")
    return formatted


def format_code_blocks(text: str) -> str:
    return "\n".join(format_code_lines(text.split("\n")))


def render_events_block(events: Iterable[CorrelatedEvent]) -> str:
    return "📋 *Events:*\n```" + render_events(events) + "```"


def render_logs_block(logs: str) -> str:
    return "📦 *Logs:*\n```" + truncate(logs, LOGS_LIMIT) + "```"


def render_analysis_block(analysis: str) -> str:
    return "🤖 *Analysis:*\n" + format_code_blocks(truncate(analysis, ANALYSIS_LIMIT))
