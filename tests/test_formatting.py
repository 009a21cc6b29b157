from datetime import datetime

from restart_sentry.formatting import (
    TRUNCATION_SUFFIX,
    format_code_blocks,
    format_code_lines,
    render_analysis_block,
    render_events,
    render_events_block,
    render_logs_block,
    render_summary,
    truncate,
)
from restart_sentry.models import CorrelatedEvent, Incident


def test_truncate_within_limit_is_unchanged():
    assert truncate("hello", 5) == "hello"
    assert truncate("", 0) == ""


def test_truncate_over_limit_cuts_mid_line():
    text = "line one\nline two"
    result = truncate(text, 6)
    assert result == "line o" + TRUNCATION_SUFFIX
    assert len(result) == 6 + len("... (truncated)")


def test_code_blocks_groups_contiguous_commands():
    lines = ["kubectl get pods", "kubectl describe pod x", "done"]
    assert format_code_lines(lines) == ["```bash", "kubectl get pods", "kubectl describe pod x", "```", "done"]


def test_code_blocks_closes_fence_at_end_of_input():
    text = "Try this:\n  bash -c 'env'"
    assert format_code_blocks(text) == "Try this:\n```bash\nbash -c 'env'\n```"


def test_code_blocks_requires_prefix_with_space():
    assert format_code_blocks("kubectl\nbashful") == "kubectl\nbashful"


def test_code_blocks_separate_runs_get_separate_fences():
    text = "kubectl get pods\nthen\nkubectl logs x"
    assert format_code_blocks(text).split("\n") == [
        "```bash", "kubectl get pods", "```", "then", "```bash", "kubectl logs x", "```",
    ]


def test_render_events():
    assert render_events([]) == ""
    assert render_events([CorrelatedEvent(reason="Failed", message="OOMKilled")]) == "Failed: OOMKilled"
    events = [CorrelatedEvent(reason="A", message="a"), CorrelatedEvent(reason="B", message="b")]
    assert render_events(events) == "A: a\nB: b"


def test_render_summary():
    incident = Incident(namespace="prod", name="web-1", start_time=datetime(2024, 1, 2, 3, 4, 5))
    summary = render_summary(incident)
    assert "`web-1`" in summary
    assert "`prod`" in summary
    assert "`2024-01-02 03:04:05`" in summary
    assert summary.startswith("*🚨 Pod Restart Detected!*")


def test_blocks():
    assert render_events_block([]) == "📋 *Events:*\n``````"
    logs_block = render_logs_block("x" * 1500)
    assert logs_block.endswith("x" * 1000 + TRUNCATION_SUFFIX + "```")
    analysis_block = render_analysis_block("Run:\nkubectl get pods")
    assert analysis_block == "🤖 *Analysis:*\nRun:\n```bash\nkubectl get pods\n```"


def test_analysis_block_truncates_before_formatting():
    analysis = "a" * 2995 + "\nkubectl get pods -A"
    block = render_analysis_block(analysis)
    assert block.endswith(TRUNCATION_SUFFIX)
    assert "```bash" not in block
