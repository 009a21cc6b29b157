from restart_sentry.config import Settings


def test_defaults():
    s = Settings()
    assert s.poll_interval_seconds == 30
    assert s.log_tail_lines == 50
    assert s.ollama_model == "llama3"
    assert s.event_lookback_seconds == 60


def test_slack_token_from_plain_env(monkeypatch):
    monkeypatch.delenv("RESTART_SENTRY_SLACK_BOT_TOKEN", raising=False)
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-plain")
    assert Settings().slack_bot_token == "xoxb-plain"


def test_prefixed_env(monkeypatch):
    monkeypatch.setenv("RESTART_SENTRY_SLACK_BOT_TOKEN", "xoxb-prefixed")
    monkeypatch.setenv("RESTART_SENTRY_POLL_INTERVAL_SECONDS", "5")
    s = Settings()
    assert s.slack_bot_token == "xoxb-prefixed"
    assert s.poll_interval_seconds == 5
