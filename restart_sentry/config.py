"""Settings for the Restart Sentry service."""

from typing import Optional
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Slack
    slack_bot_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("restart_sentry_slack_bot_token", "slack_bot_token"),
    )
    slack_channel: str = Field(default="#pod-restarts")
    slack_api_url: Optional[str] = Field(default=None, description="Override Slack API base URL (for testing)")
    slack_mock_log_file: Optional[str] = Field(default=None)

    # Inference endpoint (Ollama generate API)
    ollama_url: str = Field(default="http://localhost:11434/api/generate")
    ollama_model: str = Field(default="llama3")
    ollama_timeout_seconds: int = Field(default=120)

    # Detection
    poll_interval_seconds: int = Field(default=30)
    log_tail_lines: int = Field(default=50)
    event_lookback_seconds: int = Field(
        default=60,
        description="Events last seen after (restart time - lookback) are correlated with the restart",
    )
    k8s_request_timeout_seconds: int = Field(default=30)

    # Incident tasks
    incident_timeout_seconds: int = Field(
        default=300,
        description="Deadline for a single incident analysis, checked between pipeline stages",
    )

    # Dedup state bounds
    dedup_max_entries: int = Field(default=10000)
    dedup_idle_cycles: int = Field(
        default=20,
        description="Forget a pod after this many successful polls without seeing its restart",
    )

    metrics_port: int = Field(default=0, description="Prometheus metrics port, 0 disables the exporter")
    log_level: str = Field(default="INFO")

    class Config:
        env_prefix = "RESTART_SENTRY_"
        case_sensitive = False


settings = Settings()
