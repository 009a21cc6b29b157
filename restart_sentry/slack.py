"""Slack notification helper."""

from __future__ import annotations

import json
import logging
import threading
import time
from datetime import datetime

from prometheus_client import Counter
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from .formatting import render_analysis_block, render_events_block, render_logs_block, render_summary
from .models import EvidenceBundle, Incident

logger = logging.getLogger(__name__)

SLACK_POSTS = Counter(
    "restart_sentry_slack_posts_total",
    "Slack chat.postMessage calls",
    ["kind", "status"],  # kind: message, reply; status: ok, failed, mock
)


class SlackNotifier:
    def __init__(
        self,
        *,
        token: str | None,
        channel: str,
        mock_log_file: str | None = None,
        base_url: str | None = None,
        timeout: int = 30,
    ):
        self._mock_mode = mock_log_file is not None
        self._mock_log_file = mock_log_file
        self._mock_lock = threading.Lock()
        self._enabled = bool(token) or self._mock_mode
        self._channel = channel
        self._client = None
        if token and not self._mock_mode:
            kwargs = {"base_url": base_url} if base_url else {}
            self._client = WebClient(token=token, timeout=timeout, **kwargs)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def post_message(self, text: str) -> str | None:
        """Post a top-level message and return its ``ts``, or None on failure."""
        return self._post(text, thread_ts=None)

    def post_thread_reply(self, thread_ts: str, text: str) -> str | None:
        return self._post(text, thread_ts=thread_ts)

    def publish_incident(self, incident: Incident, bundle: EvidenceBundle, analysis: str) -> bool:
        """Post the summary, then events, logs and analysis as replies under it.

        Replies are skipped entirely when the summary could not be posted.
        """
        thread_ts = self.post_message(render_summary(incident))
        if not thread_ts:
            logger.warning(f"summary for {incident.key} not posted, skipping thread replies")
            return False
        for block in (
            render_events_block(bundle.events),
            render_logs_block(bundle.logs),
            render_analysis_block(analysis),
        ):
            self.post_thread_reply(thread_ts, block)
        return True

    def _post(self, text: str, *, thread_ts: str | None) -> str | None:
        kind = "reply" if thread_ts else "message"
        if not self._enabled:
            return None

        if self._mock_mode:
            return self._write_mock(text, thread_ts, kind)

        if not self._client:
            return None

        try:
            response = self._client.chat_postMessage(channel=self._channel, text=text, thread_ts=thread_ts)
        except (SlackApiError, OSError) as exc:
            logger.error(f"Slack API error: {exc}")
            SLACK_POSTS.labels(kind=kind, status="failed").inc()
            return None

        if not response.get("ok"):
            logger.error(f"Slack API response: {getattr(response, 'data', response)}")
            SLACK_POSTS.labels(kind=kind, status="failed").inc()
            return None

        SLACK_POSTS.labels(kind=kind, status="ok").inc()
        return response.get("ts") or None

    def _write_mock(self, text: str, thread_ts: str | None, kind: str) -> str:
        ts = thread_ts or f"{time.time():.6f}"
        log_entry = {
            "timestamp": datetime.utcnow().isoformat(),
            "channel": self._channel,
            "thread_ts": thread_ts,
            "ts": ts,
            "text": text,
        }
        with self._mock_lock:
            with open(self._mock_log_file, "a") as f:
                f.write(json.dumps(log_entry, indent=2))
                f.write("\n" + "=" * 80 + "\n")
        SLACK_POSTS.labels(kind=kind, status="mock").inc()
        return ts
