"""Ask a text generation endpoint for a root-cause analysis of a restart."""

from __future__ import annotations

import logging
from typing import Any

import requests
from prometheus_client import Counter, Histogram

from .models import EvidenceBundle
from .prompts import ANALYSIS_PREAMBLE, ANALYSIS_PROMPT

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response from model"

ANALYSIS_REQUESTS = Counter(
    "restart_sentry_analysis_requests_total",
    "Analysis requests sent to the model endpoint",
    ["status"],  # success, fallback, error, mock
)

ANALYSIS_LATENCY = Histogram(
    "restart_sentry_analysis_seconds",
    "Time spent waiting for the model endpoint",
)


class AnalysisError(Exception):
    """Raised when the model endpoint cannot be reached or returns garbage."""


def format_event_lines(bundle: EvidenceBundle) -> str:
    return "\n".join(f"- {e.reason}: {e.message}" for e in bundle.events)


def build_prompt(bundle: EvidenceBundle) -> str:
    return ANALYSIS_PROMPT.format(
        preamble=ANALYSIS_PREAMBLE,
        events=format_event_lines(bundle),
        logs=bundle.logs,
    )


class Analyzer:
    def __init__(self, *, url: str, model_name: str, timeout: int = 120):
        self._url = url
        self._model_name = model_name
        self._timeout = timeout

    def analyze(self, bundle: EvidenceBundle) -> str:
        if self._model_name == "mock":
            ANALYSIS_REQUESTS.labels(status="mock").inc()
            return (
                "[MOCK] The container restarted. Inspect it with:\n"
                "kubectl get pods\n"
                "kubectl logs --previous <pod>"
            )

        payload: dict[str, Any] = {
            "model": self._model_name,
            "prompt": build_prompt(bundle),
            "stream": False,
        }
        try:
            with ANALYSIS_LATENCY.time():
                resp = requests.post(self._url, json=payload, timeout=self._timeout)
        except requests.exceptions.RequestException as exc:
            ANALYSIS_REQUESTS.labels(status="error").inc()
            raise AnalysisError(f"model request failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            ANALYSIS_REQUESTS.labels(status="error").inc()
            raise AnalysisError(f"model returned undecodable body (HTTP {resp.status_code})") from exc

        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str):
            if isinstance(body, dict) and body.get("error"):
                logger.warning(f"model endpoint reported error: {body['error']}")
            ANALYSIS_REQUESTS.labels(status="fallback").inc()
            return NO_RESPONSE

        ANALYSIS_REQUESTS.labels(status="success").inc()
        return text
