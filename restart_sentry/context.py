"""Collect logs and correlated events for a restarted pod."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable

from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from .models import CorrelatedEvent, EvidenceBundle, Incident

logger = logging.getLogger(__name__)


class CollectorError(Exception):
    """Raised when logs or events for an incident cannot be retrieved."""


def _event_timestamp(event) -> datetime | None:
    return event.last_timestamp or getattr(event, "event_time", None)


def select_correlated_events(
    events: Iterable,
    pod_name: str,
    start_time: datetime,
    lookback: timedelta = timedelta(minutes=1),
) -> list[CorrelatedEvent]:
    """Keep events about ``pod_name`` last seen after ``start_time - lookback``.

    There is no upper bound: anything that happened after the restart is kept.
    Events without any timestamp are dropped.
    """
    threshold = start_time - lookback
    selected: list[CorrelatedEvent] = []
    for e in events:
        involved = e.involved_object
        if involved is None or involved.name != pod_name:
            continue
        ts = _event_timestamp(e)
        if ts is None or ts <= threshold:
            continue
        selected.append(CorrelatedEvent(reason=e.reason or "", message=e.message or "", last_timestamp=ts))
    return selected


class EvidenceCollector:
    def __init__(
        self,
        core_v1: client.CoreV1Api | None = None,
        *,
        tail_lines: int = 50,
        lookback_seconds: int = 60,
        request_timeout: int = 30,
    ):
        self._core = core_v1 or client.CoreV1Api()
        self._tail_lines = tail_lines
        self._lookback = timedelta(seconds=lookback_seconds)
        self._timeout = request_timeout

    def fetch_logs(self, incident: Incident) -> str:
        try:
            return self._core.read_namespaced_pod_log(
                incident.name,
                incident.namespace,
                container=incident.container,
                tail_lines=self._tail_lines,
                _request_timeout=self._timeout,
            )
        except (ApiException, HTTPError, OSError) as exc:
            raise CollectorError(f"failed to get logs for {incident.key}: {exc}") from exc

    def fetch_events(self, incident: Incident) -> list[CorrelatedEvent]:
        try:
            events = self._core.list_namespaced_event(incident.namespace, _request_timeout=self._timeout).items
        except (ApiException, HTTPError, OSError) as exc:
            raise CollectorError(f"failed to get events for {incident.key}: {exc}") from exc
        return select_correlated_events(events, incident.name, incident.start_time, self._lookback)

    def collect(self, incident: Incident) -> EvidenceBundle:
        logs = self.fetch_logs(incident)
        events = self.fetch_events(incident)
        logger.debug(f"collected {len(logs or '')} log chars and {len(events)} events for {incident.key}")
        return EvidenceBundle(logs=logs or "", events=events)
