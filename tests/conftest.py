import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock
from kubernetes import client

from restart_sentry.models import CorrelatedEvent, EvidenceBundle, Incident

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _make_pod(namespace="ns", name="app-1", restarts=(0,), start_time=T0):
    pod = MagicMock()
    pod.metadata.namespace = namespace
    pod.metadata.name = name
    pod.status.start_time = start_time
    statuses = []
    for i, count in enumerate(restarts):
        cs = MagicMock()
        cs.name = f"c{i}"
        cs.restart_count = count
        statuses.append(cs)
    pod.status.container_statuses = statuses
    return pod


def _make_event(name="app-1", reason="BackOff", message="Back-off restarting failed container", last_timestamp=T0):
    event = MagicMock()
    event.involved_object.name = name
    event.reason = reason
    event.message = message
    event.last_timestamp = last_timestamp
    event.event_time = None
    return event


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def make_pod():
    return _make_pod


@pytest.fixture
def make_event():
    return _make_event


@pytest.fixture
def mock_core_v1():
    return MagicMock(spec=client.CoreV1Api)


@pytest.fixture
def incident():
    return Incident(namespace="ns", name="app-1", start_time=T0, container="c0", restart_count=1)


@pytest.fixture
def bundle():
    return EvidenceBundle(
        logs="starting\npanic: out of memory\n",
        events=[CorrelatedEvent(reason="Failed", message="OOMKilled", last_timestamp=T0)],
    )
