from datetime import timedelta

import pytest
from kubernetes.client.rest import ApiException

from restart_sentry.context import CollectorError, EvidenceCollector, select_correlated_events


def test_select_correlated_events_filters_by_name_and_time(make_event, t0):
    events = [
        make_event(reason="Pulled", last_timestamp=t0 - timedelta(seconds=30)),
        make_event(reason="Old", last_timestamp=t0 - timedelta(minutes=5)),
        make_event(name="other-pod", reason="Other", last_timestamp=t0),
        make_event(reason="Later", last_timestamp=t0 + timedelta(hours=3)),
        make_event(reason="Boundary", last_timestamp=t0 - timedelta(minutes=1)),
    ]

    selected = select_correlated_events(events, "app-1", t0)

    assert [e.reason for e in selected] == ["Pulled", "Later"]


def test_select_correlated_events_uses_event_time_fallback(make_event, t0):
    event = make_event(reason="Killing", last_timestamp=None)
    event.event_time = t0
    undated = make_event(reason="Undated", last_timestamp=None)

    selected = select_correlated_events([event, undated], "app-1", t0)

    assert [e.reason for e in selected] == ["Killing"]


def test_collect_returns_logs_and_events(mock_core_v1, incident, make_event):
    mock_core_v1.read_namespaced_pod_log.return_value = "panic: boom"
    mock_core_v1.list_namespaced_event.return_value.items = [
        make_event(reason="BackOff", message="Back-off restarting"),
        make_event(name="unrelated"),
    ]
    collector = EvidenceCollector(mock_core_v1, tail_lines=50)

    bundle = collector.collect(incident)

    assert bundle.logs == "panic: boom"
    assert [(e.reason, e.message) for e in bundle.events] == [("BackOff", "Back-off restarting")]
    args, kwargs = mock_core_v1.read_namespaced_pod_log.call_args
    assert args == ("app-1", "ns")
    assert kwargs["tail_lines"] == 50
    assert kwargs["container"] == "c0"
    mock_core_v1.list_namespaced_event.assert_called_once()
    assert mock_core_v1.list_namespaced_event.call_args.args == ("ns",)


def test_collect_log_failure_raises(mock_core_v1, incident):
    mock_core_v1.read_namespaced_pod_log.side_effect = ApiException(status=400, reason="Bad Request")

    with pytest.raises(CollectorError):
        EvidenceCollector(mock_core_v1).collect(incident)
    mock_core_v1.list_namespaced_event.assert_not_called()


def test_collect_event_failure_raises(mock_core_v1, incident):
    mock_core_v1.read_namespaced_pod_log.return_value = "ok"
    mock_core_v1.list_namespaced_event.side_effect = ConnectionResetError("reset")

    with pytest.raises(CollectorError):
        EvidenceCollector(mock_core_v1).collect(incident)
