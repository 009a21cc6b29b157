"""Runtime orchestration for Restart Sentry."""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Iterator

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException
from prometheus_client import Counter

from .analyzer import AnalysisError, Analyzer
from .config import Settings, settings
from .context import CollectorError, EvidenceCollector
from .models import Incident, IncidentOutcome, RestartObservation
from .slack import SlackNotifier


logger = logging.getLogger(__name__)

POLLS = Counter(
    "restart_sentry_polls_total",
    "Pod polling cycles",
    ["status"],  # ok, error
)

INCIDENTS_DETECTED = Counter(
    "restart_sentry_incidents_detected_total",
    "New container restarts recognized by the detector",
)

INCIDENT_OUTCOMES = Counter(
    "restart_sentry_incident_outcomes_total",
    "How incident analysis tasks ended",
    ["status"],
)


class NotifiedRestarts:
    """Latest notified pod start time per ``namespace/name`` key.

    Bounded two ways: a key that is not observed for ``idle_cycles`` completed
    polls is forgotten, and the least recently observed keys are dropped once
    more than ``max_entries`` are held. Keys observed in the current cycle are
    never dropped; the state grows past the cap instead. Not thread-safe;
    only the polling thread may touch it.
    """

    def __init__(self, *, max_entries: int = 10000, idle_cycles: int = 20):
        self._max_entries = max_entries
        self._idle_cycles = idle_cycles
        self._cycle = 0
        # key -> (start_time, cycle last observed)
        self._entries: OrderedDict[str, tuple[datetime, int]] = OrderedDict()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def idle_cycles(self) -> int:
        return self._idle_cycles

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> datetime | None:
        entry = self._entries.get(key)
        return entry[0] if entry else None

    def record_if_newer(self, key: str, start_time: datetime) -> bool:
        """Store ``start_time`` for ``key`` if it is new or strictly later.

        Returns True when the caller should notify. Any call counts as an
        observation and keeps the key alive.
        """
        previous = self.get(key)
        is_new = previous is None or start_time > previous
        stored = start_time if is_new else previous
        self._entries[key] = (stored, self._cycle)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            oldest, (_, seen) = next(iter(self._entries.items()))
            if seen >= self._cycle:
                # everything left was observed this cycle
                logger.warning(
                    f"dedup state holds {len(self._entries)} live entries, above max {self._max_entries}"
                )
                break
            del self._entries[oldest]
            logger.debug(f"dedup state full, evicted {oldest}")
        return is_new

    def end_cycle(self) -> list[str]:
        """Close the current poll cycle and drop keys idle for too long."""
        self._cycle += 1
        cutoff = self._cycle - self._idle_cycles
        stale = [key for key, (_, seen) in self._entries.items() if seen < cutoff]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"forgot {len(stale)} idle restart entries")
        return stale


def pod_observations(pod) -> Iterator[RestartObservation]:
    status = pod.status
    if status is None:
        return
    start_time = status.start_time
    for cs in status.container_statuses or []:
        yield RestartObservation(
            namespace=pod.metadata.namespace,
            name=pod.metadata.name,
            container=cs.name,
            restart_count=cs.restart_count or 0,
            start_time=start_time,
        )


class RestartDetector:
    def __init__(
        self,
        core_v1: client.CoreV1Api,
        dispatch: Callable[[Incident], None],
        *,
        state: NotifiedRestarts | None = None,
        interval_seconds: int = 30,
        request_timeout: int = 30,
    ):
        self._core = core_v1
        self._dispatch = dispatch
        self._state = state if state is not None else NotifiedRestarts()
        self._interval = interval_seconds
        self._timeout = request_timeout

    @property
    def state(self) -> NotifiedRestarts:
        return self._state

    def poll_once(self) -> list[Incident]:
        try:
            pods = self._core.list_pod_for_all_namespaces(_request_timeout=self._timeout).items
        except Exception as exc:
            logger.error(f"Error fetching pods: {exc}")
            POLLS.labels(status="error").inc()
            return []

        dispatched: list[Incident] = []
        for pod in pods:
            for obs in pod_observations(pod):
                if not obs.is_restart:
                    continue
                if not self._state.record_if_newer(obs.key, obs.start_time):
                    continue
                incident = Incident(
                    namespace=obs.namespace,
                    name=obs.name,
                    start_time=obs.start_time,
                    container=obs.container,
                    restart_count=obs.restart_count,
                )
                logger.info(
                    f"Detected restart: {incident.name} [{incident.namespace}] "
                    f"container={obs.container} restarts={obs.restart_count}"
                )
                INCIDENTS_DETECTED.inc()
                try:
                    self._dispatch(incident)
                except Exception as exc:
                    logger.error(f"failed to start analysis for {incident.key}: {exc}")
                    continue
                dispatched.append(incident)

        self._state.end_cycle()
        POLLS.labels(status="ok").inc()
        return dispatched

    def run(self, stop: threading.Event, on_cycle: Callable[[], None] | None = None):
        while not stop.is_set():
            try:
                self.poll_once()
                if on_cycle:
                    on_cycle()
            except Exception as exc:
                logger.error(f"poll loop error: {exc}", exc_info=True)
            stop.wait(self._interval)


class IncidentExpired(Exception):
    pass


class TaskContext:
    """Cancellation flag plus deadline for one incident task."""

    def __init__(self, timeout_seconds: float):
        self.deadline = time.monotonic() + timeout_seconds
        self._cancelled = threading.Event()

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return time.monotonic() > self.deadline

    def check(self, stage: str):
        if self.cancelled:
            raise IncidentExpired(f"cancelled before {stage}")
        if self.expired:
            raise IncidentExpired(f"deadline passed before {stage}")


class IncidentPipeline:
    def __init__(self, collector: EvidenceCollector, analyzer: Analyzer, notifier: SlackNotifier):
        self._collector = collector
        self._analyzer = analyzer
        self._notifier = notifier

    def run(self, incident: Incident, ctx: TaskContext) -> IncidentOutcome:
        outcome = self._run(incident, ctx)
        INCIDENT_OUTCOMES.labels(status=outcome.value).inc()
        return outcome

    def _run(self, incident: Incident, ctx: TaskContext) -> IncidentOutcome:
        try:
            ctx.check("collect")
            bundle = self._collector.collect(incident)
            ctx.check("analysis")
            analysis = self._analyzer.analyze(bundle)
            ctx.check("publish")
        except CollectorError as exc:
            logger.error(f"Abandoned analysis of {incident.key}: {exc}")
            return IncidentOutcome.COLLECT_FAILED
        except AnalysisError as exc:
            logger.error(f"Failed to analyze pod {incident.key}: {exc}")
            return IncidentOutcome.ANALYSIS_FAILED
        except IncidentExpired as exc:
            logger.warning(f"Abandoned analysis of {incident.key}: {exc}")
            return IncidentOutcome.EXPIRED

        if self._notifier.publish_incident(incident, bundle, analysis):
            logger.info(f"Posted restart analysis for {incident.key}")
            return IncidentOutcome.NOTIFIED
        return IncidentOutcome.NOT_PUBLISHED


class TaskSupervisor:
    """Runs one daemon thread per incident and keeps track of them."""

    def __init__(self, work: Callable[[Incident, TaskContext], object], *, timeout_seconds: float = 300):
        self._work = work
        self._timeout = timeout_seconds
        self._tasks: dict[threading.Thread, tuple[Incident, TaskContext]] = {}
        self._lock = threading.Lock()

    def submit(self, incident: Incident) -> threading.Thread:
        ctx = TaskContext(self._timeout)
        thread = threading.Thread(
            target=self._guarded,
            args=(incident, ctx),
            daemon=True,
            name=f"restart-sentry-incident-{incident.key}",
        )
        with self._lock:
            self._tasks[thread] = (incident, ctx)
        thread.start()
        return thread

    def _guarded(self, incident: Incident, ctx: TaskContext):
        try:
            self._work(incident, ctx)
        except Exception as exc:
            logger.error(f"incident task for {incident.key} crashed: {exc}", exc_info=True)
            INCIDENT_OUTCOMES.labels(status=IncidentOutcome.ERROR.value).inc()

    def outstanding(self) -> list[Incident]:
        with self._lock:
            return [incident for incident, _ in self._tasks.values()]

    def reap(self) -> int:
        """Forget finished tasks, flag overdue ones. Returns live task count."""
        with self._lock:
            for thread in [t for t in self._tasks if not t.is_alive()]:
                del self._tasks[thread]
            for incident, ctx in self._tasks.values():
                if ctx.expired and not ctx.cancelled:
                    logger.warning(f"incident task for {incident.key} is past its deadline")
                    ctx.cancel()
            return len(self._tasks)

    def shutdown(self, timeout: float = 10.0) -> list[Incident]:
        """Cancel outstanding tasks and wait up to ``timeout`` for them."""
        with self._lock:
            tasks = list(self._tasks.items())
        for _, (_, ctx) in tasks:
            ctx.cancel()
        end = time.monotonic() + timeout
        for thread, _ in tasks:
            thread.join(max(0.0, end - time.monotonic()))
        self.reap()
        stragglers = self.outstanding()
        for incident in stragglers:
            logger.warning(f"incident task for {incident.key} still running at shutdown")
        return stragglers


def load_kube_config():
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster config")
    except ConfigException:
        logger.warning("In-cluster config not found, trying local kubeconfig...")
        config.load_kube_config()
        logger.info("Loaded kube config")


class RestartMonitorService:
    def __init__(self, config: Settings | None = None):
        self._config = config or settings
        self._stop = threading.Event()
        self._supervisor: TaskSupervisor | None = None
        self._detector: RestartDetector | None = None

    def build(self, core_v1: client.CoreV1Api) -> RestartDetector:
        cfg = self._config
        collector = EvidenceCollector(
            core_v1,
            tail_lines=cfg.log_tail_lines,
            lookback_seconds=cfg.event_lookback_seconds,
            request_timeout=cfg.k8s_request_timeout_seconds,
        )
        analyzer = Analyzer(url=cfg.ollama_url, model_name=cfg.ollama_model, timeout=cfg.ollama_timeout_seconds)
        notifier = SlackNotifier(
            token=cfg.slack_bot_token,
            channel=cfg.slack_channel,
            mock_log_file=cfg.slack_mock_log_file,
            base_url=cfg.slack_api_url,
        )
        if not notifier.enabled:
            logger.warning("Slack token not set, restart analyses will not be posted")
        pipeline = IncidentPipeline(collector, analyzer, notifier)
        self._supervisor = TaskSupervisor(pipeline.run, timeout_seconds=cfg.incident_timeout_seconds)
        self._detector = RestartDetector(
            core_v1,
            self._supervisor.submit,
            state=NotifiedRestarts(max_entries=cfg.dedup_max_entries, idle_cycles=cfg.dedup_idle_cycles),
            interval_seconds=cfg.poll_interval_seconds,
            request_timeout=cfg.k8s_request_timeout_seconds,
        )
        return self._detector

    def start(self):
        load_kube_config()
        detector = self.build(client.CoreV1Api())
        self._start_metrics_server()
        logger.info("Pod restart monitor started...")
        detector.run(self._stop, on_cycle=self._supervisor.reap)

    def stop(self, timeout: float = 10.0):
        self._stop.set()
        if self._supervisor is not None:
            self._supervisor.shutdown(timeout)

    def _start_metrics_server(self):
        """Start Prometheus metrics HTTP server when a port is configured."""
        port = self._config.metrics_port
        if not port:
            return
        from prometheus_client import start_http_server
        try:
            start_http_server(port)
            logger.info(f"Prometheus metrics server started on port {port}")
        except OSError as e:
            logger.warning(f"Failed to start Prometheus metrics server: {e}")


__all__ = ["RestartMonitorService", "RestartDetector", "NotifiedRestarts", "TaskSupervisor"]
