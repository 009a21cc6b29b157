"""Core models shared across components."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IncidentOutcome(str, Enum):
    NOTIFIED = "notified"
    NOT_PUBLISHED = "not_published"
    COLLECT_FAILED = "collect_failed"
    ANALYSIS_FAILED = "analysis_failed"
    EXPIRED = "expired"
    ERROR = "error"


def incident_key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


class RestartObservation(BaseModel):
    """One container status as seen during a single poll."""

    namespace: str
    name: str
    container: str
    restart_count: int
    start_time: Optional[datetime] = None

    @property
    def key(self) -> str:
        return incident_key(self.namespace, self.name)

    @property
    def is_restart(self) -> bool:
        return self.restart_count > 0 and self.start_time is not None


class Incident(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str
    start_time: datetime
    container: Optional[str] = None
    restart_count: int = 0

    @property
    def key(self) -> str:
        return incident_key(self.namespace, self.name)


class CorrelatedEvent(BaseModel):
    reason: str = ""
    message: str = ""
    last_timestamp: Optional[datetime] = None


class EvidenceBundle(BaseModel):
    logs: str
    events: list[CorrelatedEvent] = Field(default_factory=list)
