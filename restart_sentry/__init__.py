"""Restart Sentry package."""

from .config import Settings
from .models import CorrelatedEvent, EvidenceBundle, Incident

__all__ = ["Settings", "Incident", "CorrelatedEvent", "EvidenceBundle"]
