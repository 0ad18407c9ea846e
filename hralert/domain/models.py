"""
Domain models for heart-rate threshold monitoring.

These models represent the core concepts of the monitor and are framework-agnostic.
They use Pydantic for validation but could be swapped to dataclasses if needed.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MonitoringState(str, Enum):
    """Lifecycle of the monitoring state machine."""

    IDLE = "idle"
    MONITORING = "monitoring"


class AuthorizationState(str, Enum):
    """Whether the user has been asked for (and has dismissed) the heart-rate permission prompt."""

    NOT_AUTHORIZED = "not_authorized"
    AUTHORIZED = "authorized"


class HeartRateSample(BaseModel):
    """Individual heart-rate reading in beats per minute."""

    model_config = ConfigDict(frozen=True)  # Immutable once produced

    value: float = Field(gt=0.0, description="Heart rate in BPM")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    source: str = Field(default="unknown", description="Signal source that produced the sample")


class AlertEvent(BaseModel):
    """Record of a fired threshold alert."""

    model_config = ConfigDict(frozen=True)

    bpm: float = Field(gt=0.0)
    threshold: float
    fired_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class MonitorSnapshot(BaseModel):
    """Point-in-time view of everything the UI surface reads."""

    model_config = ConfigDict(frozen=True)

    current_heart_rate: float = 0.0
    is_monitoring: bool = False
    is_authorized: bool = False
    heart_rate_threshold: float = 110.0
