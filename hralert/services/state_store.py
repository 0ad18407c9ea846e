"""
Observable state surface.

UI code reads the current values from here and subscribes to be told about
every write. Listeners run synchronously on the writer's thread (the monitor's
event loop), in subscription order.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from hralert.domain.models import MonitorSnapshot
from hralert.services.threshold_store import ThresholdStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StateChange:
    """A single field write, delivered to subscribers."""

    field: str
    value: Any
    snapshot: MonitorSnapshot


StateListener = Callable[[StateChange], None]


class StateStore:
    """
    Typed store for the values the UI renders.

    ``heart_rate_threshold`` is not cached: it is read through to the threshold
    store on every access so the default stays a read-time concern.
    """

    def __init__(self, thresholds: ThresholdStore) -> None:
        self.thresholds = thresholds
        self.logger = logger.bind(component="state_store")
        self._current_heart_rate = 0.0
        self._is_monitoring = False
        self._is_authorized = False
        self._listeners: list[StateListener] = []

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def current_heart_rate(self) -> float:
        return self._current_heart_rate

    @current_heart_rate.setter
    def current_heart_rate(self, value: float) -> None:
        self._current_heart_rate = value
        self._publish("current_heart_rate", value)

    @property
    def is_monitoring(self) -> bool:
        return self._is_monitoring

    @is_monitoring.setter
    def is_monitoring(self, value: bool) -> None:
        self._is_monitoring = value
        self._publish("is_monitoring", value)

    @property
    def is_authorized(self) -> bool:
        return self._is_authorized

    @is_authorized.setter
    def is_authorized(self, value: bool) -> None:
        self._is_authorized = value
        self._publish("is_authorized", value)

    @property
    def heart_rate_threshold(self) -> float:
        return self.thresholds.get()

    @heart_rate_threshold.setter
    def heart_rate_threshold(self, value: float) -> None:
        self.thresholds.set(value)
        # A failed write leaves the stored value in place
        self._publish("heart_rate_threshold", self.thresholds.get())

    def snapshot(self) -> MonitorSnapshot:
        return MonitorSnapshot(
            current_heart_rate=self._current_heart_rate,
            is_monitoring=self._is_monitoring,
            is_authorized=self._is_authorized,
            heart_rate_threshold=self.heart_rate_threshold,
        )

    def _publish(self, field: str, value: Any) -> None:
        if not self._listeners:
            return
        change = StateChange(field=field, value=value, snapshot=self.snapshot())
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                self.logger.exception("state_listener_failed", field=field, error=str(e))
