"""
Heart-rate monitoring state machine.

Ties the pieces together:
1. Authorization gate decides whether monitoring may start
2. Signal source pushes samples while a session is active
3. Alert debouncer decides whether a reading fires an alert
4. Notification sink plays the alert
5. State store exposes everything the UI renders

Concurrency model: every state mutation runs on the event loop that owns the
monitor. Sources calling back from another thread are marshalled onto that
loop, so no lock is needed around the heart rate, cooldown and monitoring flag.
Starting and stopping the source are serialized by one asyncio.Lock, and each
transition bumps a generation counter so a start overtaken by a stop backs out.
"""

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from pydantic import BaseModel, Field

from hralert.domain.debounce import AlertDebouncer
from hralert.domain.models import (
    AlertEvent,
    AuthorizationState,
    HeartRateSample,
    MonitoringState,
    MonitorSnapshot,
)
from hralert.services.authorization import AuthorizationGate
from hralert.services.notification import NotificationSink
from hralert.services.signal_source import SignalSource, SignalSourceError
from hralert.services.state_store import StateStore
from hralert.services.threshold_store import ThresholdStore

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


class HeartRateMonitorConfig(BaseModel):
    """Tunables of the state machine."""

    alert_cooldown_seconds: float = Field(
        default=60.0, ge=0.0, description="Minimum interval between consecutive alerts"
    )
    alert_history_size: int = Field(
        default=100, gt=0, description="Number of fired alerts kept in memory"
    )


class HeartRateMonitor:
    """
    Idle/monitoring state machine for one heart-rate signal.

    The monitor is itself the SampleListener handed to the signal source.
    Samples always update the displayed heart rate; they are evaluated against
    the threshold only while a session is active, which keeps late callbacks
    from a source that is still shutting down from firing alerts.
    """

    def __init__(
        self,
        source: SignalSource,
        gate: AuthorizationGate,
        thresholds: ThresholdStore,
        notifier: NotificationSink,
        config: HeartRateMonitorConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or HeartRateMonitorConfig()
        self.source = source
        self.gate = gate
        self.notifier = notifier
        self.state_store = StateStore(thresholds)
        self.debouncer = AlertDebouncer(timedelta(seconds=self.config.alert_cooldown_seconds))
        self.alert_history: deque[AlertEvent] = deque(maxlen=self.config.alert_history_size)
        self.logger = logger.bind(component="heart_rate_monitor", source=source.source_name)
        self._clock: Clock = clock or (lambda: datetime.now(UTC))
        self._loop: asyncio.AbstractEventLoop | None = None
        # Serializes session transitions so at most one source session is ever open
        self._transition_lock = asyncio.Lock()
        self._generation = 0
        self._source_active = False
        self._observing = False

    # ---------- observable state ----------
    @property
    def state(self) -> MonitoringState:
        return MonitoringState.MONITORING if self.state_store.is_monitoring else MonitoringState.IDLE

    @property
    def is_monitoring(self) -> bool:
        return self.state_store.is_monitoring

    @property
    def is_authorized(self) -> bool:
        return self.state_store.is_authorized

    @property
    def authorization_state(self) -> AuthorizationState:
        return self.gate.state

    @property
    def current_heart_rate(self) -> float:
        return self.state_store.current_heart_rate

    @property
    def heart_rate_threshold(self) -> float:
        return self.state_store.heart_rate_threshold

    @heart_rate_threshold.setter
    def heart_rate_threshold(self, value: float) -> None:
        self.state_store.heart_rate_threshold = value
        self.logger.info("threshold_changed", requested=value, threshold=self.heart_rate_threshold)

    @property
    def last_alert_time(self) -> datetime | None:
        return self.debouncer.last_alert_time

    def snapshot(self) -> MonitorSnapshot:
        return self.state_store.snapshot()

    # ---------- authorization ----------
    async def request_authorization(self) -> bool:
        """
        Prompt for heart-rate access, seed the display with the latest stored
        reading, then keep it current with the background heart-rate observation.

        Returns False only when the prompt mechanism itself failed.
        """
        self._loop = asyncio.get_running_loop()
        if not await self.gate.request_authorization():
            return False
        self.state_store.is_authorized = True
        await self.refresh_latest()
        await self._start_observing()
        return True

    async def refresh_latest(self) -> HeartRateSample | None:
        """Pull the most recent persisted sample into the display (never evaluated)."""
        result = await self.source.fetch_latest()
        if result.is_err():
            self.logger.warning("latest_sample_unavailable", error=str(result.unwrap_err()))
            return None
        sample = result.unwrap()
        if sample is not None:
            self.state_store.current_heart_rate = sample.value
            self.logger.info("latest_sample_loaded", bpm=round(sample.value, 1))
        return sample

    # ---------- session lifecycle ----------
    async def start_monitoring(self) -> bool:
        """
        Transition IDLE -> MONITORING and start the signal source.

        A no-op returning False while not authorized. If the source fails to
        start, the transition is rolled back and False is returned. A start
        superseded by a later stop also returns False, with its session closed.
        """
        if not self.gate.is_authorized:
            self.logger.info("monitoring_start_ignored", reason="not_authorized")
            return False
        if self.is_monitoring:
            return True

        self._loop = asyncio.get_running_loop()
        generation = self._next_generation()
        self.state_store.is_monitoring = True
        async with self._transition_lock:
            if generation != self._generation:
                return False
            if not self._source_active:
                try:
                    await self.source.start(self)
                except SignalSourceError as e:
                    self.logger.error("monitoring_start_failed", error=str(e))
                    if generation == self._generation:
                        self.state_store.is_monitoring = False
                    return False
                self._source_active = True

            if generation != self._generation:
                # stop_monitoring() ran while the source was still starting
                await self._stop_source()
                return False

        self.logger.info("monitoring_started", threshold=self.heart_rate_threshold)
        return True

    async def start_monitoring_when_authorized(self, timeout: float | None = None) -> bool:
        """Wait for a pending authorization request to complete, then start monitoring."""
        if not await self.gate.wait_until_authorized(timeout=timeout):
            self.logger.info("monitoring_start_timed_out", timeout_seconds=timeout)
            return False
        return await self.start_monitoring()

    async def stop_monitoring(self) -> None:
        """
        Transition MONITORING -> IDLE. Idempotent.

        The flag flips before the source is torn down, so samples that arrive
        during teardown are displayed but never evaluated. Teardown waits for
        any pending start, so a session opened by that start is closed too.
        """
        if not self.is_monitoring:
            return
        generation = self._next_generation()
        self.state_store.is_monitoring = False
        async with self._transition_lock:
            if generation == self._generation and self._source_active:
                await self._stop_source()
        self.logger.info("monitoring_stopped", alerts_fired=len(self.alert_history))

    @asynccontextmanager
    async def monitoring_session(self) -> AsyncIterator["HeartRateMonitor"]:
        """Run a monitoring session for the duration of the ``async with`` block."""
        await self.start_monitoring()
        try:
            yield self
        finally:
            await self.stop_monitoring()

    async def shutdown(self) -> None:
        """Stop monitoring and the background observation started by authorization."""
        await self.stop_monitoring()
        if not self._observing:
            return
        self._observing = False
        try:
            await self.source.stop_observing()
        except Exception as e:
            self.logger.exception("background_observation_stop_failed", error=str(e))

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    async def _stop_source(self) -> None:
        self._source_active = False
        try:
            await self.source.stop()
        except Exception as e:
            self.logger.exception("signal_source_stop_failed", error=str(e))

    async def _start_observing(self) -> None:
        if self._observing:
            return
        try:
            await self.source.observe(self)
        except SignalSourceError as e:
            self.logger.warning("background_observation_unavailable", error=str(e))
            return
        self._observing = True

    # ---------- SampleListener ----------
    def on_samples(self, batch: Sequence[HeartRateSample]) -> None:
        self._dispatch(self.handle_samples, list(batch))

    def on_session_error(self, error: BaseException) -> None:
        self._dispatch(self.handle_session_error, error)

    def _dispatch(self, fn: Callable[..., None], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed() or not loop.is_running():
            fn(*args)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            fn(*args)
        else:
            loop.call_soon_threadsafe(fn, *args)

    # ---------- sample handling (owning loop only) ----------
    def handle_samples(self, batch: Sequence[Any]) -> None:
        samples = [s for s in batch if isinstance(s, HeartRateSample)]
        if len(samples) != len(batch):
            self.logger.debug("malformed_samples_dropped", dropped=len(batch) - len(samples))
        if not samples:
            return

        latest = samples[-1]
        self.state_store.current_heart_rate = latest.value
        if self.is_monitoring:
            self._evaluate(latest.value)

    def handle_session_error(self, error: BaseException) -> None:
        self.logger.error("signal_session_error", error=str(error), monitoring=self.is_monitoring)

    def _evaluate(self, bpm: float) -> None:
        threshold = self.heart_rate_threshold
        now = self._clock()
        if not self.debouncer.try_fire(bpm, threshold, now):
            return

        event = AlertEvent(bpm=bpm, threshold=threshold, fired_at=now)
        self.alert_history.append(event)
        self.logger.info("threshold_exceeded", bpm=round(bpm, 1), threshold=threshold)
        try:
            self.notifier.play_alert(event)
        except Exception as e:
            self.logger.exception("alert_notification_failed", error=str(e))
