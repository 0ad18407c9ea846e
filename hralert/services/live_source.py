"""
Live heart-rate source backed by the platform sensor session.

Converts each collected statistics batch into BPM samples and forwards them to
the listener. Entries for other quantity types, empty statistics and values
that fail validation are dropped silently.

Independently of any session, a background sample query reports every newly
stored heart-rate sample; the newest sample of each batch is forwarded to the
observer.
"""

from collections.abc import Sequence

import structlog
from pydantic import ValidationError

from hralert.adapters.health.domain import (
    QuantitySample,
    QuantityStatistics,
    QuantityType,
    SensorSession,
)
from hralert.domain.models import HeartRateSample
from hralert.services.signal_source import (
    Result,
    SampleListener,
    SignalSourceError,
    register_source,
)

logger = structlog.get_logger(__name__)


@register_source("live")
class LiveSignalSource:
    """Streams heart rate from a running sensor session."""

    def __init__(self, sensor: SensorSession, source_name: str = "live") -> None:
        self.sensor = sensor
        self.source_name = source_name
        self.logger = logger.bind(source=source_name)
        self._listener: SampleListener | None = None
        self._observer: SampleListener | None = None

    @property
    def is_running(self) -> bool:
        return self._listener is not None

    @property
    def is_observing(self) -> bool:
        return self._observer is not None

    async def start(self, listener: SampleListener) -> None:
        if self._listener is not None:
            return
        self._listener = listener
        try:
            await self.sensor.begin_collection(self._on_statistics, self._on_session_error)
        except Exception as e:
            self._listener = None
            self.logger.error("sensor_session_start_failed", error=str(e))
            raise SignalSourceError(f"Failed to start sensor session: {e}") from e
        if self._listener is not listener:
            # stop() ran while the session was opening
            await self._end_collection()
            return
        self.logger.info("live_source_started")

    async def stop(self) -> None:
        if self._listener is None:
            return
        # Detach first so batches flushed during teardown are not forwarded
        self._listener = None
        await self._end_collection()

    async def _end_collection(self) -> None:
        try:
            await self.sensor.end_collection()
        except Exception as e:
            self.logger.error("sensor_session_stop_failed", error=str(e))
            return
        self.logger.info("live_source_stopped")

    async def fetch_latest(self) -> Result[HeartRateSample | None, Exception]:
        try:
            latest = await self.sensor.most_recent_sample(QuantityType.HEART_RATE)
            if latest is None:
                return Result.ok(None)
            sample = HeartRateSample(
                value=latest.quantity.to_bpm(),
                timestamp=latest.start_date,
                source=self.source_name,
            )
            return Result.ok(sample)
        except Exception as e:
            self.logger.warning("latest_sample_query_failed", error=str(e))
            return Result.err(e)

    async def observe(self, listener: SampleListener) -> None:
        if self._observer is not None:
            return
        self._observer = listener
        try:
            await self.sensor.start_sample_query(QuantityType.HEART_RATE, self._on_stored_samples)
        except Exception as e:
            self._observer = None
            self.logger.error("sample_query_start_failed", error=str(e))
            raise SignalSourceError(f"Failed to start heart-rate query: {e}") from e
        self.logger.info("live_source_observing")

    async def stop_observing(self) -> None:
        if self._observer is None:
            return
        self._observer = None
        try:
            await self.sensor.stop_sample_query()
        except Exception as e:
            self.logger.error("sample_query_stop_failed", error=str(e))

    def _on_statistics(self, batch: Sequence[QuantityStatistics]) -> None:
        listener = self._listener
        if listener is None:
            return
        samples = [s for s in (self._to_sample(stats) for stats in batch) if s is not None]
        if samples:
            listener.on_samples(samples)

    def _on_session_error(self, error: BaseException) -> None:
        listener = self._listener
        if listener is None:
            self.logger.warning("sensor_session_error_after_stop", error=str(error))
            return
        listener.on_session_error(error)

    def _to_sample(self, stats: object) -> HeartRateSample | None:
        if not isinstance(stats, QuantityStatistics):
            self.logger.debug("malformed_statistics_dropped", kind=type(stats).__name__)
            return None
        if stats.quantity_type != QuantityType.HEART_RATE:
            return None
        quantity = stats.most_recent_quantity
        if quantity is None:
            return None
        try:
            return HeartRateSample(
                value=quantity.to_bpm(),
                timestamp=stats.most_recent_date,
                source=self.source_name,
            )
        except ValidationError:
            self.logger.debug("invalid_heart_rate_dropped", value=quantity.value)
            return None

    def _on_stored_samples(self, batch: Sequence[QuantitySample]) -> None:
        observer = self._observer
        if observer is None:
            return
        for stored in reversed(batch):
            sample = self._stored_to_sample(stored)
            if sample is not None:
                observer.on_samples([sample])
                return

    def _stored_to_sample(self, stored: object) -> HeartRateSample | None:
        if not isinstance(stored, QuantitySample) or stored.quantity_type != QuantityType.HEART_RATE:
            return None
        try:
            return HeartRateSample(
                value=stored.quantity.to_bpm(),
                timestamp=stored.start_date,
                source=self.source_name,
            )
        except ValidationError:
            self.logger.debug("invalid_heart_rate_dropped", value=stored.quantity.value)
            return None
