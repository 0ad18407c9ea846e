"""
Synthetic heart-rate source.

Stands in for the live sensor feed on machines without one (simulators, demos,
tests). Emits one uniformly random reading per interval until stopped.
"""

import asyncio
import contextlib
import random
from datetime import UTC, datetime

import structlog

from hralert.domain.models import HeartRateSample
from hralert.services.signal_source import Result, SampleListener, register_source

logger = structlog.get_logger(__name__)


@register_source("synthetic")
class SyntheticSignalSource:
    """
    Random heart-rate generator driven by an asyncio task.

    Never emits after ``stop()`` returns: the running flag is checked after every
    sleep and the task is cancelled and awaited on stop.
    """

    def __init__(
        self,
        source_name: str = "synthetic",
        interval_seconds: float = 1.0,
        min_bpm: float = 90.0,
        max_bpm: float = 120.0,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if not 0 < min_bpm <= max_bpm:
            raise ValueError("expected 0 < min_bpm <= max_bpm")
        self.source_name = source_name
        self.interval_seconds = interval_seconds
        self.min_bpm = min_bpm
        self.max_bpm = max_bpm
        self.logger = logger.bind(source=source_name)
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def next_sample(self) -> HeartRateSample:
        return HeartRateSample(
            value=random.uniform(self.min_bpm, self.max_bpm),
            timestamp=datetime.now(UTC),
            source=self.source_name,
        )

    async def start(self, listener: SampleListener) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._emit_loop(listener), name=f"{self.source_name}-emitter")
        self.logger.info(
            "synthetic_source_started",
            interval_seconds=self.interval_seconds,
            min_bpm=self.min_bpm,
            max_bpm=self.max_bpm,
        )

    async def _emit_loop(self, listener: SampleListener) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            if not self._running:
                break
            try:
                listener.on_samples([self.next_sample()])
            except Exception as e:
                self.logger.exception("synthetic_sample_delivery_failed", error=str(e))

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self.logger.info("synthetic_source_stopped")

    async def fetch_latest(self) -> Result[HeartRateSample | None, Exception]:
        # Nothing is persisted by the generator
        return Result.ok(None)

    async def observe(self, listener: SampleListener) -> None:
        # No stored samples to observe; readings only flow during a session
        return None

    async def stop_observing(self) -> None:
        return None
