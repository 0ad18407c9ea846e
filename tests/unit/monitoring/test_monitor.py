"""
Tests for the heart-rate monitoring state machine.

Testing philosophy:
- Drive the monitor through its public surface (authorize, start, push samples, stop)
- Use a controllable clock so cooldown behaviour is deterministic
- Test doubles implement the collaborator protocols; no patching of internals
"""

import asyncio
import threading
from datetime import UTC, datetime, timedelta

import pytest

from hralert.adapters.health.domain import (
    QuantitySample,
    QuantityType,
    SessionErrorHandler,
    StatisticsHandler,
)
from hralert.domain.models import (
    AlertEvent,
    AuthorizationState,
    HeartRateSample,
    MonitoringState,
)
from hralert.services.authorization import AuthorizationGate
from hralert.services.live_source import LiveSignalSource
from hralert.services.monitor import HeartRateMonitor, HeartRateMonitorConfig
from hralert.services.signal_source import Result, SampleListener, SignalSourceError
from hralert.services.state_store import StateChange
from hralert.services.synthetic_source import SyntheticSignalSource
from hralert.services.threshold_store import InMemoryKeyValueStore, ThresholdStore

T0 = datetime(2026, 2, 19, 12, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakePermission:
    """Test double that implements the PermissionProvider protocol."""

    def __init__(self, fail: bool = False, delay_seconds: float = 0.0) -> None:
        self.fail = fail
        self.delay_seconds = delay_seconds

    def is_health_data_available(self) -> bool:
        return True

    async def request_read_access(self, quantity_type: QuantityType) -> None:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail:
            raise RuntimeError("prompt failed")


class FakeSignalSource:
    """Test double that implements the SignalSource protocol; samples are pushed by the test."""

    def __init__(
        self,
        fail_to_start: bool = False,
        latest: Result[HeartRateSample | None, Exception] | None = None,
        start_delay_seconds: float = 0.0,
        fail_to_observe: bool = False,
    ) -> None:
        self.source_name = "fake"
        self.fail_to_start = fail_to_start
        self.latest = latest or Result.ok(None)
        self.start_delay_seconds = start_delay_seconds
        self.fail_to_observe = fail_to_observe
        self.listener: SampleListener | None = None
        self.observer: SampleListener | None = None
        self.start_calls = 0
        self.stop_calls = 0
        self.stop_observing_calls = 0

    async def start(self, listener: SampleListener) -> None:
        self.start_calls += 1
        if self.start_delay_seconds:
            await asyncio.sleep(self.start_delay_seconds)
        if self.fail_to_start:
            raise SignalSourceError("sensor session could not be opened")
        self.listener = listener

    async def stop(self) -> None:
        self.stop_calls += 1

    async def fetch_latest(self) -> Result[HeartRateSample | None, Exception]:
        return self.latest

    async def observe(self, listener: SampleListener) -> None:
        if self.fail_to_observe:
            raise SignalSourceError("heart-rate query not permitted")
        self.observer = listener

    async def stop_observing(self) -> None:
        self.stop_observing_calls += 1
        self.observer = None

    def push(self, *values: float) -> None:
        assert self.listener is not None, "source was never started"
        self.listener.on_samples([HeartRateSample(value=v, source=self.source_name) for v in values])

    def record(self, *values: float) -> None:
        assert self.observer is not None, "source is not being observed"
        self.observer.on_samples([HeartRateSample(value=v, source=self.source_name) for v in values])


class SlowSensorSession:
    """Sensor session that takes a while to open and records every open and close."""

    def __init__(self, open_delay_seconds: float = 0.05) -> None:
        self.open_delay_seconds = open_delay_seconds
        self.open_sessions = 0
        self.max_open_sessions = 0
        self.log: list[str] = []

    async def begin_collection(
        self, on_statistics: StatisticsHandler, on_error: SessionErrorHandler
    ) -> None:
        await asyncio.sleep(self.open_delay_seconds)
        self.open_sessions += 1
        self.max_open_sessions = max(self.max_open_sessions, self.open_sessions)
        self.log.append("begun")

    async def end_collection(self) -> None:
        if self.open_sessions:
            self.open_sessions -= 1
            self.log.append("ended")

    async def most_recent_sample(self, quantity_type: QuantityType) -> QuantitySample | None:
        return None

    async def start_sample_query(self, quantity_type: QuantityType, on_samples) -> None:
        return None

    async def stop_sample_query(self) -> None:
        return None


class RecordingSink:
    """Test double that implements the NotificationSink protocol."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[AlertEvent] = []
        self.threads: list[int] = []

    def play_alert(self, event: AlertEvent) -> None:
        self.events.append(event)
        self.threads.append(threading.get_ident())
        if self.fail:
            raise RuntimeError("haptics unavailable")


class MonitorHarness:
    """Bundles a monitor with its doubles."""

    def __init__(
        self,
        source: FakeSignalSource | None = None,
        permission: FakePermission | None = None,
        sink: RecordingSink | None = None,
        config: HeartRateMonitorConfig | None = None,
    ) -> None:
        self.clock = FakeClock()
        self.source = source or FakeSignalSource()
        self.permission = permission or FakePermission()
        self.sink = sink or RecordingSink()
        self.thresholds = ThresholdStore(InMemoryKeyValueStore())
        self.monitor = HeartRateMonitor(
            source=self.source,
            gate=AuthorizationGate(self.permission),
            thresholds=self.thresholds,
            notifier=self.sink,
            config=config,
            clock=self.clock,
        )

    async def authorized_and_monitoring(self) -> HeartRateMonitor:
        assert await self.monitor.request_authorization()
        assert await self.monitor.start_monitoring()
        return self.monitor


@pytest.fixture
def harness() -> MonitorHarness:
    return MonitorHarness()


def live_monitor(sensor: SlowSensorSession) -> HeartRateMonitor:
    return HeartRateMonitor(
        source=LiveSignalSource(sensor),
        gate=AuthorizationGate(FakePermission()),
        thresholds=ThresholdStore(InMemoryKeyValueStore()),
        notifier=RecordingSink(),
    )


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_request_authorization_publishes_flag(self, harness: MonitorHarness) -> None:
        changes: list[StateChange] = []
        harness.monitor.state_store.subscribe(changes.append)

        assert await harness.monitor.request_authorization() is True

        assert harness.monitor.is_authorized is True
        assert harness.monitor.authorization_state is AuthorizationState.AUTHORIZED
        assert ("is_authorized", True) in [(c.field, c.value) for c in changes]

    @pytest.mark.asyncio
    async def test_authorization_seeds_display_from_latest_sample(self) -> None:
        latest = HeartRateSample(value=68.0, timestamp=T0 - timedelta(hours=1))
        harness = MonitorHarness(source=FakeSignalSource(latest=Result.ok(latest)))

        await harness.monitor.request_authorization()

        assert harness.monitor.current_heart_rate == 68.0
        # Seeding the display never evaluates the threshold
        assert harness.sink.events == []

    @pytest.mark.asyncio
    async def test_latest_sample_failure_still_authorizes(self) -> None:
        source = FakeSignalSource(latest=Result.err(RuntimeError("query failed")))
        harness = MonitorHarness(source=source)

        assert await harness.monitor.request_authorization() is True
        assert harness.monitor.current_heart_rate == 0.0

    @pytest.mark.asyncio
    async def test_prompt_failure_keeps_not_authorized(self) -> None:
        harness = MonitorHarness(permission=FakePermission(fail=True))

        assert await harness.monitor.request_authorization() is False
        assert harness.monitor.is_authorized is False
        assert harness.monitor.authorization_state is AuthorizationState.NOT_AUTHORIZED


class TestStartStop:
    @pytest.mark.asyncio
    async def test_start_while_not_authorized_stays_idle(self, harness: MonitorHarness) -> None:
        assert await harness.monitor.start_monitoring() is False

        assert harness.monitor.state is MonitoringState.IDLE
        assert harness.monitor.is_monitoring is False
        assert harness.source.start_calls == 0

    @pytest.mark.asyncio
    async def test_start_after_authorization(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()

        assert monitor.state is MonitoringState.MONITORING
        assert harness.source.start_calls == 1
        assert harness.source.listener is monitor

    @pytest.mark.asyncio
    async def test_start_twice_keeps_single_session(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()

        assert await monitor.start_monitoring() is True
        assert harness.source.start_calls == 1

    @pytest.mark.asyncio
    async def test_start_failure_reverts_to_idle(self) -> None:
        harness = MonitorHarness(source=FakeSignalSource(fail_to_start=True))
        await harness.monitor.request_authorization()

        assert await harness.monitor.start_monitoring() is False
        assert harness.monitor.state is MonitoringState.IDLE

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()
        harness.source.push(100.0)

        await monitor.stop_monitoring()
        once = monitor.snapshot()
        await monitor.stop_monitoring()

        assert monitor.snapshot() == once
        assert monitor.state is MonitoringState.IDLE
        assert harness.source.stop_calls == 1

    @pytest.mark.asyncio
    async def test_stop_while_idle_is_noop(self, harness: MonitorHarness) -> None:
        await harness.monitor.stop_monitoring()

        assert harness.monitor.state is MonitoringState.IDLE
        assert harness.source.stop_calls == 0

    @pytest.mark.asyncio
    async def test_stop_during_pending_start(self) -> None:
        harness = MonitorHarness(source=FakeSignalSource(start_delay_seconds=0.05))
        await harness.monitor.request_authorization()

        start = asyncio.create_task(harness.monitor.start_monitoring())
        await asyncio.sleep(0.01)
        await harness.monitor.stop_monitoring()

        assert await start is False
        assert harness.monitor.state is MonitoringState.IDLE
        assert harness.source.start_calls == 1
        assert harness.source.stop_calls == 1

    @pytest.mark.asyncio
    async def test_stop_during_pending_live_start_closes_session(self) -> None:
        sensor = SlowSensorSession(open_delay_seconds=0.05)
        monitor = live_monitor(sensor)
        await monitor.request_authorization()

        start = asyncio.create_task(monitor.start_monitoring())
        await asyncio.sleep(0.01)
        await monitor.stop_monitoring()

        assert await start is False
        assert monitor.state is MonitoringState.IDLE
        assert sensor.open_sessions == 0
        assert sensor.log == ["begun", "ended"]

    @pytest.mark.asyncio
    async def test_restart_during_pending_start_keeps_one_session(self) -> None:
        sensor = SlowSensorSession(open_delay_seconds=0.05)
        monitor = live_monitor(sensor)
        await monitor.request_authorization()

        first = asyncio.create_task(monitor.start_monitoring())
        await asyncio.sleep(0.01)
        stop = asyncio.create_task(monitor.stop_monitoring())
        await asyncio.sleep(0.01)
        second = asyncio.create_task(monitor.start_monitoring())

        assert await first is False
        await stop
        assert await second is True
        assert monitor.is_monitoring is True
        assert sensor.max_open_sessions == 1
        assert sensor.open_sessions == 1

        await monitor.stop_monitoring()
        assert sensor.open_sessions == 0

    @pytest.mark.asyncio
    async def test_restart_during_pending_start_fake_source_counts(self) -> None:
        harness = MonitorHarness(source=FakeSignalSource(start_delay_seconds=0.05))
        await harness.monitor.request_authorization()

        first = asyncio.create_task(harness.monitor.start_monitoring())
        await asyncio.sleep(0.01)
        stop = asyncio.create_task(harness.monitor.stop_monitoring())
        await asyncio.sleep(0.01)
        second = asyncio.create_task(harness.monitor.start_monitoring())
        results = await asyncio.gather(first, stop, second)

        assert results == [False, None, True]
        assert harness.source.start_calls == 2
        assert harness.source.stop_calls == 1
        assert harness.monitor.state is MonitoringState.MONITORING

    @pytest.mark.asyncio
    async def test_start_waits_for_pending_authorization(self) -> None:
        harness = MonitorHarness(permission=FakePermission(delay_seconds=0.05))

        waiting_start = asyncio.create_task(harness.monitor.start_monitoring_when_authorized(timeout=1.0))
        await asyncio.sleep(0)
        await harness.monitor.request_authorization()

        assert await waiting_start is True
        assert harness.monitor.is_monitoring is True

    @pytest.mark.asyncio
    async def test_start_when_authorized_times_out(self, harness: MonitorHarness) -> None:
        assert await harness.monitor.start_monitoring_when_authorized(timeout=0.01) is False
        assert harness.source.start_calls == 0

    @pytest.mark.asyncio
    async def test_monitoring_session_context(self, harness: MonitorHarness) -> None:
        await harness.monitor.request_authorization()

        async with harness.monitor.monitoring_session() as monitor:
            assert monitor.is_monitoring is True

        assert harness.monitor.is_monitoring is False
        assert harness.source.stop_calls == 1


class TestAlerting:
    @pytest.mark.asyncio
    async def test_cooldown_scenario(self, harness: MonitorHarness) -> None:
        """threshold=120, samples 100@t0, 130@t1, 135@t1+10s, 140@t1+65s."""
        monitor = await harness.authorized_and_monitoring()
        monitor.heart_rate_threshold = 120.0

        harness.source.push(100.0)
        harness.clock.advance(5)
        t1 = harness.clock.now
        harness.source.push(130.0)
        harness.clock.advance(10)
        harness.source.push(135.0)
        harness.clock.advance(55)
        harness.source.push(140.0)

        assert [e.fired_at for e in harness.sink.events] == [t1, t1 + timedelta(seconds=65)]
        assert [e.bpm for e in harness.sink.events] == [130.0, 140.0]
        assert monitor.current_heart_rate == 140.0
        assert monitor.last_alert_time == t1 + timedelta(seconds=65)
        assert list(monitor.alert_history) == harness.sink.events

    @pytest.mark.asyncio
    async def test_default_threshold_is_110(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()

        harness.source.push(109.9)
        assert harness.sink.events == []

        harness.source.push(110.0)
        assert len(harness.sink.events) == 1
        assert harness.sink.events[0].threshold == 110.0

    @pytest.mark.asyncio
    async def test_cooldown_runs_from_fire_time(self, harness: MonitorHarness) -> None:
        await harness.authorized_and_monitoring()

        harness.source.push(130.0)
        harness.clock.advance(59)
        harness.source.push(150.0)
        harness.clock.advance(1)
        harness.source.push(150.0)

        assert len(harness.sink.events) == 2

    @pytest.mark.asyncio
    async def test_samples_after_stop_update_display_only(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()
        await monitor.stop_monitoring()

        harness.source.push(180.0)

        assert monitor.current_heart_rate == 180.0
        assert harness.sink.events == []
        assert monitor.last_alert_time is None

    @pytest.mark.asyncio
    async def test_most_recent_sample_in_batch_wins(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()

        harness.source.push(150.0, 90.0)

        assert monitor.current_heart_rate == 90.0
        assert harness.sink.events == []

    @pytest.mark.asyncio
    async def test_malformed_samples_dropped(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()

        monitor.on_samples([{"value": 200.0}, None])  # type: ignore[list-item]

        assert monitor.current_heart_rate == 0.0
        assert harness.sink.events == []

    @pytest.mark.asyncio
    async def test_threshold_change_applies_immediately(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()

        harness.source.push(100.0)
        monitor.heart_rate_threshold = 95.0
        harness.source.push(100.0)

        assert len(harness.sink.events) == 1
        assert harness.thresholds.get() == 95.0

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_break_monitoring(self) -> None:
        harness = MonitorHarness(sink=RecordingSink(fail=True))
        monitor = await harness.authorized_and_monitoring()

        harness.source.push(130.0)
        harness.clock.advance(1)
        harness.source.push(95.0)

        assert len(harness.sink.events) == 1
        assert monitor.current_heart_rate == 95.0
        assert monitor.is_monitoring is True

    @pytest.mark.asyncio
    async def test_session_error_keeps_state(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()

        monitor.on_session_error(RuntimeError("session failed"))

        assert monitor.is_monitoring is True

    @pytest.mark.asyncio
    async def test_alert_history_is_bounded(self) -> None:
        harness = MonitorHarness(config=HeartRateMonitorConfig(alert_history_size=2))
        monitor = await harness.authorized_and_monitoring()

        for _ in range(3):
            harness.source.push(150.0)
            harness.clock.advance(60)

        assert len(harness.sink.events) == 3
        assert len(monitor.alert_history) == 2


class TestBackgroundObservation:
    @pytest.mark.asyncio
    async def test_authorization_starts_observation(self, harness: MonitorHarness) -> None:
        await harness.monitor.request_authorization()
        assert harness.source.observer is harness.monitor

    @pytest.mark.asyncio
    async def test_idle_updates_display_without_alerts(self, harness: MonitorHarness) -> None:
        await harness.monitor.request_authorization()

        harness.source.record(150.0, 155.0)

        assert harness.monitor.current_heart_rate == 155.0
        assert harness.monitor.is_monitoring is False
        assert harness.sink.events == []

    @pytest.mark.asyncio
    async def test_observed_samples_evaluated_while_monitoring(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()

        harness.source.record(150.0)

        assert monitor.current_heart_rate == 150.0
        assert [e.bpm for e in harness.sink.events] == [150.0]

    @pytest.mark.asyncio
    async def test_observation_failure_still_authorizes(self) -> None:
        harness = MonitorHarness(source=FakeSignalSource(fail_to_observe=True))

        assert await harness.monitor.request_authorization() is True
        assert harness.monitor.is_authorized is True
        assert harness.source.observer is None

    @pytest.mark.asyncio
    async def test_shutdown_stops_monitoring_and_observation(self, harness: MonitorHarness) -> None:
        await harness.authorized_and_monitoring()

        await harness.monitor.shutdown()
        await harness.monitor.shutdown()

        assert harness.monitor.is_monitoring is False
        assert harness.source.stop_calls == 1
        assert harness.source.stop_observing_calls == 1
        assert harness.source.observer is None


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_background_thread_samples_run_on_loop(self, harness: MonitorHarness) -> None:
        monitor = await harness.authorized_and_monitoring()
        loop_thread = threading.get_ident()

        worker = threading.Thread(target=harness.source.push, args=(150.0,))
        worker.start()
        worker.join()

        # Delivery is queued with call_soon_threadsafe; let the loop run it
        for _ in range(50):
            if harness.sink.events:
                break
            await asyncio.sleep(0.01)

        assert monitor.current_heart_rate == 150.0
        assert harness.sink.threads == [loop_thread]

    @pytest.mark.performance
    @pytest.mark.asyncio
    async def test_synthetic_source_end_to_end(self) -> None:
        source = SyntheticSignalSource(interval_seconds=0.01)
        sink = RecordingSink()
        monitor = HeartRateMonitor(
            source=source,
            gate=AuthorizationGate(FakePermission()),
            thresholds=ThresholdStore(InMemoryKeyValueStore({"HeartRateThreshold": 80.0})),
            notifier=sink,
        )
        await monitor.request_authorization()

        async with monitor.monitoring_session():
            await asyncio.sleep(0.1)

        # Every synthetic reading crosses 80 BPM, but the real clock stays inside one cooldown
        assert len(sink.events) == 1
        assert 90.0 <= monitor.current_heart_rate <= 120.0
        assert not source.is_running


