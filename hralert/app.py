"""
Application wiring.

Builds a ready-to-use HeartRateMonitor from configuration. Platform
collaborators (permission prompt, sensor session, haptics) are injected by the
host; everything else is chosen from AppConfig at runtime.
"""

from hralert.adapters.health.domain import PermissionProvider, QuantityType, SensorSession
from hralert.config import AppConfig, get_config
from hralert.observability import configure_logging
from hralert.services.authorization import AuthorizationGate
from hralert.services.monitor import Clock, HeartRateMonitor, HeartRateMonitorConfig
from hralert.services.notification import LoggingNotificationSink, NotificationSink
from hralert.services.signal_source import SignalSource, create_source
from hralert.services.threshold_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    ThresholdStore,
)


class AlwaysAvailablePermission:
    """Permission provider for hosts without a permission prompt (desktop, simulator)."""

    def is_health_data_available(self) -> bool:
        return True

    async def request_read_access(self, quantity_type: QuantityType) -> None:
        return None


def build_signal_source(config: AppConfig, sensor: SensorSession | None = None) -> SignalSource:
    """Pick the signal source named by ``config.source.kind``."""
    if config.source.kind == "live":
        if sensor is None:
            raise ValueError("Live heart-rate source requires a sensor session collaborator")
        return create_source("live", sensor=sensor)
    return create_source(
        "synthetic",
        interval_seconds=config.source.sample_interval_seconds,
        min_bpm=config.source.synthetic_min_bpm,
        max_bpm=config.source.synthetic_max_bpm,
    )


def build_key_value_store(config: AppConfig) -> KeyValueStore:
    if config.storage.backend == "memory":
        return InMemoryKeyValueStore()
    return JsonFileKeyValueStore(config.storage.preferences_path)


def build_monitor(
    config: AppConfig | None = None,
    *,
    permission: PermissionProvider | None = None,
    sensor: SensorSession | None = None,
    notifier: NotificationSink | None = None,
    key_value_store: KeyValueStore | None = None,
    clock: Clock | None = None,
) -> HeartRateMonitor:
    """Assemble a monitor; missing collaborators fall back to headless defaults."""
    config = config or get_config()
    configure_logging(config.logging.level, config.logging.format)

    thresholds = ThresholdStore(
        key_value_store or build_key_value_store(config),
        default=config.monitoring.default_threshold_bpm,
    )
    return HeartRateMonitor(
        source=build_signal_source(config, sensor),
        gate=AuthorizationGate(permission or AlwaysAvailablePermission()),
        thresholds=thresholds,
        notifier=notifier or LoggingNotificationSink(),
        config=HeartRateMonitorConfig(
            alert_cooldown_seconds=config.monitoring.alert_cooldown_seconds,
            alert_history_size=config.monitoring.alert_history_size,
        ),
        clock=clock,
    )
