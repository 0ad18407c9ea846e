"""
Core services for the monitor.

This package contains the signal sources, the persistent threshold, the
authorization gate, the observable state surface and the monitoring state
machine that ties them together.
"""

from .signal_source import (
    Result,
    SampleListener,
    SignalSource,
    SignalSourceError,
    available_sources,
    create_source,
    register_source,
)
from .live_source import LiveSignalSource
from .synthetic_source import SyntheticSignalSource
from .authorization import AuthorizationGate
from .monitor import HeartRateMonitor, HeartRateMonitorConfig
from .notification import ConsoleNotificationSink, LoggingNotificationSink, NotificationSink
from .state_store import StateChange, StateStore
from .threshold_store import (
    DEFAULT_THRESHOLD_BPM,
    THRESHOLD_KEY,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    ThresholdStore,
)

__all__ = [
    "AuthorizationGate",
    "ConsoleNotificationSink",
    "DEFAULT_THRESHOLD_BPM",
    "HeartRateMonitor",
    "HeartRateMonitorConfig",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LiveSignalSource",
    "LoggingNotificationSink",
    "NotificationSink",
    "Result",
    "SampleListener",
    "SignalSource",
    "SignalSourceError",
    "StateChange",
    "StateStore",
    "SyntheticSignalSource",
    "THRESHOLD_KEY",
    "ThresholdStore",
    "available_sources",
    "create_source",
    "register_source",
]
