"""
Notification sinks for fired alerts.

The monitor only ever calls ``play_alert``; how the alert reaches the user
(haptics, a terminal bell, a log line) is up to the sink.
"""

from typing import Protocol

import structlog
from rich.console import Console

from hralert.domain.models import AlertEvent

logger = structlog.get_logger(__name__)


class NotificationSink(Protocol):
    """Fire-and-forget alert output."""

    def play_alert(self, event: AlertEvent) -> None: ...


class LoggingNotificationSink:
    """Headless sink: records the alert in the structured log."""

    def __init__(self) -> None:
        self.logger = logger.bind(component="notification_sink")

    def play_alert(self, event: AlertEvent) -> None:
        self.logger.warning(
            "heart_rate_alert",
            bpm=round(event.bpm, 1),
            threshold=event.threshold,
            fired_at=event.fired_at.isoformat(),
        )


class ConsoleNotificationSink:
    """Development sink that rings the terminal bell and prints the alert."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def play_alert(self, event: AlertEvent) -> None:
        self.console.bell()
        self.console.print(
            f"[bold red]ALERT[/bold red] {event.bpm:.0f} BPM "
            f"(threshold {event.threshold:.0f}) at {event.fired_at.strftime('%H:%M:%S UTC')}"
        )
