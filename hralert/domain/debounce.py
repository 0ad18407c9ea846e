"""
Alert debounce logic.

A pure decision function plus a small stateful wrapper that owns the cooldown
timestamp. The 60 second window is measured from the moment an alert fires,
not from when a sample was evaluated.
"""

from datetime import datetime, timedelta

DEFAULT_COOLDOWN = timedelta(seconds=60)


def should_fire(
    current_value: float,
    threshold: float,
    last_alert_time: datetime | None,
    now: datetime,
    cooldown: timedelta = DEFAULT_COOLDOWN,
) -> bool:
    """Return True when the reading is at or above threshold and the cooldown has elapsed."""
    if current_value < threshold:
        return False
    if last_alert_time is None:
        return True
    return now - last_alert_time >= cooldown


class AlertDebouncer:
    """Holds the cooldown state between evaluations."""

    def __init__(self, cooldown: timedelta = DEFAULT_COOLDOWN) -> None:
        if cooldown < timedelta(0):
            raise ValueError("cooldown must not be negative")
        self.cooldown = cooldown
        self.last_alert_time: datetime | None = None

    def try_fire(self, current_value: float, threshold: float, now: datetime) -> bool:
        """
        Evaluate a reading and arm the cooldown if an alert should fire.

        The cooldown timestamp is updated before returning True, so callers
        notify only after the next window is already in place.
        """
        if not should_fire(current_value, threshold, self.last_alert_time, now, self.cooldown):
            return False
        self.last_alert_time = now
        return True

    def remaining(self, now: datetime) -> timedelta:
        """Time left before another alert may fire (zero when not cooling down)."""
        if self.last_alert_time is None:
            return timedelta(0)
        return max(timedelta(0), self.last_alert_time + self.cooldown - now)

    def reset(self) -> None:
        self.last_alert_time = None
