"""Tests for the console dashboard rendering."""

from datetime import UTC, datetime

import pytest
from rich.console import Console

from hralert.dashboard import gauge_fraction, render_dashboard
from hralert.domain.models import AlertEvent, MonitorSnapshot


def _render(renderable: object) -> str:
    console = Console(record=True, width=80, color_system=None)
    console.print(renderable)
    return console.export_text()


@pytest.mark.parametrize("bpm,expected", [(40.0, 0.0), (120.0, 0.5), (200.0, 1.0), (0.0, 0.0), (250.0, 1.0)])
def test_gauge_fraction(bpm: float, expected: float) -> None:
    assert gauge_fraction(bpm) == expected


def test_dashboard_shows_reading_threshold_and_control() -> None:
    snapshot = MonitorSnapshot(
        current_heart_rate=97.6, is_monitoring=True, is_authorized=True, heart_rate_threshold=125.0
    )

    text = _render(render_dashboard(snapshot))

    assert "97 BPM" in text
    assert "125 BPM" in text
    assert "Stop Session" in text


@pytest.mark.parametrize(
    "authorized,monitoring,label",
    [(False, False, "Permission Required"), (True, False, "Start Monitoring")],
)
def test_control_label(authorized: bool, monitoring: bool, label: str) -> None:
    snapshot = MonitorSnapshot(is_authorized=authorized, is_monitoring=monitoring)
    assert label in _render(render_dashboard(snapshot))


def test_alert_history_rows() -> None:
    alerts = [
        AlertEvent(bpm=131.2, threshold=120.0, fired_at=datetime(2026, 2, 19, 12, 0, 5, tzinfo=UTC)),
        AlertEvent(bpm=140.0, threshold=120.0, fired_at=datetime(2026, 2, 19, 12, 1, 10, tzinfo=UTC)),
    ]

    text = _render(render_dashboard(MonitorSnapshot(), alerts))

    assert "12:00:05" in text
    assert "12:01:10" in text
    assert "131" in text
