"""
Console rendering of the monitor state.

A terminal stand-in for the watch UI: a BPM gauge with the start/stop control
label, the alert threshold, and the recent alert history.
"""

from collections.abc import Iterable

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from hralert.domain.models import AlertEvent, MonitorSnapshot

GAUGE_MIN_BPM = 40.0
GAUGE_MAX_BPM = 200.0
GAUGE_WIDTH = 30


def gauge_fraction(bpm: float) -> float:
    """Position of ``bpm`` on the 40-200 gauge, clamped to [0, 1]."""
    span = GAUGE_MAX_BPM - GAUGE_MIN_BPM
    return min(1.0, max(0.0, (bpm - GAUGE_MIN_BPM) / span))


def _gauge_color(fraction: float) -> str:
    if fraction < 0.25:
        return "blue"
    if fraction < 0.5:
        return "green"
    if fraction < 0.75:
        return "yellow"
    return "red"


def render_gauge(snapshot: MonitorSnapshot) -> Panel:
    fraction = gauge_fraction(snapshot.current_heart_rate)
    filled = round(fraction * GAUGE_WIDTH)
    bar = Text("█" * filled, style=_gauge_color(fraction))
    bar.append("░" * (GAUGE_WIDTH - filled), style="dim")

    body = Text.assemble(
        ("♥ ", "red"),
        (f"{int(snapshot.current_heart_rate)}", "bold"),
        " BPM\n",
    )
    body.append_text(bar)

    if not snapshot.is_authorized:
        control = Text("Permission Required", style="dim")
    elif snapshot.is_monitoring:
        control = Text("Stop Session", style="bold red")
    else:
        control = Text("Start Monitoring", style="bold blue")

    return Panel(Group(body, control), title="Dashboard", border_style="red")


def render_settings(snapshot: MonitorSnapshot) -> Panel:
    body = Text.assemble(
        ("Alert Threshold\n", "bold"),
        (f"{int(snapshot.heart_rate_threshold)} BPM", "bold red"),
    )
    return Panel(body, title="Settings")


def render_alert_table(alerts: Iterable[AlertEvent]) -> Table:
    table = Table(title="Alerts")
    table.add_column("Fired At", style="cyan")
    table.add_column("BPM", justify="right", style="red")
    table.add_column("Threshold", justify="right")

    for alert in alerts:
        table.add_row(
            alert.fired_at.strftime("%H:%M:%S"),
            f"{alert.bpm:.0f}",
            f"{alert.threshold:.0f}",
        )
    return table


def render_dashboard(snapshot: MonitorSnapshot, alerts: Iterable[AlertEvent] = ()) -> Group:
    """Full dashboard: gauge, settings and alert history."""
    return Group(render_gauge(snapshot), render_settings(snapshot), render_alert_table(alerts))
