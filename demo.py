"""
End-to-end demonstration of the heart-rate monitor.

This script walks through:
1. Configuration loading and validation
2. Authorization (headless permission provider)
3. A short monitoring session on the synthetic source
4. Threshold alerts with the 60 second cooldown
5. The console dashboard

Run with: uv run python demo.py
"""

import asyncio

from rich.console import Console
from rich.panel import Panel

from hralert.app import build_monitor
from hralert.config import clamp_threshold, get_config, print_config_summary, validate_config
from hralert.dashboard import render_dashboard
from hralert.services.notification import ConsoleNotificationSink
from hralert.services.state_store import StateChange
from hralert.services.threshold_store import InMemoryKeyValueStore

console = Console()


async def run_demo(seconds: float = 5.0) -> None:
    config = get_config()
    monitor = build_monitor(
        config,
        notifier=ConsoleNotificationSink(console),
        key_value_store=InMemoryKeyValueStore(),
    )

    def on_change(change: StateChange) -> None:
        if change.field == "current_heart_rate":
            console.print(f"  ♥ {change.value:.0f} BPM")
        else:
            console.print(f"  [dim]{change.field} -> {change.value}[/dim]")

    unsubscribe = monitor.state_store.subscribe(on_change)

    console.print(Panel("Requesting heart-rate access", style="blue"))
    await monitor.request_authorization()

    # Low threshold so the synthetic 90-120 BPM stream crosses it
    monitor.heart_rate_threshold = clamp_threshold(100.0, config.monitoring)

    console.print(Panel(f"Monitoring for {seconds:.0f}s", style="green"))
    async with monitor.monitoring_session():
        await asyncio.sleep(seconds)
    await monitor.shutdown()

    unsubscribe()
    console.print(render_dashboard(monitor.snapshot(), monitor.alert_history))
    console.print(
        f"Alerts fired: {len(monitor.alert_history)} "
        f"(cooldown {config.monitoring.alert_cooldown_seconds:.0f}s)"
    )


def main() -> None:
    validate_config()
    print_config_summary()
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
