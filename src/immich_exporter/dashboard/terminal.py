"""Terminal view of an Immich snapshot using Rich. Used by `check` and `watch`."""

from __future__ import annotations

import logging
import time
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from immich_exporter import __version__
from immich_exporter.collector.immich_collector import ImmichCollector
from immich_exporter.models import Snapshot

log = logging.getLogger(__name__)


def _human_bytes(num: float) -> str:
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if abs(num) < 1024:
            return f"{num:.1f} {unit}"
        num /= 1024
    return f"{num:.1f} PiB"


def _color_for_percent(value: float) -> str:
    if value < 70:
        return "green"
    elif value < 90:
        return "yellow"
    return "red"


def _flag(value: bool) -> str:
    return "[green]yes[/green]" if value else "[dim]no[/dim]"


def _unavailable(resource: str, snapshot: Snapshot) -> Panel:
    error = snapshot.errors.get(resource)
    return Panel(
        Text(f"  unavailable: {error}", style="bold red"),
        title=resource.capitalize(),
        border_style="red",
    )


def _jobs_panel(snapshot: Snapshot) -> Panel:
    if snapshot.jobs is None:
        return _unavailable("jobs", snapshot)

    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Queue", style="dim")
    for col in ("Active", "Waiting", "Failed", "Delayed", "Paused", "Completed"):
        table.add_column(col, justify="right")
    table.add_column("Running", justify="center")
    table.add_column("Paused", justify="center")

    for name, queue in sorted(snapshot.jobs.items()):
        c = queue.counts
        table.add_row(
            escape(name),
            str(c.active),
            f"[{'yellow' if c.waiting else 'dim'}]{c.waiting}[/]",
            f"[{'red' if c.failed else 'dim'}]{c.failed}[/]",
            str(c.delayed),
            str(c.paused),
            str(c.completed),
            _flag(queue.status.is_active),
            _flag(queue.status.is_paused),
        )
    return Panel(table, title="Jobs", border_style="cyan")


def _library_panel(snapshot: Snapshot) -> Panel:
    stats = snapshot.statistics
    if stats is None:
        return _unavailable("statistics", snapshot)

    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("User", style="dim")
    table.add_column("Photos", justify="right")
    table.add_column("Videos", justify="right")
    table.add_column("Usage", justify="right")

    for user in stats.usage_by_user:
        table.add_row(escape(user.username), f"{user.photos:,}", f"{user.videos:,}", _human_bytes(user.usage))
    table.add_row(
        "[bold]Total[/bold]",
        f"[bold]{stats.photos:,}[/bold]",
        f"[bold]{stats.videos:,}[/bold]",
        f"[bold]{_human_bytes(stats.usage)}[/bold]",
    )
    return Panel(table, title="Library", border_style="cyan")


def _storage_panel(snapshot: Snapshot) -> Panel:
    storage = snapshot.storage
    if storage is None:
        return _unavailable("storage", snapshot)

    table = Table(show_header=False, expand=True)
    table.add_column("Disk", style="dim")
    table.add_column("Value", justify="right")

    pct = storage.disk_usage_percentage
    table.add_row("Total", _human_bytes(storage.disk_size))
    table.add_row("Used", _human_bytes(storage.disk_use))
    table.add_row("Available", _human_bytes(storage.disk_available))
    table.add_row("Usage", f"[{_color_for_percent(pct)}]{pct:.1f}%[/]")
    return Panel(table, title="Storage", border_style="cyan")


def build_display(snapshot: Snapshot, source_name: str) -> Group:
    if snapshot.success:
        status_text, status_style = "OK", "bold green"
    else:
        failed = ", ".join(sorted(snapshot.errors))
        status_text, status_style = f"PARTIAL ({failed} failed)", "bold red"

    header = Text(f"  immich-exporter v{__version__}  |  {source_name}", style="bold white on blue")
    header.append(f"\n  {snapshot.timestamp.strftime('%Y-%m-%d %H:%M:%S')}  ", style="dim")
    header.append(f"  scrape {snapshot.duration_seconds * 1000:.0f}ms", style="dim")
    header.append(f"  STATUS: {status_text}", style=status_style)

    return Group(
        Panel(header, border_style="blue"),
        _jobs_panel(snapshot),
        _library_panel(snapshot),
        _storage_panel(snapshot),
    )


def print_snapshot(snapshot: Snapshot, source_name: str, console: Optional[Console] = None):
    console = console or Console()
    console.print(build_display(snapshot, source_name))


def run_dashboard(collector: ImmichCollector, source_name: str, refresh_interval: float = 15.0):
    console = Console()

    log.info("Starting dashboard: source=%s, refresh=%.1fs", source_name, refresh_interval)
    with Live(console=console, refresh_per_second=1, screen=True) as live:
        try:
            while True:
                snapshot = collector.snapshot()
                live.update(build_display(snapshot, source_name))
                time.sleep(refresh_interval)
        except KeyboardInterrupt:
            pass

    console.print("\n[dim]Dashboard stopped.[/dim]")
