"""Console echo of event log entries and status summaries."""

from __future__ import annotations

import os
from typing import IO, Iterable, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from webmon.constants import APP_NAME, APP_VERSION
from webmon.eventlog.models import LogEntry
from webmon.runtime.models import MonitorStatus

_LEVEL_STYLES = {
    "DEBUG": "dim",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold red",
}


class EventConsole:
    """Colour-coded console output (green for INFO, red for ERROR)."""

    def __init__(self, console: Optional[Console] = None, *, file: Optional[IO[str]] = None) -> None:
        self._console = console or Console(file=file, highlight=False, soft_wrap=True)

    @property
    def console(self) -> Console:
        return self._console

    def print_entry(self, entry: LogEntry) -> None:
        style = _LEVEL_STYLES.get(entry.level, "")
        self._console.print(Text(entry.to_text(), style=style))

    def print_entries(self, entries: Iterable[LogEntry]) -> int:
        count = 0
        for entry in entries:
            self.print_entry(entry)
            count += 1
        return count

    def print_banner(self, config_path: str, target_url: str, log_path: str) -> None:
        self._console.rule(f"[bold]{APP_NAME} v{APP_VERSION}")
        self._console.print(f"    Config File: {os.path.basename(config_path)}")
        self._console.print(f"    Target: {target_url}")
        self._console.print(f"    Event Log: {log_path}")

    def print_status(self, status: MonitorStatus) -> None:
        """Render a status snapshot as a small table."""
        table = Table(title=f"{APP_NAME} status", show_header=False)
        table.add_column("field", style="bold")
        table.add_column("value")
        table.add_row("state", status.state.value)
        table.add_row("target", status.target_url)
        table.add_row("child", f"{status.child_state.value} (PID {status.child_pid or '-'})")
        table.add_row("probes", str(status.probes_total))
        table.add_row("ticks", f"{status.ticks_fired} fired, {status.ticks_skipped} skipped")
        table.add_row("restarts", str(status.restarts_total))
        for category, count in status.streaks.items():
            table.add_row(f"streak:{category}", str(count))
        if status.uptime_seconds is not None:
            table.add_row("uptime", f"{status.uptime_seconds:.0f}s")
        self._console.print(table)
