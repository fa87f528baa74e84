"""Append-only event log.

Writes one newline-delimited record per lifecycle or probe event to a
dedicated file, in either the plain text layout::

    2024-05-01T12:00:00.123Z [ERROR] Target returned 403. Count=2

or as JSON lines.  Each entry is also emitted through the standard
``logging`` infrastructure (diagnostic log) and optionally echoed to the
console.  The file is only ever appended to.
"""

from __future__ import annotations

import itertools
import json
import logging
import os
import re
from typing import TYPE_CHECKING, List, Optional, Union

from pydantic import ValidationError

from webmon.eventlog.models import LogEntry

if TYPE_CHECKING:
    from webmon.config.schema import EventLogConfig
    from webmon.display.console import EventConsole

logger = logging.getLogger(__name__)

_EVENTS_LOGGER = "webmon.events"
_instance_ids = itertools.count(1)

_TEXT_LINE_RE = re.compile(r"^(?P<ts>\S+) \[(?P<level>[A-Z]+)\] (?P<message>.*)$")


def _level_name(level: Union[int, str]) -> str:
    if isinstance(level, int):
        return logging.getLevelName(level)
    return level.upper()


def _level_no(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


class EventLog:
    """Append-only event writer.

    Parameters
    ----------
    path:
        Event log file; created (with parent directories) if missing.
    fmt:
        ``"text"`` or ``"jsonl"``.
    console:
        Optional :class:`EventConsole` that echoes every entry.
    """

    def __init__(
        self,
        path: str,
        *,
        fmt: str = "text",
        console: Optional["EventConsole"] = None,
    ) -> None:
        if fmt not in ("text", "jsonl"):
            raise ValueError(f"Unknown event log format '{fmt}'")
        self._path = os.path.abspath(path)
        self._fmt = fmt
        self._console = console

        parent = os.path.dirname(self._path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        # One logger per instance so each file only receives its own entries.
        self._events_logger = logging.getLogger(f"{_EVENTS_LOGGER}.{next(_instance_ids)}")
        self._events_logger.setLevel(logging.DEBUG)
        self._events_logger.propagate = False
        self._file_handler: Optional[logging.FileHandler] = logging.FileHandler(
            self._path, mode="a", encoding="utf-8"
        )
        # Lines are pre-rendered; no formatter wrapping.
        self._file_handler.setFormatter(logging.Formatter("%(message)s"))
        self._events_logger.addHandler(self._file_handler)
        logger.info("Event log initialized: %s (format=%s)", self._path, fmt)

    @classmethod
    def from_config(
        cls, cfg: "EventLogConfig", *, console: Optional["EventConsole"] = None
    ) -> "EventLog":
        return cls(cfg.path, fmt=cfg.format, console=console if cfg.echo else None)

    @property
    def path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._file_handler is None

    # ── Writing ──────────────────────────────────────────────────────────

    def emit(self, entry: LogEntry) -> None:
        """Append *entry* to the file, the diagnostic log and the console."""
        level = _level_no(entry.level)
        if self._file_handler is None:
            logger.warning("Event log closed; dropping entry: %s", entry.message)
            return
        line = entry.to_json() if self._fmt == "jsonl" else entry.to_text()
        self._events_logger.log(level, line)
        logger.log(level, "[%s] %s", entry.category or "-", entry.message)
        if self._console is not None:
            self._console.print_entry(entry)

    def record(
        self,
        level: Union[int, str],
        message: str,
        *,
        category: Optional[str] = None,
    ) -> LogEntry:
        """Build and emit an entry; returns it."""
        entry = LogEntry(level=_level_name(level), category=category, message=message)
        self.emit(entry)
        return entry

    def info(self, message: str, *, category: Optional[str] = None) -> LogEntry:
        return self.record(logging.INFO, message, category=category)

    def error(self, message: str, *, category: Optional[str] = None) -> LogEntry:
        return self.record(logging.ERROR, message, category=category)

    def close(self) -> None:
        """Close the file handler."""
        if self._file_handler is not None:
            self._file_handler.close()
            self._events_logger.removeHandler(self._file_handler)
            self._file_handler = None


# ── Reading ──────────────────────────────────────────────────────────────


def parse_line(line: str) -> Optional[LogEntry]:
    """Parse one text or JSON line; ``None`` if it is not a valid entry."""
    line = line.strip()
    if not line:
        return None
    try:
        if line.startswith("{"):
            return LogEntry.model_validate(json.loads(line))
        match = _TEXT_LINE_RE.match(line)
        if match is None:
            return None
        return LogEntry(
            timestamp=match.group("ts"),
            level=match.group("level"),
            message=match.group("message"),
        )
    except (ValueError, ValidationError):
        return None


def read_entries(path: str, *, tail: Optional[int] = None) -> List[LogEntry]:
    """Read entries back from an event log file.

    Unparseable lines are skipped.  A missing file yields an empty list.
    With *tail*, only the last *tail* entries are returned.
    """
    if not os.path.exists(path):
        return []
    entries: List[LogEntry] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            entry = parse_line(line)
            if entry is not None:
                entries.append(entry)
            elif line.strip():
                logger.debug("Skipping unparseable event log line: %r", line[:120])
    if tail is not None:
        return entries[-tail:] if tail > 0 else []
    return entries
