"""Event log subsystem - append-only record of lifecycle and probe events.

Public API
----------
- :class:`EventLog` - append-only file writer
- :class:`LogEntry` - Pydantic model for a single record
- :func:`read_entries` - parse a log file back into entries
"""

from webmon.eventlog.logger import EventLog, parse_line, read_entries
from webmon.eventlog.models import LogEntry, format_timestamp

__all__ = [
    "EventLog",
    "LogEntry",
    "format_timestamp",
    "parse_line",
    "read_entries",
]
