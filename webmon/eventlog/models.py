"""Event log entry model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. ``2024-05-01T12:00:00.123Z``."""
    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


class LogEntry(BaseModel):
    """One append-only event log record.  Never mutated once written."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    level: str = "INFO"
    category: Optional[str] = None
    message: str

    def to_text(self) -> str:
        """Render as ``<timestamp> [<LEVEL>] <message>``."""
        return f"{format_timestamp(self.timestamp)} [{self.level}] {self.message}"

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
