"""Probe outcome classification.

A probe produces a :class:`ProbeResult` (an HTTP status, a timeout, or a
transport error).  :func:`classify` maps it to exactly one
:class:`OutcomeCategory`.  Classified failures are plain data from here on;
they never travel as exceptions.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import httpx


class OutcomeCategory(str, Enum):
    """Closed set of probe outcome categories."""

    SUCCESS = "success"
    FORBIDDEN = "forbidden"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"


# Categories that may carry a threshold/action rule.
POLICY_CATEGORIES = (
    OutcomeCategory.FORBIDDEN,
    OutcomeCategory.SERVER_ERROR,
    OutcomeCategory.TIMEOUT,
)

_STATUS_CATEGORIES = {
    200: OutcomeCategory.SUCCESS,
    403: OutcomeCategory.FORBIDDEN,
    500: OutcomeCategory.SERVER_ERROR,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProbeResult:
    """Raw result of a single probe.

    Exactly one of *status_code* / *error* is set.
    """

    status_code: Optional[int] = None
    error: Optional[BaseException] = None
    latency_ms: float = 0.0
    started_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Outcome:
    """A classified probe result."""

    category: OutcomeCategory
    timestamp: datetime
    status_code: Optional[int] = None
    detail: str = ""
    latency_ms: float = 0.0

    def describe(self) -> str:
        """One-line human readable summary."""
        if self.category is OutcomeCategory.SUCCESS:
            return f"Success ({self.status_code})"
        if self.category in (OutcomeCategory.FORBIDDEN, OutcomeCategory.SERVER_ERROR):
            return f"Target returned {self.status_code}"
        if self.category is OutcomeCategory.TIMEOUT:
            return "Timeout"
        return f"Connection error: {self.detail}"


def is_timeout_error(exc: BaseException) -> bool:
    """Whether *exc* means the probe deadline was exceeded."""
    return isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError))


def _error_detail(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def classify(result: ProbeResult) -> Outcome:
    """Map a probe result onto exactly one outcome category."""
    if result.error is not None:
        if is_timeout_error(result.error):
            category = OutcomeCategory.TIMEOUT
        else:
            category = OutcomeCategory.CONNECTION_ERROR
        return Outcome(
            category=category,
            timestamp=result.started_at,
            detail=_error_detail(result.error),
            latency_ms=result.latency_ms,
        )

    category = _STATUS_CATEGORIES.get(result.status_code or 0)
    if category is None:
        # Anything outside {200, 403, 500} is not a response we understand.
        return Outcome(
            category=OutcomeCategory.CONNECTION_ERROR,
            timestamp=result.started_at,
            status_code=result.status_code,
            detail=f"unexpected HTTP status {result.status_code}",
            latency_ms=result.latency_ms,
        )
    return Outcome(
        category=category,
        timestamp=result.started_at,
        status_code=result.status_code,
        latency_ms=result.latency_ms,
    )
