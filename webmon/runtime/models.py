"""Runtime state models for webmon.

These models serve dual purpose:
1. Internal state representation for the supervisor and the service
2. Status snapshots written to the event log
"""

from __future__ import annotations

import signal
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class ServiceState(str, Enum):
    """Lifecycle states for the webmon service.

    Valid transitions:
        PENDING  → STARTING
        STARTING → RUNNING | ERROR
        RUNNING  → STOPPING
        STOPPING → STOPPED | ERROR
        ERROR    → STOPPING  (cleanup after a failed start)
    """

    PENDING = "pending"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


# Valid state transitions: current_state → set of allowed next states
_VALID_TRANSITIONS: Dict[ServiceState, frozenset[ServiceState]] = {
    ServiceState.PENDING: frozenset({ServiceState.STARTING}),
    ServiceState.STARTING: frozenset({ServiceState.RUNNING, ServiceState.ERROR}),
    ServiceState.RUNNING: frozenset({ServiceState.STOPPING}),
    ServiceState.STOPPING: frozenset({ServiceState.STOPPED, ServiceState.ERROR}),
    ServiceState.STOPPED: frozenset(),
    ServiceState.ERROR: frozenset({ServiceState.STOPPING}),
}


def is_valid_transition(current: ServiceState, target: ServiceState) -> bool:
    """Check whether a service state transition is allowed."""
    return target in _VALID_TRANSITIONS.get(current, frozenset())


# ── Supervised child ─────────────────────────────────────────────────────


class ChildState(str, Enum):
    """Lifecycle of the supervised process.

    Transitions::

        STOPPED ──start──► RUNNING ──kill/stop──► STOPPED
                              │
                           (exits)
                              ▼
                           CRASHED ──observed──► STOPPED
    """

    STOPPED = "stopped"
    RUNNING = "running"
    CRASHED = "crashed"


_CHILD_TRANSITIONS: Dict[ChildState, frozenset[ChildState]] = {
    ChildState.STOPPED: frozenset({ChildState.RUNNING}),
    ChildState.RUNNING: frozenset({ChildState.STOPPED, ChildState.CRASHED}),
    ChildState.CRASHED: frozenset({ChildState.STOPPED}),
}


def is_valid_child_transition(current: ChildState, target: ChildState) -> bool:
    """Check whether a child state transition is allowed."""
    return target in _CHILD_TRANSITIONS.get(current, frozenset())


@dataclass(frozen=True)
class ChildExit:
    """Exit notification for one child process.

    *expected* is ``True`` when the supervisor itself killed or stopped the
    process (restart / shutdown) and ``False`` for an unexpected exit.
    """

    pid: int
    returncode: Optional[int]
    expected: bool = False

    @property
    def exit_code(self) -> Optional[int]:
        if self.returncode is None or self.returncode < 0:
            return None
        return self.returncode

    @property
    def signal_name(self) -> Optional[str]:
        """Name of the terminating signal (asyncio reports it as ``-signum``)."""
        if self.returncode is None or self.returncode >= 0:
            return None
        try:
            return signal.Signals(-self.returncode).name
        except ValueError:
            return str(-self.returncode)


# ── Status snapshot ──────────────────────────────────────────────────────


class OutcomeSnapshot(BaseModel):
    """The most recent classified probe outcome."""

    category: str
    timestamp: datetime
    status_code: Optional[int] = None
    latency_ms: float = 0.0
    detail: str = ""


class MonitorStatus(BaseModel):
    """Overall monitor status snapshot."""

    state: ServiceState = ServiceState.PENDING
    target_url: str = ""
    started_at: Optional[datetime] = None
    uptime_seconds: Optional[float] = None
    child_state: ChildState = ChildState.STOPPED
    child_pid: Optional[int] = None
    streaks: Dict[str, int] = Field(default_factory=dict)
    probes_total: int = 0
    ticks_fired: int = 0
    ticks_skipped: int = 0
    outcomes_total: Dict[str, int] = Field(default_factory=dict)
    restarts_total: int = 0
    last_outcome: Optional[OutcomeSnapshot] = None
    error_message: Optional[str] = None

    def compute_uptime(self) -> None:
        """Update uptime_seconds based on started_at."""
        if self.started_at is not None:
            delta = datetime.now(timezone.utc) - self.started_at
            self.uptime_seconds = delta.total_seconds()
