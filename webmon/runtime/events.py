"""Messages posted to the service control loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from webmon.monitor.outcome import Outcome
from webmon.runtime.models import ChildExit


@dataclass(frozen=True)
class ProbeCompleted:
    outcome: Outcome


@dataclass(frozen=True)
class ChildExited:
    child_exit: ChildExit


MonitorEvent = Union[ProbeCompleted, ChildExited]
