"""Runtime: supervised process lifecycle and the monitoring control loop."""

from webmon.runtime.models import (
    ChildExit,
    ChildState,
    MonitorStatus,
    ServiceState,
    is_valid_child_transition,
    is_valid_transition,
)
from webmon.runtime.process import ProcessSupervisor
from webmon.runtime.service import WebmonService

__all__ = [
    "ChildExit",
    "ChildState",
    "MonitorStatus",
    "ProcessSupervisor",
    "ServiceState",
    "WebmonService",
    "is_valid_child_transition",
    "is_valid_transition",
]
