"""Custom exception classes for webmon."""

from typing import Optional


class WebmonBaseError(Exception):
    """Base class for all custom exceptions in webmon."""

    pass


class ConfigurationError(WebmonBaseError):
    """Raised when loading or validating the configuration file fails."""

    pass


class ProcessSpawnError(WebmonBaseError):
    """Raised when the supervised process cannot be started."""

    def __init__(
        self,
        command: str,
        orig_exc: Optional[Exception] = None,
    ):
        self.command = command
        self.orig_exc = orig_exc

        full_msg = f"Failed to start supervised process '{command}'"
        if orig_exc:
            full_msg += f": {orig_exc} (original error: {type(orig_exc).__name__})"
        super().__init__(full_msg)


class SupervisorInvariantViolation(WebmonBaseError):
    """
    Raised inside the process supervisor when an operation would break
    one of its invariants, e.g. starting a second child while one is
    already running.
    """

    def __init__(self, message: str, pid: Optional[int] = None):
        self.pid = pid
        if pid is not None:
            message += f" (running PID: {pid})"
        super().__init__(message)
