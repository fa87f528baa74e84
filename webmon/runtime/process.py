"""Supervised child process lifecycle.

:class:`ProcessSupervisor` owns at most one child process.  It starts it
with inherited standard I/O, notices when it exits (via a background
watcher task, independent of the probe loop), and restarts it on request.

An unexpected exit is reported, never acted on: restarts only happen when
the restart policy asks for one.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import sys
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Set

from webmon.constants import DEFAULT_STOP_TIMEOUT
from webmon.errors import ProcessSpawnError, SupervisorInvariantViolation
from webmon.runtime.models import ChildExit, ChildState, is_valid_child_transition

if TYPE_CHECKING:
    from webmon.config.schema import ChildConfig
    from webmon.eventlog.logger import EventLog

logger = logging.getLogger(__name__)


class ProcessSupervisor:
    """Start / restart / stop one child process.

    Parameters
    ----------
    command:
        Executable to run.  ``python`` resolves to the current interpreter.
    args:
        Command-line arguments.
    cwd / env:
        Working directory and extra environment for the child.
    stop_timeout:
        Grace period used by :meth:`stop` (shutdown) before killing.
        :meth:`restart` never waits.
    on_exit:
        Receives every :class:`ChildExit`.  The service posts it to its
        control loop, which then calls :meth:`observe_exit`.  Without a
        callback the supervisor observes exits itself.
    event_log:
        Optional :class:`EventLog` for lifecycle entries.
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        on_exit: Optional[Callable[[ChildExit], None]] = None,
        event_log: Optional["EventLog"] = None,
    ) -> None:
        self._command = command
        self._args: List[str] = list(args)
        self._cwd = cwd
        self._env = env
        self._stop_timeout = stop_timeout
        self._on_exit = on_exit
        self._event_log = event_log

        self._state = ChildState.STOPPED
        self._process: Optional[asyncio.subprocess.Process] = None
        self._watchers: Set[asyncio.Task[None]] = set()
        self._expected_exits: Set[int] = set()
        self._starts = 0

    @classmethod
    def from_config(
        cls,
        cfg: "ChildConfig",
        *,
        on_exit: Optional[Callable[[ChildExit], None]] = None,
        event_log: Optional["EventLog"] = None,
    ) -> "ProcessSupervisor":
        return cls(
            cfg.command,
            cfg.args,
            cwd=cfg.cwd,
            env=cfg.env,
            stop_timeout=cfg.stop_timeout,
            on_exit=on_exit,
            event_log=event_log,
        )

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def state(self) -> ChildState:
        return self._state

    @property
    def process(self) -> Optional[asyncio.subprocess.Process]:
        """Handle of the current child, or ``None``."""
        return self._process

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def running(self) -> bool:
        """A handle is present and the child has not reported exit."""
        return self._state is ChildState.RUNNING and self._process is not None

    @property
    def starts(self) -> int:
        """Number of successful spawns so far."""
        return self._starts

    @property
    def command_line(self) -> str:
        return shlex.join([self._command, *self._args])

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self) -> bool:
        """Spawn the child if none is running.

        Returns ``False`` (and logs an error) when a child is already
        running; a second process is never spawned.

        Raises:
            ProcessSpawnError: If the executable cannot be started.
        """
        if self._state is ChildState.CRASHED:
            self._clear_crashed()
        try:
            self._ensure_startable()
        except SupervisorInvariantViolation as exc:
            self._record(logging.ERROR, f"{exc}; start skipped.")
            return False

        self._record(logging.INFO, f"Starting supervised process: {self.command_line}")
        process = await self._spawn()
        self._process = process
        self._transition(ChildState.RUNNING)
        self._starts += 1
        logger.info("Supervised process started (PID: %s).", process.pid)

        watcher = asyncio.create_task(self._watch(process), name=f"child-watch-{process.pid}")
        self._watchers.add(watcher)
        watcher.add_done_callback(self._watchers.discard)
        return True

    async def restart(self) -> bool:
        """Kill the running child (no grace period) and start a new one.

        When nothing is running this is the same as :meth:`start`.
        """
        if self.running:
            self._record(
                logging.INFO, f"Restarting supervised process (PID: {self.pid})..."
            )
            self._kill_current()
        return await self.start()

    async def stop(self) -> None:
        """Shut the child down: terminate, wait ``stop_timeout``, then kill."""
        if self._state is ChildState.CRASHED:
            self._clear_crashed()
        process = self._process
        if process is None or not self.running:
            return

        self._expected_exits.add(process.pid)
        logger.info("Stopping supervised process (PID: %s)...", process.pid)
        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=self._stop_timeout)
            logger.info("Supervised process (PID: %s) terminated.", process.pid)
        except asyncio.TimeoutError:
            logger.warning(
                "Supervised process (PID: %s) ignored SIGTERM for %.1fs, killing...",
                process.pid,
                self._stop_timeout,
            )
            process.kill()
            await process.wait()
        except ProcessLookupError:
            logger.debug("Supervised process (PID: %s) already gone.", process.pid)

        self._process = None
        self._transition(ChildState.STOPPED)
        self._record(logging.INFO, f"Supervised process (PID: {process.pid}) stopped.")

        if self._watchers:
            await asyncio.gather(*list(self._watchers), return_exceptions=True)

    def observe_exit(self, child_exit: ChildExit) -> None:
        """Record an exit notification and release the crashed handle."""
        detail = f"code {child_exit.exit_code}, signal {child_exit.signal_name}"
        if child_exit.expected:
            self._record(
                logging.INFO,
                f"Supervised process (PID: {child_exit.pid}) exited after stop request ({detail}).",
            )
        else:
            self._record(
                logging.ERROR,
                f"Supervised process (PID: {child_exit.pid}) exited with {detail}.",
            )
        if self._state is ChildState.CRASHED and child_exit.pid == self.pid:
            self._clear_crashed()

    # ── Internals ────────────────────────────────────────────────────────

    def _transition(self, target: ChildState) -> None:
        if not is_valid_child_transition(self._state, target):
            raise SupervisorInvariantViolation(
                f"Invalid child transition: {self._state.value} → {target.value}", pid=self.pid
            )
        prev = self._state
        self._state = target
        logger.debug("Child state: %s → %s", prev.value, target.value)

    def _ensure_startable(self) -> None:
        if self._state is ChildState.RUNNING or self._process is not None:
            raise SupervisorInvariantViolation(
                "Supervised process is already running", pid=self.pid
            )

    def _clear_crashed(self) -> None:
        self._process = None
        self._transition(ChildState.STOPPED)

    def _kill_current(self) -> None:
        process = self._process
        assert process is not None
        self._expected_exits.add(process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            logger.debug("Supervised process (PID: %s) already gone.", process.pid)
        self._process = None
        self._transition(ChildState.STOPPED)

    async def _spawn(self) -> asyncio.subprocess.Process:
        py_exec = sys.executable or "python"
        actual_cmd = py_exec if self._command.lower() == "python" else self._command

        current_env = os.environ.copy()
        if self._env:
            current_env.update(self._env)

        try:
            # stdin/stdout/stderr left as None: the child inherits ours.
            return await asyncio.create_subprocess_exec(
                actual_cmd,
                *self._args,
                cwd=self._cwd,
                env=current_env,
            )
        except (OSError, ValueError) as exc:
            self._record(logging.ERROR, f"Failed to start supervised process: {exc}")
            raise ProcessSpawnError(self.command_line, exc) from exc

    async def _watch(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        expected = process.pid in self._expected_exits
        self._expected_exits.discard(process.pid)

        if not expected and process is self._process and self._state is ChildState.RUNNING:
            self._transition(ChildState.CRASHED)

        child_exit = ChildExit(pid=process.pid, returncode=returncode, expected=expected)
        if self._on_exit is not None:
            try:
                self._on_exit(child_exit)
            except Exception:
                logger.exception("on_exit callback failed")
        else:
            self.observe_exit(child_exit)

    def _record(self, level: int, message: str) -> None:
        if self._event_log is not None:
            self._event_log.record(level, message, category="process")
        else:
            logger.log(level, message)
