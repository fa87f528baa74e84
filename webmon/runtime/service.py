"""webmon runtime service - lifecycle management and the control loop.

WebmonService owns every piece of mutable monitoring state (streak
counters, the supervised child, the event log) and wires the probe
scheduler to the restart policy.

Probe completions and child-exit notifications never touch that state
directly.  They are posted as events onto a single ``asyncio.Queue`` and
applied one at a time by the control-loop task, so overlapping probes
and asynchronous exits cannot interleave their updates.
"""

import asyncio
import logging
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Deque, Optional

import httpx

from webmon.config.schema import WebmonConfig
from webmon.eventlog.logger import EventLog
from webmon.monitor.outcome import Outcome, OutcomeCategory
from webmon.monitor.policy import PolicyAction, PolicyDecision, RestartPolicy
from webmon.monitor.prober import HttpProber
from webmon.monitor.scheduler import ProbeScheduler
from webmon.monitor.streaks import StreakTracker
from webmon.runtime.events import ChildExited, MonitorEvent, ProbeCompleted
from webmon.runtime.models import (
    ChildExit,
    MonitorStatus,
    OutcomeSnapshot,
    ServiceState,
    is_valid_transition,
)
from webmon.runtime.process import ProcessSupervisor

logger = logging.getLogger(__name__)

# Posted by stop(); the control loop exits after the event in progress.
_SHUTDOWN = object()


class _InvalidStateTransition(Exception):
    """Raised internally when an illegal state transition is attempted."""

    def __init__(self, current: ServiceState, target: ServiceState) -> None:
        super().__init__(f"Invalid state transition: {current.value} → {target.value}")
        self.current = current
        self.target = target


class WebmonService:
    """Runs one availability supervisor.

    State machine::

        PENDING ─► STARTING ─► RUNNING ─► STOPPING ─► STOPPED
                       │                     ▲
                       └──────► ERROR ───────┘

    Usage::

        service = WebmonService(load_webmon_config("webmon.yaml"))
        await service.start()
        # ... monitoring ...
        await service.stop()

    *event_log*, *supervisor* and *transport* may be injected (tests);
    otherwise they are built from *config* during :meth:`start`.
    """

    def __init__(
        self,
        config: WebmonConfig,
        *,
        event_log: Optional[EventLog] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        console: Optional[object] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._state: ServiceState = ServiceState.PENDING
        self._started_at: Optional[datetime] = None
        self._error_message: Optional[str] = None

        self._policy = RestartPolicy.from_config(config.outcomes)
        self._tracker: StreakTracker = self._policy.new_tracker()
        self._console = console
        self._event_log = event_log
        self._supervisor = supervisor
        self._prober = HttpProber(config.target.url, config.probe.timeout, transport=transport)
        self._scheduler: Optional[ProbeScheduler] = None

        # Control loop
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._accepting_events = True
        self._consumer: Optional[asyncio.Task[None]] = None
        self._stop_requested = asyncio.Event()

        # Counters
        self._probes_total = 0
        self._outcomes_total: Counter = Counter()
        self._restarts_total = 0
        self._last_outcome: Optional[Outcome] = None
        self._decisions: Deque[PolicyDecision] = deque(maxlen=100)

        logger.info("WebmonService initialized (state=%s).", self._state.value)

    # ------------------------------------------------------------------ #
    #  Properties
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def config(self) -> WebmonConfig:
        return self._config

    @property
    def tracker(self) -> StreakTracker:
        return self._tracker

    @property
    def policy(self) -> RestartPolicy:
        return self._policy

    @property
    def supervisor(self) -> Optional[ProcessSupervisor]:
        return self._supervisor

    @property
    def event_log(self) -> Optional[EventLog]:
        return self._event_log

    @property
    def scheduler(self) -> Optional[ProbeScheduler]:
        return self._scheduler

    @property
    def decisions(self) -> list:
        """Recent policy decisions (oldest first)."""
        return list(self._decisions)

    @property
    def is_running(self) -> bool:
        return self._state == ServiceState.RUNNING

    # ------------------------------------------------------------------ #
    #  State Machine
    # ------------------------------------------------------------------ #

    def _transition(self, target: ServiceState) -> None:
        """Transition to *target* state if the move is valid."""
        if not is_valid_transition(self._state, target):
            raise _InvalidStateTransition(self._state, target)
        prev = self._state
        self._state = target
        logger.info("Service state: %s → %s", prev.value, target.value)

    # ------------------------------------------------------------------ #
    #  Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Start the child, the control loop and the probe schedule.

        Raises:
            ProcessSpawnError: If the supervised process cannot be started.
            _InvalidStateTransition: If the service was already started.
        """
        self._transition(ServiceState.STARTING)
        self._error_message = None
        try:
            if self._event_log is None:
                self._event_log = EventLog.from_config(
                    self._config.eventlog, console=self._console
                )
            if self._supervisor is None:
                self._supervisor = ProcessSupervisor.from_config(
                    self._config.child,
                    on_exit=self.post_child_exit,
                    event_log=self._event_log,
                )

            self._consumer = asyncio.create_task(self._consume(), name="webmon-control-loop")
            await self._prober.open()
            await self._supervisor.start()

            probe_cfg = self._config.probe
            self._scheduler = ProbeScheduler(
                self._prober.probe,
                self.post_outcome,
                interval=probe_cfg.interval,
                startup_delay=probe_cfg.startup_delay,
                overlap=probe_cfg.overlap,
                on_monitoring_started=self._on_monitoring_started,
            )
            self._scheduler.start()

            self._started_at = datetime.now(timezone.utc)
            self._transition(ServiceState.RUNNING)
            logger.info("WebmonService is RUNNING.")
        except Exception as exc:
            self._error_message = f"{type(exc).__name__}: {exc}"
            self._transition(ServiceState.ERROR)
            raise

    async def stop(self) -> None:
        """Cancel probing, stop the child, and close the event log.

        Safe to call after a failed start; cleanup is still attempted.
        """
        if self._state in (ServiceState.RUNNING, ServiceState.ERROR):
            self._transition(ServiceState.STOPPING)
        elif self._state == ServiceState.STARTING:
            self._state = ServiceState.ERROR
            logger.warning("Stop requested while still STARTING; forcing ERROR state.")
            self._transition(ServiceState.STOPPING)
        else:
            logger.info(
                "Stop requested but service is %s; nothing to do.",
                self._state.value,
            )
            return

        try:
            if self._scheduler is not None:
                await self._scheduler.stop()
            if self._consumer is not None:
                await self._shutdown_consumer()
            if self._supervisor is not None:
                await self._supervisor.stop()
            await self._prober.close()

            if self._event_log is not None and not self._event_log.closed:
                status = self.get_status()
                self._event_log.info(
                    f"Monitoring stopped: {status.probes_total} probe(s), "
                    f"{status.restarts_total} restart(s), streaks {status.streaks}.",
                    category="lifecycle",
                )
                self._event_log.close()
            self._transition(ServiceState.STOPPED)
        except Exception as exc:
            logger.exception("Error during shutdown: %s", exc)
            self._error_message = f"{type(exc).__name__}: {exc}"
            self._transition(ServiceState.ERROR)
            raise

    async def run_until_stopped(self) -> None:
        """Start, block until :meth:`request_stop`, then stop.

        Cleanup also runs when :meth:`start` fails; the error propagates.
        """
        try:
            await self.start()
            await self._stop_requested.wait()
        finally:
            await self.stop()

    def request_stop(self) -> None:
        """Ask :meth:`run_until_stopped` to shut down (signal-handler safe)."""
        self._stop_requested.set()

    # ------------------------------------------------------------------ #
    #  Control loop
    # ------------------------------------------------------------------ #

    def post_outcome(self, outcome: Outcome) -> None:
        if self._accepting_events:
            self._queue.put_nowait(ProbeCompleted(outcome))

    def post_child_exit(self, child_exit: ChildExit) -> None:
        if self._accepting_events:
            self._queue.put_nowait(ChildExited(child_exit))

    async def drain(self) -> None:
        """Wait until every posted event has been handled."""
        await self._queue.join()

    async def _shutdown_consumer(self) -> None:
        """Drop queued events, let the one in progress finish, end the loop."""
        self._accepting_events = False
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.debug("Dropped %d pending event(s) on shutdown.", dropped)
        self._queue.put_nowait(_SHUTDOWN)
        await self._consumer
        self._consumer = None

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            if event is _SHUTDOWN:
                self._queue.task_done()
                return
            try:
                await self.handle_event(event)
            except Exception:
                logger.exception("Unhandled error while processing %s", type(event).__name__)
            finally:
                self._queue.task_done()

    async def handle_event(self, event: MonitorEvent) -> None:
        """Apply one event to the monitoring state."""
        if isinstance(event, ProbeCompleted):
            await self._handle_outcome(event.outcome)
        elif isinstance(event, ChildExited):
            if self._supervisor is not None:
                self._supervisor.observe_exit(event.child_exit)
        else:
            logger.warning("Ignoring unknown event: %r", event)

    async def _handle_outcome(self, outcome: Outcome) -> None:
        category = outcome.category
        self._probes_total += 1
        self._outcomes_total[category.value] += 1
        self._last_outcome = outcome

        count = self._tracker.record(category)
        self._log_outcome(outcome, count)

        if self._supervisor is None:
            return
        decision = await self._policy.apply(category, self._tracker, self._supervisor)
        if decision is not None:
            self._on_decision(decision)

    # ------------------------------------------------------------------ #
    #  Event log entries
    # ------------------------------------------------------------------ #

    def _log(self, level: int, message: str, category: str) -> None:
        if self._event_log is not None and not self._event_log.closed:
            self._event_log.record(level, message, category=category)
        else:
            logger.log(level, message)

    def _log_outcome(self, outcome: Outcome, count: int) -> None:
        category = outcome.category
        if category is OutcomeCategory.SUCCESS:
            self._log(logging.INFO, f"{outcome.describe()} from target.", category.value)
        elif category is OutcomeCategory.CONNECTION_ERROR:
            self._log(logging.ERROR, outcome.describe(), category.value)
        else:
            self._log(logging.ERROR, f"{outcome.describe()}. Count={count}", category.value)

    def _on_decision(self, decision: PolicyDecision) -> None:
        self._decisions.append(decision)
        name = decision.category.value
        if decision.action is PolicyAction.NONE:
            self._log(
                logging.WARNING,
                f"{name} threshold reached ({decision.streak}); no action configured.",
                "policy",
            )
        elif decision.restarted:
            self._restarts_total += 1
            self._log(
                logging.INFO,
                f"{name} threshold reached ({decision.streak}); supervised process restarted.",
                "policy",
            )
        else:
            self._log(
                logging.ERROR,
                f"{name} threshold reached ({decision.streak}); restart failed: {decision.error}",
                "policy",
            )

    def _on_monitoring_started(self) -> None:
        self._log(logging.INFO, f"Starting monitoring of {self._prober.url}...", "lifecycle")

    # ------------------------------------------------------------------ #
    #  Status
    # ------------------------------------------------------------------ #

    def get_status(self) -> MonitorStatus:
        """Build a point-in-time status snapshot."""
        last = None
        if self._last_outcome is not None:
            last = OutcomeSnapshot(
                category=self._last_outcome.category.value,
                timestamp=self._last_outcome.timestamp,
                status_code=self._last_outcome.status_code,
                latency_ms=round(self._last_outcome.latency_ms, 2),
                detail=self._last_outcome.detail,
            )
        status = MonitorStatus(
            state=self._state,
            target_url=self._config.target.url,
            started_at=self._started_at,
            streaks=self._tracker.snapshot(),
            probes_total=self._probes_total,
            outcomes_total=dict(self._outcomes_total),
            restarts_total=self._restarts_total,
            last_outcome=last,
            error_message=self._error_message,
        )
        if self._supervisor is not None:
            status.child_state = self._supervisor.state
            status.child_pid = self._supervisor.pid
        if self._scheduler is not None:
            status.ticks_fired = self._scheduler.ticks
            status.ticks_skipped = self._scheduler.skipped
        status.compute_uptime()
        return status
