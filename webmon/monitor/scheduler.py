"""Fixed-interval probe scheduler.

Runs an asyncio background task that waits out a startup grace delay and
then fires one probe per tick on a fixed wall-clock schedule.  Each probe
runs as its own task, so a slow probe never delays the next tick.  The
classified :class:`Outcome` is handed to ``on_outcome``; the scheduler
itself holds no monitoring state.

Overlap handling::

    allow  - every tick fires, probes may be in flight concurrently
    skip   - a tick is dropped while the previous probe is still pending
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from webmon.constants import DEFAULT_STARTUP_DELAY
from webmon.monitor.outcome import Outcome, ProbeResult, classify

logger = logging.getLogger(__name__)


class ProbeScheduler:
    """Background probe scheduler.

    Parameters
    ----------
    probe:
        Coroutine function performing one probe (e.g. :meth:`HttpProber.probe`).
    on_outcome:
        Called with each classified outcome, in completion order.
    interval:
        Seconds between ticks.
    startup_delay:
        Seconds to wait before the schedule begins.
    overlap:
        ``"allow"`` or ``"skip"`` (see module docstring).
    on_monitoring_started:
        Optional callback invoked once the startup delay has elapsed.
    """

    def __init__(
        self,
        probe: Callable[[], Awaitable[ProbeResult]],
        on_outcome: Callable[[Outcome], None],
        *,
        interval: float,
        startup_delay: float = DEFAULT_STARTUP_DELAY,
        overlap: str = "allow",
        on_monitoring_started: Optional[Callable[[], None]] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if overlap not in ("allow", "skip"):
            raise ValueError(f"Unknown overlap mode '{overlap}'")
        self._probe = probe
        self._on_outcome = on_outcome
        self._interval = interval
        self._startup_delay = startup_delay
        self._overlap = overlap
        self._on_monitoring_started = on_monitoring_started

        self._task: Optional[asyncio.Task[None]] = None
        self._in_flight: Set[asyncio.Task[None]] = set()
        self._stopped = asyncio.Event()
        self._ticks = 0
        self._skipped = 0

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def ticks(self) -> int:
        """Ticks that issued a probe."""
        return self._ticks

    @property
    def skipped(self) -> int:
        """Ticks dropped because a previous probe was still pending."""
        return self._skipped

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def start(self) -> None:
        """Launch the background tick loop."""
        if self.running:
            logger.warning("Probe scheduler already running.")
            return
        self._stopped.clear()
        self._task = asyncio.create_task(self._run(), name="probe-scheduler")
        logger.info(
            "Probe scheduler started (interval=%.3fs, startup_delay=%.3fs, overlap=%s)",
            self._interval,
            self._startup_delay,
            self._overlap,
        )

    async def stop(self) -> None:
        """Cancel the timer and every in-flight probe, then wait for them."""
        self._stopped.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        pending = list(self._in_flight)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.debug("Cancelled %d in-flight probe(s).", len(pending))
        self._in_flight.clear()
        logger.info("Probe scheduler stopped.")

    # ── Background loop ─────────────────────────────────────────────────

    async def _sleep_or_stop(self, delay: float) -> bool:
        """Sleep *delay* seconds; return ``True`` if stop was requested."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=max(delay, 0.0))
            return True
        except asyncio.TimeoutError:
            return False

    async def _run(self) -> None:
        if await self._sleep_or_stop(self._startup_delay):
            return
        if self._on_monitoring_started is not None:
            try:
                self._on_monitoring_started()
            except Exception:
                logger.exception("on_monitoring_started callback failed")

        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval
        while True:
            if await self._sleep_or_stop(next_tick - loop.time()):
                break
            self._fire()

            next_tick += self._interval
            now = loop.time()
            if next_tick <= now:
                # The loop was blocked; skip missed ticks rather than bursting.
                missed = int((now - next_tick) // self._interval) + 1
                next_tick += missed * self._interval
                logger.warning("Probe schedule fell behind; skipped %d tick(s).", missed)

    def _fire(self) -> None:
        if self._overlap == "skip" and self._in_flight:
            self._skipped += 1
            logger.debug("Previous probe still pending - tick skipped.")
            return
        self._ticks += 1
        task = asyncio.create_task(self._probe_once(), name=f"probe-{self._ticks}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _probe_once(self) -> None:
        try:
            result = await self._probe()
        except Exception as exc:
            logger.error("Check raised %r; recording it as a connection error.", exc)
            result = ProbeResult(error=exc)
        try:
            self._on_outcome(classify(result))
        except Exception:
            logger.exception("on_outcome callback failed")
