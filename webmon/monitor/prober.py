"""HTTP probe against the target's health endpoint.

One probe is a single uncached ``GET`` bounded by the probe timeout.  The
prober never raises for a failed probe: every error is captured in the
returned :class:`ProbeResult` and classified downstream.  Only task
cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import httpx

from webmon.constants import APP_NAME, APP_VERSION
from webmon.monitor.outcome import ProbeResult, utcnow

logger = logging.getLogger(__name__)

_PROBE_HEADERS = {
    "Cache-Control": "no-cache, no-store",
    "Pragma": "no-cache",
    "User-Agent": f"{APP_NAME}/{APP_VERSION}",
}


class HttpProber:
    """Async HTTP health prober.

    Parameters
    ----------
    url:
        Health endpoint to ``GET``.
    timeout:
        Overall deadline for one probe in seconds (connect + response).
    transport:
        Optional ``httpx`` transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: str,
        timeout: float,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def url(self) -> str:
        return self._url

    # ── Lifecycle ────────────────────────────────────────────────────

    async def open(self) -> None:
        """Create the underlying ``httpx.AsyncClient``."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            headers=_PROBE_HEADERS,
            timeout=httpx.Timeout(self._timeout),
            follow_redirects=False,
            transport=self._transport,
        )
        logger.debug("Prober ready for %s (timeout=%.3fs)", self._url, self._timeout)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpProber":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── Probe ────────────────────────────────────────────────────────

    async def probe(self) -> ProbeResult:
        """Issue one probe and return its raw result."""
        started_at = utcnow()
        start = time.monotonic()
        try:
            if self._client is None:
                await self.open()
            assert self._client is not None
            # httpx timeouts apply per phase; wait_for bounds the whole probe.
            response = await asyncio.wait_for(self._client.get(self._url), timeout=self._timeout)
        except Exception as exc:
            latency_ms = (time.monotonic() - start) * 1000.0
            logger.debug("Probe of %s failed after %.0fms: %r", self._url, latency_ms, exc)
            return ProbeResult(error=exc, latency_ms=latency_ms, started_at=started_at)

        latency_ms = (time.monotonic() - start) * 1000.0
        return ProbeResult(
            status_code=response.status_code,
            latency_ms=latency_ms,
            started_at=started_at,
        )
