"""Flaky demo target served with Starlette + Uvicorn.

``GET /getbalance`` answers with a random outcome:

* 20% stall for ``stall_seconds`` (10 s by default), then an empty 200
* 20% ``403 Forbidden``
* 10% ``500 Internal Server Error``
* 50% ``200 OK`` with a fake balance page

Every request is appended to a JSON-lines request log, which
``GET /getlogs`` returns.  Run it with ``webmon demo-target`` and point
``child.command`` at it to watch the supervisor restart it.
"""

import asyncio
import json
import logging
import os
import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import Route

from webmon.constants import DEMO_HOST, DEMO_PORT, DEMO_REQUEST_LOG

logger = logging.getLogger(__name__)

DEFAULT_STALL_SECONDS = 10.0

_BALANCE_PAGE = """
<html>
<head><title>Balance</title></head>
<body>
    <h1>Your balance is $10,000</h1>
    <p>This is fake financial data</p>
</body>
</html>
"""


def pick_outcome(value: float) -> Union[int, str]:
    """Map a uniform random *value* in ``[0, 1)`` to an outcome."""
    if value < 0.2:
        return "timeout"
    if value < 0.4:
        return 403
    if value < 0.5:
        return 500
    return 200


def _append_request(path: str, request: Request, outcome: Union[int, str]) -> None:
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "ip": request.client.host if request.client else None,
        "outcome": outcome,
    }
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(entry) + "\n")


def _read_requests(path: str) -> List[Dict[str, Any]]:
    entries: List[Dict[str, Any]] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except ValueError:
                logger.debug("Skipping malformed request log line: %r", line[:120])
    return entries


async def handle_getbalance(request: Request) -> Response:
    state = request.app.state
    outcome = pick_outcome(state.rng())
    _append_request(state.request_log, request, outcome)
    logger.debug("GET /getbalance -> %s", outcome)

    if outcome == "timeout":
        await asyncio.sleep(state.stall_seconds)
        return Response(status_code=200)
    if outcome == 403:
        return HTMLResponse("<h1>403 Forbidden</h1>", status_code=403)
    if outcome == 500:
        return HTMLResponse("<h1>500 Internal Server Error</h1>", status_code=500)
    return HTMLResponse(_BALANCE_PAGE, status_code=200)


async def handle_getlogs(request: Request) -> JSONResponse:
    path = request.app.state.request_log
    if not os.path.exists(path):
        return JSONResponse({"message": "No logs available"})
    return JSONResponse(_read_requests(path))


def create_demo_app(
    request_log: str = DEMO_REQUEST_LOG,
    *,
    rng: Optional[Callable[[], float]] = None,
    stall_seconds: float = DEFAULT_STALL_SECONDS,
) -> Starlette:
    """Create the demo Starlette application.

    *rng* returns floats in ``[0, 1)``; it defaults to :func:`random.random`.
    """
    application = Starlette(
        routes=[
            Route("/getbalance", endpoint=handle_getbalance, methods=["GET"]),
            Route("/getlogs", endpoint=handle_getlogs, methods=["GET"]),
        ],
    )
    application.state.request_log = os.path.abspath(request_log)
    application.state.rng = rng or random.random
    application.state.stall_seconds = stall_seconds
    logger.info("Demo target app created. Request log: %s", application.state.request_log)
    return application


def run_demo_target(
    host: str = DEMO_HOST,
    port: int = DEMO_PORT,
    *,
    request_log: str = DEMO_REQUEST_LOG,
    log_level: str = "warning",
) -> None:
    """Serve the demo target until interrupted."""
    uvicorn_cfg = uvicorn.Config(
        app=create_demo_app(request_log),
        host=host,
        port=port,
        log_config=None,
        log_level=log_level,
    )
    server = uvicorn.Server(uvicorn_cfg)
    logger.info("Starting demo target on http://%s:%s", host, port)
    print(f"Demo target running on http://{host}:{port}/getbalance")
    server.run()
