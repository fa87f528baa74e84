"""CLI argument parsing and main entry point.

Subcommands:

* ``webmon run``          - supervise the child and probe its endpoint.
* ``webmon check-config`` - validate a configuration file and exit.
* ``webmon logs``         - print entries from the event log.
* ``webmon demo-target``  - serve the flaky demo endpoint.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

from webmon.config.loader import find_config_file, load_webmon_config
from webmon.config.schema import WebmonConfig
from webmon.constants import (
    APP_NAME,
    APP_VERSION,
    DEFAULT_EVENT_LOG,
    DEFAULT_LOG_LEVEL,
    DEMO_HOST,
    DEMO_PORT,
    DEMO_REQUEST_LOG,
)
from webmon.display.console import EventConsole
from webmon.display.logging_config import setup_logging
from webmon.errors import ConfigurationError, ProcessSpawnError

module_logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SPAWN_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_FORCED = 130

_LOG_LEVEL_CHOICES = ["debug", "info", "warning", "error", "critical"]


def _load_config_or_report(config_path: str) -> Optional[WebmonConfig]:
    """Load the config; print the error and return ``None`` on failure."""
    try:
        return load_webmon_config(config_path)
    except ConfigurationError as e_cfg:
        module_logger.error("Configuration error: %s", e_cfg)
        print(f"Error: {e_cfg}", file=sys.stderr)
        return None


# ── ``webmon run`` ───────────────────────────────────────────────────────


def _force_exit(service) -> None:
    """Second interrupt: kill the child without waiting and exit at once."""
    supervisor = service.supervisor
    if supervisor is not None and supervisor.process is not None:
        try:
            supervisor.process.kill()
        except ProcessLookupError:
            pass
    module_logger.warning("Forced exit on repeated interrupt.")
    os._exit(EXIT_FORCED)


async def _run_monitor(config: WebmonConfig, config_path: str) -> None:
    """Async main for the ``run`` subcommand."""
    from webmon.runtime.service import WebmonService

    event_console = EventConsole()
    service = WebmonService(config, console=event_console)

    loop = asyncio.get_running_loop()
    interrupts = 0

    def _on_signal(sig: signal.Signals) -> None:
        nonlocal interrupts
        interrupts += 1
        if sig is signal.SIGINT and interrupts > 1:
            _force_exit(service)
        module_logger.info("Received %s, stopping...", sig.name)
        service.request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig)
        except (NotImplementedError, RuntimeError):
            module_logger.debug("Signal handler for %s not supported here.", sig.name)

    event_console.print_banner(config_path, config.target.url, config.eventlog.path)
    try:
        await service.run_until_stopped()
    finally:
        event_console.print_status(service.get_status())


def _cmd_run(args: argparse.Namespace) -> int:
    """Entry-point for ``webmon run``."""
    _log_fpath, cfg_log_lvl = setup_logging(args.log_level)
    module_logger.info(
        "---- %s v%s starting (file log level: %s) ----",
        APP_NAME,
        APP_VERSION,
        cfg_log_lvl,
    )

    config_path = find_config_file(args.config)
    module_logger.info("Configuration file path resolved to: %s", config_path)
    config = _load_config_or_report(config_path)
    if config is None:
        return EXIT_CONFIG_ERROR

    try:
        asyncio.run(_run_monitor(config, config_path))
    except ProcessSpawnError as e_spawn:
        module_logger.error("Could not start supervised process: %s", e_spawn)
        print(f"Error: {e_spawn}", file=sys.stderr)
        return EXIT_SPAWN_ERROR
    except KeyboardInterrupt:
        module_logger.info("%s interrupted by KeyboardInterrupt.", APP_NAME)
    except Exception as e_fatal:
        module_logger.exception("%s encountered an uncaught fatal error: %s", APP_NAME, e_fatal)
        raise
    finally:
        module_logger.info("%s finished.", APP_NAME)
    return EXIT_OK


# ── ``webmon check-config`` ──────────────────────────────────────────────


def _cmd_check_config(args: argparse.Namespace) -> int:
    """Entry-point for ``webmon check-config``."""
    config_path = find_config_file(args.config)
    config = _load_config_or_report(config_path)
    if config is None:
        return EXIT_CONFIG_ERROR

    probe = config.probe
    print(f"Configuration OK: {config_path}")
    print(f"  target:   {config.target.url}")
    print(f"  child:    {' '.join([config.child.command, *config.child.args])}")
    print(
        f"  probe:    timeout {probe.timeout}s, interval {probe.interval}s, "
        f"startup delay {probe.startup_delay}s, overlap {probe.overlap}"
    )
    for name, rule in config.outcomes.model_dump().items():
        print(f"  {name + ':':13s} threshold {rule['threshold']}, action {rule['action']}")
    print(f"  eventlog: {config.eventlog.path} ({config.eventlog.format})")
    return EXIT_OK


# ── ``webmon logs`` ──────────────────────────────────────────────────────


def _resolve_event_log_path(args: argparse.Namespace) -> Optional[str]:
    if args.path:
        return args.path
    config_path = find_config_file(args.config)
    if args.config or os.path.isfile(config_path):
        config = _load_config_or_report(config_path)
        return config.eventlog.path if config is not None else None
    return DEFAULT_EVENT_LOG


def _cmd_logs(args: argparse.Namespace) -> int:
    """Entry-point for ``webmon logs``."""
    from webmon.eventlog.logger import read_entries

    path = _resolve_event_log_path(args)
    if path is None:
        return EXIT_CONFIG_ERROR

    entries = read_entries(path, tail=args.tail)
    if not entries:
        print(f"No event log entries in {path}.")
        return EXIT_OK
    if args.json:
        for entry in entries:
            print(entry.to_json())
    else:
        EventConsole().print_entries(entries)
    return EXIT_OK


# ── ``webmon demo-target`` ───────────────────────────────────────────────


def _cmd_demo_target(args: argparse.Namespace) -> int:
    """Entry-point for ``webmon demo-target``."""
    from webmon.demo.target import run_demo_target

    setup_logging(args.log_level)
    try:
        run_demo_target(args.host, args.port, request_log=args.request_log)
    except KeyboardInterrupt:
        module_logger.info("Demo target interrupted by KeyboardInterrupt.")
    return EXIT_OK


# ── CLI parser construction ──────────────────────────────────────────────


def _add_config_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help=(
            "Path to configuration file (YAML or JSON). "
            "Default: $WEBMON_CONFIG, then auto-detect webmon.yaml/webmon.yml/webmon.json"
        ),
    )


def _add_log_level_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        type=str,
        default=DEFAULT_LOG_LEVEL.lower(),
        choices=_LOG_LEVEL_CHOICES,
        help=f"Set file logging level (default: {DEFAULT_LOG_LEVEL.lower()})",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with its subcommands."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=f"{APP_NAME} v{APP_VERSION}",
    )
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")

    subparsers = parser.add_subparsers(dest="command")

    # ── run ─────────────────────────────────────────────────────
    sp_run = subparsers.add_parser(
        "run",
        help="Start the supervised process and monitor its endpoint",
    )
    _add_config_arg(sp_run)
    _add_log_level_arg(sp_run)
    sp_run.set_defaults(func=_cmd_run)

    # ── check-config ────────────────────────────────────────────
    sp_check = subparsers.add_parser(
        "check-config",
        help="Validate the configuration file and print a summary",
    )
    _add_config_arg(sp_check)
    sp_check.set_defaults(func=_cmd_check_config)

    # ── logs ────────────────────────────────────────────────────
    sp_logs = subparsers.add_parser(
        "logs",
        help="Print entries from the event log",
    )
    _add_config_arg(sp_logs)
    sp_logs.add_argument(
        "--path",
        type=str,
        default=None,
        metavar="FILE",
        help="Event log file (default: eventlog.path from the config)",
    )
    sp_logs.add_argument(
        "--tail",
        type=int,
        default=None,
        metavar="N",
        help="Only show the last N entries",
    )
    sp_logs.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print entries as JSON lines",
    )
    sp_logs.set_defaults(func=_cmd_logs)

    # ── demo-target ─────────────────────────────────────────────
    sp_demo = subparsers.add_parser(
        "demo-target",
        help="Serve the flaky demo endpoint (/getbalance)",
    )
    sp_demo.add_argument(
        "--host",
        type=str,
        default=DEMO_HOST,
        help=f"Host address (default: {DEMO_HOST})",
    )
    sp_demo.add_argument(
        "--port",
        type=int,
        default=DEMO_PORT,
        help=f"Port (default: {DEMO_PORT})",
    )
    sp_demo.add_argument(
        "--request-log",
        type=str,
        default=DEMO_REQUEST_LOG,
        metavar="FILE",
        help=f"JSON-lines request log (default: {DEMO_REQUEST_LOG})",
    )
    _add_log_level_arg(sp_demo)
    sp_demo.set_defaults(func=_cmd_demo_target)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Program entry point: parse arguments and dispatch to subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)
    sys.exit(args.func(args))
