"""Logging configuration setup."""

import copy
import logging
import logging.config
import os
import sys
from datetime import datetime
from typing import Tuple

from webmon.constants import LOG_DIR

BASE_LOG_CFG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple_file": {
            "format": ("%(asctime)s - %(name)25s:%(lineno)-4d - " "%(levelname)-7s - %(message)s"),
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "file_handler": {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "simple_file",
            "filename": "temp_log_name.log",
            "encoding": "utf-8",
        },
    },
    "loggers": {
        "webmon": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "INFO",
        },
        "webmon.monitor": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "INFO",
        },
        "webmon.runtime": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "INFO",
        },
        "webmon.config": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "INFO",
        },
        "httpx": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "WARNING",
        },
        "httpcore": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "WARNING",
        },
        "uvicorn": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "INFO",
        },
    },
    "root": {
        "handlers": ["file_handler"],
        "level": "WARNING",
    },
}


def setup_logging(
    log_lvl_str: str, *, log_dir: str = LOG_DIR, quiet: bool = False
) -> Tuple[str, str]:
    """
    Set up the diagnostic logging system.

    Uses a timestamped dynamic filename under *log_dir* and adjusts the
    package log levels.  The event log is separate and configured by
    :class:`webmon.eventlog.EventLog`.

    Args:
        log_lvl_str: The desired log level string (e.g., 'debug', 'info').
        log_dir: Directory for the diagnostic log file.
        quiet: If *True*, suppress ``print()`` output.

    Returns:
        A tuple of (log_file_path, validated_log_level).
    """
    log_lvl_valid = log_lvl_str.upper()
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if log_lvl_valid not in valid_levels:
        if not quiet:
            print(f"Warning: invalid log level '{log_lvl_str}'. Using 'INFO'.")
        log_lvl_valid = "INFO"

    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs(log_dir, exist_ok=True)
    log_fpath = os.path.join(log_dir, f"webmon_{ts}_{log_lvl_valid}.log")

    log_cfg: dict = copy.deepcopy(BASE_LOG_CFG)
    log_cfg["handlers"]["file_handler"]["filename"] = log_fpath

    for name in ("webmon", "webmon.monitor", "webmon.runtime", "webmon.config", "uvicorn"):
        log_cfg["loggers"][name]["level"] = log_lvl_valid

    # Per-request client logging is only useful when debugging.
    if log_lvl_valid == "DEBUG":
        log_cfg["loggers"]["httpx"]["level"] = "DEBUG"
    log_cfg["root"]["level"] = log_lvl_valid if log_lvl_valid == "DEBUG" else "WARNING"

    try:
        logging.config.dictConfig(log_cfg)
        if not quiet:
            print(f"Logging initialized. File log level: {log_lvl_valid}, log file: {log_fpath}")
    except Exception as e_log_cfg:
        if not quiet:
            print(
                f"Error applying logging configuration: {e_log_cfg}",
                file=sys.stderr,
            )

    return log_fpath, log_lvl_valid
