"""Environment variable expansion and legacy format upgrade.

Handles ``${VAR}`` environment variable expansion in string values and
converts the original flat ``webmon.json`` layout into the v1 structure.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict

from webmon.constants import (
    LEGACY_CHILD_ARGS,
    LEGACY_CHILD_COMMAND,
    LEGACY_TARGET_HOST,
    LEGACY_TARGET_PATH,
    LEGACY_TARGET_PORT,
    TARGET_HOST_ENV_VAR,
    TARGET_PORT_ENV_VAR,
)

logger = logging.getLogger(__name__)

# Regex for ${VAR_NAME} - captures the variable name inside ${}
_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

# Legacy key → v1 outcome category
_LEGACY_RULE_KEYS = {
    "http403": "forbidden",
    "http500": "server_error",
    "timeoutConfig": "timeout",
}

# Keys that only ever appear in the legacy layout
_LEGACY_MARKERS = frozenset({"waittime", "interval", *_LEGACY_RULE_KEYS})


def expand_env_vars(value: Any) -> Any:
    """Recursively expand ``${VAR}`` references in string values.

    - If the env var is not set, the placeholder is left unchanged.
    - Non-string leaves are returned as-is.
    - Dicts and lists are walked recursively.
    """
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(
            lambda m: os.environ.get(m.group(1), m.group(0)),
            value,
        )
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def is_legacy_config(raw: Dict[str, Any]) -> bool:
    """Return *True* for the flat, millisecond-based legacy layout."""
    return "version" not in raw and bool(_LEGACY_MARKERS & raw.keys())


def _ms_to_seconds(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value / 1000.0
    return value  # let validation report the bad type


def _legacy_rule(rule: Any) -> Any:
    if not isinstance(rule, dict):
        return rule
    return {"threshold": rule.get("retrytimes"), "action": rule.get("action", "none")}


def migrate_legacy_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a legacy flat config into the v1 structure.

    Legacy layout::

        {
          "waittime": 5000, "interval": 10000,
          "http403": {"retrytimes": 3, "action": "restart"},
          "http500": {"retrytimes": 3, "action": "restart"},
          "timeoutConfig": {"retrytimes": 2, "action": "restart"},
          "http200": {"retrytimes": 1, "action": "nothing"},
          "host": "127.0.0.1", "port": 3000
        }

    Durations are milliseconds.  ``WEBMON_TARGET_HOST`` /
    ``WEBMON_TARGET_PORT`` override ``host`` / ``port``.  Without a ``child`` key the original
    ``node server/server.js`` child is assumed.  ``http200`` has no v1
    equivalent and is dropped.  Unknown keys (``child``,
    ``eventlog``) are passed through so they can still be validated.
    """
    if not is_legacy_config(raw):
        return raw

    data = dict(raw)
    cfg_host = data.pop("host", None)
    cfg_port = data.pop("port", None)
    host = os.environ.get(TARGET_HOST_ENV_VAR) or cfg_host or LEGACY_TARGET_HOST
    port = os.environ.get(TARGET_PORT_ENV_VAR) or cfg_port or LEGACY_TARGET_PORT

    if "http200" in data:
        data.pop("http200")
        logger.debug("Legacy 'http200' rule ignored: success never triggers an action.")

    migrated: Dict[str, Any] = {
        "version": "1",
        "target": data.pop("target", {"url": f"http://{host}:{port}{LEGACY_TARGET_PATH}"}),
        "child": data.pop(
            "child", {"command": LEGACY_CHILD_COMMAND, "args": list(LEGACY_CHILD_ARGS)}
        ),
        "probe": {
            "timeout": _ms_to_seconds(data.pop("waittime", None)),
            "interval": _ms_to_seconds(data.pop("interval", None)),
        },
        "outcomes": {},
    }
    for legacy_key, category in _LEGACY_RULE_KEYS.items():
        if legacy_key in data:
            migrated["outcomes"][category] = _legacy_rule(data.pop(legacy_key))

    migrated.update(data)
    logger.info("Legacy configuration format detected; upgraded to v1.")
    return migrated
