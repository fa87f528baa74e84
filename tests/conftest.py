"""Shared fixtures for the webmon test-suite."""

from __future__ import annotations

import copy
import sys
from typing import Any, Dict

import pytest

from webmon.config.loader import validate_config
from webmon.config.schema import WebmonConfig

BASE_CONFIG: Dict[str, Any] = {
    "version": "1",
    "target": {"url": "http://target.test/getbalance"},
    "child": {"command": sys.executable, "args": ["-c", "import time; time.sleep(60)"]},
    "probe": {"timeout": 0.5, "interval": 1.0, "startup_delay": 0},
    "outcomes": {
        "forbidden": {"threshold": 3, "action": "restart"},
        "server_error": {"threshold": 3, "action": "restart"},
        "timeout": {"threshold": 2, "action": "restart"},
    },
}


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


@pytest.fixture()
def make_config(tmp_path):
    """Factory: ``make_config(probe={"interval": 0.05})`` → WebmonConfig."""

    def _factory(**overrides: Any) -> WebmonConfig:
        raw = copy.deepcopy(BASE_CONFIG)
        raw["eventlog"] = {"path": str(tmp_path / "events.txt"), "echo": False}
        return validate_config(_merge(raw, overrides))

    return _factory
