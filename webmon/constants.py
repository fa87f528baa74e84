"""Shared constants for webmon."""

APP_NAME = "webmon"
APP_VERSION = "0.1.0"

# Config file search order (first match wins)
CONFIG_SEARCH_ORDER = ("webmon.yaml", "webmon.yml", "webmon.json")
CONFIG_ENV_VAR = "WEBMON_CONFIG"

# Legacy target overrides
TARGET_HOST_ENV_VAR = "WEBMON_TARGET_HOST"
TARGET_PORT_ENV_VAR = "WEBMON_TARGET_PORT"
LEGACY_TARGET_HOST = "127.0.0.1"
LEGACY_TARGET_PORT = 3000
LEGACY_TARGET_PATH = "/getbalance"
LEGACY_CHILD_COMMAND = "node"
LEGACY_CHILD_ARGS = ("server/server.js",)

# Logging defaults
LOG_DIR = "logs"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_EVENT_LOG = "webmon_logs.txt"

# Monitoring defaults
DEFAULT_STARTUP_DELAY = 2.0  # seconds before the first probe
DEFAULT_STOP_TIMEOUT = 5.0  # seconds to wait for the child on shutdown

# Demo target
DEMO_HOST = "127.0.0.1"
DEMO_PORT = 3000
DEMO_REQUEST_LOG = "logs.txt"
