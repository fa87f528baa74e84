"""Configuration file loading and validation.

Loads a YAML (or JSON) configuration file, expands ``${ENV_VAR}``
placeholders, upgrades the legacy flat layout, and validates against the
Pydantic models defined in :mod:`schema`.

The public API is :func:`load_webmon_config` which returns the validated
:class:`WebmonConfig`.  Any problem is reported as a single
:class:`ConfigurationError`; callers treat it as fatal.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from webmon.config.migration import expand_env_vars, migrate_legacy_config
from webmon.config.schema import WebmonConfig
from webmon.constants import CONFIG_ENV_VAR, CONFIG_SEARCH_ORDER
from webmon.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Recognised config file extensions.  JSON is a subset of YAML, so the
# legacy ``webmon.json`` goes through the same parser.
_CONFIG_EXTS = frozenset({".yaml", ".yml", ".json"})


def find_config_file(explicit: Optional[str] = None) -> str:
    """Resolve the config path: explicit flag → ``WEBMON_CONFIG`` → auto-detect.

    Auto-detection checks the CWD for ``webmon.yaml``, ``webmon.yml`` and
    ``webmon.json`` in that order.  Falls back to ``CWD/webmon.yaml`` if
    nothing exists (the loader will then report a clear error).
    """
    if explicit:
        return os.path.abspath(explicit)
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return os.path.abspath(from_env)
    for name in CONFIG_SEARCH_ORDER:
        candidate = os.path.join(os.getcwd(), name)
        if os.path.isfile(candidate):
            return candidate
    return os.path.join(os.getcwd(), CONFIG_SEARCH_ORDER[0])


def _read_config_file(cfg_fpath: str) -> Dict[str, Any]:
    """Read and parse a config file from *cfg_fpath*.

    Raises :class:`ConfigurationError` on I/O or parse errors.
    """
    ext = os.path.splitext(cfg_fpath)[1].lower()
    if ext not in _CONFIG_EXTS:
        raise ConfigurationError(
            f"Unsupported config file extension '{ext}'. "
            "Only YAML (.yaml, .yml) and JSON (.json) files are supported."
        )

    try:
        with open(cfg_fpath, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except Exception as exc:
        raise ConfigurationError(f"Error reading configuration file: {cfg_fpath}\n  {exc}") from exc

    if not isinstance(raw_data, dict):
        raise ConfigurationError("Top-level configuration content must be a mapping (dictionary).")
    return raw_data


def _format_validation_errors(exc: ValidationError) -> str:
    """Format Pydantic validation errors into a readable multi-line string."""
    lines: List[str] = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        lines.append(f"  • {loc}: {err['msg']}")
    return "\n".join(lines)


def validate_config(raw_data: Dict[str, Any]) -> WebmonConfig:
    """Expand, upgrade and validate an already-parsed config mapping."""
    raw_data = expand_env_vars(raw_data)
    raw_data = migrate_legacy_config(raw_data)
    try:
        return WebmonConfig.model_validate(raw_data)
    except ValidationError as exc:
        error_summary = _format_validation_errors(exc)
        raise ConfigurationError(
            f"Configuration validation failed ({len(exc.errors())} error(s)):\n" f"{error_summary}"
        ) from exc


def load_webmon_config(cfg_fpath: str) -> WebmonConfig:
    """Load, expand, validate, and return the configuration.

    Steps:
        1. Read YAML/JSON file
        2. Expand ``${VAR}`` environment variable references
        3. Upgrade the legacy flat layout if detected
        4. Validate against :class:`WebmonConfig` (Pydantic)

    Raises:
        ConfigurationError: On a missing file, I/O errors, parse errors, or
            validation failures (all errors reported at once).
    """
    logger.debug("Loading configuration file: %s", cfg_fpath)

    if not os.path.exists(cfg_fpath):
        raise ConfigurationError(f"Configuration file does not exist: {cfg_fpath}")

    config = validate_config(_read_config_file(cfg_fpath))

    logger.info(
        "Configuration '%s' loaded (v%s). Target: %s, probe timeout %.3fs, interval %.3fs.",
        cfg_fpath,
        config.version,
        config.target.url,
        config.probe.timeout,
        config.probe.interval,
    )
    return config
