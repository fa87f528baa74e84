"""Configuration loading and validation for webmon."""

from webmon.config.loader import find_config_file, load_webmon_config, validate_config
from webmon.config.migration import expand_env_vars, migrate_legacy_config
from webmon.config.schema import (
    ChildConfig,
    EventLogConfig,
    OutcomeRuleConfig,
    OutcomesConfig,
    ProbeConfig,
    TargetConfig,
    WebmonConfig,
)

__all__ = [
    "ChildConfig",
    "EventLogConfig",
    "OutcomeRuleConfig",
    "OutcomesConfig",
    "ProbeConfig",
    "TargetConfig",
    "WebmonConfig",
    "expand_env_vars",
    "find_config_file",
    "load_webmon_config",
    "migrate_legacy_config",
    "validate_config",
]
