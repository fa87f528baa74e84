"""Pydantic configuration models for webmon.

Defines the validated config structure using the versioned v1 format::

    version: "1"
    target:
      url: http://127.0.0.1:3000/getbalance
    child:
      command: node
      args: [server/server.js]
    probe:
      timeout: 5.0
      interval: 10.0
    outcomes:
      forbidden:    {threshold: 3, action: restart}
      server_error: {threshold: 3, action: restart}
      timeout:      {threshold: 2, action: restart}
    eventlog:
      path: webmon_logs.txt

The legacy flat format is upgraded to this shape by
:func:`webmon.config.migration.migrate_legacy_config` before validation.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webmon.constants import DEFAULT_EVENT_LOG, DEFAULT_STARTUP_DELAY, DEFAULT_STOP_TIMEOUT


class _FrozenModel(BaseModel):
    """Configuration is loaded once and never mutated afterwards."""

    model_config = ConfigDict(frozen=True, extra="forbid")


# ── Target & child process ───────────────────────────────────────────────


class TargetConfig(_FrozenModel):
    """The single health endpoint that gets probed."""

    url: str = Field(..., min_length=1, description="Health endpoint URL (HTTP GET).")

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL '{v}' must start with http:// or https://")
        return v


class ChildConfig(_FrozenModel):
    """The supervised process."""

    command: str = Field(..., min_length=1, description="Executable to run")
    args: List[str] = Field(default_factory=list)
    cwd: Optional[str] = Field(default=None, description="Working directory for the child.")
    env: Optional[Dict[str, str]] = Field(
        default=None,
        description="Extra environment variables, merged over the parent's.",
    )
    stop_timeout: float = Field(
        default=DEFAULT_STOP_TIMEOUT,
        ge=0,
        description="Seconds to wait for the child to exit on shutdown before killing it.",
    )

    @field_validator("command")
    @classmethod
    def _strip_command(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("command must be a non-empty string")
        return v


# ── Probing ──────────────────────────────────────────────────────────────


class ProbeConfig(_FrozenModel):
    """Probe timing."""

    timeout: float = Field(..., gt=0, description="Max seconds to await a probe response.")
    interval: float = Field(..., gt=0, description="Seconds between successive probe ticks.")
    startup_delay: float = Field(
        default=DEFAULT_STARTUP_DELAY,
        ge=0,
        description="Grace period after spawning the child before the first probe.",
    )
    overlap: Literal["allow", "skip"] = Field(
        default="allow",
        description=(
            "'allow' fires every tick even while a previous probe is pending; "
            "'skip' drops a tick whose predecessor has not completed."
        ),
    )


class OutcomeRuleConfig(_FrozenModel):
    """Threshold and action for one failure category."""

    threshold: int = Field(..., ge=1, description="Consecutive outcomes that trigger the action.")
    action: Literal["restart", "none"] = "none"

    @field_validator("action", mode="before")
    @classmethod
    def _normalise_action(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.strip().lower()
            # The legacy format spelled "no action" as "nothing".
            if v in ("nothing", ""):
                return "none"
        return v


class OutcomesConfig(_FrozenModel):
    """Per-category policy. Connection errors are logged only and take no rule."""

    forbidden: OutcomeRuleConfig
    server_error: OutcomeRuleConfig
    timeout: OutcomeRuleConfig


# ── Event log ────────────────────────────────────────────────────────────


class EventLogConfig(_FrozenModel):
    """Append-only event log settings."""

    path: str = Field(default=DEFAULT_EVENT_LOG, min_length=1)
    format: Literal["text", "jsonl"] = Field(
        default="text",
        description="'text' writes '<ts> [LEVEL] message' lines, 'jsonl' one JSON object per line.",
    )
    echo: bool = Field(default=True, description="Echo each entry to the console.")


# ── Top-level config ─────────────────────────────────────────────────────


class WebmonConfig(_FrozenModel):
    """Top-level validated configuration for webmon."""

    version: Literal["1"] = "1"
    target: TargetConfig
    child: ChildConfig
    probe: ProbeConfig
    outcomes: OutcomesConfig
    eventlog: EventLogConfig = Field(default_factory=EventLogConfig)

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, v: object) -> object:
        if isinstance(v, (int, float)):
            return str(int(v))
        return v
