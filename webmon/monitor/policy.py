"""Threshold-breach policy.

Maps a failure category that has reached its threshold onto the configured
action and carries it out:

* ``restart`` - restart the supervised process, then reset the streak.
* ``none``    - reset the streak only.

The streak is always reset after a breach, so a long run of identical
failures fires once every *threshold* probes instead of on every tick.
``SUCCESS`` and ``CONNECTION_ERROR`` are never evaluated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Dict, Mapping, Optional, Protocol

from webmon.errors import ProcessSpawnError
from webmon.monitor.outcome import POLICY_CATEGORIES, OutcomeCategory
from webmon.monitor.streaks import StreakTracker

if TYPE_CHECKING:
    from webmon.config.schema import OutcomesConfig

logger = logging.getLogger(__name__)


class PolicyAction(str, Enum):
    """What to do when a streak reaches its threshold."""

    RESTART = "restart"
    NONE = "none"


@dataclass(frozen=True)
class OutcomeRule:
    """Threshold and action for one failure category."""

    threshold: int
    action: PolicyAction = PolicyAction.NONE


@dataclass(frozen=True)
class PolicyDecision:
    """Record of one threshold breach and what was done about it."""

    category: OutcomeCategory
    action: PolicyAction
    streak: int
    restarted: bool = False
    error: Optional[str] = None


class Restartable(Protocol):
    def restart(self) -> Awaitable[Any]: ...


class RestartPolicy:
    """Per-category threshold rules.

    Parameters
    ----------
    rules:
        ``category → OutcomeRule``.  ``SUCCESS`` and ``CONNECTION_ERROR``
        are rejected: neither may drive an action.
    """

    def __init__(self, rules: Mapping[OutcomeCategory, OutcomeRule]) -> None:
        for category in rules:
            if category in (OutcomeCategory.SUCCESS, OutcomeCategory.CONNECTION_ERROR):
                raise ValueError(f"No policy may be configured for {category.value}")
        self._rules: Dict[OutcomeCategory, OutcomeRule] = dict(rules)

    @classmethod
    def from_config(cls, outcomes: "OutcomesConfig") -> "RestartPolicy":
        """Build the policy from the validated ``outcomes`` section."""
        rules = {}
        for category in POLICY_CATEGORIES:
            cfg = getattr(outcomes, category.value)
            rules[category] = OutcomeRule(threshold=cfg.threshold, action=PolicyAction(cfg.action))
        return cls(rules)

    # ── Queries ──────────────────────────────────────────────────────────

    def thresholds(self) -> Dict[OutcomeCategory, int]:
        return {c: r.threshold for c, r in self._rules.items()}

    def new_tracker(self) -> StreakTracker:
        """A fresh tracker counting exactly the categories this policy covers."""
        return StreakTracker(self.thresholds())

    def action_for(self, category: OutcomeCategory) -> Optional[PolicyAction]:
        rule = self._rules.get(category)
        return rule.action if rule is not None else None

    # ── Enforcement ──────────────────────────────────────────────────────

    async def apply(
        self,
        category: OutcomeCategory,
        tracker: StreakTracker,
        supervisor: Restartable,
    ) -> Optional[PolicyDecision]:
        """Act on *category* if its streak has reached the threshold.

        Returns the :class:`PolicyDecision`, or ``None`` when nothing was
        breached.  The streak counter is reset even if the restart fails.
        """
        rule = self._rules.get(category)
        if rule is None or not tracker.reached(category):
            return None

        streak = tracker.count(category)
        logger.info(
            "Threshold reached for %s (%d/%d) - action: %s",
            category.value,
            streak,
            rule.threshold,
            rule.action.value,
        )
        restarted = False
        error: Optional[str] = None
        try:
            if rule.action is PolicyAction.RESTART:
                await supervisor.restart()
                restarted = True
        except ProcessSpawnError as exc:
            error = str(exc)
            logger.error("Restart after %s streak failed: %s", category.value, exc)
        finally:
            tracker.reset(category)

        return PolicyDecision(
            category=category,
            action=rule.action,
            streak=streak,
            restarted=restarted,
            error=error,
        )
