"""Probe, classification and restart-policy package.

Public API
----------
- :func:`classify` / :class:`Outcome` / :class:`OutcomeCategory` - Outcome classifier
- :class:`StreakTracker` - Consecutive-outcome counters
- :class:`RestartPolicy` / :class:`PolicyAction` - Threshold-breach policy
- :class:`HttpProber` - Single HTTP probe
- :class:`ProbeScheduler` - Fixed-interval probe scheduler
"""

from webmon.monitor.outcome import Outcome, OutcomeCategory, ProbeResult, classify
from webmon.monitor.policy import OutcomeRule, PolicyAction, PolicyDecision, RestartPolicy
from webmon.monitor.prober import HttpProber
from webmon.monitor.scheduler import ProbeScheduler
from webmon.monitor.streaks import StreakTracker

__all__ = [
    "HttpProber",
    "Outcome",
    "OutcomeCategory",
    "OutcomeRule",
    "PolicyAction",
    "PolicyDecision",
    "ProbeResult",
    "ProbeScheduler",
    "RestartPolicy",
    "StreakTracker",
    "classify",
]
