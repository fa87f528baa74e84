"""Consecutive-outcome counters per failure category.

Rules::

    SUCCESS            ──► every counter = 0
    tracked failure C  ──► count[C] += 1   (other counters untouched)
    untracked category ──► no change       (e.g. CONNECTION_ERROR)

Failure streaks are independent of each other: a 403 followed by a 500
does not reset the 403 streak.
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping

from webmon.monitor.outcome import OutcomeCategory

logger = logging.getLogger(__name__)


class StreakTracker:
    """Per-category consecutive-occurrence counters.

    Parameters
    ----------
    thresholds:
        ``category → threshold`` for every tracked failure category.
        Categories without an entry are never counted.
    """

    def __init__(self, thresholds: Mapping[OutcomeCategory, int]) -> None:
        for category, threshold in thresholds.items():
            if category is OutcomeCategory.SUCCESS:
                raise ValueError("SUCCESS cannot carry a threshold")
            if threshold < 1:
                raise ValueError(f"Threshold for {category.value} must be >= 1, got {threshold}")
        self._thresholds: Dict[OutcomeCategory, int] = dict(thresholds)
        self._counts: Dict[OutcomeCategory, int] = {c: 0 for c in self._thresholds}

    # ── Queries ──────────────────────────────────────────────────────────

    def tracks(self, category: OutcomeCategory) -> bool:
        return category in self._thresholds

    def count(self, category: OutcomeCategory) -> int:
        return self._counts.get(category, 0)

    def threshold(self, category: OutcomeCategory) -> int:
        return self._thresholds[category]

    def reached(self, category: OutcomeCategory) -> bool:
        """Has *category* reached its configured threshold?"""
        if category not in self._thresholds:
            return False
        return self._counts[category] >= self._thresholds[category]

    # ── Updates ──────────────────────────────────────────────────────────

    def record(self, category: OutcomeCategory) -> int:
        """Apply one outcome and return the category's count afterwards."""
        if category is OutcomeCategory.SUCCESS:
            if any(self._counts.values()):
                logger.debug("Success cleared failure streaks: %s", self.snapshot())
            self.reset_all()
            return 0
        if category not in self._counts:
            return 0
        self._counts[category] += 1
        return self._counts[category]

    def reset(self, category: OutcomeCategory) -> None:
        if category in self._counts:
            self._counts[category] = 0

    def reset_all(self) -> None:
        for category in self._counts:
            self._counts[category] = 0

    # ── Serialisation ────────────────────────────────────────────────────

    def snapshot(self) -> Dict[str, int]:
        """Counters keyed by category value (for status reports)."""
        return {c.value: n for c, n in self._counts.items()}
