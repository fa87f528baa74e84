"""
Covers:
  - StreakTracker counting rules
  - RestartPolicy threshold evaluation and restart/none actions
"""

from __future__ import annotations

import asyncio
from typing import List
from unittest.mock import AsyncMock

import pytest

from webmon.errors import ProcessSpawnError
from webmon.monitor.outcome import OutcomeCategory
from webmon.monitor.policy import OutcomeRule, PolicyAction, RestartPolicy
from webmon.monitor.streaks import StreakTracker

F = OutcomeCategory.FORBIDDEN
S = OutcomeCategory.SUCCESS
E = OutcomeCategory.SERVER_ERROR
T = OutcomeCategory.TIMEOUT
C = OutcomeCategory.CONNECTION_ERROR


def _policy(action: PolicyAction = PolicyAction.RESTART) -> RestartPolicy:
    return RestartPolicy(
        {
            F: OutcomeRule(threshold=3, action=action),
            E: OutcomeRule(threshold=3, action=action),
            T: OutcomeRule(threshold=2, action=action),
        }
    )


def _feed(policy: RestartPolicy, outcomes: List[OutcomeCategory], supervisor) -> tuple:
    tracker = policy.new_tracker()

    async def _run() -> list:
        decisions = []
        for category in outcomes:
            tracker.record(category)
            decision = await policy.apply(category, tracker, supervisor)
            if decision is not None:
                decisions.append(decision)
        return decisions

    return tracker, asyncio.run(_run())


class TestStreakTracker:
    def test_counts_consecutive_failures(self) -> None:
        tracker = StreakTracker({F: 3})
        assert tracker.record(F) == 1
        assert tracker.record(F) == 2
        assert tracker.reached(F) is False
        tracker.record(F)
        assert tracker.reached(F) is True

    def test_success_resets_everything(self) -> None:
        tracker = StreakTracker({F: 3, E: 3, T: 2})
        tracker.record(F)
        tracker.record(E)
        tracker.record(T)
        tracker.record(S)
        assert tracker.snapshot() == {"forbidden": 0, "server_error": 0, "timeout": 0}

    def test_categories_are_independent(self) -> None:
        tracker = StreakTracker({F: 3, E: 3})
        tracker.record(F)
        tracker.record(E)
        tracker.record(F)
        assert tracker.count(F) == 2
        assert tracker.count(E) == 1

    def test_untracked_category_is_ignored(self) -> None:
        tracker = StreakTracker({F: 3})
        assert tracker.record(C) == 0
        assert tracker.tracks(C) is False
        assert tracker.reached(C) is False
        assert tracker.snapshot() == {"forbidden": 0}

    def test_reset_single_category(self) -> None:
        tracker = StreakTracker({F: 3, E: 3})
        tracker.record(F)
        tracker.record(E)
        tracker.reset(F)
        assert tracker.count(F) == 0
        assert tracker.count(E) == 1

    def test_rejects_invalid_thresholds(self) -> None:
        with pytest.raises(ValueError):
            StreakTracker({F: 0})
        with pytest.raises(ValueError):
            StreakTracker({S: 1})


class TestRestartPolicy:
    def test_three_forbidden_restart_once(self) -> None:
        supervisor = AsyncMock()
        tracker, decisions = _feed(_policy(), [F, F, F], supervisor)
        assert supervisor.restart.await_count == 1
        assert tracker.count(F) == 0
        assert len(decisions) == 1
        assert decisions[0].category is F
        assert decisions[0].streak == 3
        assert decisions[0].restarted is True

    def test_success_interrupts_streak(self) -> None:
        supervisor = AsyncMock()
        tracker, decisions = _feed(_policy(), [F, F, S, F], supervisor)
        supervisor.restart.assert_not_awaited()
        assert decisions == []
        assert tracker.count(F) == 1

    def test_long_failure_run_fires_every_threshold(self) -> None:
        supervisor = AsyncMock()
        _, decisions = _feed(_policy(), [F] * 7, supervisor)
        assert supervisor.restart.await_count == 2

    def test_timeout_threshold(self) -> None:
        supervisor = AsyncMock()
        tracker, _ = _feed(_policy(), [T, T], supervisor)
        assert supervisor.restart.await_count == 1
        assert tracker.count(T) == 0

    def test_connection_errors_never_restart(self) -> None:
        supervisor = AsyncMock()
        _, decisions = _feed(_policy(), [C] * 10, supervisor)
        supervisor.restart.assert_not_awaited()
        assert decisions == []

    def test_mixed_failures_do_not_reset_each_other(self) -> None:
        supervisor = AsyncMock()
        tracker, decisions = _feed(_policy(), [F, E, F, E, F], supervisor)
        assert [d.category for d in decisions] == [F]
        assert tracker.count(E) == 2

    def test_action_none_resets_without_restart(self) -> None:
        supervisor = AsyncMock()
        tracker, decisions = _feed(_policy(PolicyAction.NONE), [F, F, F], supervisor)
        supervisor.restart.assert_not_awaited()
        assert tracker.count(F) == 0
        assert decisions[0].action is PolicyAction.NONE
        assert decisions[0].restarted is False

    def test_failed_restart_still_resets_counter(self) -> None:
        supervisor = AsyncMock()
        supervisor.restart.side_effect = ProcessSpawnError("missing-binary", FileNotFoundError("nope"))
        tracker, decisions = _feed(_policy(), [T, T], supervisor)
        assert tracker.count(T) == 0
        assert decisions[0].restarted is False
        assert "missing-binary" in decisions[0].error

    def test_rejects_rules_for_success_and_connection_error(self) -> None:
        with pytest.raises(ValueError):
            RestartPolicy({S: OutcomeRule(threshold=1)})
        with pytest.raises(ValueError):
            RestartPolicy({C: OutcomeRule(threshold=1)})

    def test_from_config(self, make_config) -> None:
        cfg = make_config(outcomes={"forbidden": {"threshold": 5, "action": "none"}})
        policy = RestartPolicy.from_config(cfg.outcomes)
        assert policy.thresholds() == {F: 5, E: 3, T: 2}
        assert policy.action_for(F) is PolicyAction.NONE
        assert policy.action_for(T) is PolicyAction.RESTART
        assert policy.action_for(C) is None
