import itertools
import json
import logging

import pytest

from practice_engines.base import log_json
from practice_engines.difficulty_manager import (
    DOWNGRADE_REASON_CODE,
    DifficultyManager,
    adaptive_difficulty,
    overall_accuracy,
)
from practice_engines.trends import PerformanceTrend
from schemas import DifficultyTier

from helpers import stat


def _trend(change: float) -> PerformanceTrend:
    direction = "declining" if change < -5 else "improving" if change > 5 else "stable"
    return PerformanceTrend(period="month", accuracy_change_pct=change, trend=direction)


def test_expert_learner_with_flat_trend(now):
    state = adaptive_difficulty(6000, 88.0, _trend(0.0), now=now)

    assert state.tier is DifficultyTier.EXPERT
    assert state.reason == "Consistently high accuracy - Expert level"
    assert state.last_adjusted == now


def test_sharp_decline_downgrades_one_tier(now):
    base = adaptive_difficulty(6000, 88.0, _trend(0.0), now=now)
    state = adaptive_difficulty(6000, 88.0, _trend(-15.0), now=now)

    assert state.tier is DifficultyTier.ADVANCED
    assert state.reason_code == DOWNGRADE_REASON_CODE
    assert state.reason != base.reason


def test_decline_never_drops_below_beginner():
    state = adaptive_difficulty(0, 10.0, _trend(-50.0))

    assert state.tier is DifficultyTier.BEGINNER
    assert state.reason == "Building fundamentals"


def test_decline_at_threshold_keeps_tier():
    assert adaptive_difficulty(6000, 88.0, _trend(-10.0)).tier is DifficultyTier.EXPERT


@pytest.mark.parametrize(
    "xp, accuracy, expected",
    [
        (10001, 90.0, DifficultyTier.MASTER),
        (10000, 95.0, DifficultyTier.EXPERT),
        (2001, 75.0, DifficultyTier.ADVANCED),
        (501, 65.0, DifficultyTier.INTERMEDIATE),
        (500, 99.0, DifficultyTier.BEGINNER),
        (20000, 60.0, DifficultyTier.BEGINNER),
    ],
)
def test_tier_table_boundaries(xp, accuracy, expected):
    assert adaptive_difficulty(xp, accuracy, None).tier is expected


def test_base_tier_is_monotonic():
    manager = DifficultyManager()
    xps = [0, 400, 501, 1500, 2001, 4000, 5001, 9000, 10001, 20000]
    accuracies = [0, 50, 65, 70, 75, 80, 85, 88, 90, 100]

    for xp, (low, high) in itertools.product(xps, itertools.pairwise(accuracies)):
        assert manager.base_tier(xp, low).tier.rank <= manager.base_tier(xp, high).tier.rank
    for accuracy, (low, high) in itertools.product(accuracies, itertools.pairwise(xps)):
        assert manager.base_tier(low, accuracy).tier.rank <= manager.base_tier(high, accuracy).tier.rank


def test_overall_accuracy_percent():
    assert overall_accuracy([stat("a", 3, 4), stat("b", 1, 4)]) == pytest.approx(50.0)
    assert overall_accuracy([]) == 0.0


def test_decision_is_logged_as_json(caplog, now):
    with caplog.at_level(logging.INFO, logger="practice_engines.difficulty_manager"):
        adaptive_difficulty(6000, 88.0, _trend(-12.0), now=now)

    records = [r for r in caplog.records if r.name == "practice_engines.difficulty_manager"]
    decision = json.loads(records[-1].getMessage())
    assert decision["event"] == "difficulty_decision"
    assert decision["reason_code"] == DOWNGRADE_REASON_CODE


def test_log_json_falls_back_to_repr(caplog):
    logger = logging.getLogger("practice_engines.test")

    with caplog.at_level(logging.INFO, logger="practice_engines.test"):
        log_json(logger, "odd_payload", {"value": object()})

    record = json.loads(caplog.records[-1].getMessage())
    assert record["error"] == "serialization_failed"
    assert "value" in record["payload_repr"]
