"""Adaptive difficulty tiers from lifetime XP, accuracy and the recent trend."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from schemas import DifficultyState, DifficultyTier, ItemStat
from practice_engines.base import log_json
from practice_engines.trends import PerformanceTrend

_LOGGER = logging.getLogger(__name__)

# Accuracy drop (percent) that forces a one-tier downgrade.
DOWNGRADE_THRESHOLD_PCT = -10.0


@dataclass(frozen=True)
class TierRule:
    tier: DifficultyTier
    min_xp_exclusive: int
    min_accuracy: float  # percent
    reason: str
    reason_code: str


TIER_RULES: Sequence[TierRule] = (
    TierRule(DifficultyTier.MASTER, 10000, 90.0, "Exceptional performance - Master level unlocked!", "promote_master"),
    TierRule(DifficultyTier.EXPERT, 5000, 85.0, "Consistently high accuracy - Expert level", "promote_expert"),
    TierRule(DifficultyTier.ADVANCED, 2000, 75.0, "Strong progress - Advanced level", "promote_advanced"),
    TierRule(DifficultyTier.INTERMEDIATE, 500, 65.0, "Good foundation - Intermediate level", "promote_intermediate"),
)

BASE_REASON = "Building fundamentals"
BASE_REASON_CODE = "base_beginner"
DOWNGRADE_REASON = "Adjusted down to help you recover confidence"
DOWNGRADE_REASON_CODE = "downgrade_recent_decline"


def overall_accuracy(item_stats: Iterable[ItemStat]) -> float:
    """Lifetime answer accuracy across all items, in percent."""
    correct = total = 0
    for stat in item_stats:
        correct += stat.correct
        total += stat.total
    return correct / total * 100 if total else 0.0


class DifficultyManager:
    """Maps learner aggregates onto the ordered difficulty tiers.

    The tier table is checked from the top; the first rule whose XP and
    accuracy bounds are both met wins. A sharp accuracy decline in the
    supplied trend then pulls the tier down by exactly one step.
    """

    def __init__(
        self,
        *,
        rules: Sequence[TierRule] = TIER_RULES,
        downgrade_threshold_pct: float = DOWNGRADE_THRESHOLD_PCT,
    ) -> None:
        self.rules = tuple(rules)
        self.downgrade_threshold_pct = downgrade_threshold_pct

    def base_tier(self, total_xp: int, accuracy: float) -> TierRule:
        for rule in self.rules:
            if total_xp > rule.min_xp_exclusive and accuracy >= rule.min_accuracy:
                return rule
        return TierRule(DifficultyTier.BEGINNER, 0, 0.0, BASE_REASON, BASE_REASON_CODE)

    def adaptive_difficulty(
        self,
        total_xp: int,
        accuracy: float,
        trend: Optional[PerformanceTrend],
        *,
        now: Optional[datetime] = None,
    ) -> DifficultyState:
        rule = self.base_tier(total_xp, accuracy)
        tier, reason, reason_code = rule.tier, rule.reason, rule.reason_code

        change = trend.accuracy_change_pct if trend is not None else 0.0
        if change < self.downgrade_threshold_pct and tier is not DifficultyTier.BEGINNER:
            tier = tier.step_down()
            reason = DOWNGRADE_REASON
            reason_code = DOWNGRADE_REASON_CODE

        state = DifficultyState(
            tier=tier,
            reason=reason,
            reason_code=reason_code,
            last_adjusted=now or datetime.now(timezone.utc),
        )
        log_json(
            _LOGGER,
            "difficulty_decision",
            {
                "total_xp": total_xp,
                "accuracy": round(accuracy, 2),
                "accuracy_change_pct": round(change, 2),
                "base_tier": rule.tier.value,
                "tier": tier.value,
                "reason_code": reason_code,
            },
        )
        return state


_DEFAULT_MANAGER = DifficultyManager()


def adaptive_difficulty(
    total_xp: int,
    accuracy: float,
    trend: Optional[PerformanceTrend],
    *,
    now: Optional[datetime] = None,
) -> DifficultyState:
    return _DEFAULT_MANAGER.adaptive_difficulty(total_xp, accuracy, trend, now=now)


__all__ = [
    "DOWNGRADE_REASON_CODE",
    "DifficultyManager",
    "TierRule",
    "adaptive_difficulty",
    "overall_accuracy",
]
