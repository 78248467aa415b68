"""Practice session planning for a given time budget."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Sequence

from env_validation import get_env_str
from practice_engines.base import ChallengePolicy, StreakChallengePolicy, log_json
from practice_engines.spaced_repetition import MasteryCalculator
from practice_engines.trends import performance_trend, streak_stats
from schemas import DifficultyTier, ItemStat, LearningPath, PracticeSession

_LOGGER = logging.getLogger(__name__)

SessionType = Literal["quick_fix", "balanced_growth", "deep_dive", "review", "challenge"]

QUICK_FIX_MAX_MINUTES = 5
BALANCED_MAX_MINUTES = 15
DEEP_DIVE_MAX_MINUTES = 30

DEFAULT_CATEGORIES = ("intervals", "chords", "scales", "rhythm")
CHALLENGE_CATEGORIES = ("intervals", "chords", "scales", "rhythm")
XP_PER_EXERCISE = 5
MIN_CHALLENGE_STREAK = 3

TIER_XP_MULTIPLIER: Dict[DifficultyTier, float] = {
    DifficultyTier.BEGINNER: 1.0,
    DifficultyTier.INTERMEDIATE: 1.5,
    DifficultyTier.ADVANCED: 2.0,
    DifficultyTier.EXPERT: 2.5,
    DifficultyTier.MASTER: 3.0,
}


@dataclass
class Exercise:
    category: str
    count: int
    difficulty_tier: DifficultyTier


@dataclass
class SessionPlan:
    session_type: SessionType
    duration_minutes: float
    categories: List[str]
    exercises: List[Exercise]
    expected_xp: int
    description: str
    difficulty_tier: DifficultyTier
    improvement_categories: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_type": self.session_type,
            "duration_minutes": self.duration_minutes,
            "categories": list(self.categories),
            "exercises": [
                {"category": e.category, "count": e.count, "difficulty_tier": e.difficulty_tier.value}
                for e in self.exercises
            ],
            "expected_xp": self.expected_xp,
            "description": self.description,
            "difficulty_tier": self.difficulty_tier.value,
            "improvement_categories": list(self.improvement_categories),
        }


def expected_xp(exercises: Sequence[Exercise]) -> int:
    total = sum(e.count * XP_PER_EXERCISE * TIER_XP_MULTIPLIER[e.difficulty_tier] for e in exercises)
    # round half up
    return math.floor(total + 0.5)


def pad_categories(categories: Sequence[str], size: int, defaults: Sequence[str] = DEFAULT_CATEGORIES) -> List[str]:
    """First ``size`` categories, topped up from ``defaults`` without repeats."""
    chosen = list(dict.fromkeys(categories))[:size]
    for candidate in defaults:
        if len(chosen) >= size:
            break
        if candidate not in chosen:
            chosen.append(candidate)
    return chosen


class SessionPlanner:
    """Chooses a session shape from the time budget and the learner's weak spots."""

    def __init__(
        self,
        *,
        policy: Optional[ChallengePolicy] = None,
        calculator: Optional[MasteryCalculator] = None,
        default_category: Optional[str] = None,
    ) -> None:
        self.policy = policy or StreakChallengePolicy()
        self.calculator = calculator or MasteryCalculator()
        self.default_category = default_category or get_env_str("DEFAULT_PRACTICE_CATEGORY", "intervals")

    def recommend(
        self,
        time_budget_minutes: float,
        item_stats: Sequence[ItemStat],
        session_history: Sequence[PracticeSession],
        learning_path: Optional[LearningPath],
        *,
        now: Optional[datetime] = None,
    ) -> SessionPlan:
        if math.isnan(time_budget_minutes) or time_budget_minutes < 0:
            raise ValueError(f"time budget must be a non-negative number, got {time_budget_minutes}")

        improvement = self.calculator.improvement_categories(item_stats)
        path_tier = learning_path.difficulty_state.tier if learning_path is not None else None
        defaults = self._defaults()

        if time_budget_minutes <= QUICK_FIX_MAX_MINUTES:
            categories = [improvement[0] if improvement else self.default_category]
            session_type: SessionType = "quick_fix"
            description = f"Quick 5-minute drill on {categories[0]} to sharpen your weakest area"
            exercises = [Exercise(categories[0], 10, DifficultyTier.BEGINNER)]
        elif time_budget_minutes <= BALANCED_MAX_MINUTES:
            categories = pad_categories(improvement, 2, defaults)
            tier = path_tier or DifficultyTier.INTERMEDIATE
            session_type = "balanced_growth"
            description = f"Balanced 15-minute session mixing {' and '.join(categories)}"
            exercises = [Exercise(categories[0], 15, tier), Exercise(categories[1], 10, tier)]
        elif time_budget_minutes <= DEEP_DIVE_MAX_MINUTES:
            categories = pad_categories(improvement, 3, defaults)
            session_type = "deep_dive"
            description = (
                f"Deep 30-minute dive covering {', '.join(categories)} with progressive difficulty"
            )
            exercises = [
                Exercise(categories[0], 20, DifficultyTier.BEGINNER),
                Exercise(categories[1], 15, DifficultyTier.INTERMEDIATE),
                Exercise(categories[2], 15, path_tier or DifficultyTier.ADVANCED),
            ]
        else:
            streak = streak_stats(session_history, now=now).current
            trend = performance_trend(session_history, "month", now=now) if session_history else None
            if streak >= MIN_CHALLENGE_STREAK and self.policy.choose_challenge(streak, trend):
                categories = list(CHALLENGE_CATEGORIES)
                session_type = "challenge"
                description = "Challenge mode: Test your skills across all categories!"
                exercises = [Exercise(c, 10, DifficultyTier.EXPERT) for c in categories]
            else:
                categories = list(improvement) or [self.default_category]
                session_type = "review"
                description = "Comprehensive review of all your improvement areas"
                exercises = [Exercise(c, 12, DifficultyTier.INTERMEDIATE) for c in categories]

        plan = SessionPlan(
            session_type=session_type,
            duration_minutes=time_budget_minutes,
            categories=categories,
            exercises=exercises,
            expected_xp=expected_xp(exercises),
            description=description,
            difficulty_tier=path_tier or DifficultyTier.INTERMEDIATE,
            improvement_categories=improvement,
        )
        log_json(
            _LOGGER,
            "session_plan",
            {
                "session_type": session_type,
                "budget_minutes": time_budget_minutes,
                "categories": categories,
                "expected_xp": plan.expected_xp,
            },
        )
        return plan

    def _defaults(self) -> List[str]:
        return list(dict.fromkeys([self.default_category, *DEFAULT_CATEGORIES]))


def recommend(
    time_budget_minutes: float,
    item_stats: Sequence[ItemStat],
    session_history: Sequence[PracticeSession],
    learning_path: Optional[LearningPath],
    *,
    now: Optional[datetime] = None,
    policy: Optional[ChallengePolicy] = None,
) -> SessionPlan:
    return SessionPlanner(policy=policy).recommend(
        time_budget_minutes, item_stats, session_history, learning_path, now=now
    )


__all__ = [
    "Exercise",
    "SessionPlan",
    "SessionPlanner",
    "expected_xp",
    "pad_categories",
    "recommend",
]
