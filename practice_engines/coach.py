"""Daily coaching message chosen from the learner's current signals."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Sequence

from practice_engines.spaced_repetition import MasteryCalculator
from practice_engines.trends import PerformanceTrend, PracticePattern, StreakStats
from schemas import ItemStat, LearningPath

CoachType = Literal["motivation", "technique", "warning", "achievement", "suggestion"]
CoachPriority = Literal["high", "medium", "low"]

LONG_SESSION_MINUTES = 45
LONG_STREAK_DAYS = 7
DROPPED_STREAK_MIN_LONGEST = 3
IMPROVING_CHANGE_PCT = 5.0
TARGET_ACCURACY_PCT = 85.0


@dataclass
class SuggestedAction:
    label: str
    action: Literal["practice_skill", "take_break", "review_material", "try_challenge"]
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CoachRecommendation:
    message: str
    type: CoachType
    priority: CoachPriority
    actionable: bool
    suggested_action: Optional[SuggestedAction] = None


def daily_recommendation(
    item_stats: Sequence[ItemStat],
    trend: PerformanceTrend,
    pattern: PracticePattern,
    streak: StreakStats,
    *,
    plateau: bool,
    learning_path: Optional[LearningPath] = None,
    calculator: Optional[MasteryCalculator] = None,
) -> CoachRecommendation:
    """Return the single most pressing recommendation.

    Checks run in a fixed order: a lost streak, a plateau, overly long
    sessions, improvement, a long streak, the weakest item, then a generic
    greeting.
    """
    calculator = calculator or MasteryCalculator()
    weak = calculator.weak_areas(item_stats)
    weakest = weak[0] if weak else None

    if streak.current == 0 and streak.longest > DROPPED_STREAK_MIN_LONGEST:
        return CoachRecommendation(
            message=(
                f"You had a {streak.longest}-day streak! Let's get back on track. "
                "Start with just 5 minutes today."
            ),
            type="motivation",
            priority="high",
            actionable=True,
            suggested_action=SuggestedAction("Quick 5-Min Session", "practice_skill", {"duration": 5}),
        )

    if plateau:
        focus = weakest.category if weakest else None
        if focus:
            message = f"Your progress has plateaued. Try focusing on {focus} to break through!"
            action = SuggestedAction(f"Practice {focus}", "practice_skill", {"skill": focus})
        else:
            message = "Your progress has plateaued. Try a new category to break through!"
            action = SuggestedAction("Try a Challenge", "try_challenge", {"difficulty": "expert"})
        return CoachRecommendation(message, "suggestion", "high", True, action)

    if pattern.optimal_session_length > LONG_SESSION_MINUTES:
        return CoachRecommendation(
            message=(
                f"Your sessions are averaging {pattern.optimal_session_length} minutes. "
                "Consider shorter, more focused practice to avoid burnout."
            ),
            type="warning",
            priority="medium",
            actionable=True,
            suggested_action=SuggestedAction("Take a Break", "take_break"),
        )

    if trend.accuracy_change_pct > IMPROVING_CHANGE_PCT:
        return CoachRecommendation(
            message=(
                f"Amazing! Your accuracy is up {trend.accuracy_change_pct:.1f}% this {trend.period}. "
                "Keep the momentum going!"
            ),
            type="achievement",
            priority="medium",
            actionable=False,
        )

    if streak.current >= LONG_STREAK_DAYS:
        return CoachRecommendation(
            message=f"{streak.current}-day streak! You're on fire. Ready for a challenge?",
            type="motivation",
            priority="medium",
            actionable=True,
            suggested_action=SuggestedAction("Take Challenge", "try_challenge", {"difficulty": "expert"}),
        )

    if weakest is not None:
        return CoachRecommendation(
            message=(
                f"Focus on {weakest.item_id} in {weakest.category} today. "
                f"You're at {weakest.accuracy * 100:.0f}%, let's push to {TARGET_ACCURACY_PCT:.0f}%!"
            ),
            type="technique",
            priority="medium",
            actionable=True,
            suggested_action=SuggestedAction(
                f"Practice {weakest.category}",
                "practice_skill",
                {"skill": weakest.category, "item_id": weakest.item_id},
            ),
        )

    completion = learning_path.completion_pct if learning_path is not None else 0
    return CoachRecommendation(
        message=f"Great to see you! {completion}% through your learning path. Let's practice!",
        type="motivation",
        priority="low",
        actionable=False,
    )
