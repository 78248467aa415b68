"""Analytics dashboard: trends, practice habits, insights and simple predictions."""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional, Sequence

import db
from practice_engines.base import Clock, log_json, system_clock
from practice_engines.caching import AnalyticsCache, StoredAnalyticsCache
from practice_engines.trends import (
    PerformanceTrend,
    PracticePattern,
    StreakStats,
    performance_trend,
    practice_pattern,
    skill_breakdown,
    streak_stats,
)
from schemas import LearnerProfile, PracticeSession

_LOGGER = logging.getLogger(__name__)

XP_PER_LEVEL = 1000
PREDICTION_HORIZON_DAYS = 365
PLATEAU_BAND_PCT = 2.0

InsightType = Literal["positive", "negative", "neutral", "suggestion"]
StreakRisk = Literal["low", "medium", "high"]


@dataclass
class Insight:
    type: InsightType
    title: str
    description: str
    icon: str


@dataclass
class Predictions:
    next_level_date: Optional[str]
    streak_risk: StreakRisk
    plateau_detected: bool


def generate_insights(
    trend: PerformanceTrend,
    pattern: PracticePattern,
    streak: StreakStats,
) -> List[Insight]:
    insights: List[Insight] = []

    change = abs(round(trend.accuracy_change_pct))
    if trend.trend == "improving":
        insights.append(
            Insight(
                "positive",
                f"{change}% Improvement!",
                f"Your accuracy has increased significantly this {trend.period}. Great progress!",
                "trending-up",
            )
        )
    elif trend.trend == "declining":
        insights.append(
            Insight(
                "negative",
                "Performance Dip",
                f"Your accuracy dropped {change}% this {trend.period}. Take a break and come back fresh!",
                "trending-down",
            )
        )

    if pattern.best_time_of_day:
        insights.append(
            Insight(
                "neutral",
                f"Peak Performance: {pattern.best_time_of_day}",
                f"You're most accurate in the {pattern.best_time_of_day}",
                "time",
            )
        )

    if pattern.consistency_score >= 80:
        insights.append(
            Insight(
                "positive",
                "Consistency Champion!",
                f"{round(pattern.consistency_score)}% consistency score. You're practicing regularly!",
                "checkmark-circle",
            )
        )
    elif pattern.consistency_score < 40:
        insights.append(
            Insight(
                "suggestion",
                "Practice More Regularly",
                "Try to practice at least 3-4 times per week for better results.",
                "calendar",
            )
        )

    if streak.current >= 7:
        insights.append(
            Insight(
                "positive",
                f"{streak.current} Day Streak!",
                "You're on fire! Keep up the momentum.",
                "flame",
            )
        )
    elif streak.current == 1:
        insights.append(
            Insight(
                "suggestion",
                "Build Your Streak",
                "Practice tomorrow to keep your streak going!",
                "flame-outline",
            )
        )

    if pattern.optimal_session_length < 10:
        insights.append(
            Insight(
                "suggestion",
                "Extend Your Sessions",
                f"Your average session is {pattern.optimal_session_length}min. Try 15-20min for better retention.",
                "timer",
            )
        )

    return insights


def streak_risk(consistency_score: float) -> StreakRisk:
    if consistency_score > 70:
        return "low"
    if consistency_score > 40:
        return "medium"
    return "high"


def plateau_detected(trend: PerformanceTrend) -> bool:
    # A single practice day has no halves to compare.
    if len(trend.daily_points) < 2:
        return False
    return trend.trend == "stable" and abs(trend.accuracy_change_pct) < PLATEAU_BAND_PCT


def next_level_date(profile: LearnerProfile, now: datetime) -> Optional[str]:
    """Projected date of the next level at the learner's average daily XP."""
    xp_per_day = profile.total_xp / max(1, profile.days_played)
    target = (profile.level + 1) * XP_PER_LEVEL
    if xp_per_day <= 0 or target <= profile.total_xp:
        return None
    days = math.ceil((target - profile.total_xp) / xp_per_day)
    if not 0 < days < PREDICTION_HORIZON_DAYS:
        return None
    return (now + timedelta(days=days)).date().isoformat()


def build_dashboard(
    sessions: Sequence[PracticeSession],
    profile: LearnerProfile,
    *,
    now: datetime,
) -> Dict[str, Any]:
    trend = performance_trend(sessions, "month", now=now)
    streak = streak_stats(sessions, now=now)
    pattern = practice_pattern(sessions, now=now, longest_streak=streak.longest)
    insights = generate_insights(trend, pattern, streak)
    predictions = Predictions(
        next_level_date=next_level_date(profile, now),
        streak_risk=streak_risk(pattern.consistency_score),
        plateau_detected=plateau_detected(trend),
    )
    return {
        "performance_trend": asdict(trend),
        "practice_pattern": asdict(pattern),
        "skill_breakdown": [asdict(entry) for entry in skill_breakdown(sessions)],
        "streak": asdict(streak),
        "insights": [asdict(insight) for insight in insights],
        "predictions": asdict(predictions),
        "generated_at": now.isoformat(),
    }


class AnalyticsService:
    """Serves per-user dashboards through a time-bounded cache."""

    def __init__(self, cache: Optional[AnalyticsCache] = None, *, clock: Optional[Clock] = None):
        self.clock = clock or system_clock
        self.cache = cache if cache is not None else StoredAnalyticsCache(clock=self.clock)

    def dashboard(self, user_id: str) -> Dict[str, Any]:
        cached = self.cache.get(user_id)
        if cached is not None:
            log_json(_LOGGER, "analytics_cache", {"user_id": user_id, "hit": True})
            return cached

        now = self.clock()
        payload = build_dashboard(db.load_sessions(user_id), db.load_profile(user_id), now=now)
        self.cache.set(user_id, payload)
        log_json(
            _LOGGER,
            "analytics_cache",
            {
                "user_id": user_id,
                "hit": False,
                "trend": payload["performance_trend"]["trend"],
                "insights": len(payload["insights"]),
            },
        )
        return payload

    def invalidate(self, user_id: str) -> None:
        self.cache.invalidate(user_id)
