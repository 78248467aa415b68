"""Performance trend detection and practice-pattern summaries over session history."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Literal, Optional, Sequence

from schemas import PracticeSession

Period = Literal["week", "month", "all"]
TrendDirection = Literal["improving", "stable", "declining"]

PERIOD_WINDOWS: Dict[str, Optional[timedelta]] = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "all": None,
}

# Fixed classification band, in percent of first-half accuracy.
TREND_THRESHOLD_PCT = 5.0

_TIME_OF_DAY_ORDER = ("morning", "afternoon", "evening", "night")


@dataclass
class DailyPoint:
    date: str
    accuracy: float
    score: float


@dataclass
class PerformanceTrend:
    period: str
    accuracy_change_pct: float = 0.0
    score_change: float = 0.0
    trend: TrendDirection = "stable"
    daily_points: List[DailyPoint] = field(default_factory=list)


@dataclass
class PracticePattern:
    best_time_of_day: str
    optimal_session_length: int  # minutes
    consistency_score: float     # 0 to 100
    sessions_per_week: int
    longest_streak_days: int = 0


@dataclass
class StreakStats:
    current: int
    longest: int
    last_practice_date: Optional[str] = None


@dataclass
class SkillBreakdown:
    category: str
    accuracy: float  # percent
    correct: int
    total: int


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _within(sessions: Iterable[PracticeSession], window: Optional[timedelta], now: datetime) -> List[PracticeSession]:
    if window is None:
        return list(sessions)
    return [s for s in sessions if now - _as_utc(s.timestamp) < window]


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def classify_change(accuracy_change_pct: float) -> TrendDirection:
    if accuracy_change_pct > TREND_THRESHOLD_PCT:
        return "improving"
    if accuracy_change_pct < -TREND_THRESHOLD_PCT:
        return "declining"
    return "stable"


def daily_points(sessions: Iterable[PracticeSession]) -> List[DailyPoint]:
    """Mean accuracy and score per UTC calendar day, oldest first."""
    buckets: Dict[str, Dict[str, List[float]]] = {}
    for session in sessions:
        key = _as_utc(session.timestamp).date().isoformat()
        bucket = buckets.setdefault(key, {"accuracy": [], "score": []})
        bucket["accuracy"].append(session.accuracy)
        bucket["score"].append(session.score)
    return [
        DailyPoint(date=key, accuracy=_mean(data["accuracy"]), score=_mean(data["score"]))
        for key, data in sorted(buckets.items())
    ]


def trend_from_points(points: Sequence[DailyPoint], period: str = "all") -> PerformanceTrend:
    """Compare the first and second half of ``points``."""
    if not points:
        return PerformanceTrend(period=period)

    midpoint = len(points) // 2
    first, second = points[:midpoint], points[midpoint:]
    if not first or not second:
        return PerformanceTrend(period=period, daily_points=list(points))

    first_accuracy = _mean([p.accuracy for p in first])
    second_accuracy = _mean([p.accuracy for p in second])
    accuracy_change = 0.0
    if first_accuracy:
        accuracy_change = (second_accuracy - first_accuracy) / first_accuracy * 100

    score_change = _mean([p.score for p in second]) - _mean([p.score for p in first])

    return PerformanceTrend(
        period=period,
        accuracy_change_pct=accuracy_change,
        score_change=score_change,
        trend=classify_change(accuracy_change),
        daily_points=list(points),
    )


def performance_trend(
    sessions: Iterable[PracticeSession],
    period: Period = "month",
    *,
    now: Optional[datetime] = None,
) -> PerformanceTrend:
    if period not in PERIOD_WINDOWS:
        raise ValueError(f"Unknown trend period: {period!r}")
    current_time = _as_utc(now or datetime.now(timezone.utc))
    relevant = _within(sessions, PERIOD_WINDOWS[period], current_time)
    return trend_from_points(daily_points(relevant), period)


def practice_pattern(
    sessions: Sequence[PracticeSession],
    *,
    now: Optional[datetime] = None,
    longest_streak: int = 0,
) -> PracticePattern:
    if not sessions:
        return PracticePattern(
            best_time_of_day="evening",
            optimal_session_length=15,
            consistency_score=0.0,
            sessions_per_week=0,
            longest_streak_days=longest_streak,
        )

    current_time = _as_utc(now or datetime.now(timezone.utc))

    by_time: "OrderedDict[str, List[float]]" = OrderedDict((slot, []) for slot in _TIME_OF_DAY_ORDER)
    for session in sessions:
        by_time[session.time_of_day].append(session.accuracy)

    best_time = "evening"
    best_accuracy = 0.0
    for slot, accuracies in by_time.items():
        if accuracies and _mean(accuracies) > best_accuracy:
            best_accuracy = _mean(accuracies)
            best_time = slot

    average_ms = _mean([float(s.duration) for s in sessions])
    last_30 = _within(sessions, timedelta(days=30), current_time)
    last_7 = _within(sessions, timedelta(days=7), current_time)

    return PracticePattern(
        best_time_of_day=best_time,
        optimal_session_length=round(average_ms / 60000),
        consistency_score=min(100.0, len(last_30) / 30 * 100 * 3.33),
        sessions_per_week=len(last_7),
        longest_streak_days=longest_streak,
    )


def streak_stats(sessions: Iterable[PracticeSession], *, now: Optional[datetime] = None) -> StreakStats:
    """Consecutive practice days; the current streak survives until a full day is missed."""
    days = sorted({_as_utc(s.timestamp).date() for s in sessions})
    if not days:
        return StreakStats(current=0, longest=0)

    longest = run = 1
    for previous, current in zip(days, days[1:]):
        run = run + 1 if current - previous == timedelta(days=1) else 1
        longest = max(longest, run)

    today: date = _as_utc(now or datetime.now(timezone.utc)).date()
    last = days[-1]
    current_streak = 0
    if (today - last).days <= 1:
        current_streak = 1
        for previous, current in zip(reversed(days[:-1]), reversed(days)):
            if current - previous != timedelta(days=1):
                break
            current_streak += 1

    return StreakStats(current=current_streak, longest=longest, last_practice_date=last.isoformat())


def skill_breakdown(sessions: Iterable[PracticeSession]) -> List[SkillBreakdown]:
    """Answer totals per practised category and per mode, in first-seen order."""
    totals: Dict[str, List[int]] = {}
    for session in sessions:
        keys = list(dict.fromkeys([*session.item_categories, session.mode]))
        for key in keys:
            bucket = totals.setdefault(key, [0, 0])
            bucket[0] += session.correct_answers
            bucket[1] += session.total_attempts
    return [
        SkillBreakdown(
            category=category,
            accuracy=(correct / total * 100) if total else 0.0,
            correct=correct,
            total=total,
        )
        for category, (correct, total) in totals.items()
    ]


__all__ = [
    "DailyPoint",
    "PerformanceTrend",
    "PracticePattern",
    "SkillBreakdown",
    "StreakStats",
    "classify_change",
    "daily_points",
    "performance_trend",
    "practice_pattern",
    "skill_breakdown",
    "streak_stats",
    "trend_from_points",
]
