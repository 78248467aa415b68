from datetime import timedelta

import pytest

import db
import practice_tracker
from practice_engines.analytics import (
    AnalyticsService,
    build_dashboard,
    generate_insights,
    next_level_date,
    plateau_detected,
    streak_risk,
)
from practice_engines.base import FixedClock
from practice_engines.caching import DEFAULT_TTL, StoredAnalyticsCache, ttl_from_env
from practice_engines.trends import PerformanceTrend, PracticePattern, StreakStats
from schemas import LearnerProfile

from helpers import daily_sessions


def _pattern(**overrides):
    values = dict(
        best_time_of_day="morning",
        optimal_session_length=15,
        consistency_score=60.0,
        sessions_per_week=3,
    )
    values.update(overrides)
    return PracticePattern(**values)


def test_stored_cache_round_trip_and_expiry(temp_db, now):
    clock = FixedClock(now)
    cache = StoredAnalyticsCache(timedelta(hours=1), clock=clock)

    cache.set("learner", {"answer": 42})
    assert cache.get("learner") == {"answer": 42}

    clock.advance(hours=1)
    assert cache.get("learner") is None

    cache.invalidate("learner")
    assert db.load_cached_analytics("learner") is None


def test_dashboard_is_cached_until_session_recorded(temp_db, now):
    clock = FixedClock(now)
    service = AnalyticsService(clock=clock)

    practice_tracker.record_session("learner", duration=600000, mode="quiz", correct_answers=8, total_attempts=10, now=now)
    first = service.dashboard("learner")
    assert first["performance_trend"]["daily_points"][0]["accuracy"] == pytest.approx(80.0)

    clock.advance(minutes=10)
    practice_tracker.record_session(
        "learner", duration=600000, mode="quiz", correct_answers=2, total_attempts=10, now=clock()
    )
    second = service.dashboard("learner")
    assert second["performance_trend"]["daily_points"][0]["accuracy"] == pytest.approx(50.0)
    assert service.dashboard("learner") == second


def test_dashboard_recomputes_after_ttl(temp_db, now):
    clock = FixedClock(now)
    service = AnalyticsService(StoredAnalyticsCache(timedelta(hours=1), clock=clock), clock=clock)
    first = service.dashboard("learner")

    clock.advance(hours=2)
    second = service.dashboard("learner")

    assert first["generated_at"] != second["generated_at"]


def test_build_dashboard_sections(now):
    sessions = daily_sessions(now, 8, accuracy=85.0)
    profile = LearnerProfile(user_id="learner", total_xp=1500, level=1, days_played=10)

    dashboard = build_dashboard(sessions, profile, now=now)

    assert dashboard["streak"]["current"] == 8
    assert dashboard["practice_pattern"]["longest_streak_days"] == 8
    assert dashboard["predictions"]["plateau_detected"] is True
    # 500 XP short at 150 XP/day
    assert dashboard["predictions"]["next_level_date"] == (now + timedelta(days=4)).date().isoformat()
    titles = [insight["title"] for insight in dashboard["insights"]]
    assert "8 Day Streak!" in titles


@pytest.mark.parametrize("score, risk", [(71, "low"), (70, "medium"), (41, "medium"), (40, "high")])
def test_streak_risk_bands(score, risk):
    assert streak_risk(score) == risk


def test_plateau_needs_two_days_and_flat_change():
    points = [object(), object()]
    assert plateau_detected(PerformanceTrend("month", 1.5, 0, "stable", points))
    assert not plateau_detected(PerformanceTrend("month", 3.0, 0, "stable", points))
    assert not plateau_detected(PerformanceTrend("month", 0.0, 0, "stable", []))


def test_next_level_date_limits(now):
    assert next_level_date(LearnerProfile(user_id="u"), now) is None
    slow = LearnerProfile(user_id="u", total_xp=10, level=5, days_played=10)
    assert next_level_date(slow, now) is None


def test_insights_rules():
    trend = PerformanceTrend("week", 12.4, 0, "improving")

    insights = generate_insights(trend, _pattern(consistency_score=85, optimal_session_length=5), StreakStats(1, 3))
    titles = [insight.title for insight in insights]

    assert titles == [
        "12% Improvement!",
        "Peak Performance: morning",
        "Consistency Champion!",
        "Build Your Streak",
        "Extend Your Sessions",
    ]


def test_declining_insight_and_low_consistency():
    trend = PerformanceTrend("month", -20.0, 0, "declining")

    insights = generate_insights(trend, _pattern(consistency_score=10), StreakStats(0, 0))

    assert insights[0].type == "negative"
    assert "dropped 20%" in insights[0].description
    assert any(insight.title == "Practice More Regularly" for insight in insights)


def test_ttl_from_env(monkeypatch):
    monkeypatch.setenv("ANALYTICS_CACHE_TTL_SECONDS", "90")
    assert ttl_from_env() == timedelta(seconds=90)

    monkeypatch.setenv("ANALYTICS_CACHE_TTL_SECONDS", "-5")
    assert ttl_from_env() == DEFAULT_TTL
