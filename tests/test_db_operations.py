"""Test cases for db operations."""

import sqlite3
from datetime import timedelta

import pytest

import db
from db import StorageError
from schemas import LearnerProfile, LearningPath

from helpers import session, stat


def test_item_stats_upsert_keeps_position(temp_db, now):
    db.save_item_stats("learner", [stat("x", 1, 2), stat("y", 0, 1, category="chords")])
    db.save_item_stats("learner", [stat("z", 1, 1), stat("x", 2, 3, last_practiced=now)])

    stored = db.load_item_stats("learner")

    assert [s.item_id for s in stored] == ["x", "y", "z"]
    assert (stored[0].correct, stored[0].total) == (2, 3)
    assert stored[0].last_practiced == now
    assert [s.item_id for s in db.load_item_stats("learner", category="chords")] == ["y"]
    assert db.load_item_stats("someone_else") == []


def test_session_log_is_capped(temp_db, now, monkeypatch):
    monkeypatch.setattr(db, "SESSION_LOG_CAP", 3)
    for offset in range(5):
        db.append_session("learner", session(now + timedelta(minutes=offset), 50, session_id=f"s{offset}"))

    assert [s.id for s in db.load_sessions("learner")] == ["s2", "s3", "s4"]
    assert db.count_sessions("learner") == 3


def test_learning_path_round_trip(temp_db, now):
    assert db.load_learning_path("learner") is None
    path = LearningPath(user_id="learner", completion_pct=12, focus_categories=["rhythm"], last_updated=now)

    db.save_learning_path("learner", path)
    db.save_learning_path("learner", path.model_copy(update={"completion_pct": 20}))

    stored = db.load_learning_path("learner")
    assert stored.completion_pct == 20
    assert stored.focus_categories == ["rhythm"]


def test_profile_defaults_and_round_trip(temp_db):
    assert db.load_profile("learner") == LearnerProfile(user_id="learner")

    db.save_profile(LearnerProfile(user_id="learner", total_xp=1500, level=1, days_played=4))

    assert db.load_profile("learner").days_played == 4


def test_cached_analytics_round_trip(temp_db, now):
    db.save_cached_analytics("learner", {"insights": [], "streak": {"current": 2}}, now)

    payload, cached_at = db.load_cached_analytics("learner")

    assert payload["streak"] == {"current": 2}
    assert cached_at == now
    db.clear_cached_analytics("learner")
    assert db.load_cached_analytics("learner") is None


def test_sqlite_errors_become_storage_errors(temp_db):
    with db._pool.get_connection() as con:
        con.execute("DROP TABLE item_stats")
        con.commit()

    with pytest.raises(StorageError) as excinfo:
        db.load_item_stats("learner")
    assert isinstance(excinfo.value.__cause__, sqlite3.Error)

    with pytest.raises(StorageError):
        db.save_item_stats("learner", [stat("x", 1, 1)])
