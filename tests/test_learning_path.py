from datetime import timedelta

import pytest

import db
from learning_path import (
    LearningPathManager,
    MasteryProgressEstimator,
    SkillNodeLockedError,
    UnknownSkillNodeError,
    completion_pct,
    estimate_completion_minutes,
    next_recommended_node,
    nodes_by_category,
    path_stats,
)
from practice_engines.base import FixedClock
from practice_engines.spaced_repetition import MasteryLevel
from schemas import DifficultyTier, LearnerProfile
from skill_graph import DEFAULT_SKILL_GRAPH, SKILL_TREE_TEMPLATE

from helpers import session, stat


class ZeroEstimator:
    def estimate(self, template, mastery, *, mastered):
        return 0


@pytest.fixture
def manager(now):
    return LearningPathManager(estimator=ZeroEstimator(), clock=FixedClock(now))


def _fresh_path(manager, user_id="learner"):
    return manager.generate_path(user_id, [], [])


def test_fresh_path_unlocks_roots_only(manager):
    path = _fresh_path(manager)

    unlocked = {node.id for node in path.skill_nodes if node.is_unlocked}
    roots = {t.id for t in SKILL_TREE_TEMPLATE if not t.prerequisites}
    assert unlocked == roots
    assert path.completion_pct == 0
    assert len(path.recommended_queue) == 5
    assert path.current_node == path.recommended_queue[0]
    assert path.difficulty_state.tier is DifficultyTier.BEGINNER


def test_queue_prefers_focus_categories(manager):
    stats = [stat("r1", 1, 10, category="rhythm"), stat("i1", 9, 10, category="intervals")]

    path = manager.generate_path("learner", stats, [])

    assert path.focus_categories == ["rhythm"]
    assert path.recommended_queue[0] == "rhythm_1"


def test_queue_prefers_started_nodes(manager):
    path = _fresh_path(manager)
    started = manager.update_progress(path, "ear_1", 30)

    assert started.recommended_queue[0] == "ear_1"


def test_unlock_is_order_independent(manager):
    path = _fresh_path(manager)

    left = manager.update_progress(manager.update_progress(path, "sight_1", 100), "sight_2", 100)
    right = manager.update_progress(manager.update_progress(path, "sight_2", 100), "sight_1", 100)

    after_one = manager.update_progress(path, "sight_1", 100)
    assert not after_one.node("sight_3").is_unlocked

    assert left.node("sight_3").is_unlocked
    assert right.node("sight_3").is_unlocked
    assert [n.model_dump(exclude={"progress"}) for n in left.skill_nodes] == [
        n.model_dump(exclude={"progress"}) for n in right.skill_nodes
    ]


def test_update_is_idempotent_and_monotonic(manager):
    path = _fresh_path(manager)

    once = manager.update_progress(path, "int_1", 100)
    twice = manager.update_progress(once, "int_1", 100)
    lowered = manager.update_progress(twice, "int_1", 20)

    assert twice.node("int_1").is_completed
    assert lowered.node("int_1").progress == 100
    assert lowered.node("int_2").is_unlocked
    assert twice.completion_pct == once.completion_pct == 4


def test_update_returns_new_copy(manager):
    path = _fresh_path(manager)

    updated = manager.update_progress(path, "int_1", 60)

    assert path.node("int_1").progress == 0
    assert updated.node("int_1").progress == 60


def test_update_clamps_progress(manager):
    path = _fresh_path(manager)

    assert manager.update_progress(path, "int_1", 250).node("int_1").progress == 100


def test_unknown_node_raises(manager):
    with pytest.raises(UnknownSkillNodeError):
        manager.update_progress(_fresh_path(manager), "nope", 10)


def test_locked_node_raises(manager):
    with pytest.raises(SkillNodeLockedError):
        manager.update_progress(_fresh_path(manager), "chord_5", 100)


def test_no_completed_node_with_incomplete_prerequisite(manager):
    path = _fresh_path(manager)
    for node_id in ("int_1", "int_2", "chord_1", "chord_2", "ear_1"):
        path = manager.update_progress(path, node_id, 100)

    nodes = {node.id: node for node in path.skill_nodes}
    for node in nodes.values():
        if node.is_completed:
            assert all(nodes[p].is_completed for p in node.prerequisites)
    assert nodes["ear_2"].is_unlocked
    assert not nodes["ear_3"].is_completed


def test_completion_pct_rounds_half_up(manager):
    path = _fresh_path(manager)
    nodes = [n.model_copy(update={"is_completed": i < 1}) for i, n in enumerate(path.skill_nodes[:8])]

    # 1 of 8 is 12.5%
    assert completion_pct(nodes) == 13
    assert completion_pct([]) == 0


def test_mastery_estimator():
    estimator = MasteryProgressEstimator()
    beginner, advanced = SKILL_TREE_TEMPLATE[0], SKILL_TREE_TEMPLATE[3]

    assert estimator.estimate(beginner, MasteryLevel(4, 100.0), mastered=True) == 100
    assert estimator.estimate(beginner, None, mastered=False) == 0
    assert estimator.estimate(beginner, MasteryLevel(3, 60.0), mastered=False) == 60
    assert estimator.estimate(advanced, MasteryLevel(3, 60.0), mastered=False) == 30


def test_mastered_category_completes_reachable_nodes(now):
    manager = LearningPathManager(clock=FixedClock(now))
    stats = [stat("i1", 10, 10, category="intervals"), stat("i2", 9, 10, category="intervals")]

    path = manager.generate_path("learner", stats, [])

    interval_nodes = nodes_by_category(path, "intervals")
    assert all(node.is_completed for node in interval_nodes)
    assert path.node("chord_2").progress == 0
    assert path.completion_pct == 20


def test_previous_progress_is_kept(manager):
    first = manager.update_progress(_fresh_path(manager), "scale_1", 70)

    regenerated = manager.generate_path("learner", [], [], previous=first)

    assert regenerated.node("scale_1").progress == 70


def test_difficulty_uses_profile_and_history(manager, now):
    stats = [stat("a", 88, 100)]
    sessions = [session(now - timedelta(days=1), 80)]

    path = manager.generate_path(
        "learner", stats, sessions, profile=LearnerProfile(user_id="learner", total_xp=6000)
    )

    assert path.difficulty_state.tier is DifficultyTier.EXPERT


def test_path_stats_and_estimates(manager):
    path = manager.update_progress(_fresh_path(manager), "int_1", 100)
    path = manager.update_progress(path, "chord_1", 50)

    stats = path_stats(path)

    assert stats.total_skills == 25
    assert stats.completed == 1
    assert stats.in_progress == 1
    assert stats.earned_xp == 50
    total_minutes = sum(t.estimated_minutes for t in SKILL_TREE_TEMPLATE)
    assert estimate_completion_minutes(path) == pytest.approx(total_minutes - 10 - 6)
    assert stats.estimated_hours_remaining == pytest.approx((total_minutes - 16) / 60)
    assert next_recommended_node(path).id == path.recommended_queue[0]


def test_get_or_generate_reuses_until_stale(temp_db, now):
    clock = FixedClock(now)
    manager = LearningPathManager(estimator=ZeroEstimator(), clock=clock, max_age=timedelta(hours=24))

    first = manager.get_or_generate("learner")
    db.save_item_stats("learner", [stat("r1", 1, 10, category="rhythm")])

    clock.advance(hours=23)
    assert manager.get_or_generate("learner").focus_categories == first.focus_categories == []

    clock.advance(hours=2)
    refreshed = manager.get_or_generate("learner")
    assert refreshed.focus_categories == ["rhythm"]
    assert db.load_learning_path("learner").focus_categories == ["rhythm"]


def test_record_progress_persists(temp_db, now):
    manager = LearningPathManager(estimator=ZeroEstimator(), clock=FixedClock(now))

    manager.record_progress("learner", "int_1", 100)

    stored = db.load_learning_path("learner")
    assert stored.node("int_1").is_completed
    assert stored.node("int_2").is_unlocked
    assert len(stored.skill_nodes) == len(DEFAULT_SKILL_GRAPH)


def test_staleness_accepts_naive_times(manager, now):
    path = _fresh_path(manager)
    naive_now = now.replace(tzinfo=None)

    assert not manager.is_stale(path, naive_now + timedelta(hours=1))
    assert manager.is_stale(path, naive_now + timedelta(hours=25))
    assert manager.is_stale(path.model_copy(update={"last_updated": naive_now}), now + timedelta(days=2))
