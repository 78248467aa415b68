"""Learning path manager over the skill dependency graph."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import db
from env_validation import get_env_float
from practice_engines.base import Clock, log_json, system_clock
from practice_engines.difficulty_manager import DifficultyManager, overall_accuracy
from practice_engines.spaced_repetition import MasteryCalculator, MasteryLevel
from practice_engines.trends import performance_trend
from schemas import ItemStat, LearnerProfile, LearningPath, PracticeSession, SkillNode
from skill_graph import (
    COMPLETE_PROGRESS,
    DEFAULT_SKILL_GRAPH,
    LOCKED_PROGRESS_CAP,
    SkillGraph,
    SkillTemplate,
)


_LOGGER = logging.getLogger(__name__)
RECOMMENDED_QUEUE_SIZE = 5


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _max_age() -> timedelta:
    hours = get_env_float("LEARNING_PATH_MAX_AGE_HOURS", 24.0)
    return timedelta(hours=max(hours, 0.0))


class UnknownSkillNodeError(KeyError):
    """Raised when a progress update names a node outside the path."""


class SkillNodeLockedError(ValueError):
    """Raised when progress is reported for a node whose prerequisites are incomplete."""


class ProgressEstimator(Protocol):
    def estimate(
        self,
        template: SkillTemplate,
        mastery: Optional[MasteryLevel],
        *,
        mastered: bool,
    ) -> int:
        """Return seeded progress (0-100) for ``template``."""
        ...


class MasteryProgressEstimator:
    """Seed node progress from category mastery, discounted by node tier.

    A mastered category completes all its nodes. Otherwise the category's
    mastery percentage is scaled down by 25% per tier above beginner and held
    below completion; categories without practice data start at zero.
    """

    tier_discount = 0.25

    def estimate(
        self,
        template: SkillTemplate,
        mastery: Optional[MasteryLevel],
        *,
        mastered: bool,
    ) -> int:
        if mastered:
            return COMPLETE_PROGRESS
        if mastery is None:
            return 0
        factor = max(0.0, 1 - self.tier_discount * template.difficulty_tier.rank)
        return min(LOCKED_PROGRESS_CAP, math.floor(mastery.percentage * factor))


def completion_pct(nodes: Sequence[SkillNode]) -> int:
    if not nodes:
        return 0
    completed = sum(1 for node in nodes if node.is_completed)
    # round half up
    return math.floor(100 * completed / len(nodes) + 0.5)


def recommended_queue(
    nodes: Iterable[SkillNode],
    focus_categories: Iterable[str],
    *,
    limit: int = RECOMMENDED_QUEUE_SIZE,
) -> List[str]:
    """Unlocked, incomplete nodes ordered for practice.

    Focus categories come first, then nodes already started, then easier
    tiers. The sort is stable, so template order breaks remaining ties.
    """
    focus = set(focus_categories)
    candidates = [node for node in nodes if node.is_unlocked and not node.is_completed]
    ordered = sorted(
        candidates,
        key=lambda node: (
            node.category not in focus,
            node.progress == 0,
            node.difficulty_tier.rank,
        ),
    )
    return [node.id for node in ordered[:limit]]


class LearningPathManager:
    """Builds and updates per-user learning paths.

    Path generation is pure over the supplied aggregates; ``get_or_generate``
    and ``record_progress`` are the storage-backed entry points.
    """

    def __init__(
        self,
        *,
        graph: SkillGraph = DEFAULT_SKILL_GRAPH,
        estimator: Optional[ProgressEstimator] = None,
        calculator: Optional[MasteryCalculator] = None,
        difficulty: Optional[DifficultyManager] = None,
        clock: Optional[Clock] = None,
        max_age: Optional[timedelta] = None,
    ) -> None:
        self.graph = graph
        self.estimator = estimator or MasteryProgressEstimator()
        self.calculator = calculator or MasteryCalculator()
        self.difficulty = difficulty or DifficultyManager()
        self.clock = clock or system_clock
        self.max_age = max_age if max_age is not None else _max_age()

    # ------------------------------------------------------------------
    def generate_path(
        self,
        user_id: str,
        item_stats: Sequence[ItemStat],
        session_history: Sequence[PracticeSession],
        *,
        profile: Optional[LearnerProfile] = None,
        previous: Optional[LearningPath] = None,
        now: Optional[datetime] = None,
    ) -> LearningPath:
        current_time = now or self.clock()
        mastery = self.calculator.mastery_by_category(item_stats)
        mastered = set(self.calculator.mastered_categories(item_stats))
        focus = self.calculator.improvement_categories(item_stats)

        previous_progress: Dict[str, int] = {}
        if previous is not None:
            previous_progress = {node.id: node.progress for node in previous.skill_nodes}

        seeded: Dict[str, int] = {}
        for template in self.graph.templates():
            estimate = self.estimator.estimate(
                template,
                mastery.get(template.category),
                mastered=template.category in mastered,
            )
            seeded[template.id] = max(estimate, previous_progress.get(template.id, 0))

        nodes = self.graph.build_nodes(seeded)
        queue = recommended_queue(nodes, focus)

        trend = performance_trend(session_history, "month", now=current_time)
        total_xp = profile.total_xp if profile is not None else 0
        difficulty_state = self.difficulty.adaptive_difficulty(
            total_xp,
            overall_accuracy(item_stats),
            trend,
            now=current_time,
        )

        path = LearningPath(
            user_id=user_id,
            current_node=queue[0] if queue else None,
            recommended_queue=queue,
            skill_nodes=nodes,
            completion_pct=completion_pct(nodes),
            focus_categories=focus,
            difficulty_state=difficulty_state,
            last_updated=current_time,
        )
        log_json(
            _LOGGER,
            "learning_path_generated",
            {
                "user_id": user_id,
                "completion_pct": path.completion_pct,
                "current_node": path.current_node,
                "recommended_queue": queue,
                "focus_categories": focus,
                "mastered_categories": sorted(mastered),
                "tier": difficulty_state.tier.value,
                "carried_over": previous is not None,
            },
        )
        return path

    # ------------------------------------------------------------------
    def update_progress(
        self,
        path: LearningPath,
        node_id: str,
        progress: int,
        *,
        now: Optional[datetime] = None,
    ) -> LearningPath:
        """Return a copy of ``path`` with ``node_id`` progressed.

        Progress never decreases, so repeating an update is harmless and a
        completed node stays completed.
        """
        updated = path.model_copy(deep=True)
        nodes = {node.id: node for node in updated.skill_nodes}
        node = nodes.get(node_id)
        if node is None:
            raise UnknownSkillNodeError(node_id)
        if not node.is_unlocked:
            raise SkillNodeLockedError(f"Skill node {node_id} is locked")

        before = node.progress
        node.progress = max(before, max(0, min(COMPLETE_PROGRESS, int(progress))))
        newly_completed = not node.is_completed and node.progress == COMPLETE_PROGRESS
        node.is_completed = node.progress == COMPLETE_PROGRESS

        unlocked: List[str] = []
        if newly_completed and node_id in self.graph:
            unlocked = self.graph.propagate_unlocks(nodes, node_id)

        updated.recommended_queue = recommended_queue(updated.skill_nodes, updated.focus_categories)
        updated.current_node = updated.recommended_queue[0] if updated.recommended_queue else None
        updated.completion_pct = completion_pct(updated.skill_nodes)
        updated.last_updated = now or self.clock()

        log_json(
            _LOGGER,
            "skill_progress_updated",
            {
                "user_id": updated.user_id,
                "node_id": node_id,
                "progress_before": before,
                "progress_after": node.progress,
                "completed": node.is_completed,
                "unlocked": unlocked,
                "completion_pct": updated.completion_pct,
            },
        )
        return updated

    # ------------------------------------------------------------------
    def is_stale(self, path: LearningPath, now: Optional[datetime] = None) -> bool:
        return _as_utc(now or self.clock()) - _as_utc(path.last_updated) >= self.max_age

    def get_or_generate(
        self,
        user_id: str,
        *,
        now: Optional[datetime] = None,
        force: bool = False,
    ) -> LearningPath:
        """Return the stored path, regenerating it when missing or stale."""
        current_time = now or self.clock()
        stored = db.load_learning_path(user_id)
        if stored is not None and not force and not self.is_stale(stored, current_time):
            return stored

        path = self.generate_path(
            user_id,
            db.load_item_stats(user_id),
            db.load_sessions(user_id),
            profile=db.load_profile(user_id),
            previous=stored,
            now=current_time,
        )
        db.save_learning_path(user_id, path)
        return path

    def record_progress(
        self,
        user_id: str,
        node_id: str,
        progress: int,
        *,
        now: Optional[datetime] = None,
    ) -> LearningPath:
        current_time = now or self.clock()
        path = self.get_or_generate(user_id, now=current_time)
        updated = self.update_progress(path, node_id, progress, now=current_time)
        db.save_learning_path(user_id, updated)
        return updated


# ---------------------------------------------------------------------
@dataclass
class PathStats:
    total_skills: int
    completed: int
    in_progress: int
    locked: int
    total_xp_available: int
    earned_xp: int
    estimated_hours_remaining: float


def estimate_completion_minutes(path: LearningPath) -> float:
    """Remaining practice time, prorated by each incomplete node's progress."""
    return sum(
        node.estimated_minutes * (COMPLETE_PROGRESS - node.progress) / COMPLETE_PROGRESS
        for node in path.skill_nodes
        if not node.is_completed
    )


def path_stats(path: LearningPath) -> PathStats:
    nodes = path.skill_nodes
    return PathStats(
        total_skills=len(nodes),
        completed=sum(1 for n in nodes if n.is_completed),
        in_progress=sum(1 for n in nodes if n.progress > 0 and not n.is_completed),
        locked=sum(1 for n in nodes if not n.is_unlocked),
        total_xp_available=sum(n.reward_xp for n in nodes),
        earned_xp=sum(n.reward_xp for n in nodes if n.is_completed),
        estimated_hours_remaining=estimate_completion_minutes(path) / 60,
    )


def nodes_by_category(path: LearningPath, category: str) -> List[SkillNode]:
    return [node for node in path.skill_nodes if node.category == category]


def next_recommended_node(path: LearningPath) -> Optional[SkillNode]:
    if not path.recommended_queue:
        return None
    return path.node(path.recommended_queue[0])


__all__ = [
    "LearningPathManager",
    "MasteryProgressEstimator",
    "PathStats",
    "ProgressEstimator",
    "SkillNodeLockedError",
    "UnknownSkillNodeError",
    "completion_pct",
    "estimate_completion_minutes",
    "next_recommended_node",
    "nodes_by_category",
    "path_stats",
    "recommended_queue",
]
