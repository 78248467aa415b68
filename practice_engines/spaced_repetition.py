"""Mastery scoring and spaced-repetition priority queue for practice items."""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from practice_engines.base import Clock
from schemas import ItemStat

# Days between reviews for each rung of the ladder.
INTERVAL_LADDER: tuple[int, ...] = (1, 2, 4, 7, 14, 30, 60)

WEAK_THRESHOLD = 0.6
STRONG_THRESHOLD = 0.85
MIN_ATTEMPTS_THRESHOLD = 3
MAX_ATTEMPT_BONUS = 20
MAX_RECENCY_BONUS = 30
NEVER_PRACTICED_BONUS = 40


@dataclass
class PriorityItem:
    item_id: str
    category: str
    accuracy: float
    total_attempts: int
    priority: float
    interval_index: int
    next_review_due: Optional[datetime] = None


@dataclass
class MasteryLevel:
    level: int         # 0 to 5
    percentage: float  # 0 to 100


@dataclass
class PracticeRecommendation:
    items: List[PriorityItem]
    focus_category: Optional[str]
    message: str


def next_interval_index(current: int, accuracy: float) -> int:
    """Move an item along the interval ladder after a review at ``accuracy``."""
    if accuracy >= STRONG_THRESHOLD:
        return min(current + 1, len(INTERVAL_LADDER) - 1)
    if accuracy < WEAK_THRESHOLD:
        return 0
    return current


def days_since(moment: Optional[datetime], now: datetime) -> Optional[int]:
    if moment is None:
        return None
    return max(0, (_as_utc(now) - _as_utc(moment)).days)


def priority_score(accuracy: float, total_attempts: int, days_since_practice: Optional[int]) -> float:
    """Urgency of practising an item; higher is more urgent."""
    priority = 0.0

    if accuracy < WEAK_THRESHOLD:
        priority += (1 - accuracy) * 100
    elif accuracy < STRONG_THRESHOLD:
        priority += (1 - accuracy) * 50

    if total_attempts >= MIN_ATTEMPTS_THRESHOLD and accuracy < STRONG_THRESHOLD:
        priority += min(total_attempts, MAX_ATTEMPT_BONUS)

    if days_since_practice is None:
        priority += NEVER_PRACTICED_BONUS
    else:
        priority += min(days_since_practice * 2, MAX_RECENCY_BONUS)

    return priority


class MasteryCalculator:
    """Turns per-item accuracy aggregates into practice priorities and mastery."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock

    def _now(self, now: Optional[datetime]) -> datetime:
        if now is not None:
            return _as_utc(now)
        if self._clock is not None:
            return _as_utc(self._clock())
        return datetime.now(timezone.utc)

    def compute_priority_queue(
        self,
        item_stats: Iterable[ItemStat],
        *,
        now: Optional[datetime] = None,
    ) -> List[PriorityItem]:
        """Return practised items ordered by descending priority.

        Items without attempts are skipped. ``sorted`` is stable, so items with
        equal priority keep their input order.
        """
        current_time = self._now(now)
        items: List[PriorityItem] = []
        for stat in item_stats:
            if stat.total < 1:
                continue
            accuracy = stat.accuracy
            # the stored index already reflects the latest answer
            index = stat.interval_index
            due = None
            if stat.last_practiced is not None:
                due = _as_utc(stat.last_practiced) + timedelta(days=INTERVAL_LADDER[index])
            items.append(
                PriorityItem(
                    item_id=stat.item_id,
                    category=stat.category,
                    accuracy=accuracy,
                    total_attempts=stat.total,
                    priority=priority_score(
                        accuracy, stat.total, days_since(stat.last_practiced, current_time)
                    ),
                    interval_index=index,
                    next_review_due=due,
                )
            )
        return sorted(items, key=lambda item: item.priority, reverse=True)

    def mastery(self, category_stats: Iterable[ItemStat]) -> MasteryLevel:
        """Mastery over items with enough attempts to be meaningful."""
        qualifying = [stat for stat in category_stats if stat.total >= MIN_ATTEMPTS_THRESHOLD]
        if not qualifying:
            return MasteryLevel(level=0, percentage=0.0)

        accuracies = [stat.accuracy for stat in qualifying]
        average = sum(accuracies) / len(accuracies)
        mastered = sum(1 for accuracy in accuracies if accuracy >= STRONG_THRESHOLD)
        level = max(0, min(5, math.floor(average * 5)))
        return MasteryLevel(level=level, percentage=mastered / len(qualifying) * 100)

    def mastery_by_category(self, item_stats: Iterable[ItemStat]) -> Dict[str, MasteryLevel]:
        grouped: Dict[str, List[ItemStat]] = {}
        for stat in item_stats:
            grouped.setdefault(stat.category, []).append(stat)
        return {category: self.mastery(stats) for category, stats in grouped.items()}

    def weak_areas(self, item_stats: Iterable[ItemStat]) -> List[ItemStat]:
        """Items with enough attempts and weak accuracy, worst first."""
        weak = [
            stat
            for stat in item_stats
            if stat.total >= MIN_ATTEMPTS_THRESHOLD and stat.accuracy < WEAK_THRESHOLD
        ]
        return sorted(weak, key=lambda stat: stat.accuracy)

    def improvement_categories(self, item_stats: Sequence[ItemStat]) -> List[str]:
        """Categories holding weak items, ordered by their worst item."""
        categories: List[str] = []
        for stat in self.weak_areas(item_stats):
            if stat.category not in categories:
                categories.append(stat.category)
        return categories

    def mastered_categories(self, item_stats: Sequence[ItemStat]) -> List[str]:
        # A category without qualifying items reports 0%, so it never counts as mastered.
        return [
            category
            for category, level in self.mastery_by_category(item_stats).items()
            if level.percentage >= 100.0
        ]

    def due_reviews(
        self,
        item_stats: Iterable[ItemStat],
        *,
        now: Optional[datetime] = None,
    ) -> List[PriorityItem]:
        """Queue items whose next review date has passed."""
        current_time = self._now(now)
        return [
            item
            for item in self.compute_priority_queue(item_stats, now=current_time)
            if item.next_review_due is not None and item.next_review_due <= current_time
        ]

    def practice_recommendations(
        self,
        item_stats: Sequence[ItemStat],
        *,
        now: Optional[datetime] = None,
        limit: int = 10,
    ) -> PracticeRecommendation:
        items = self.compute_priority_queue(item_stats, now=now)
        if not items:
            return PracticeRecommendation(
                items=[],
                focus_category=None,
                message="Start practicing to get personalized recommendations!",
            )

        weak = self.weak_areas(item_stats)
        counts = Counter(stat.category for stat in weak)
        focus = counts.most_common(1)[0][0] if counts else None

        if not weak:
            message = "Great job! You're doing well across all areas. Keep practicing to maintain your skills!"
        elif len(weak) <= 2:
            message = f"Focus on improving: {', '.join(stat.item_id for stat in weak)}"
        else:
            message = f"You have {len(weak)} items that need practice. Focus on {focus} training today!"

        return PracticeRecommendation(items=items[:limit], focus_category=focus, message=message)

    @staticmethod
    def review_summary(queue: Sequence[PriorityItem]) -> Dict[str, Any]:
        """Distribution of queue items over the interval ladder."""
        distribution = {str(days): 0 for days in INTERVAL_LADDER}
        for item in queue:
            distribution[str(INTERVAL_LADDER[item.interval_index])] += 1
        return {
            "total_items": len(queue),
            "interval_distribution": distribution,
            "average_accuracy": round(sum(i.accuracy for i in queue) / len(queue), 3) if queue else 0.0,
        }


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


_DEFAULT_CALCULATOR = MasteryCalculator()


def compute_priority_queue(item_stats: Iterable[ItemStat], *, now: Optional[datetime] = None) -> List[PriorityItem]:
    return _DEFAULT_CALCULATOR.compute_priority_queue(item_stats, now=now)


def mastery(category_stats: Iterable[ItemStat]) -> MasteryLevel:
    return _DEFAULT_CALCULATOR.mastery(category_stats)


def weak_areas(item_stats: Iterable[ItemStat]) -> List[ItemStat]:
    return _DEFAULT_CALCULATOR.weak_areas(item_stats)


__all__ = [
    "INTERVAL_LADDER",
    "MasteryCalculator",
    "MasteryLevel",
    "PracticeRecommendation",
    "PriorityItem",
    "compute_priority_queue",
    "mastery",
    "next_interval_index",
    "priority_score",
    "weak_areas",
]
