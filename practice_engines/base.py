"""Shared seams for the practice engines: clocks and pluggable policies."""

from __future__ import annotations

import json
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Protocol

if TYPE_CHECKING:
    from practice_engines.trends import PerformanceTrend

Clock = Callable[[], datetime]


def log_json(logger: logging.Logger, event: str, payload: Dict[str, Any]) -> None:
    """Emit one structured JSON record for an engine decision."""

    record = {"event": event, **payload}
    try:
        message = json.dumps(record, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError):
        fallback = {
            "event": event,
            "error": "serialization_failed",
            "payload_repr": repr(payload),
        }
        message = json.dumps(fallback, ensure_ascii=False, sort_keys=True)
    logger.info(message)


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


class FixedClock:
    """Clock returning a settable instant; used for deterministic runs."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


class ChallengePolicy(Protocol):
    def choose_challenge(self, streak: int, trend: Optional["PerformanceTrend"]) -> bool:
        """Return True to plan a challenge session instead of a review."""
        ...


class StreakChallengePolicy:
    """Challenge learners on a streak unless their accuracy is declining."""

    def __init__(self, min_streak: int = 3) -> None:
        self.min_streak = min_streak

    def choose_challenge(self, streak: int, trend: Optional["PerformanceTrend"]) -> bool:
        if streak < self.min_streak:
            return False
        return trend is None or trend.trend != "declining"


class RandomChallengePolicy:
    """Coin flip between challenge and review for learners on a streak."""

    def __init__(self, rng: Optional[random.Random] = None, min_streak: int = 3) -> None:
        self.rng = rng or random.Random()
        self.min_streak = min_streak

    def choose_challenge(self, streak: int, trend: Optional["PerformanceTrend"]) -> bool:
        if streak < self.min_streak:
            return False
        return self.rng.random() > 0.5


def challenge_policy_from_name(name: str, *, seed: Optional[int] = None) -> ChallengePolicy:
    key = (name or "streak").strip().lower()
    if key == "random":
        return RandomChallengePolicy(random.Random(seed))
    if key == "streak":
        return StreakChallengePolicy()
    raise ValueError(f"Unknown challenge policy: {name!r}")
