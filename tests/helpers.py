"""Builders shared by the practice engine tests."""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from schemas import ItemStat, PracticeSession, time_of_day_for


def stat(
    item_id: str,
    correct: int,
    total: int,
    *,
    category: str = "intervals",
    last_practiced: Optional[datetime] = None,
    interval_index: int = 0,
) -> ItemStat:
    return ItemStat(
        item_id=item_id,
        category=category,
        correct=correct,
        total=total,
        last_practiced=last_practiced,
        interval_index=interval_index,
    )


def session(
    timestamp: datetime,
    accuracy: float,
    *,
    score: float = 0.0,
    duration_minutes: float = 15,
    mode: str = "practice",
    categories: Iterable[str] = ("intervals",),
    correct: int = 0,
    total: int = 0,
    session_id: Optional[str] = None,
) -> PracticeSession:
    return PracticeSession(
        id=session_id or f"s-{timestamp.isoformat()}",
        timestamp=timestamp,
        duration=int(duration_minutes * 60000),
        mode=mode,
        score=score,
        accuracy=accuracy,
        correct_answers=correct,
        total_attempts=total,
        item_categories=list(categories),
        time_of_day=time_of_day_for(timestamp),
    )


def daily_sessions(end: datetime, days: int, accuracy: float = 80.0, **kwargs) -> List[PracticeSession]:
    """One session per day for ``days`` consecutive days ending at ``end``."""
    return [
        session(end - timedelta(days=offset), accuracy, **kwargs)
        for offset in range(days - 1, -1, -1)
    ]
