"""Reporting calls that mutate practice state: item results and finished sessions."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

import db
from practice_engines.spaced_repetition import next_interval_index
from schemas import ItemStat, PracticeSession, time_of_day_for

logger = logging.getLogger(__name__)

XP_PER_LEVEL = 1000


def _now(now: Optional[datetime]) -> datetime:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def record_practice_result(
    user_id: str,
    item_id: str,
    category: str,
    correct: bool,
    *,
    now: Optional[datetime] = None,
) -> ItemStat:
    """Add one answer to the item's aggregate and advance its review interval."""
    moment = _now(now)
    existing = next((s for s in db.load_item_stats(user_id) if s.item_id == item_id), None)
    if existing is None:
        existing = ItemStat(item_id=item_id, category=category)

    correct_count = existing.correct + (1 if correct else 0)
    total = existing.total + 1
    updated = ItemStat(
        item_id=item_id,
        category=category,
        correct=correct_count,
        total=total,
        last_practiced=moment,
        interval_index=next_interval_index(existing.interval_index, correct_count / total),
    )
    db.save_item_stats(user_id, [updated])
    logger.debug(
        "Recorded %s answer for %s/%s (%d/%d)",
        "correct" if correct else "incorrect",
        user_id,
        item_id,
        updated.correct,
        updated.total,
    )
    return updated


def record_session(
    user_id: str,
    *,
    duration: int,
    mode: str,
    score: float = 0.0,
    correct_answers: int = 0,
    total_attempts: int = 0,
    item_categories: Iterable[str] = (),
    xp_earned: int = 0,
    now: Optional[datetime] = None,
    session_id: Optional[str] = None,
) -> PracticeSession:
    """Append a finished session, credit its XP and drop the cached dashboard."""
    moment = _now(now)
    previous = db.load_sessions(user_id)

    session = PracticeSession(
        id=session_id or f"session_{uuid.uuid4().hex}",
        timestamp=moment,
        duration=duration,
        mode=mode,
        score=score,
        accuracy=(correct_answers / total_attempts * 100) if total_attempts else 0.0,
        correct_answers=correct_answers,
        total_attempts=total_attempts,
        item_categories=list(dict.fromkeys(item_categories)),
        time_of_day=time_of_day_for(moment),
    )
    db.append_session(user_id, session)

    profile = db.load_profile(user_id)
    played_today = any(
        s.timestamp.astimezone(timezone.utc).date() == moment.astimezone(timezone.utc).date()
        for s in previous
    )
    total_xp = profile.total_xp + max(0, xp_earned)
    db.save_profile(
        profile.model_copy(
            update={
                "total_xp": total_xp,
                "level": max(1, total_xp // XP_PER_LEVEL),
                "days_played": profile.days_played + (0 if played_today else 1),
            }
        )
    )
    db.clear_cached_analytics(user_id)
    logger.info("Recorded %s session %s for %s", mode, session.id, user_id)
    return session
