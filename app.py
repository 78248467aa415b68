# app.py — Practice Engine HTTP surface
# - Thin JSON endpoints over the practice engines
# - Storage failures map to 503, unknown skill nodes to 404, locked nodes to 409

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

import db
import practice_tracker
from learning_path import (
    LearningPathManager,
    SkillNodeLockedError,
    UnknownSkillNodeError,
    path_stats,
)
from practice_engines.analytics import AnalyticsService, plateau_detected
from practice_engines.base import challenge_policy_from_name
from practice_engines.coach import daily_recommendation
from practice_engines.difficulty_manager import DifficultyManager, overall_accuracy
from practice_engines.session_planner import SessionPlanner
from practice_engines.spaced_repetition import MasteryCalculator
from practice_engines.trends import performance_trend, practice_pattern, streak_stats
from schemas import (
    PracticeResultRequest,
    PracticeSessionRequest,
    ProgressUpdateRequest,
    dump_model,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        # Validate environment variables first
        from env_validation import validate_environment
        validate_environment()

        global _SESSION_PLANNER
        _SESSION_PLANNER = _build_session_planner()
        db.init()
        logger.info(
            "Practice engine ready (db=%s, challenge_policy=%s)",
            db.DB_PATH,
            os.getenv("CHALLENGE_POLICY", "streak"),
        )
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Practice Engine", version="1.0.0", lifespan=_lifespan)


def _challenge_seed() -> Optional[int]:
    raw = os.getenv("CHALLENGE_POLICY_SEED")
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer CHALLENGE_POLICY_SEED=%r", raw)
        return None


MASTERY_CALCULATOR = MasteryCalculator()
DIFFICULTY_MANAGER = DifficultyManager()
LEARNING_PATH_MANAGER = LearningPathManager(calculator=MASTERY_CALCULATOR, difficulty=DIFFICULTY_MANAGER)
_SESSION_PLANNER: Optional[SessionPlanner] = None
ANALYTICS = AnalyticsService()


def _build_session_planner() -> SessionPlanner:
    policy = challenge_policy_from_name(os.getenv("CHALLENGE_POLICY", "streak"), seed=_challenge_seed())
    return SessionPlanner(policy=policy, calculator=MASTERY_CALCULATOR)


def session_planner() -> SessionPlanner:
    """Planner for the configured challenge policy, built on first use."""
    global _SESSION_PLANNER
    if _SESSION_PLANNER is None:
        _SESSION_PLANNER = _build_session_planner()
    return _SESSION_PLANNER


@app.exception_handler(db.StorageError)
async def _storage_error(_: Request, exc: db.StorageError):
    logger.error("Storage failure: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "practice store unavailable"})


def _require_user(user_id: str) -> str:
    user_id = (user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id required")
    return user_id


@app.post("/practice/result")
def practice_result(req: PracticeResultRequest):
    stat = practice_tracker.record_practice_result(req.user_id, req.item_id, req.category, req.correct)
    payload = dump_model(stat)
    payload["accuracy"] = stat.accuracy
    return payload


@app.post("/practice/session")
def practice_session(req: PracticeSessionRequest):
    try:
        session = practice_tracker.record_session(
            req.user_id,
            duration=req.duration,
            mode=req.mode,
            score=req.score,
            correct_answers=req.correct_answers,
            total_attempts=req.total_attempts,
            item_categories=req.item_categories,
            xp_earned=req.xp_earned,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return dump_model(session)


@app.get("/practice/queue")
def practice_queue(user_id: str, limit: int = 10):
    user_id = _require_user(user_id)
    if limit < 1:
        raise HTTPException(status_code=400, detail="limit must be positive")
    stats = db.load_item_stats(user_id)
    recommendation = MASTERY_CALCULATOR.practice_recommendations(stats, limit=limit)
    full_queue = MASTERY_CALCULATOR.compute_priority_queue(stats)
    return {
        "user_id": user_id,
        "items": [asdict(item) for item in recommendation.items],
        "focus_category": recommendation.focus_category,
        "message": recommendation.message,
        "due_reviews": [item.item_id for item in MASTERY_CALCULATOR.due_reviews(stats)],
        "summary": MASTERY_CALCULATOR.review_summary(full_queue),
    }


@app.get("/learning-path")
def learning_path(user_id: str, refresh: bool = False):
    user_id = _require_user(user_id)
    path = LEARNING_PATH_MANAGER.get_or_generate(user_id, force=refresh)
    payload = dump_model(path)
    payload["stats"] = asdict(path_stats(path))
    return payload


@app.post("/learning-path/progress")
def learning_path_progress(req: ProgressUpdateRequest):
    try:
        path = LEARNING_PATH_MANAGER.record_progress(req.user_id, req.node_id, req.progress)
    except UnknownSkillNodeError as exc:
        raise HTTPException(status_code=404, detail=f"unknown skill node: {req.node_id}") from exc
    except SkillNodeLockedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return dump_model(path)


@app.get("/difficulty")
def difficulty(user_id: str):
    user_id = _require_user(user_id)
    stats = db.load_item_stats(user_id)
    trend = performance_trend(db.load_sessions(user_id), "month")
    state = DIFFICULTY_MANAGER.adaptive_difficulty(
        db.load_profile(user_id).total_xp,
        overall_accuracy(stats),
        trend,
    )
    return dump_model(state)


@app.get("/session/recommend")
def session_recommend(user_id: str, minutes: float):
    user_id = _require_user(user_id)
    planner = session_planner()
    try:
        plan = planner.recommend(
            minutes,
            db.load_item_stats(user_id),
            db.load_sessions(user_id),
            db.load_learning_path(user_id),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return plan.to_dict()


@app.get("/analytics/dashboard")
def analytics_dashboard(user_id: str) -> Dict[str, Any]:
    user_id = _require_user(user_id)
    return ANALYTICS.dashboard(user_id)


@app.get("/coach/daily")
def coach_daily(user_id: str):
    user_id = _require_user(user_id)
    sessions = db.load_sessions(user_id)
    trend = performance_trend(sessions, "month")
    streak = streak_stats(sessions)
    pattern = practice_pattern(sessions, longest_streak=streak.longest)
    recommendation = daily_recommendation(
        db.load_item_stats(user_id),
        trend,
        pattern,
        streak,
        plateau=plateau_detected(trend),
        learning_path=db.load_learning_path(user_id),
        calculator=MASTERY_CALCULATOR,
    )
    return asdict(recommendation)
