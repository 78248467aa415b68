"""Pydantic schemas for practice data, skill graph state and API payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

__all__ = [
    "DifficultyTier",
    "TIER_SEQUENCE",
    "TimeOfDay",
    "ItemStat",
    "PracticeSession",
    "SkillNode",
    "DifficultyState",
    "LearningPath",
    "LearnerProfile",
    "PracticeResultRequest",
    "PracticeSessionRequest",
    "ProgressUpdateRequest",
    "time_of_day_for",
    "utcnow",
    "dump_model",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DifficultyTier(str, Enum):
    """Ordered adaptive-difficulty tiers."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"
    MASTER = "master"

    @property
    def rank(self) -> int:
        return TIER_SEQUENCE.index(self)

    def step_down(self) -> "DifficultyTier":
        return TIER_SEQUENCE[max(0, self.rank - 1)]


TIER_SEQUENCE: tuple[DifficultyTier, ...] = (
    DifficultyTier.BEGINNER,
    DifficultyTier.INTERMEDIATE,
    DifficultyTier.ADVANCED,
    DifficultyTier.EXPERT,
    DifficultyTier.MASTER,
)

TimeOfDay = Literal["morning", "afternoon", "evening", "night"]


def time_of_day_for(moment: datetime) -> TimeOfDay:
    hour = moment.hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


class ItemStat(BaseModel):
    """Accumulated accuracy aggregate for one practice item."""

    item_id: str
    category: str
    correct: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    last_practiced: datetime | None = Field(
        default=None,
        description="Timestamp of the most recent reported attempt, when known.",
    )
    interval_index: int = Field(
        default=0,
        ge=0,
        le=6,
        description="Current rung on the spaced-repetition interval ladder.",
    )

    @model_validator(mode="after")
    def _check_counts(self) -> "ItemStat":
        if self.correct > self.total:
            raise ValueError(
                f"correct ({self.correct}) cannot exceed total ({self.total}) for item {self.item_id}"
            )
        return self

    @property
    def accuracy(self) -> float:
        if self.total == 0:
            return 0.0
        return self.correct / self.total


class PracticeSession(BaseModel):
    """Immutable record of one completed practice session."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    duration: int = Field(ge=0, description="Session length in milliseconds.")
    mode: str
    score: float = 0.0
    accuracy: float = Field(ge=0.0, le=100.0, description="Session accuracy in percent.")
    correct_answers: int = Field(default=0, ge=0)
    total_attempts: int = Field(default=0, ge=0)
    item_categories: List[str] = Field(default_factory=list)
    time_of_day: TimeOfDay

    @model_validator(mode="after")
    def _check_answers(self) -> "PracticeSession":
        if self.correct_answers > self.total_attempts:
            raise ValueError("correct_answers cannot exceed total_attempts")
        return self


class SkillNode(BaseModel):
    """One unit of the skill dependency graph, with per-user state."""

    id: str
    category: str
    name: str
    description: str = ""
    difficulty_tier: DifficultyTier
    prerequisites: List[str] = Field(default_factory=list)
    is_unlocked: bool = False
    is_completed: bool = False
    progress: int = Field(default=0, ge=0, le=100)
    estimated_minutes: int = Field(ge=0)
    reward_xp: int = Field(ge=0)


class DifficultyState(BaseModel):
    tier: DifficultyTier = DifficultyTier.BEGINNER
    reason: str = "Building fundamentals"
    reason_code: str = "base_beginner"
    last_adjusted: datetime = Field(default_factory=utcnow)


class LearningPath(BaseModel):
    """Per-user learning path aggregate."""

    user_id: str
    current_node: str | None = None
    recommended_queue: List[str] = Field(default_factory=list)
    skill_nodes: List[SkillNode] = Field(default_factory=list)
    completion_pct: int = Field(default=0, ge=0, le=100)
    focus_categories: List[str] = Field(
        default_factory=list,
        description="Improvement-area categories the queue was prioritised for.",
    )
    difficulty_state: DifficultyState = Field(default_factory=DifficultyState)
    last_updated: datetime = Field(default_factory=utcnow)

    def node(self, node_id: str) -> SkillNode | None:
        for candidate in self.skill_nodes:
            if candidate.id == node_id:
                return candidate
        return None


class LearnerProfile(BaseModel):
    """XP aggregate owned by the profile store."""

    user_id: str
    total_xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=0)
    days_played: int = Field(default=0, ge=0)


# ---------- API payloads ----------
class PracticeResultRequest(BaseModel):
    user_id: str = Field(min_length=1)
    item_id: str = Field(min_length=1)
    category: str = Field(min_length=1)
    correct: bool


class PracticeSessionRequest(BaseModel):
    user_id: str = Field(min_length=1)
    duration: int = Field(ge=0, description="Session length in milliseconds.")
    mode: str = Field(min_length=1)
    score: float = 0.0
    correct_answers: int = Field(default=0, ge=0)
    total_attempts: int = Field(default=0, ge=0)
    item_categories: List[str] = Field(default_factory=list)
    xp_earned: int = Field(default=0, ge=0)


class ProgressUpdateRequest(BaseModel):
    user_id: str = Field(min_length=1)
    node_id: str = Field(min_length=1)
    progress: int = Field(ge=0, le=100)


def dump_model(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json")
