"""Gamification models: per-user stats and the static level/achievement/badge catalogs."""

from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, Field, field_validator

from taskmirror.domain.fields import OptionalDate, OptionalDatetime, OptionalId, OptionalText, blank_to


class ConditionType(StrEnum):
    """Which user counter an achievement or badge condition is measured against."""

    TASKS_COMPLETED = "tasks_completed"
    STREAK = "streak"
    PROJECTS_COMPLETED = "projects_completed"


class UserStats(BaseModel):
    """Per-user gamification counters."""

    id: OptionalId = Field(default=None, description="Stats row ID (None before first activity)")
    user_id: str = Field(..., description="Owning user ID")
    level: Annotated[int, blank_to(1)] = Field(default=1, ge=1)
    xp: int = Field(default=0, ge=0)
    streak: int = Field(default=0, ge=0)
    tasks_completed: int = Field(default=0, ge=0)
    projects_completed: int = Field(default=0, ge=0)
    last_activity_date: OptionalDate = None

    def counter(self, condition: ConditionType) -> int:
        """Return the counter a condition of this type measures."""
        return getattr(self, condition.value)


class Level(BaseModel):
    """One row of the level catalog."""

    id: str
    level: int = Field(..., ge=1)
    title: OptionalText = None
    xp_required: int = Field(default=0, ge=0)
    rewards: list[str] = Field(default_factory=list)

    @field_validator("rewards", mode="before")
    @classmethod
    def default_blank_rewards(cls, v: object) -> object:
        return v or []


class Achievement(BaseModel):
    """Achievement catalog entry."""

    id: str
    title: str
    description: OptionalText = None
    category: OptionalText = None
    icon: OptionalText = None
    xp_reward: int = Field(default=0, ge=0)
    condition_type: ConditionType | None = None
    condition_value: int = Field(default=0, ge=0)
    created_at: OptionalDatetime = None

    @field_validator("condition_type", mode="before")
    @classmethod
    def blank_condition(cls, v: object) -> object:
        return v or None


class Badge(BaseModel):
    """Badge catalog entry."""

    id: str
    title: str
    description: OptionalText = None
    icon: OptionalText = None
    rarity: OptionalText = None
    condition_type: ConditionType | None = None
    condition_value: int = Field(default=0, ge=0)
    created_at: OptionalDatetime = None

    @field_validator("condition_type", mode="before")
    @classmethod
    def blank_condition(cls, v: object) -> object:
        return v or None


class UserAchievement(BaseModel):
    """An achievement unlocked by a user."""

    id: str
    user_id: str
    achievement_id: str
    unlocked_at: OptionalDatetime = None


class UserBadge(BaseModel):
    """A badge unlocked by a user."""

    id: str
    user_id: str
    badge_id: str
    unlocked_at: OptionalDatetime = None
