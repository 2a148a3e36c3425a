"""Pydantic models for service layer return types.

These models provide type safety at service boundaries: operations that can
fail for reasons scoped to one user action return a ``SyncResult`` rather
than raising.
"""

from datetime import date, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

from taskmirror.core.errors import ErrorResponse, SyncError, classify_error_with_response
from taskmirror.domain.coupon import Coupon
from taskmirror.domain.gamification import Achievement, Badge, Level, UserStats


T = TypeVar("T")


class SyncResult(BaseModel, Generic[T]):
    """Outcome of one store or service operation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    data: T | None = None
    error: SyncError | None = None

    @classmethod
    def success(cls, data: T | None = None) -> "SyncResult[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: SyncError, data: T | None = None) -> "SyncResult[T]":
        return cls(ok=False, data=data, error=error)

    def unwrap(self) -> T | None:
        """Return ``data`` or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.data

    @property
    def error_response(self) -> ErrorResponse | None:
        """User-facing description of the error, if any."""
        if self.error is None:
            return None
        return classify_error_with_response(self.error)


class TimeBucket(BaseModel):
    """Completed vs. pending tasks created within one bucket."""

    label: str
    start: datetime
    end: datetime
    completed: int
    pending: int


class PriorityCount(BaseModel):
    """Number of tasks with one priority."""

    priority: str
    count: int


class StatusBreakdown(BaseModel):
    """Tasks split into completed, pending and overdue."""

    completed: int
    pending: int
    overdue: int


class HourCount(BaseModel):
    """Tasks created within one hour of the day (``HH:00``)."""

    hour: str
    count: int


class AnalyticsStats(BaseModel):
    """Headline numbers for a period."""

    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    completion_rate: float
    average_tasks_per_day: float
    streak: int


class AnalyticsReport(BaseModel):
    """Everything the analytics page shows for one period and scope."""

    period: str
    tasks_over_time: list[TimeBucket]
    tasks_by_priority: list[PriorityCount]
    tasks_by_status: StatusBreakdown
    tasks_by_hour: list[HourCount]
    stats: AnalyticsStats


class AchievementProgress(BaseModel):
    """An achievement with the user's unlock state and progress percentage."""

    achievement: Achievement
    unlocked: bool
    unlocked_at: datetime | None = None
    progress: float


class BadgeStatus(BaseModel):
    """A badge with the user's unlock state."""

    badge: Badge
    unlocked: bool
    unlocked_at: datetime | None = None


class GamificationSnapshot(BaseModel):
    """User stats plus catalogs annotated for that user."""

    stats: UserStats
    next_level_xp: int
    levels: list[Level]
    achievements: list[AchievementProgress]
    badges: list[BadgeStatus]


class CouponValidation(BaseModel):
    """Result of checking a coupon code for the current user."""

    valid: bool
    coupon: Coupon | None = None
    error_code: str | None = None
    error: str | None = None


class TrialNotice(BaseModel):
    """A reminder to show about the free trial."""

    kind: str  # "reminder" or "expired"
    title: str
    message: str
    days_remaining: int
    trial_ends_at: datetime


class TrialStatus(BaseModel):
    """Where the user stands in the free trial."""

    on_trial: bool
    days_remaining: int
    is_expired: bool
    is_expiring: bool
    trial_ends_on: date | None = None
