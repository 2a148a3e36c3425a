"""Gamification: the user's stats, unlocked achievements and badges.

The per-user tables are mirrored and refetched on change; the level,
achievement and badge catalogs are static and loaded once per mount.
"""

import logging
from types import TracebackType
from typing import Self, TypeVar

from pydantic import BaseModel, ValidationError

from taskmirror.core.auth import AuthContext
from taskmirror.core.config import Constants
from taskmirror.core.errors import SyncError
from taskmirror.core.logging import span
from taskmirror.core.resource_client import ResourceClient
from taskmirror.domain.gamification import (
    Achievement,
    Badge,
    Level,
    UserAchievement,
    UserBadge,
    UserStats,
)
from taskmirror.models.service_models import AchievementProgress, BadgeStatus, GamificationSnapshot, SyncResult
from taskmirror.services.synced_resource import ResourceConfig, SyncedResource


logger = logging.getLogger(__name__)

CatalogT = TypeVar("CatalogT", bound=BaseModel)

STATS_CONFIG = ResourceConfig(collection="user_stats", model=UserStats, sort="", soft_delete=False)
USER_ACHIEVEMENTS_CONFIG = ResourceConfig(
    collection="user_achievements", model=UserAchievement, sort="", soft_delete=False
)
USER_BADGES_CONFIG = ResourceConfig(collection="user_badges", model=UserBadge, sort="", soft_delete=False)


def _parse_catalog(model: type[CatalogT], rows: list[dict]) -> list[CatalogT]:
    entries = []
    for row in rows:
        try:
            entries.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning("Skipping malformed catalog row %s: %s", row.get("id"), e)
    return entries


def next_level_xp(stats: UserStats, levels: list[Level]) -> int:
    """XP required for the first level above the user's, or xp plus a fixed step past the last level."""
    higher = sorted((level for level in levels if level.level > stats.level), key=lambda level: level.level)
    if higher and higher[0].xp_required:
        return higher[0].xp_required
    return stats.xp + Constants.DEFAULT_NEXT_LEVEL_XP_STEP


def achievement_progress(achievement: Achievement, stats: UserStats) -> float:
    """Percentage (0-100) of the achievement's condition the user has reached."""
    if achievement.condition_type is None:
        return 0.0
    if achievement.condition_value <= 0:
        return 100.0
    return min(stats.counter(achievement.condition_type) / achievement.condition_value * 100, 100.0)


class GamificationService:
    """Mirrors a user's gamification rows and combines them with the catalogs."""

    def __init__(self, *, auth: AuthContext) -> None:
        self.auth = auth
        self.stats: SyncedResource[UserStats] = SyncedResource(STATS_CONFIG, auth=auth)
        self.user_achievements: SyncedResource[UserAchievement] = SyncedResource(USER_ACHIEVEMENTS_CONFIG, auth=auth)
        self.user_badges: SyncedResource[UserBadge] = SyncedResource(USER_BADGES_CONFIG, auth=auth)
        self.levels: list[Level] = []
        self.achievements: list[Achievement] = []
        self.badges: list[Badge] = []

    async def __aenter__(self) -> Self:
        await self.mount()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.unmount()

    @property
    def _resources(self) -> tuple[SyncedResource, ...]:
        return (self.stats, self.user_achievements, self.user_badges)

    async def load_catalogs(self) -> SyncResult[None]:
        """Load levels (ascending) plus achievements and badges (oldest first)."""
        try:
            level_rows = await ResourceClient("levels").list(sort="level")
            achievement_rows = await ResourceClient("achievements").list(sort="created_at")
            badge_rows = await ResourceClient("badges").list(sort="created_at")
        except SyncError as e:
            logger.warning("Failed to load gamification catalogs", extra={"error": str(e)})
            return SyncResult.failure(e)

        self.levels = _parse_catalog(Level, level_rows)
        self.achievements = _parse_catalog(Achievement, achievement_rows)
        self.badges = _parse_catalog(Badge, badge_rows)
        return SyncResult.success()

    async def mount(self) -> SyncResult[GamificationSnapshot]:
        with span("gamification_service.mount"):
            loaded = await self.load_catalogs()
            results = [await resource.mount() for resource in self._resources]
            error = loaded.error or next((result.error for result in results if result.error), None)
            if error is not None:
                return SyncResult.failure(error, data=self.snapshot())
            return SyncResult.success(self.snapshot())

    async def unmount(self) -> None:
        for resource in self._resources:
            await resource.unmount()

    async def refetch(self) -> SyncResult[GamificationSnapshot]:
        for resource in self._resources:
            result = await resource.refetch()
            if not result.ok:
                return SyncResult.failure(result.error, data=self.snapshot())  # type: ignore[arg-type]
        return SyncResult.success(self.snapshot())

    def current_stats(self) -> UserStats | None:
        """The user's stats row, or zeroed stats if they have none yet."""
        user_id = self.auth.user_id
        if user_id is None:
            return None
        rows = self.stats.items
        return rows[0] if rows else UserStats(user_id=user_id)

    def snapshot(self) -> GamificationSnapshot | None:
        """Stats, next-level XP and catalogs annotated with the user's unlocks."""
        stats = self.current_stats()
        if stats is None:
            return None

        unlocked_achievements = {row.achievement_id: row for row in self.user_achievements.items}
        achievements = []
        for achievement in self.achievements:
            unlock = unlocked_achievements.get(achievement.id)
            achievements.append(
                AchievementProgress(
                    achievement=achievement,
                    unlocked=unlock is not None,
                    unlocked_at=unlock.unlocked_at if unlock else None,
                    progress=100.0 if unlock else achievement_progress(achievement, stats),
                )
            )

        unlocked_badges = {row.badge_id: row for row in self.user_badges.items}
        badges = [
            BadgeStatus(
                badge=badge,
                unlocked=badge.id in unlocked_badges,
                unlocked_at=unlocked_badges[badge.id].unlocked_at if badge.id in unlocked_badges else None,
            )
            for badge in self.badges
        ]

        return GamificationSnapshot(
            stats=stats,
            next_level_xp=next_level_xp(stats, self.levels),
            levels=self.levels,
            achievements=achievements,
            badges=badges,
        )
