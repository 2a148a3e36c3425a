"""Goal list and progress tracking."""

import logging
from datetime import date

from taskmirror.core.auth import AuthContext
from taskmirror.core.errors import RecordNotFoundError
from taskmirror.core.logging import span
from taskmirror.domain.goal import Goal
from taskmirror.models.service_models import SyncResult
from taskmirror.services import views
from taskmirror.services.synced_resource import ResourceConfig, SyncedResource


logger = logging.getLogger(__name__)

GOALS_COLLECTION = "goals"

GOAL_CONFIG = ResourceConfig(collection=GOALS_COLLECTION, model=Goal, sort="-created_at")


class GoalList(SyncedResource[Goal]):
    """Mirrored list of the signed-in user's goals, newest first."""

    def __init__(self, *, auth: AuthContext) -> None:
        super().__init__(GOAL_CONFIG, auth=auth)

    def filtered(self, goal_filter: views.GoalFilter | str, today: date | None = None) -> list[Goal]:
        return views.filter_goals(self.items, goal_filter, today)

    async def record_progress(self, goal_id: str, delta: int) -> SyncResult[Goal]:
        """Add ``delta`` to a goal's current value, never going below zero."""
        with span("goal_service.record_progress"):
            goal = self.get(goal_id)
            if goal is None:
                return SyncResult.failure(RecordNotFoundError(f"Goal {goal_id} not found", status=404))

            current_value = max(goal.current_value + delta, 0)
            result = await self.update(goal_id, {"current_value": current_value})
            if result.ok and result.data is not None and result.data.is_completed and not goal.is_completed:
                logger.info("Goal completed", extra={"goal_id": goal_id, "target_value": goal.target_value})
            return result
