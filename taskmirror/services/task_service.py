"""Task lists: personal (no project) or scoped to one project."""

import logging
from datetime import date

from taskmirror.core.auth import AuthContext
from taskmirror.core.errors import RecordNotFoundError
from taskmirror.core.logging import span
from taskmirror.domain.task import Task, TaskStatus
from taskmirror.models.service_models import SyncResult
from taskmirror.services import views
from taskmirror.services.synced_resource import ResourceConfig, SyncedResource


logger = logging.getLogger(__name__)

TASKS_COLLECTION = "tasks"


def task_config(project_id: str | None = None) -> ResourceConfig:
    """Tasks of the signed-in user, either personal or for one project, newest first."""
    return ResourceConfig(
        collection=TASKS_COLLECTION,
        model=Task,
        filters={"project_id": project_id},
        sort="-created_at",
        scope_field="project_id" if project_id else None,
        scope_value=project_id,
    )


class TaskList(SyncedResource[Task]):
    """Mirrored list of the signed-in user's tasks.

    Without ``project_id`` the list holds personal tasks only; with it, the
    tasks of that project. New tasks inherit the list's project.
    """

    def __init__(self, *, auth: AuthContext, project_id: str | None = None) -> None:
        super().__init__(task_config(project_id), auth=auth)
        self.project_id = project_id

    def filtered(self, task_filter: views.TaskFilter | str, today: date | None = None) -> list[Task]:
        return views.filter_tasks(self.items, task_filter, today)

    async def set_status(self, task_id: str, status: str) -> SyncResult[Task]:
        return await self.update(task_id, {"status": status})

    async def toggle_complete(self, task_id: str) -> SyncResult[Task]:
        """Flip a task between completed and new."""
        with span("task_service.toggle_complete"):
            task = self.get(task_id)
            if task is None:
                return SyncResult.failure(RecordNotFoundError(f"Task {task_id} not found", status=404))
            status = TaskStatus.NEW if task.is_completed else TaskStatus.COMPLETED
            logger.info("Toggling task completion", extra={"task_id": task_id, "status": str(status)})
            return await self.set_status(task_id, status)
