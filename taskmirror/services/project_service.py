"""Projects the user owns or belongs to, and the kanban board of one project."""

import logging
from types import TracebackType
from typing import Any, Self

from taskmirror.core.auth import AuthContext
from taskmirror.core.errors import ConstraintViolationError, RecordNotFoundError, SyncError
from taskmirror.core.logging import span
from taskmirror.core.resource_client import ResourceClient, SubscriptionScope, and_, eq, like, or_
from taskmirror.domain.project import KanbanColumn, MemberRole, Project, ProjectMember
from taskmirror.domain.task import Task
from taskmirror.models.service_models import SyncResult
from taskmirror.services import views
from taskmirror.services.synced_resource import ResourceConfig, SyncedResource
from taskmirror.services.task_service import TaskList


logger = logging.getLogger(__name__)

PROJECTS_COLLECTION = "projects"
COLUMNS_COLLECTION = "kanban_columns"
MEMBERS_COLLECTION = "project_members"
PROFILES_COLLECTION = "profiles"

PROJECT_CONFIG = ResourceConfig(
    collection=PROJECTS_COLLECTION,
    model=Project,
    owner_field="owner_id",
    sort="-created_at",
)


async def _member_project_ids(user_id: str) -> list[str]:
    memberships = await ResourceClient(MEMBERS_COLLECTION).list(filter_query=eq("user_id", user_id))
    return [membership["project_id"] for membership in memberships]


async def fetch_visible_projects(user_id: str) -> list[dict[str, Any]]:
    """Live projects the user owns or is a member of."""
    project_ids = await _member_project_ids(user_id)
    visible = or_(eq("owner_id", user_id), *(eq("id", project_id) for project_id in project_ids))
    return await ResourceClient(PROJECTS_COLLECTION).list(
        filter_query=and_(eq("deleted_at", None), visible),
        sort=PROJECT_CONFIG.sort,
    )


class ProjectList(SyncedResource[Project]):
    """Mirrored list of projects visible to the signed-in user.

    Membership changes also trigger a refetch, since they change which
    projects are visible.
    """

    def __init__(self, *, auth: AuthContext) -> None:
        super().__init__(
            PROJECT_CONFIG,
            auth=auth,
            fetch=fetch_visible_projects,
            extra_scopes=[SubscriptionScope(collection=MEMBERS_COLLECTION)],
        )


def column_config(project_id: str) -> ResourceConfig:
    return ResourceConfig(
        collection=COLUMNS_COLLECTION,
        model=KanbanColumn,
        owner_field=None,
        filters={"project_id": project_id},
        sort="position",
        soft_delete=False,
        scope_field="project_id",
        scope_value=project_id,
    )


def member_config(project_id: str) -> ResourceConfig:
    return ResourceConfig(
        collection=MEMBERS_COLLECTION,
        model=ProjectMember,
        owner_field=None,
        filters={"project_id": project_id},
        sort="created_at",
        soft_delete=False,
        scope_field="project_id",
        scope_value=project_id,
    )


async def _attach_profiles(members: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Add full_name and avatar_url from each member's profile."""
    if not members:
        return members
    profiles = await ResourceClient(PROFILES_COLLECTION).list(
        filter_query=or_(*(eq("user_id", member["user_id"]) for member in members)),
    )
    by_user = {profile["user_id"]: profile for profile in profiles}
    return [
        {
            **member,
            "full_name": by_user.get(member["user_id"], {}).get("full_name") or None,
            "avatar_url": by_user.get(member["user_id"], {}).get("avatar_url") or None,
        }
        for member in members
    ]


class ProjectBoard:
    """One project's kanban board: the project row, its columns, members and tasks.

    Tasks sit in the column whose status equals theirs; moving a task sets its
    status to the destination column's status.
    """

    def __init__(self, *, auth: AuthContext, project_id: str) -> None:
        self.auth = auth
        self.project_id = project_id
        self.project: Project | None = None
        self._projects = ResourceClient(PROJECTS_COLLECTION)
        self.columns: SyncedResource[KanbanColumn] = SyncedResource(column_config(project_id), auth=auth)
        self.members: SyncedResource[ProjectMember] = SyncedResource(
            member_config(project_id),
            auth=auth,
            fetch=self._fetch_members,
        )
        self.tasks = TaskList(auth=auth, project_id=project_id)

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

    async def _fetch_members(self, user_id: str) -> list[dict[str, Any]]:
        members = await self.members.client.list(
            filter_query=self.members.config.filter_query(user_id),
            sort=self.members.config.sort,
        )
        return await _attach_profiles(members)

    async def load_project(self) -> SyncResult[Project]:
        try:
            row = await self._projects.get(self.project_id)
        except SyncError as e:
            logger.warning("Failed to load project", extra={"project_id": self.project_id, "error": str(e)})
            return SyncResult.failure(e)
        project = Project.model_validate(row)
        if project.is_deleted:
            self.project = None
            return SyncResult.failure(RecordNotFoundError(f"Project {self.project_id} is in the trash", status=404))
        self.project = project
        return SyncResult.success(project)

    async def mount(self) -> SyncResult[Project]:
        with span("project_service.mount_board"):
            result = await self.load_project()
            for resource in (self.columns, self.members, self.tasks):
                await resource.mount()
            return result

    async def unmount(self) -> None:
        for resource in (self.columns, self.members, self.tasks):
            await resource.unmount()

    def board(self) -> dict[str, list[Task]]:
        """Column id -> tasks, columns left to right."""
        return views.group_tasks_by_column(self.tasks.items, self.columns.items)

    def column_tasks(self, column_id: str) -> list[Task]:
        column = self.columns.get(column_id)
        if column is None:
            return []
        return views.tasks_for_column(self.tasks.items, column)

    async def add_member(self, name: str, role: MemberRole = MemberRole.MEMBER) -> SyncResult[ProjectMember]:
        """Add the user whose profile name matches ``name``."""
        with span("project_service.add_member"):
            profiles = ResourceClient(PROFILES_COLLECTION)
            try:
                profile = await profiles.first(like("full_name", name))
                if profile is None:
                    return SyncResult.failure(RecordNotFoundError("User not found", status=404))
                existing = await self.members.client.first(
                    and_(eq("project_id", self.project_id), eq("user_id", profile["user_id"]))
                )
            except SyncError as e:
                return SyncResult.failure(e)
            if existing is not None:
                return SyncResult.failure(ConstraintViolationError("User is already a member", status=400))

            result = await self.members.create(
                {"project_id": self.project_id, "user_id": profile["user_id"], "role": role}
            )
            if result.ok and result.data is not None:
                enriched = result.data.model_copy(
                    update={"full_name": profile.get("full_name") or None, "avatar_url": profile.get("avatar_url") or None}
                )
                self.members.store.apply_local_update(enriched.id, enriched)
                result = SyncResult.success(enriched)
                logger.info(
                    "Added project member",
                    extra={"project_id": self.project_id, "user_id": profile["user_id"], "role": str(role)},
                )
            return result

    async def remove_member(self, member_id: str) -> SyncResult[None]:
        return await self.members.remove(member_id)

    async def update_column(self, column_id: str, data: dict[str, Any]) -> SyncResult[KanbanColumn]:
        return await self.columns.update(column_id, data)

    async def add_column(self, title: str, color: str | None = None) -> SyncResult[KanbanColumn]:
        """Append a column at the right end of the board."""
        position = max((column.position for column in self.columns.items), default=-1) + 1
        return await self.columns.create(
            {"title": title, "color": color, "position": position, "status_key": title}
        )

    async def rename_column(self, column_id: str, title: str) -> SyncResult[KanbanColumn]:
        """Change a column's title without moving its tasks out of it."""
        column = self.columns.get(column_id)
        if column is None:
            return SyncResult.failure(RecordNotFoundError(f"Column {column_id} not found", status=404))
        data: dict[str, Any] = {"title": title}
        if column.status_key is None:
            # Pin the status the column's tasks already carry
            data["status_key"] = column.title
        return await self.columns.update(column_id, data)

    async def move_task(self, task_id: str, column_id: str) -> SyncResult[Task]:
        """Place a task in another column by giving it that column's status."""
        with span("project_service.move_task"):
            column = self.columns.get(column_id)
            if column is None:
                return SyncResult.failure(RecordNotFoundError(f"Column {column_id} not found", status=404))
            logger.info(
                "Moving task", extra={"project_id": self.project_id, "task_id": task_id, "status": column.status}
            )
            return await self.tasks.set_status(task_id, column.status)
