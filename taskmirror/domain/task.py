"""Task domain models and enums."""

from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, Field

from taskmirror.domain.fields import IdSet, OptionalDate, OptionalDatetime, OptionalId, OptionalText, blank_to


class TaskPriority(StrEnum):
    """Task (and project/goal) priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


OptionalPriority = Annotated[TaskPriority | None, blank_to(None)]


class TaskStatus(StrEnum):
    """Built-in workflow labels.

    Status is free text on the row: project boards add their own labels through
    kanban columns. COMPLETED is the single label every view treats as done.
    """

    NEW = "Novo"
    IN_PROGRESS = "Em Andamento"
    COMPLETED = "Concluído"


class NotificationType(StrEnum):
    """How a task reminder is delivered."""

    NONE = "none"
    EMAIL = "email"
    PUSH = "push"


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from PocketBase")
    user_id: str = Field(..., description="Creator user ID")
    title: str = Field(..., description="Task title")
    description: OptionalText = Field(default=None, description="Detailed task description")
    status: str = Field(default=TaskStatus.NEW, description="Workflow label (kanban column status)")
    priority: Annotated[TaskPriority, blank_to(TaskPriority.MEDIUM)] = Field(
        default=TaskPriority.MEDIUM,
        description="Task priority",
    )
    start_date: OptionalDate = Field(default=None, description="Start date")
    due_date: OptionalDate = Field(default=None, description="Due date")
    is_indefinite: bool = Field(default=False, description="Task has no fixed end")
    project_id: OptionalId = Field(default=None, description="Owning project (None = personal task)")
    responsible_id: OptionalId = Field(default=None, description="Assignee user ID")
    tags: IdSet = Field(default_factory=set, description="Free-form tags")
    goal_ids: IdSet = Field(default_factory=set, description="Goals this task contributes to")
    notification_type: Annotated[NotificationType | None, blank_to(None)] = Field(
        default=None, description="Reminder delivery channel"
    )
    notification_frequency: OptionalText = Field(default=None, description="Reminder frequency")
    notification_time: OptionalText = Field(default=None, description="Reminder time of day (HH:MM)")
    notification_days: list[int] | None = Field(default=None, description="Weekdays for weekly reminders")
    deleted_at: OptionalDatetime = Field(default=None, description="Soft-delete marker")
    created_at: OptionalDatetime = Field(default=None, description="Creation timestamp")
    updated_at: OptionalDatetime = Field(default=None, description="Last update timestamp")

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def is_personal(self) -> bool:
        return self.project_id is None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
