"""Goal domain model."""

from pydantic import BaseModel, Field

from taskmirror.domain.fields import IdSet, OptionalDate, OptionalDatetime, OptionalText
from taskmirror.domain.task import OptionalPriority


class Goal(BaseModel):
    """Goal data transfer object."""

    id: str = Field(..., description="Unique goal ID from PocketBase")
    user_id: str = Field(..., description="Owning user ID")
    title: str = Field(..., description="Goal title")
    description: OptionalText = Field(default=None, description="Goal description")
    priority: OptionalPriority = Field(default=None, description="Goal priority")
    start_date: OptionalDate = Field(default=None, description="Start date")
    end_date: OptionalDate = Field(default=None, description="Deadline")
    target_value: int = Field(default=1, ge=1, description="Value at which the goal is complete")
    current_value: int = Field(default=0, ge=0, description="Progress so far")
    project_ids: IdSet = Field(default_factory=set, description="Linked projects")
    task_ids: IdSet = Field(default_factory=set, description="Linked tasks")
    deleted_at: OptionalDatetime = Field(default=None, description="Soft-delete marker")
    created_at: OptionalDatetime = Field(default=None, description="Creation timestamp")
    updated_at: OptionalDatetime = Field(default=None, description="Last update timestamp")

    @property
    def is_completed(self) -> bool:
        return self.current_value >= self.target_value

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
