"""Project, kanban column and membership models."""

from enum import StrEnum

from pydantic import BaseModel, Field

from taskmirror.domain.fields import OptionalDate, OptionalDatetime, OptionalText
from taskmirror.domain.task import OptionalPriority


class MemberRole(StrEnum):
    """Role of a user within a project."""

    ADMIN = "admin"
    MEMBER = "member"


class Project(BaseModel):
    """Project data transfer object."""

    id: str = Field(..., description="Unique project ID from PocketBase")
    name: str = Field(..., description="Project name")
    description: OptionalText = Field(default=None, description="Project description")
    owner_id: str = Field(..., description="Owning user ID")
    priority: OptionalPriority = Field(default=None, description="Project priority")
    start_date: OptionalDate = Field(default=None, description="Start date")
    end_date: OptionalDate = Field(default=None, description="End date")
    is_indefinite: bool = Field(default=False, description="Project has no fixed end")
    deleted_at: OptionalDatetime = Field(default=None, description="Soft-delete marker")
    created_at: OptionalDatetime = Field(default=None, description="Creation timestamp")
    updated_at: OptionalDatetime = Field(default=None, description="Last update timestamp")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class KanbanColumn(BaseModel):
    """One column of a project board.

    Tasks sit in the column whose ``status`` equals their own status. Columns
    created before ``status_key`` existed fall back to matching on the title.
    """

    id: str = Field(..., description="Unique column ID from PocketBase")
    project_id: str = Field(..., description="Owning project ID")
    title: str = Field(..., description="Display title")
    color: OptionalText = Field(default=None, description="Display color")
    position: int = Field(default=0, ge=0, description="Left-to-right order, unique per project")
    status_key: OptionalText = Field(default=None, description="Task status this column holds")

    @property
    def status(self) -> str:
        return self.status_key or self.title


class ProjectMember(BaseModel):
    """Membership of one user in one project."""

    id: str = Field(..., description="Unique membership ID from PocketBase")
    project_id: str = Field(..., description="Project ID")
    user_id: str = Field(..., description="Member user ID")
    role: MemberRole = Field(default=MemberRole.MEMBER, description="Role within the project")
    # Optional enriched fields (added by service layer)
    full_name: str | None = None
    avatar_url: str | None = None
