"""Trash bin models."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from taskmirror.domain.fields import OptionalDatetime


class TrashItemType(StrEnum):
    """Kinds of rows that can be moved to the trash."""

    TASK = "task"
    PROJECT = "project"
    GOAL = "goal"

    @property
    def collection(self) -> str:
        return f"{self.value}s"


class TrashItemStatus(StrEnum):
    """Progress of the move-to-trash workflow.

    PENDING means the trash row exists but the original may not be soft-deleted yet.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"


class TrashItem(BaseModel):
    """A trashed row's snapshot plus the pointer back to the original."""

    id: str = Field(..., description="Unique trash item ID from PocketBase")
    user_id: str = Field(..., description="Owning user ID")
    item_type: TrashItemType = Field(..., description="Kind of the trashed row")
    item_id: str = Field(..., description="ID of the original (soft-deleted) row")
    item_data: dict[str, Any] = Field(default_factory=dict, description="Snapshot taken at deletion time")
    deleted_at: datetime = Field(..., description="When the item was trashed")
    expires_at: datetime = Field(..., description="When the item becomes eligible for purge")
    status: TrashItemStatus = Field(default=TrashItemStatus.CONFIRMED, description="Workflow progress")
    created_at: OptionalDatetime = Field(default=None, description="Creation timestamp")

    @field_validator("deleted_at", "expires_at", mode="before")
    @classmethod
    def parse_pocketbase_datetime(cls, v: object) -> object:
        """Accept PocketBase's space-separated datetime format."""
        if isinstance(v, str):
            return v.replace(" ", "T").replace("Z", "+00:00")
        return v

    @field_validator("status", mode="before")
    @classmethod
    def default_blank_status(cls, v: object) -> object:
        """Rows written before the status field existed count as confirmed."""
        return v or TrashItemStatus.CONFIRMED

    @field_validator("item_data", mode="before")
    @classmethod
    def default_blank_snapshot(cls, v: object) -> object:
        return v or {}

    @property
    def title(self) -> str:
        """Display name from the snapshot (projects use ``name``)."""
        return str(self.item_data.get("title") or self.item_data.get("name") or self.item_id)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now
