"""User profile and settings models."""

from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, Field

from taskmirror.domain.fields import OptionalDatetime, OptionalText, blank_to


class PlanStatus(StrEnum):
    """Plan an account is on; anything but TRIAL is a paid plan."""

    TRIAL = "trial"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class Profile(BaseModel):
    """Public profile of a user (one per user)."""

    id: str = Field(..., description="Unique profile ID from PocketBase")
    user_id: str = Field(..., description="Owning user ID")
    full_name: OptionalText = Field(default=None, description="Display name")
    avatar_url: OptionalText = Field(default=None, description="Avatar image URL")
    plan_status: Annotated[PlanStatus | None, blank_to(None)] = Field(default=None, description="Subscription state")
    trial_ends_at: OptionalDatetime = Field(default=None, description="End of the free trial")
    created_at: OptionalDatetime = None
    updated_at: OptionalDatetime = None


class UserSettings(BaseModel):
    """Notification and security preferences (one per user)."""

    id: str
    user_id: str
    email_notifications: bool = True
    push_notifications: bool = True
    task_reminders: bool = True
    task_deadline_notifications: bool = True
    goal_reminder_notifications: bool = True
    project_updates: bool = True
    project_update_notifications: bool = True
    reminder_time: OptionalText = "09:00"
    security_two_factor: bool = False
    security_login_alerts: bool = True
    security_activity_log: bool = True


DEFAULT_SETTINGS: dict[str, object] = {
    name: field.default
    for name, field in UserSettings.model_fields.items()
    if name not in {"id", "user_id"}
}
