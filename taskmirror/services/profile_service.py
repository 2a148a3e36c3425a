"""Profile and settings of the signed-in user.

Both rows are created on first access: the profile with a display name taken
from the e-mail address, the settings with ``DEFAULT_SETTINGS``.
"""

import logging
from typing import Any

from taskmirror.core.auth import AuthContext
from taskmirror.core.errors import ConstraintViolationError, NotAuthenticatedError, SyncError
from taskmirror.core.logging import log_with_user_context, span
from taskmirror.core.resource_client import ResourceClient, eq
from taskmirror.domain.user import DEFAULT_SETTINGS, PlanStatus, Profile, UserSettings
from taskmirror.models.service_models import SyncResult


logger = logging.getLogger(__name__)

PROFILES_COLLECTION = "profiles"
SETTINGS_COLLECTION = "user_settings"


def default_full_name(user: dict[str, Any]) -> str | None:
    email = user.get("email") or ""
    return email.split("@")[0] or None


class ProfileService:
    """Loads, creates and updates the user's profile and settings rows."""

    def __init__(self, *, auth: AuthContext) -> None:
        self.auth = auth
        self.profile: Profile | None = None
        self.settings: UserSettings | None = None
        self._profiles = ResourceClient(PROFILES_COLLECTION)
        self._settings = ResourceClient(SETTINGS_COLLECTION)

    async def get_profile(self) -> SyncResult[Profile]:
        """Return the user's profile, creating it if it does not exist yet."""
        with span("profile_service.get_profile"):
            user = self.auth.user
            if user is None:
                return SyncResult.failure(NotAuthenticatedError("No user logged in"))
            try:
                row = await self._profiles.first(eq("user_id", user["id"]))
                if row is None:
                    row = await self._profiles.insert({"user_id": user["id"], "full_name": default_full_name(user)})
                    logger.info("Created profile", extra={"user_id": user["id"]})
            except SyncError as e:
                logger.warning("Failed to load profile", extra={"user_id": user["id"], "error": str(e)})
                return SyncResult.failure(e)
            self.profile = Profile.model_validate(row)
            return SyncResult.success(self.profile)

    async def get_settings(self) -> SyncResult[UserSettings]:
        """Return the user's settings, creating them with defaults if missing."""
        with span("profile_service.get_settings"):
            user_id = self.auth.user_id
            if user_id is None:
                return SyncResult.failure(NotAuthenticatedError("No user logged in"))
            try:
                row = await self._settings.first(eq("user_id", user_id))
                if row is None:
                    row = await self._settings.insert({"user_id": user_id, **DEFAULT_SETTINGS})
                    logger.info("Created default settings", extra={"user_id": user_id})
            except SyncError as e:
                logger.warning("Failed to load settings", extra={"user_id": user_id, "error": str(e)})
                return SyncResult.failure(e)
            self.settings = UserSettings.model_validate(row)
            return SyncResult.success(self.settings)

    async def load(self) -> SyncResult[None]:
        """Load (or create) both rows; the first failure wins."""
        profile = await self.get_profile()
        if not profile.ok:
            return SyncResult.failure(profile.error)  # type: ignore[arg-type]
        settings = await self.get_settings()
        if not settings.ok:
            return SyncResult.failure(settings.error)  # type: ignore[arg-type]
        return SyncResult.success()

    async def update_profile(self, data: dict[str, Any]) -> SyncResult[Profile]:
        with span("profile_service.update_profile"):
            if self.profile is None:
                loaded = await self.get_profile()
                if not loaded.ok:
                    return loaded
            assert self.profile is not None
            try:
                row = await self._profiles.update(self.profile.id, data)
            except SyncError as e:
                return SyncResult.failure(e, data=self.profile)
            self.profile = Profile.model_validate(row)
            return SyncResult.success(self.profile)

    async def update_settings(self, data: dict[str, Any]) -> SyncResult[UserSettings]:
        with span("profile_service.update_settings"):
            if self.settings is None:
                loaded = await self.get_settings()
                if not loaded.ok:
                    return loaded
            assert self.settings is not None
            try:
                row = await self._settings.update(self.settings.id, data)
            except SyncError as e:
                return SyncResult.failure(e, data=self.settings)
            self.settings = UserSettings.model_validate(row)
            return SyncResult.success(self.settings)

    async def upgrade_plan(self, plan: PlanStatus | str) -> SyncResult[Profile]:
        """Move the user onto a paid plan, ending any trial."""
        try:
            plan = PlanStatus(plan)
        except ValueError:
            return SyncResult.failure(ConstraintViolationError(f"Unknown plan: {plan}", status=400))
        if plan is PlanStatus.TRIAL:
            return SyncResult.failure(ConstraintViolationError("Cannot upgrade to the trial plan", status=400))
        result = await self.update_profile({"plan_status": plan, "trial_ends_at": None})
        if result.ok:
            log_with_user_context(logger, "info", "Plan upgraded", user_id=self.auth.user_id, plan=str(plan))
        return result
