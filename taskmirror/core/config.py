"""Configuration management for taskmirror."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # PocketBase Configuration
    pocketbase_url: str = Field(default="http://127.0.0.1:8090", description="PocketBase server URL")
    pocketbase_admin_email: str = Field(
        default="admin@test.local", description="PocketBase admin email for schema sync"
    )
    pocketbase_admin_password: str = Field(
        default="testpassword123", description="PocketBase admin password for schema sync"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="production", description="Deployment environment reported to Logfire")

    # Trash Configuration
    trash_retention_days: int = Field(
        default=30, description="Days a trashed item is kept before it becomes eligible for purge"
    )

    # Coupon Configuration
    coupon_duration_days: int = Field(
        default=30, description="Validity of a non-permanent coupon redemption (in days)"
    )

    # Trial Configuration
    trial_reminder_days: list[int] = Field(
        default=[7, 3, 1], description="Days before trial end on which a reminder is shown"
    )

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # API Configuration
    API_TIMEOUT_SECONDS: int = 30

    # HTTP Status Codes
    HTTP_BAD_REQUEST: int = 400
    HTTP_UNAUTHORIZED: int = 401
    HTTP_FORBIDDEN: int = 403
    HTTP_NOT_FOUND: int = 404

    # Pagination
    FULL_LIST_BATCH_SIZE: int = 500  # Batch size when fetching a complete collection

    # Analytics Configuration
    STREAK_LOOKBACK_DAYS: int = 30  # Window used to compute completion streaks
    DAYS_IN_PERIOD: dict[str, int] = {"week": 7, "month": 30, "year": 365}

    # Gamification
    DEFAULT_NEXT_LEVEL_XP_STEP: int = 100  # Used when no higher level exists in the catalog


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
