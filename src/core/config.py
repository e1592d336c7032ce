"""Configuration management for toma5."""

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

    # SQLite Configuration
    sqlite_db_path: str = Field(default="data/toma5.db", description="SQLite database file path")

    # Day boundaries (assignment dates, stale sweep) are always computed in this zone
    timezone: str = Field(default="America/Bogota", description="IANA timezone for all day boundaries")

    # Stale sweep schedule
    stale_sweep_hour: int = Field(default=0, description="Hour of the daily stale-task sweep (local to timezone)")
    stale_sweep_minute: int = Field(default=0, description="Minute of the daily stale-task sweep")

    # Session tokens
    session_secret_key: str | None = Field(default=None, description="Secret key used to sign session tokens")
    session_max_age_seconds: int = Field(default=43200, description="Session token lifetime in seconds")

    # Cloudinary Configuration (secondary verification images)
    cloudinary_cloud_name: str | None = Field(default=None, description="Cloudinary cloud name")
    cloudinary_api_key: str | None = Field(default=None, description="Cloudinary API key")
    cloudinary_api_secret: str | None = Field(default=None, description="Cloudinary API secret")
    cloudinary_folder: str = Field(default="toma5/asst", description="Folder for uploaded verification images")

    # Logging
    environment: str = Field(default="production", description="Deployment environment reported to Logfire")
    log_level: str = Field(default="INFO", description="Root log level")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Redis Configuration (optional)
    redis_url: str | None = Field(default=None, description="Redis connection URL (e.g., redis://localhost:6379)")

    # Notifications
    notification_retention_days: int = Field(
        default=30, description="Days a read notification is kept before it becomes eligible for deletion"
    )
    notification_default_limit: int = Field(default=20, description="Default page size for notification listing")

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
    BLOB_UPLOAD_TIMEOUT_SECONDS: int = 60

    # Five-point checklist
    CHECKLIST_FIRST_STEP: int = 1
    CHECKLIST_LAST_STEP: int = 5
    SECONDARY_VERIFICATION_STEPS: frozenset[int] = frozenset({2, 3, 4})

    # Free-text limits
    MAX_TEXT_LENGTH: int = 2000
    MAX_DESCRIPTION_LENGTH: int = 500

    # Automatic cancellation
    AUTO_CANCEL_REASON: str = "Automatic cancellation: end of day without start"

    # Scheduler Configuration
    NOTIFICATION_PURGE_HOUR: int = 3  # 3am local

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100
    MAX_NOTIFICATION_PAGE_SIZE: int = 100

    # Redis Configuration
    REDIS_MAX_CONNECTIONS: int = 10

    # Job Tracker Configuration
    TRACKER_DEAD_LETTER_QUEUE_MAXLEN: int = 100


# Global settings instance
settings = Settings()
constants = Constants()
