"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration shared across services."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(
        default="sqlite:///./hotel_rooms.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether this service should create/update database tables on startup.",
    )
    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Token lifetime in minutes")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="60/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    room_cache_ttl: int = Field(default=60, description="TTL (s) for the cached public room listing")

    cloudinary_cloud_name: str = Field(default="", description="Cloudinary cloud name")
    cloudinary_api_key: str = Field(default="", description="Cloudinary API key")
    cloudinary_api_secret: str = Field(default="", description="Cloudinary API secret")
    cloudinary_folder: str = Field(default="grand-hotel/rooms", description="Folder holding room images")

    media_timeout_seconds: float = Field(default=10.0, description="Timeout for a single media host call")
    media_delete_retries: int = Field(default=1, ge=0, description="Extra attempts for a failed remote delete")
    media_failure_threshold: int = Field(default=5, description="Failures before the media circuit opens")
    media_recovery_timeout: int = Field(default=60, description="Seconds before an open media circuit half-opens")

    upload_max_bytes: int = Field(default=10 * 1024 * 1024, description="Maximum size of one uploaded image")
    upload_max_files: int = Field(default=10, description="Maximum number of files per multi-upload")
    upload_allowed_types: List[str] = Field(
        default_factory=lambda: ["image/jpeg", "image/jpg", "image/png", "image/webp"],
        description="Accepted image MIME types",
    )

    log_level: str = Field(default="INFO", description="Level of the application loggers")

    room_currency: str = Field(default="XAF", description="Currency stamped on every room price")
    expose_error_details: bool = Field(
        default=True,
        description="Include the underlying error message in 500 responses. Disable for public deployments.",
    )

    users_service_port: int = 8001
    rooms_service_port: int = 8002


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
