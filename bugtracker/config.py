"""Application configuration via pydantic-settings.

All secrets are loaded from environment variables (.env file).
Settings are organized into logical groups and composed into a single Settings object.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SecuritySettings(BaseSettings):
    """Token signing secret and token lifetimes."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_secret: str = Field(
        default="",
        description="HMAC secret shared by session and download tokens",
    )
    session_ttl_seconds: int = Field(default=3600, gt=0, description="Session token lifetime (1 hour)")
    download_ttl_seconds: int = Field(default=900, gt=0, description="Download token lifetime (15 minutes)")


class StorageSettings(BaseSettings):
    """Attachment byte storage constraints."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    upload_dir: str = Field(default="uploads", description="Directory holding uploaded bytes")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0, description="Largest accepted upload")
    allowed_mimetypes: str = Field(
        default=(
            "text/plain,text/csv,application/json,application/pdf,application/zip,"
            "application/octet-stream,image/png,image/jpeg,image/gif"
        ),
        description="Comma-separated mimetypes accepted for upload (empty = any)",
    )

    @property
    def mimetypes(self) -> frozenset[str]:
        """Parse comma-separated mimetypes into a set."""
        if not self.allowed_mimetypes:
            return frozenset()
        return frozenset(m.strip().lower() for m in self.allowed_mimetypes.split(",") if m.strip())


class Settings(BaseSettings):
    """Root settings composing all sub-settings.

    Usage:
        settings = Settings()
        settings.security.session_ttl_seconds
        settings.storage.mimetypes
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    public_base_url: str = Field(
        default="",
        description="Externally visible base URL for download links (empty = derive from request)",
    )

    # Composed settings (loaded from same .env)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            msg = f"Invalid log level: {v}. Must be one of {valid}"
            raise ValueError(msg)
        return upper

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"
