"""
Configuration management for codehost.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="CODEHOST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = Field(default="sqlite:///./codehost.db")

    # Repository storage
    repository_storage_path: str = Field(
        default="./repositories",
        description="Root directory holding bare repositories as <namespace>/<path>.git",
    )

    # Visibility policy
    restricted_visibility_levels: str = Field(
        default="",
        description="Comma-separated visibility levels non-admins may not set "
        "(e.g., 'public' or '20,10'). Empty string = nothing restricted.",
    )

    # System hooks
    system_hook_timeout_seconds: float = Field(default=10.0)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
