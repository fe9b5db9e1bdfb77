"""Configuration settings for manifest_builder.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the MANIFEST_BUILDER_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="MANIFEST_BUILDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Build driver
    gnumake_bin: Path = Field(
        default=Path("make"),
        description="GNU make binary used to evaluate the build makefile",
    )
    build_mk: Path | None = Field(
        default=None,
        description="Path to the manifest build makefile",
    )
    env_binding_key: str = Field(
        default="FLOX_ENV",
        min_length=1,
        description="Make variable that binds the rendered environment path",
    )

    # Containers
    default_tag: str = Field(
        default="latest",
        min_length=1,
        description="Tag applied to container images when none is given",
    )

    # Operational
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
