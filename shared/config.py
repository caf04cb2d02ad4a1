"""Base configuration with pydantic-settings.

This module provides a base Settings class that tools inherit from.
Each tool defines its own Settings with the fields specific to it.

Usage in a tool:
    from shared.config import BaseSettings, database_url_field

    class Settings(BaseSettings):
        database_url: str | None = database_url_field(required=False)

    settings = Settings()
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings, SettingsConfigDict


class BaseSettings(PydanticBaseSettings):
    """Base application settings.

    All fields here are optional with sensible defaults.
    Tools inherit this and make required fields mandatory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Optional fields with defaults ===

    # Logging configuration
    service_name: str = Field(
        default="unknown",
        description="Service name for structured logging",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v


# === Field definitions for reuse in tool configs ===


def database_url_field(required: bool = True, alias: str | None = None):
    """Database URL field definition."""
    if required:
        return Field(
            ...,
            alias=alias,
            description="PostgreSQL connection URL",
            examples=["postgresql+asyncpg://user:pass@db:5432/dbname"],
        )
    return Field(
        default=None,
        alias=alias,
        description="PostgreSQL connection URL (optional)",
    )


def telegram_token_field(required: bool = True):
    """Telegram bot token field definition."""
    if required:
        return Field(
            ...,
            alias="TELEGRAM_BOT_TOKEN",
            description="Telegram Bot API token",
        )
    return Field(
        default="",
        alias="TELEGRAM_BOT_TOKEN",
        description="Telegram Bot API token (optional)",
    )
