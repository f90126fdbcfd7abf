"""Configuration settings for staffmatch."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library-wide settings loaded from environment variables.

    All settings have sensible defaults and can be overridden via
    environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    feedback_db_path: Path = Field(
        default=Path("./data/feedback.db"),
        description="Path to the SQLite database holding match history and feedback",
    )
    cache_backend: str = Field(
        default="memory",
        description="Match cache backend: 'memory' (single process) or 'sqlite'",
    )
    cache_db_path: Path = Field(
        default=Path("./data/match_cache.db"),
        description="Path to the SQLite match cache (sqlite backend only)",
    )

    # Criteria
    criteria_dir: Path | None = Field(
        default=None,
        description="Directory holding per-context criteria overrides (job.yaml, worker.yaml)",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR",
    )

    @field_validator("cache_backend", mode="before")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        """Validate cache_backend."""
        if not isinstance(v, str):
            raise ValueError("cache_backend must be a string")
        value = v.lower().strip()
        if value not in {"memory", "sqlite"}:
            raise ValueError("cache_backend must be one of: memory, sqlite")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


# Singleton instance for easy import
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the settings singleton (useful for testing)."""
    global _settings
    _settings = None
