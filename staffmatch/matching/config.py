"""Configuration settings for the matching engine."""

from __future__ import annotations

from typing import Annotated

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatchingConfig(BaseSettings):
    """Matching engine tunables.

    All settings have sensible defaults and can be overridden via
    environment variables with `MATCHING_` prefix or a .env file.
    Category weights are not configured here; see ``CriteriaResolver``.
    """

    model_config = SettingsConfigDict(
        env_prefix="MATCHING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Candidate pool
    pool_cap: Annotated[int, Field(gt=0)] = Field(
        default=100,
        description="Maximum number of candidates scored per request",
    )

    # Ranking thresholds
    job_min_match_score: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.7,
        description="Minimum total score kept when matching for a job",
    )
    worker_min_match_score: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.75,
        description="Minimum total score kept when matching for a worker",
    )
    job_top_k: Annotated[int, Field(gt=0)] = Field(
        default=50,
        description="Maximum matches returned when matching for a job",
    )
    worker_top_k: Annotated[int, Field(gt=0)] = Field(
        default=10,
        description="Maximum matches returned when matching for a worker",
    )

    # Cache
    cache_ttl_seconds: Annotated[int, Field(gt=0)] = Field(
        default=3600,
        description="TTL for cached ranked results",
    )
    assisted_cache_ttl_seconds: Annotated[int, Field(gt=0)] = Field(
        default=1800,
        description="TTL for cached ranked results of assisted (recommendation) requests",
    )

    # Concurrency and timeouts
    scoring_workers: Annotated[int, Field(gt=0)] = Field(
        default=8,
        description="Size of the worker pool used to score candidates",
    )
    persistence_timeout_seconds: Annotated[float, Field(gt=0.0)] = Field(
        default=5.0,
        description="Timeout for entity and pool fetches (fatal on expiry)",
    )
    cache_timeout_seconds: Annotated[float, Field(gt=0.0)] = Field(
        default=0.5,
        description="Timeout for cache get/set/invalidate (degrades on expiry)",
    )
    criteria_timeout_seconds: Annotated[float, Field(gt=0.0)] = Field(
        default=2.0,
        description="Timeout for loading stored criteria overrides",
    )

    # Skill matching
    skill_fuzzy_match: bool = Field(
        default=True,
        description="Enable fuzzy skill name matching",
    )
    skill_fuzzy_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.85,
        description="Similarity threshold for fuzzy matching",
    )
    skill_level_bonus_cap: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.1,
        description="Maximum bonus added to the skills score for meeting skill levels",
    )

    # Location
    default_max_distance_km: Annotated[float, Field(gt=0.0)] = Field(
        default=50.0,
        description="Max distance used when criteria do not set one",
    )

    # Notifications
    notify_min_score: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.8,
        description="Minimum total score for a match to trigger a notification",
    )


# Singleton instance for easy import
_matching_config: MatchingConfig | None = None


def get_matching_config() -> MatchingConfig:
    """Get the matching configuration singleton."""
    global _matching_config
    if _matching_config is None:
        _matching_config = MatchingConfig()
    return _matching_config


def reset_matching_config() -> None:
    """Reset the matching configuration singleton (useful for testing)."""
    global _matching_config
    _matching_config = None
