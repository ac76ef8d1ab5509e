"""Configuration for the conquest engine services."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, read from the environment and ``.env``.

    Game constants (thresholds, limits) are not settings; they live in
    :mod:`conquest.domain.rules_config`.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="CONQUEST_"
    )

    database_url: str = Field(default="sqlite:///conquest.db", description="SQLAlchemy database URL")
    database_echo: bool = Field(default=False, description="Log every SQL statement")
    database_pool_size: int = Field(default=5, ge=1)
    database_max_overflow: int = Field(default=10, ge=0)
    database_pool_recycle: int = Field(default=3600, description="Seconds before a pooled connection is recycled")
    database_pool_timeout: int = Field(default=30, ge=1)

    log_level: str = Field(default="INFO", description="Root logging level")

    event_mode_cache_ttl_seconds: float = Field(
        default=30.0,
        description="How long an event mode lookup is trusted before the settings table is read again",
        gt=0.0,
    )
    spatial_index_cell_degrees: float = Field(
        default=0.01,
        description="Grid cell size of the territory spatial index, in degrees",
        gt=0.0,
    )
    max_conflict_retries: int = Field(
        default=3,
        description="Retries after a concurrent conquest invalidated the computed result",
        ge=0,
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:8081", "http://127.0.0.1:8081"],
        description="Origins allowed to call the HTTP API",
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
