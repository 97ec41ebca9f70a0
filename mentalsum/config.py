"""
Configuration settings for Mental Sum.

Uses Pydantic Settings for environment variable management with .env file support.
All variables use the MENTALSUM_ prefix, e.g. MENTALSUM_DATA_DIR.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MENTALSUM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".mentalsum",
        description="Directory holding the persisted document",
    )
    storage_key: str = Field(
        default="mental-sum-app-data",
        description="Key (file stem) of the persisted document",
    )
    storage_quota_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum serialized document size in bytes",
    )
    problem_history_limit: int | None = Field(
        default=None,
        description="Cap on problemHistory per user (None keeps every problem)",
    )

    # ========================================
    # Practice Defaults
    # ========================================
    default_session_length: int = Field(
        default=10,
        description="Problems per session for new users",
    )
    default_max_number: int = Field(
        default=99,
        description="Largest operand for new users",
    )
    default_time_limit: int = Field(
        default=30,
        description="Seconds per problem for new users",
    )
    random_seed: int | None = Field(
        default=None,
        description="Seed for problem generation (None for random)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    @property
    def storage_path(self) -> Path:
        return self.data_dir / f"{self.storage_key}.json"

    def default_preferences(self) -> dict:
        """Preference overrides applied to newly created users."""
        return {
            "session_length": self.default_session_length,
            "max_number": self.default_max_number,
            "time_limit": self.default_time_limit,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
