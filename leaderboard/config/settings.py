"""Application settings loaded from environment variables via pydantic-settings.

Settings are resolved from four layers, highest priority first:

    1. keyword arguments (tests, CLI flags)
    2. environment variables, e.g. ``REQUEST_DELAY_MIN=1``
    3. the ``.env`` file in the working directory
    4. the ``leaderboard:`` section of ``config/config.yaml``

Field ``request_delay_min`` maps to env var ``REQUEST_DELAY_MIN``; matching
is case-insensitive.  The data directory also honours
``RAILWAY_VOLUME_MOUNT_PATH`` so the same image runs on a mounted volume
without extra configuration.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Leaderboard update-cycle settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Storage ===
    data_dir: Path = Field(
        default=Path("./data"),
        validation_alias=AliasChoices("data_dir", "DATA_DIR", "RAILWAY_VOLUME_MOUNT_PATH"),
    )

    # === Acquisition ===
    expected_domain: str = "amazon.com"
    request_delay_min: float = Field(default=3.0, ge=0)
    request_delay_max: float = Field(default=10.0, ge=0)
    fetch_max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=300.0, ge=0)  # seconds, doubled per attempt
    retry_min_delay: float = Field(default=90.0, ge=0)
    retry_jitter: float = Field(default=30.0, ge=0)
    fetch_timeout: float = Field(default=30.0, gt=0)
    max_redirects: int = Field(default=5, ge=0)

    # === Cleaner ===
    cleaner_max_failed_attempts: int = Field(default=3, ge=1)

    # === Orchestration / publication ===
    stale_lock_seconds: float = Field(default=3600.0, gt=0)
    leaderboard_version: str = "1.0"

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_delay_window(self) -> Settings:
        if self.request_delay_min > self.request_delay_max:
            raise ValueError(
                f"request_delay_min ({self.request_delay_min}) must not exceed "
                f"request_delay_max ({self.request_delay_max})"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"
