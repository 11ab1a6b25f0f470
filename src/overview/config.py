# src/overview/config.py
"""
Centralized configuration for Overview.
- Loads environment variables (OVERVIEW_*, or .env in dev) using Pydantic BaseSettings
- Provides typed settings with sane defaults
- Exposes a singleton `settings` for convenience, plus `get_settings()` for DI
"""
from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ROOT = Path(__file__).resolve().parents[2]  # repo root (…/src/overview/ → …/)
DEFAULT_DATA_DIR = ROOT / "data"
DEFAULT_CREDENTIALS_DIR = ROOT / ".credentials"


class GoogleOAuthPaths(BaseModel):
    client_secrets_path: Path = Field(default=DEFAULT_CREDENTIALS_DIR / "credentials.json")
    token_path: Path = Field(default=DEFAULT_CREDENTIALS_DIR / "token.json")

    def ensure_dirs(self) -> None:
        self.client_secrets_path.parent.mkdir(parents=True, exist_ok=True)
        self.token_path.parent.mkdir(parents=True, exist_ok=True)


class Settings(BaseSettings):
    """Typed, validated app configuration.

    Usage:
        from overview.config import settings
        tz = settings.tzinfo
    """

    model_config = SettingsConfigDict(
        env_prefix="OVERVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # --- runtime environment ---
    env: Literal["local", "test", "prod"] = Field(default="local", description="Runtime environment")

    # --- database ---
    data_dir: Path = Field(default=DEFAULT_DATA_DIR)
    db_filename: str = Field(default="overview.db")

    # --- summaries ---
    timezone: str = Field(default="UTC", description="IANA zone used for calendar arithmetic")
    first_year: int = Field(default=2020)
    last_year: int | None = Field(default=None, description="Defaults to the current year")
    untitled_label: str = Field(default="Unknown")
    clip_final_interval: bool = Field(default=True)
    summary_max_workers: int = Field(default=1, ge=1)

    # --- event source ---
    event_source: Literal["sqlite", "google"] = Field(default="sqlite")

    # --- providers: Google ---
    google: GoogleOAuthPaths = Field(default_factory=GoogleOAuthPaths)
    gcal_scopes: tuple[str, ...] = ("https://www.googleapis.com/auth/calendar.readonly",)
    gcal_api_version: str = "v3"

    # --- shared OAuth + app defaults ---
    oauth_headless: bool = False
    oauth_port: int = 0           # 0 lets Google pick an open port
    app_user_agent: str = "overview/0.1"

    # --- logging ---
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True, description="Emit logs as JSON if True, pretty if False")
    log_dir: Path = Field(default=DEFAULT_DATA_DIR / "logs")
    log_file: str = Field(default="overview.log")
    log_max_bytes: int = Field(default=2 * 1024 * 1024)  # 2MB
    log_backup_count: int = Field(default=3)
    redact_emails_in_logs: bool = Field(default=True)

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.log_file

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def years(self) -> list[int]:
        """Selectable years, oldest first."""
        last = self.last_year if self.last_year is not None else datetime.now(self.tzinfo).year
        return list(range(self.first_year, max(self.first_year, last) + 1))

    @field_validator("data_dir", "log_dir")
    @classmethod
    def _expand_user(cls, v: Path) -> Path:
        return Path(os.path.expanduser(str(v)))

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown time zone: {v!r}") from e
        return v

    def ensure_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.google.ensure_dirs()


# Singleton-ish settings instance for convenience; directories are created by the CLI
settings = Settings()


def get_settings() -> Settings:
    """Factory to retrieve settings (handy for dependency injection in tests)."""
    return settings
