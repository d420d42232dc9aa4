# src/xraytrace/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for SDK, store, API server and logging settings.
Environment variables use the XRAY_ prefix (e.g. XRAY_API_URL).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from xraytrace.core.errors import XRayError


class ConfigurationError(XRayError):
    """Raised when configuration is invalid or internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="XRAY_",
        extra="ignore",
    )

    # === Transport ===
    api_url: str = "http://localhost:3000"
    api_timeout_s: float = 5.0
    retry_on_failure: bool = False
    retry_max_attempts: int = 3
    retry_base_delay_s: float = 0.5

    # === Store ===
    store_backend: Literal["memory", "sqlite", "http"] = "http"
    sqlite_path: Path = Path("~/.xraytrace/xray.db")
    run_detail_candidate_limit: int = 100

    # === Capture strategy ===
    full_capture_threshold: int = 100
    top_accepted_count: int = 50
    sample_rejected_count: int = 20
    capture_random_seed: int | None = None

    # === API server ===
    api_host: str = "127.0.0.1"
    api_port: int = 3000

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:  # noqa: N805
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Reject negative thresholds and unusable transport settings."""
        errors: list[str] = []

        for name in (
            "full_capture_threshold",
            "top_accepted_count",
            "sample_rejected_count",
            "run_detail_candidate_limit",
        ):
            if getattr(self, name) < 0:
                errors.append(f"{name.upper()} must be >= 0")

        if self.api_timeout_s <= 0:
            errors.append("API_TIMEOUT_S must be > 0")

        if self.retry_on_failure and self.retry_max_attempts < 1:
            errors.append("RETRY_MAX_ATTEMPTS must be >= 1 when RETRY_ON_FAILURE is set")

        if self.store_backend == "http" and not self.api_url:
            errors.append("STORE_BACKEND=http requires API_URL")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
