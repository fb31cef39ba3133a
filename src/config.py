"""
Household Bulk Assistant — Centralized configuration.

Loads AI gateway and storage settings from .env and validates their ranges.
Every component accepts an explicit Settings instance; the module-level
`settings` singleton is only the default.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Global kill switch: false disables AI for every family
    AI_FEATURE_ENABLED: bool = True

    # External text-generation endpoint
    AI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"
    AI_MODEL: str = "gemini-2.0-flash"

    # Sliding window per family, plus a daily quota
    AI_REQUEST_RATE_LIMIT: int = 10
    AI_RATE_LIMIT_WINDOW_SECONDS: int = 60
    AI_MAX_REQUESTS_PER_FAMILY: int = 100

    # Hard deadline for one external call
    AI_REQUEST_TIMEOUT_MS: int = 30000

    # Process-local caches (lost on restart)
    AI_CACHE_RESPONSES_MINUTES: int = 15
    AI_CACHE_MAX_ENTRIES: int = 100
    AI_FAMILY_CONFIG_TTL_SECONDS: int = 300

    # Per-family AI config store: "memory" | "sqlite"
    CONFIG_STORE: str = "memory"
    DATABASE_PATH: str = "data/family_ai_config.db"

    @field_validator("AI_FEATURE_ENABLED", mode="before")
    @classmethod
    def parse_bool(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() not in ("false", "0", "no", "off")

    @field_validator("AI_REQUEST_RATE_LIMIT")
    @classmethod
    def check_rate_limit(cls, v: int) -> int:
        if v < 1 or v > 60:
            raise ValueError("AI_REQUEST_RATE_LIMIT must be between 1 and 60 requests per window")
        return v

    @field_validator("AI_REQUEST_TIMEOUT_MS")
    @classmethod
    def check_timeout(cls, v: int) -> int:
        if v < 5000 or v > 60000:
            raise ValueError("AI_REQUEST_TIMEOUT_MS must be between 5000 and 60000")
        return v

    @field_validator(
        "AI_RATE_LIMIT_WINDOW_SECONDS",
        "AI_MAX_REQUESTS_PER_FAMILY",
        "AI_CACHE_MAX_ENTRIES",
        "AI_FAMILY_CONFIG_TTL_SECONDS",
    )
    @classmethod
    def check_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v


def _load_settings() -> Settings:
    """Load settings from environment, falling back to defaults for unset keys."""
    defaults = Settings()
    return Settings(
        AI_FEATURE_ENABLED=os.getenv("AI_FEATURE_ENABLED", "true"),
        AI_BASE_URL=os.getenv("AI_BASE_URL", defaults.AI_BASE_URL),
        AI_MODEL=os.getenv("AI_MODEL", defaults.AI_MODEL),
        AI_REQUEST_RATE_LIMIT=os.getenv("AI_REQUEST_RATE_LIMIT", "10"),
        AI_RATE_LIMIT_WINDOW_SECONDS=os.getenv("AI_RATE_LIMIT_WINDOW_SECONDS", "60"),
        AI_MAX_REQUESTS_PER_FAMILY=os.getenv("AI_MAX_REQUESTS_PER_FAMILY", "100"),
        AI_REQUEST_TIMEOUT_MS=os.getenv("AI_REQUEST_TIMEOUT_MS", "30000"),
        AI_CACHE_RESPONSES_MINUTES=os.getenv("AI_CACHE_RESPONSES_MINUTES", "15"),
        AI_CACHE_MAX_ENTRIES=os.getenv("AI_CACHE_MAX_ENTRIES", "100"),
        AI_FAMILY_CONFIG_TTL_SECONDS=os.getenv("AI_FAMILY_CONFIG_TTL_SECONDS", "300"),
        CONFIG_STORE=os.getenv("CONFIG_STORE", "memory"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", defaults.DATABASE_PATH),
    )


# Default instance, imported as:
#   from src.config import settings
settings = _load_settings()
