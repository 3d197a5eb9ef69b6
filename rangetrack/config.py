"""
RangeTrack — Centralized configuration.

Loads all settings from .env and validates required keys.
Every other module reads its knobs from the `settings` singleton below.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from rangetrack/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # Local model endpoint (tried first by the assistant)
    OLLAMA_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.2"

    # Cloud LLM, provider-agnostic (openrouter, openai, anthropic, gemini, cohere)
    LLM_PROVIDER: str = "openrouter"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str = ""        # empty → cloud path disabled
    LLM_TIMEOUT_SECONDS: float = 20.0

    # SQLite
    DATABASE_PATH: str = "data/rangetrack.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Daily digest + weather refresh
    DAILY_DIGEST_HOUR: int = 6
    WEATHER_REFRESH_MINUTES: int = 30
    TIMEZONE: str = "America/Denver"

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("DAILY_DIGEST_HOUR", "WEATHER_REFRESH_MINUTES", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("LLM_API_KEY", mode="before")
    @classmethod
    def drop_placeholder_key(cls, v: str) -> str:
        # .env.example ships "your-..." placeholders
        if isinstance(v, str) and v.startswith("your-"):
            return ""
        return v


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        OLLAMA_URL=os.getenv("OLLAMA_URL", "http://localhost:11434"),
        OLLAMA_MODEL=os.getenv("OLLAMA_MODEL", "llama3.2"),
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "openrouter"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=os.getenv("LLM_API_KEY", ""),
        LLM_TIMEOUT_SECONDS=os.getenv("LLM_TIMEOUT_SECONDS", "20"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/rangetrack.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        DAILY_DIGEST_HOUR=os.getenv("DAILY_DIGEST_HOUR", "6"),
        WEATHER_REFRESH_MINUTES=os.getenv("WEATHER_REFRESH_MINUTES", "30"),
        TIMEZONE=os.getenv("TIMEZONE", "America/Denver"),
    )


# Singleton, imported by all other modules as:
#   from rangetrack.config import settings
settings = _load_settings()
