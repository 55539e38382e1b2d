"""
Centralised client settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── PxWebApi ─────────────────────────────────────────
    pxweb_base_url: str = "https://api.scb.se/OV0104/v2beta/api/v2"
    default_language: str = "en"
    user_agent: str = "scb-query-pipeline/0.1"
    request_timeout_seconds: float = 30.0

    # ── Usage window ─────────────────────────────────────
    # Used only when the server /config call fails.
    fallback_max_calls: int = 30
    fallback_time_window: int = 10
    wait_on_quota: bool = False
    max_quota_wait_seconds: float = 10.0

    # ── Validation ───────────────────────────────────────
    max_value_suggestions: int = 3

    # ── App ──────────────────────────────────────────────
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
