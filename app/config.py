# app/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env lives at the project root, next to app/
ENV_FILE = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(ENV_FILE, override=False)  # pre-load into the process environment


class MissingConfigError(RuntimeError):
    """Raised at runtime when a service needs a setting that is not configured."""


class Settings(BaseSettings):
    # ---- App ----
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # ---- Chat-completion API (OpenAI compatible gateway) ----
    # Not required at class level so the API can boot without it;
    # validated at runtime by require_openai().
    OPENAI_API_KEY: Optional[str] = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    OPENAI_BASE_URL: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4.1-mini"
    OPENAI_TIMEOUT_S: float = 60.0
    OPENAI_JSON_MODE: bool = True
    SYNTHESIS_LANGUAGE: str = "French"

    # ---- Datastore ----
    NEWS_STORE_BACKEND: str = "postgres"  # postgres | supabase
    NEWS_TABLE: str = "news"
    DATABASE_URL: Optional[str] = None
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # ---- Feeds ----
    NEWS_SOURCES_PATH: Optional[str] = None
    NEWS_FETCH_TIMEOUT_S: Optional[float] = None  # None = httpx default
    NEWS_FETCH_USER_AGENT: str = "hermes-news-bot/1.0"
    NEWS_SEARCH_USER_AGENT: str = "hermes-search-bot/1.0"

    # ---- Ingestion pipeline ----
    NEWS_INGEST_ITEMS_PER_SOURCE: int = 5
    NEWS_INGEST_DESCRIPTION_MAX: int = 500
    NEWS_INGEST_MAX_ITEMS: int = 15
    NEWS_SYNTHESIS_BATCH_SIZE: int = 3
    NEWS_SYNTHESIS_MAX_CONCURRENCY: int = 1

    # ---- Search ----
    NEWS_SEARCH_DESCRIPTION_MAX: int = 300
    NEWS_SEARCH_MAX_RESULTS: int = 20
    NEWS_SEARCH_SYNTHESIS_ITEMS: int = 5
    NEWS_SEARCH_MIN_QUERY_LENGTH: int = 2

    # ---- Refresh schedule ----
    NEWS_REFRESH_INTERVAL_MINUTES: int = 10
    NEWS_AUTO_REFRESH_ENABLED: bool = False

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()


def require_openai() -> str:
    """
    Runtime check with a clear message when the model API key is missing.
    """
    if not settings.OPENAI_API_KEY:
        raise MissingConfigError(
            "OPENAI_API_KEY is not configured. Check .env "
            f"(tried to load from: {ENV_FILE})."
        )
    return settings.OPENAI_API_KEY


def require_database_url() -> str:
    if not settings.DATABASE_URL:
        raise MissingConfigError(
            "DATABASE_URL is not configured. Set it in .env "
            f"(tried to load from: {ENV_FILE})."
        )
    return settings.DATABASE_URL


def require_supabase() -> Tuple[str, str]:
    """
    Return (SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY) or fail loudly.
    """
    url = settings.SUPABASE_URL
    key = settings.SUPABASE_SERVICE_ROLE_KEY
    if not url or not key:
        raise MissingConfigError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must both be set "
            "when NEWS_STORE_BACKEND=supabase."
        )
    return url.rstrip("/"), key
