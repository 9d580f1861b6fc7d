# -*- coding: utf-8 -*-
"""
Provider Factory: switch between news datastore backends
- Environment-driven backend selection
- Returns the NewsStore implementation named by NEWS_STORE_BACKEND
"""

from __future__ import annotations

from typing import Union

from app.config import settings
from services.news_store import PostgresNewsStore, SupabaseNewsStore


def get_news_store() -> Union[PostgresNewsStore, SupabaseNewsStore]:
    """
    Get the news store based on configuration.

    Returns:
        PostgresNewsStore if NEWS_STORE_BACKEND=postgres (default)
        SupabaseNewsStore if NEWS_STORE_BACKEND=supabase

    Raises:
        ValueError: If NEWS_STORE_BACKEND is set to an unsupported value
    """
    backend = (settings.NEWS_STORE_BACKEND or "postgres").lower().strip()

    if backend == "postgres":
        return PostgresNewsStore()
    elif backend == "supabase":
        # Fails with MissingConfigError when URL/key are not set
        return SupabaseNewsStore()
    else:
        raise ValueError(
            f"Unsupported NEWS_STORE_BACKEND: {backend}. "
            f"Supported values: 'postgres', 'supabase'"
        )
