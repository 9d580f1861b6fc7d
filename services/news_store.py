from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

import asyncpg
import httpx
from supabase import Client, PostgrestAPIError, create_client

from app.config import MissingConfigError, require_supabase, settings
from app.core.logging import get_logger
from app.models.news_synthesis import SynthesisResult
from services.db_service import insert_rows

logger = get_logger()


@dataclass
class InsertResult:
    """Either the inserted rows or the storage layer's error message."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class NewsStore(Protocol):
    async def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> InsertResult:
        ...


class PostgresNewsStore:
    """Writes through the shared asyncpg pool (Supabase Postgres DSN)."""

    async def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> InsertResult:
        try:
            inserted = await insert_rows(table, rows)
        except (
            asyncpg.PostgresError,
            asyncpg.InterfaceError,
            OSError,
            asyncio.TimeoutError,
            MissingConfigError,
            ValueError,
        ) as exc:
            logger.error("news_store_insert_failed", backend="postgres", table=table, error=str(exc))
            return InsertResult(error=str(exc))
        return InsertResult(rows=inserted)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SupabaseNewsStore:
    """Writes through the Supabase client (PostgREST under the hood)."""

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        *,
        client: Optional[Client] = None,
    ) -> None:
        if client is None:
            if url is None or key is None:
                url, key = require_supabase()
            client = create_client(url, key)
        self.client = client

    def _insert_sync(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        response = self.client.table(table).insert(rows).execute()
        return list(response.data or [])

    async def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> InsertResult:
        payload = [{k: _jsonable(v) for k, v in row.items()} for row in rows]
        try:
            # Sync client; runs in a worker thread.
            inserted = await asyncio.to_thread(self._insert_sync, table, payload)
        except PostgrestAPIError as exc:
            message = exc.message or str(exc)
            logger.error(
                "news_store_insert_failed",
                backend="supabase",
                table=table,
                code=exc.code,
                error=message,
            )
            return InsertResult(error=message)
        except httpx.HTTPError as exc:
            logger.error("news_store_insert_failed", backend="supabase", table=table, error=str(exc))
            return InsertResult(error=str(exc))
        return InsertResult(rows=inserted)


def build_news_row(result: SynthesisResult, published_at: datetime) -> Dict[str, Any]:
    return {
        "title": result.title,
        "summary": result.summary,
        "category": result.category,
        "location": result.location,
        "source_urls": list(result.source_urls),
        "published_at": published_at,
    }


async def persist_synthesis(
    store: NewsStore,
    results: Sequence[SynthesisResult],
    *,
    table: Optional[str] = None,
) -> InsertResult:
    """
    Stamp every result with the current UTC time and hand all rows to the
    store in a single insert call.
    """
    if not results:
        return InsertResult()
    table = table or settings.NEWS_TABLE
    published_at = datetime.now(timezone.utc)
    rows = [build_news_row(r, published_at) for r in results]
    outcome = await store.insert(table, rows)
    if outcome.ok:
        logger.info("news_persist_ok", table=table, rows=len(rows), inserted=len(outcome.rows))
    return outcome
