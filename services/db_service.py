# services/db_service.py
from __future__ import annotations

import os
import re
import asyncio
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence
from contextlib import asynccontextmanager
from time import monotonic
from urllib.parse import urlparse

import logging
import asyncpg

from app.config import require_database_url


def normalize_database_url(raw_dsn: str) -> str:
    """
    Keep the Supabase username, encoded password, host/port/db EXACT;
    only rewrite the scheme from postgresql+asyncpg:// to postgresql:// if needed.
    """
    raw_dsn = raw_dsn.strip()
    if raw_dsn.startswith("postgresql+asyncpg://"):
        raw_dsn = "postgresql://" + raw_dsn[len("postgresql+asyncpg://"):]
    return raw_dsn

logger = logging.getLogger(__name__)

APPLICATION_NAME = "hermes-news-backend"
STATEMENT_TIMEOUT_MS = int(os.getenv("STATEMENT_TIMEOUT_MS", "30000"))
IDLE_IN_TX_TIMEOUT_MS = int(os.getenv("IDLE_IN_TX_TIMEOUT_MS", "60000"))
LOCK_TIMEOUT_MS = int(os.getenv("LOCK_TIMEOUT_MS", "5000"))
DB_POOL_MIN_SIZE = int(os.getenv("DB_POOL_MIN_SIZE", "1"))
DB_POOL_MAX_SIZE = int(os.getenv("DB_POOL_MAX_SIZE", "4"))
DEFAULT_QUERY_TIMEOUT_MS = int(os.getenv("DEFAULT_QUERY_TIMEOUT_MS", "30000"))
SLOW_QUERY_THRESHOLD_MS = 1_000  # 1 second

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# --------------------------------------------------------------------
# Lazy asyncpg pool; created on first use, never at import time
# --------------------------------------------------------------------
_pool: asyncpg.Pool | None = None
_pool_lock = asyncio.Lock()

async def ensure_pool() -> asyncpg.Pool:
    global _pool
    if _pool is not None:
        return _pool

    async with _pool_lock:
        if _pool is not None:
            return _pool

        final_dsn = normalize_database_url(require_database_url())

        logger.info(
            "db_pool_initializing",
            extra={
                "dsn_host": urlparse(final_dsn).hostname,
                "dsn_port": urlparse(final_dsn).port,
                "application_name": APPLICATION_NAME,
            },
        )
        _pool = await asyncpg.create_pool(
            dsn=final_dsn,
            min_size=DB_POOL_MIN_SIZE,
            max_size=DB_POOL_MAX_SIZE,
            command_timeout=60,
            timeout=60,
            statement_cache_size=0,
            max_inactive_connection_lifetime=30,
            server_settings={
                "application_name": APPLICATION_NAME,
                "statement_timeout": str(STATEMENT_TIMEOUT_MS),
                "idle_in_transaction_session_timeout": str(IDLE_IN_TX_TIMEOUT_MS),
                "lock_timeout": str(LOCK_TIMEOUT_MS),
            },
        )
        return _pool

async def close_db_pool() -> None:
    global _pool
    if _pool is None:
        return
    pool, _pool = _pool, None
    await pool.close()
    logger.info("db_pool_closed")

async def _execute_with_timing(
    conn: asyncpg.Connection,
    method: str,
    query: str,
    *args: Any,
    timeout: Optional[float] = None,
) -> Any:
    start_ms = monotonic() * 1000
    try:
        func = getattr(conn, method)
        effective_timeout = (
            timeout if timeout is not None else DEFAULT_QUERY_TIMEOUT_MS / 1000
        )
        return await func(query, *args, timeout=effective_timeout)
    finally:
        duration_ms = (monotonic() * 1000) - start_ms
        if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
            logger.warning(
                "db_slow_query",
                extra={
                    "duration_ms": round(duration_ms, 2),
                    "method": method,
                    "arg_count": len(args),
                    "query_snippet": query.strip().split("\n")[0][:200],
                },
            )

@asynccontextmanager
async def run_in_transaction(
    *,
    isolation: Optional[str] = None,
    readonly: bool = False,
) -> AsyncIterator[asyncpg.Connection]:
    pool = await ensure_pool()
    async with pool.acquire() as conn:
        tx = conn.transaction(isolation=isolation, readonly=readonly)
        await tx.start()
        try:
            yield conn
        except Exception:
            await tx.rollback()
            raise
        else:
            await tx.commit()

async def fetch_with_conn(
    conn: asyncpg.Connection,
    query: str,
    *args: Any,
    timeout: Optional[float] = None,
) -> List[asyncpg.Record]:
    return await _execute_with_timing(conn, "fetch", query, *args, timeout=timeout)

# --------------------------------------------------------------------
# Bulk insert helper
# --------------------------------------------------------------------
def quote_ident(name: str) -> str:
    """Quote a (optionally schema-qualified) identifier; rejects anything unusual."""
    parts = name.split(".")
    if not parts or any(not _IDENT_RE.match(p) for p in parts):
        raise ValueError(f"invalid SQL identifier: {name!r}")
    return ".".join(f'"{p}"' for p in parts)

def build_insert_sql(table: str, columns: Sequence[str], row_count: int) -> str:
    col_sql = ", ".join(quote_ident(c) for c in columns)
    width = len(columns)
    values_sql = ",\n".join(
        "(" + ", ".join(f"${r * width + c + 1}" for c in range(width)) + ")"
        for r in range(row_count)
    )
    return f"INSERT INTO {quote_ident(table)} ({col_sql})\nVALUES\n{values_sql}\nRETURNING *"

async def insert_rows(table: str, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Insert all rows with ONE multi-row statement inside one transaction.
    Every row must carry the same columns. Returns the inserted records.
    """
    if not rows:
        return []
    columns = list(rows[0].keys())
    for row in rows:
        if list(row.keys()) != columns:
            raise ValueError("all rows must have the same columns in the same order")

    sql = build_insert_sql(table, columns, len(rows))
    args: List[Any] = [row[c] for row in rows for c in columns]
    async with run_in_transaction() as conn:
        records = await fetch_with_conn(conn, sql, *args)
    return [dict(r) for r in records]
