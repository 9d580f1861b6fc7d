from __future__ import annotations

import argparse
import asyncio
from typing import Optional, Sequence

from app.config import settings
from app.core.logging import configure_logging, get_logger
from app.core.request_id import with_run_id
from app.models.news_public import IngestionResult
from app.models.news_sources import get_ingestion_sources
from services.news_ingest_service import ingest_news
from services.news_refresh_service import NewsRefreshScheduler

configure_logging(service_name="worker", level=settings.LOG_LEVEL)
logger = get_logger().bind(worker="news_ingest_bot")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="NewsIngestBot: fetch RSS feeds, synthesize them and store the news items."
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional limit on number of sources to ingest during this run.",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep running and refresh every NEWS_REFRESH_INTERVAL_MINUTES until interrupted.",
    )
    parser.add_argument(
        "--interval-minutes",
        type=int,
        default=None,
        help="Override the refresh interval used with --loop.",
    )
    return parser.parse_args(argv)


async def run_ingest(limit: Optional[int]) -> int:
    sources = get_ingestion_sources()
    if limit is not None:
        sources = sources[:limit]
    try:
        with with_run_id():
            result: IngestionResult = await ingest_news(sources=sources)
    except Exception as exc:
        logger.error("news_ingest_bot_failed", error=str(exc))
        return 1

    if not result.success:
        logger.warning("news_ingest_bot_no_output", error=result.error)
        return 1
    logger.info("news_ingest_bot_finished", count=result.count)
    return 0


async def run_loop(limit: Optional[int], interval_minutes: Optional[int]) -> int:
    async def _runner() -> IngestionResult:
        sources = get_ingestion_sources()
        if limit is not None:
            sources = sources[:limit]
        with with_run_id():
            return await ingest_news(sources=sources)

    scheduler = NewsRefreshScheduler(_runner, interval_minutes=interval_minutes)
    try:
        await scheduler.refresh()
    except Exception as exc:
        logger.error("news_ingest_bot_failed", error=str(exc))
    scheduler.start()
    try:
        await scheduler.wait_stopped()
    finally:
        await scheduler.stop()
    return 0


async def main_async(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    if args.loop:
        return await run_loop(args.limit, args.interval_minutes)
    return await run_ingest(limit=args.limit)


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
