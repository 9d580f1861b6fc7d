from __future__ import annotations

from typing import Callable, List, Optional, Sequence

from app.config import MissingConfigError, settings
from app.core.logging import get_logger
from app.models.news_normalized import ExtractedNewsItem
from app.models.news_public import IngestionResult
from app.models.news_sources import NewsSource, get_ingestion_sources
from app.models.news_synthesis import SynthesisResult
from app.services.provider_factory import get_news_store
from services.news_fetch_service import NewsFetchService
from services.news_store import NewsStore, persist_synthesis
from services.news_synthesis_service import NewsSynthesisService

logger = get_logger()

NO_ITEMS_ERROR = "No items fetched from RSS feeds"
SYNTHESIS_FAILED_ERROR = "AI synthesis failed"


async def ingest_news(
    *,
    sources: Optional[Sequence[NewsSource]] = None,
    synthesizer_factory: Optional[Callable[[], NewsSynthesisService]] = None,
    store: Optional[NewsStore] = None,
    table: Optional[str] = None,
    max_items: Optional[int] = None,
) -> IngestionResult:
    """
    One ingestion run:
    fetch all sources -> extract -> cap -> synthesize per batch -> one bulk insert.

    Recoverable problems (dead feeds, skipped batches) only shrink the output;
    the result carries success=False when a whole stage comes up empty or the
    insert is rejected.
    """
    sources = list(sources) if sources is not None else get_ingestion_sources()
    max_items = max_items if max_items is not None else settings.NEWS_INGEST_MAX_ITEMS

    async with NewsFetchService(user_agent=settings.NEWS_FETCH_USER_AGENT) as fetcher:
        items: List[ExtractedNewsItem] = await fetcher.collect_items(
            sources,
            max_items_per_source=settings.NEWS_INGEST_ITEMS_PER_SOURCE,
            description_limit=settings.NEWS_INGEST_DESCRIPTION_MAX,
        )

    logger.info("news_ingest_items_fetched", sources=len(sources), items=len(items))
    if not items:
        logger.warning("news_ingest_no_items")
        return IngestionResult(success=False, error=NO_ITEMS_ERROR)

    selected = items[:max_items]
    logger.info("news_ingest_items_selected", fetched=len(items), selected=len(selected))

    try:
        synthesizer = synthesizer_factory() if synthesizer_factory else NewsSynthesisService()
    except MissingConfigError as exc:
        logger.error("news_ingest_synthesizer_unavailable", error=str(exc))
        return IngestionResult(success=False, error=SYNTHESIS_FAILED_ERROR)

    results: List[SynthesisResult] = await synthesizer.synthesize(selected)
    logger.info("news_ingest_synthesized", batches_input=len(selected), results=len(results))
    if not results:
        return IngestionResult(success=False, error=SYNTHESIS_FAILED_ERROR)

    try:
        store = store or get_news_store()
    except (MissingConfigError, ValueError) as exc:
        logger.error("news_ingest_store_unavailable", error=str(exc))
        return IngestionResult(success=False, error=str(exc))

    outcome = await persist_synthesis(store, results, table=table)
    if not outcome.ok:
        return IngestionResult(success=False, error=outcome.error)

    count = len(results)
    stored = outcome.rows or [r.model_dump() for r in results]
    logger.info("news_ingest_done", count=count)
    return IngestionResult(
        success=True,
        count=count,
        message=f"{count} news items added",
        items=stored,
    )
