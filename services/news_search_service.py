from __future__ import annotations

from typing import Callable, List, Optional, Sequence

from app.config import MissingConfigError, settings
from app.core.logging import get_logger
from app.models.news_normalized import ExtractedNewsItem
from app.models.news_public import SearchResponse
from app.models.news_sources import NewsSource, get_search_sources
from app.models.news_synthesis import SearchSynthesis
from services.news_fetch_service import NewsFetchService
from services.news_synthesis_service import NewsSynthesisService
from services.rss_normalization import truncate_text

logger = get_logger()


class QueryTooShortError(ValueError):
    """Search query below the minimum length; rejected before any network call."""

    def __init__(self, message: str = "Query too short"):
        super().__init__(message)


def validate_query(query: Optional[str], min_length: Optional[int] = None) -> str:
    min_length = min_length if min_length is not None else settings.NEWS_SEARCH_MIN_QUERY_LENGTH
    if not isinstance(query, str) or len(query.strip()) < min_length:
        raise QueryTooShortError()
    return query.strip()


def match_items(items: Sequence[ExtractedNewsItem], query: str) -> List[ExtractedNewsItem]:
    """Case-insensitive substring match over title or description, in input order."""
    needle = query.lower()
    return [
        item
        for item in items
        if needle in item.title.lower() or needle in item.description.lower()
    ]


async def search_news_sources(
    query: Optional[str],
    synthesize: bool = True,
    *,
    sources: Optional[Sequence[NewsSource]] = None,
    synthesizer_factory: Optional[Callable[[], NewsSynthesisService]] = None,
) -> SearchResponse:
    """
    Fresh scan of every search source (no caching) for ``query``.
    Raises QueryTooShortError before any fetch when the query is too short.
    """
    query = validate_query(query)
    sources = list(sources) if sources is not None else get_search_sources()

    async with NewsFetchService(user_agent=settings.NEWS_SEARCH_USER_AGENT) as fetcher:
        items = await fetcher.collect_items(sources)

    matches = match_items(items, query)
    results = [
        item.model_copy(
            update={"description": truncate_text(item.description, settings.NEWS_SEARCH_DESCRIPTION_MAX)}
        )
        for item in matches[: settings.NEWS_SEARCH_MAX_RESULTS]
    ]
    logger.info(
        "news_search_done",
        query=query,
        sources=len(sources),
        scanned=len(items),
        matched=len(matches),
        returned=len(results),
    )

    synthesized: Optional[SearchSynthesis] = None
    if synthesize and results:
        try:
            synthesizer = synthesizer_factory() if synthesizer_factory else NewsSynthesisService()
        except MissingConfigError as exc:
            logger.error("news_search_synthesizer_unavailable", error=str(exc))
        else:
            synthesized = await synthesizer.synthesize_search(
                query, results[: settings.NEWS_SEARCH_SYNTHESIS_ITEMS]
            )

    return SearchResponse(
        success=True,
        results=results,
        synthesized=synthesized,
        sources_searched=len(sources),
    )
