from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence

import httpx

from app.config import settings
from app.core.logging import get_logger
from app.models.news_normalized import ExtractedNewsItem
from app.models.news_sources import NewsSource
from services.rss_normalization import extract_items

logger = get_logger()


class NewsFetchService:
    """
    Concurrent RSS fetcher. One GET per source, no retries.
    A failing source yields empty content and never fails the batch.
    """

    def __init__(
        self,
        *,
        user_agent: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.user_agent = user_agent or settings.NEWS_FETCH_USER_AGENT
        self.timeout_s = timeout_s if timeout_s is not None else settings.NEWS_FETCH_TIMEOUT_S
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "NewsFetchService":
        if self._client is None:
            kwargs = {
                "headers": {"User-Agent": self.user_agent},
                "follow_redirects": True,
            }
            if self.timeout_s is not None:
                kwargs["timeout"] = self.timeout_s
            self._client = httpx.AsyncClient(**kwargs)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch_feed(self, source: NewsSource) -> bytes:
        if not self._client:
            raise RuntimeError("NewsFetchService client not initialized")
        try:
            response = await self._client.get(source.url)
            response.raise_for_status()
            return response.content
        except Exception as exc:
            logger.warning(
                "news_fetch_feed_failed",
                source=source.name,
                url=source.url,
                error=str(exc),
            )
            return b""

    async def fetch_all(self, sources: Sequence[NewsSource]) -> List[bytes]:
        """Fetch every source concurrently; result i belongs to sources[i]."""
        if not sources:
            return []
        return list(await asyncio.gather(*(self.fetch_feed(src) for src in sources)))

    async def collect_items(
        self,
        sources: Sequence[NewsSource],
        *,
        max_items_per_source: Optional[int] = None,
        description_limit: Optional[int] = None,
    ) -> List[ExtractedNewsItem]:
        """Fetch all sources and concatenate their extracted items in source order."""
        contents = await self.fetch_all(sources)
        items: List[ExtractedNewsItem] = []
        per_source: Dict[str, int] = {}
        for source, raw in zip(sources, contents):
            extracted = extract_items(
                raw,
                source,
                max_items=max_items_per_source,
                description_limit=description_limit,
            )
            per_source[source.name] = len(extracted)
            items.extend(extracted)

        logger.info(
            "news_fetch_summary",
            total_sources=len(sources),
            failed_sources=sum(1 for raw in contents if not raw),
            total_items=len(items),
            per_source=per_source,
        )
        return items
