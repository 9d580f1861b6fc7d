from __future__ import annotations

import asyncio
import re
from typing import List, Optional, Sequence

import httpx
from bs4 import BeautifulSoup

from app.core.logging import get_logger

logger = get_logger()

DEFAULT_PAGE_USER_AGENT = "Mozilla/5.0 (compatible; hermes-news-bot/1.0)"
_WHITESPACE_RE = re.compile(r"\s+")


def html_to_text(html: str, max_chars: Optional[int] = None) -> str:
    """Visible text of an HTML page: script/style/noscript removed, whitespace collapsed."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = _WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()
    if max_chars is not None:
        text = text[:max_chars]
    return text


class BaseScraperService:
    """
    Shared base class for page scraping services.

    Provides common HTTP client management, optional retry logic and
    concurrency control, reused by the article and URL-synthesis services.
    """

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_PAGE_USER_AGENT,
        timeout_s: float = 15,
        max_concurrency: int = 5,
        max_retries: int = 0,
    ) -> None:
        """
        Args:
            user_agent: User-Agent string for HTTP requests
            timeout_s: Request timeout in seconds
            max_concurrency: Maximum concurrent requests (semaphore limit)
            max_retries: Retry attempts for failed requests (0 = single attempt)
        """
        self.user_agent = user_agent
        self.timeout_s = timeout_s
        self.max_concurrency = max(1, max_concurrency)
        self.max_retries = max(0, max_retries)
        self._client: Optional[httpx.AsyncClient] = None
        self._sem = asyncio.Semaphore(self.max_concurrency)

    async def __aenter__(self) -> "BaseScraperService":
        self._client = httpx.AsyncClient(
            timeout=self.timeout_s,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> httpx.Response:
        """
        Fetch URL with retry logic and concurrency control.

        Raises:
            httpx.HTTPError: If all attempts fail
        """
        if self._client is None:
            raise RuntimeError(f"{self.__class__.__name__} HTTP client not initialized")

        attempt = 0
        delay = 1.0
        last_exc: Optional[httpx.HTTPError] = None

        while attempt <= self.max_retries:
            try:
                async with self._sem:
                    response = await self._client.get(url)
                response.raise_for_status()
                return response
            except httpx.HTTPError as exc:
                last_exc = exc
                attempt += 1
                if attempt > self.max_retries:
                    break
                await asyncio.sleep(delay)
                delay = min(delay * 2, 10)

        assert last_exc is not None
        raise last_exc

    async def fetch_page_text(self, url: str, max_chars: Optional[int] = None) -> Optional[str]:
        """
        Fetch a page and return its visible text, or None when the page is
        unreachable or has no text.
        """
        try:
            response = await self.fetch(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("page_fetch_failed", url=url, error=str(exc))
            return None
        text = html_to_text(response.text, max_chars)
        return text or None

    async def fetch_many_texts(
        self,
        urls: Sequence[str],
        max_chars: Optional[int] = None,
    ) -> List[Optional[str]]:
        """Concurrent fetch_page_text; result i belongs to urls[i]."""
        return list(await asyncio.gather(*(self.fetch_page_text(u, max_chars) for u in urls)))
