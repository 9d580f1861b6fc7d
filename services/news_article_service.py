from __future__ import annotations

from typing import List, Optional
from urllib.parse import urlparse

from openai import OpenAIError

from app.config import settings
from app.core.logging import get_logger
from app.models.news_public import ArticleRequest
from services.base_scraper_service import BaseScraperService
from services.openai_service import AIResponseError, OpenAIService

logger = get_logger()

MAX_SOURCE_PAGES = 3
SOURCE_TEXT_MAX = 2000
ARTICLE_FALLBACK = "Article unavailable."

ARTICLE_SYSTEM_PROMPT = """You are the editor-in-chief of HERMES, a neutral and factual news platform.
Write complete, neutral and informative articles based on the sources provided.

Rules:
1. Absolute neutrality: no opinion, no political or ideological bias
2. Only verifiable facts
3. Present every relevant point of view
4. Professional journalistic style with introduction, body and conclusion
5. Mention where the information comes from

Article format: a factual title, a 2-3 sentence standfirst, 5-8 body
paragraphs with factual context, then a conclusion or outlook."""


class ArticleGenerationError(RuntimeError):
    """The model call for a full article failed."""


def _source_label(url: str) -> str:
    return urlparse(url).hostname or url


def _format_article_prompt(request: ArticleRequest, contexts: List[str], language: str) -> str:
    lines = [
        "Write a complete article on this topic:",
        "",
        f"TITLE: {request.title}",
        f"SUMMARY: {request.summary}",
        f"CATEGORY: {request.category or 'n/a'}",
        f"LOCATION: {request.location or 'n/a'}",
        f"SOURCES: {', '.join(request.source_urls) if request.source_urls else 'not available'}",
    ]
    if contexts:
        lines.append("")
        lines.append("SOURCE CONTENT:")
        lines.extend(contexts)
    lines.append("")
    lines.append(f"Write a complete, professional and neutral article in {language}.")
    return "\n".join(lines)


async def _collect_source_context(urls: List[str]) -> List[str]:
    if not urls:
        return []
    async with BaseScraperService(max_retries=0) as scraper:
        texts = await scraper.fetch_many_texts(urls, SOURCE_TEXT_MAX)
    return [
        f"Source ({_source_label(url)}):\n{text}"
        for url, text in zip(urls, texts)
        if text
    ]


async def generate_full_article(
    request: ArticleRequest,
    *,
    ai: Optional[OpenAIService] = None,
) -> str:
    """Long-form article for one stored synthesis, grounded on up to three source pages."""
    urls = list(request.source_urls[:MAX_SOURCE_PAGES])
    contexts = await _collect_source_context(urls)
    logger.info(
        "news_article_context_collected",
        title=request.title,
        requested=len(urls),
        fetched=len(contexts),
    )

    ai = ai or OpenAIService()
    try:
        article = await ai.generate_text(
            system_prompt=ARTICLE_SYSTEM_PROMPT,
            user_prompt=_format_article_prompt(request, contexts, settings.SYNTHESIS_LANGUAGE),
            action_type="news.full_article",
        )
    except (OpenAIError, AIResponseError) as exc:
        logger.error("news_article_generation_failed", title=request.title, error=str(exc))
        raise ArticleGenerationError("Failed to generate article") from exc

    return article or ARTICLE_FALLBACK
