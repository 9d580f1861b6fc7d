from __future__ import annotations

from typing import List, Optional, Sequence

from openai import OpenAIError

from app.config import settings
from app.core.logging import get_logger
from app.models.news_synthesis import NEWS_CATEGORIES, ScrapeSynthesis
from services.base_scraper_service import BaseScraperService
from services.openai_service import AIResponseError, OpenAIService

logger = get_logger()

PAGE_TEXT_MAX = 10_000
PROMPT_TEXT_PER_SOURCE = 5_000

SCRAPE_SYSTEM_PROMPT = (
    "You are the HERMES assistant for neutral news synthesis. Extract the essential "
    "facts from several sources and write an objective synthesis without bias or "
    "opinion. Favour the most informative sentences of the sources and always keep "
    "source attribution."
)


class ScrapeError(RuntimeError):
    """No usable page content, or the model could not produce a synthesis."""


def _format_scrape_prompt(pages: Sequence[tuple[str, str]], language: str) -> str:
    blocks = [
        f"Source {idx} ({url}):\n{text[:PROMPT_TEXT_PER_SOURCE]}"
        for idx, (url, text) in enumerate(pages, start=1)
    ]
    return (
        "Write a neutral and factual synthesis from the following sources. Keep only "
        "verifiable facts and remove emotional or biased language. The summary is at "
        f"most 2-3 paragraphs. Use one category from: {', '.join(NEWS_CATEGORIES)}. "
        f"Write in {language}.\n\nSources:\n" + "\n\n---\n\n".join(blocks)
    )


async def scrape_and_synthesize(
    urls: List[str],
    *,
    ai: Optional[OpenAIService] = None,
) -> ScrapeSynthesis:
    if not urls:
        raise ValueError("URLs array is required")

    logger.info("news_scrape_started", urls=len(urls))
    async with BaseScraperService(max_retries=0) as scraper:
        texts = await scraper.fetch_many_texts(urls, PAGE_TEXT_MAX)

    pages = [(url, text) for url, text in zip(urls, texts) if text]
    if not pages:
        raise ScrapeError("Could not fetch any content from the provided URLs")

    ai = ai or OpenAIService()
    try:
        parsed, _meta = await ai.generate_json(
            system_prompt=SCRAPE_SYSTEM_PROMPT,
            user_prompt=_format_scrape_prompt(pages, settings.SYNTHESIS_LANGUAGE),
            response_model=ScrapeSynthesis,
            action_type="news.scrape_synthesis",
        )
    except (OpenAIError, AIResponseError) as exc:
        logger.error("news_scrape_synthesis_failed", error=str(exc))
        raise ScrapeError("Failed to generate synthesis") from exc

    logger.info("news_scrape_done", fetched=len(pages), requested=len(urls))
    return parsed.model_copy(update={"source_urls": list(urls)})
