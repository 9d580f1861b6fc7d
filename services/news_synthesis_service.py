from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from openai import OpenAIError

from app.config import settings
from app.core.logging import get_logger
from app.models.news_normalized import ExtractedNewsItem
from app.models.news_synthesis import NEWS_CATEGORIES, SearchSynthesis, SynthesisResult
from services.openai_service import AIResponseError, OpenAIService

logger = get_logger()

BATCH_SYSTEM_PROMPT = """You are HERMES, a neutral and factual news synthesizer. Your task:
1. Analyze the articles provided
2. Write one neutral, objective synthesis
3. Categorize it with exactly one of: {categories}
4. Identify the main geographic location (country or region)
5. Remove any bias, opinion or emotional language; keep only verifiable facts

Write the title and summary in {language}. The title is at most 100 characters,
the summary 2-3 sentences and at most 300 characters."""

SEARCH_SYSTEM_PROMPT = """You are the news synthesizer of HERMES.
Write a neutral and complete synthesis of the articles found for the searched topic.
Always cite the sources. Be factual and objective.
Use exactly one category from: {categories}.
Write in {language}."""


class BatchState(str, Enum):
    PENDING = "pending"
    REQUESTED = "requested"
    PARSED = "parsed"
    SKIPPED = "skipped"


_ALLOWED_TRANSITIONS = {
    BatchState.PENDING: {BatchState.REQUESTED},
    BatchState.REQUESTED: {BatchState.PARSED, BatchState.SKIPPED},
    BatchState.PARSED: set(),
    BatchState.SKIPPED: set(),
}


@dataclass
class SynthesisBatch:
    """Consecutive group of items sent to the model in one call."""

    index: int
    items: List[ExtractedNewsItem]
    state: BatchState = BatchState.PENDING
    result: Optional[SynthesisResult] = None
    error: Optional[str] = None

    def _move(self, new_state: BatchState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"illegal batch transition {self.state.value} -> {new_state.value} (batch {self.index})"
            )
        self.state = new_state

    def mark_requested(self) -> None:
        self._move(BatchState.REQUESTED)

    def mark_parsed(self, result: SynthesisResult) -> None:
        self._move(BatchState.PARSED)
        self.result = result

    def mark_skipped(self, error: str) -> None:
        self._move(BatchState.SKIPPED)
        self.error = error

    @property
    def links(self) -> List[str]:
        return [item.link for item in self.items if item.link]


def make_batches(items: Sequence[ExtractedNewsItem], size: int) -> List[SynthesisBatch]:
    """Split items into consecutive batches of ``size``; only the last may be shorter."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    return [
        SynthesisBatch(index=idx, items=list(items[start:start + size]))
        for idx, start in enumerate(range(0, len(items), size))
    ]


def _format_batch_prompt(batch: SynthesisBatch) -> str:
    parts = ["Synthesize these news items into ONE neutral news item:", ""]
    for idx, item in enumerate(batch.items, start=1):
        parts.append(f"ARTICLE {idx} ({item.source}):")
        parts.append(f"Title: {item.title}")
        parts.append(f"Description: {item.description}")
        parts.append(f"URL: {item.link or 'n/a'}")
        parts.append("")
    parts.append("Put the URLs of the articles you used in source_urls.")
    return "\n".join(parts)


def _format_search_prompt(query: str, items: Sequence[ExtractedNewsItem]) -> str:
    parts = [f'Search: "{query}"', "", "Articles found:"]
    for idx, item in enumerate(items, start=1):
        origin = f"{item.source} ({item.country})" if item.country else item.source
        parts.append(f"{idx}. {origin}:")
        parts.append(f"Title: {item.title}")
        parts.append(f"Summary: {item.description}")
        parts.append("")
    parts.append(
        "Write a complete synthesis of this information: a title, a 2-3 sentence "
        "summary, a full article of 5-10 paragraphs and the names of the sources cited."
    )
    return "\n".join(parts)


class NewsSynthesisService:
    """
    Turns extracted items into validated synthesis results.

    Ingestion: one chat call per batch; a failed or invalid reply skips
    that batch only. Calls run through a bounded pool (default 1, i.e.
    strictly one after the other); results keep batch order.
    """

    def __init__(
        self,
        ai: Optional[OpenAIService] = None,
        *,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        language: Optional[str] = None,
    ) -> None:
        self.ai = ai or OpenAIService()
        self.batch_size = batch_size or settings.NEWS_SYNTHESIS_BATCH_SIZE
        self.max_concurrency = max(1, max_concurrency or settings.NEWS_SYNTHESIS_MAX_CONCURRENCY)
        self.language = language or settings.SYNTHESIS_LANGUAGE

    def _system_prompt(self, template: str) -> str:
        return template.format(categories=", ".join(NEWS_CATEGORIES), language=self.language)

    async def synthesize_batch(self, batch: SynthesisBatch) -> Optional[SynthesisResult]:
        batch.mark_requested()
        try:
            parsed, meta = await self.ai.generate_json(
                system_prompt=self._system_prompt(BATCH_SYSTEM_PROMPT),
                user_prompt=_format_batch_prompt(batch),
                response_model=SynthesisResult,
                action_type="news.synthesize_batch",
            )
        except (OpenAIError, AIResponseError) as exc:
            batch.mark_skipped(str(exc))
            logger.warning(
                "news_synthesis_batch_skipped",
                batch_index=batch.index,
                batch_size=len(batch.items),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return None

        result: SynthesisResult = parsed  # type: ignore[assignment]
        if not result.source_urls:
            result = result.model_copy(update={"source_urls": batch.links})
        batch.mark_parsed(result)
        logger.info(
            "news_synthesis_batch_parsed",
            batch_index=batch.index,
            category=result.category,
            duration_ms=meta.get("duration_ms"),
        )
        return result

    async def synthesize(self, items: Sequence[ExtractedNewsItem]) -> List[SynthesisResult]:
        batches = make_batches(items, self.batch_size)
        if not batches:
            return []

        sem = asyncio.Semaphore(self.max_concurrency)

        async def _run(batch: SynthesisBatch) -> Optional[SynthesisResult]:
            async with sem:
                return await self.synthesize_batch(batch)

        outcomes = await asyncio.gather(*(_run(b) for b in batches))
        results = [r for r in outcomes if r is not None]
        logger.info(
            "news_synthesis_summary",
            items=len(items),
            batches=len(batches),
            parsed=len(results),
            skipped=sum(1 for b in batches if b.state is BatchState.SKIPPED),
        )
        return results

    async def synthesize_search(
        self,
        query: str,
        items: Sequence[ExtractedNewsItem],
    ) -> Optional[SearchSynthesis]:
        """One synthesis over the top search matches; None when the call fails."""
        if not items:
            return None
        try:
            parsed, _meta = await self.ai.generate_json(
                system_prompt=self._system_prompt(SEARCH_SYSTEM_PROMPT),
                user_prompt=_format_search_prompt(query, items),
                response_model=SearchSynthesis,
                action_type="news.synthesize_search",
            )
        except (OpenAIError, AIResponseError) as exc:
            logger.warning(
                "news_search_synthesis_failed",
                query=query,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return None

        synthesis: SearchSynthesis = parsed  # type: ignore[assignment]
        update = {"source_urls": [item.link for item in items if item.link]}
        if not synthesis.sources:
            update["sources"] = list(dict.fromkeys(item.source for item in items))
        return synthesis.model_copy(update=update)
