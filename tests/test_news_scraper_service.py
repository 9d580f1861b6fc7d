from __future__ import annotations

import pytest

from services.news_scraper_service import (
    PROMPT_TEXT_PER_SOURCE,
    ScrapeError,
    scrape_and_synthesize,
)
from services.openai_service import AIResponseError


@pytest.mark.asyncio
async def test_scrape_synthesizes_fetched_pages(httpx_mock, fake_ai_cls):
    httpx_mock.add_response(url="https://a.example/", text="<p>" + "x" * (PROMPT_TEXT_PER_SOURCE + 500) + "</p>")
    httpx_mock.add_response(url="https://b.example/", status_code=404)
    ai = fake_ai_cls(
        [{"title": "Rates held", "summary": "The bank kept rates unchanged.", "category": "économie"}]
    )

    result = await scrape_and_synthesize(["https://a.example/", "https://b.example/"], ai=ai)

    assert result.title == "Rates held"
    assert result.category == "economy"
    assert result.source_urls == ["https://a.example/", "https://b.example/"]

    prompt = ai.calls[0]["user"]
    assert "Source 1 (https://a.example/)" in prompt
    assert "b.example" not in prompt
    assert "x" * (PROMPT_TEXT_PER_SOURCE + 1) not in prompt


@pytest.mark.asyncio
async def test_scrape_requires_urls(fake_ai_cls):
    with pytest.raises(ValueError, match="URLs array is required"):
        await scrape_and_synthesize([], ai=fake_ai_cls())


@pytest.mark.asyncio
async def test_scrape_no_content(httpx_mock, fake_ai_cls):
    httpx_mock.add_response(url="https://a.example/", status_code=500)
    ai = fake_ai_cls()

    with pytest.raises(ScrapeError, match="Could not fetch any content"):
        await scrape_and_synthesize(["https://a.example/"], ai=ai)

    assert ai.calls == []


@pytest.mark.asyncio
async def test_scrape_model_failure(httpx_mock, fake_ai_cls):
    httpx_mock.add_response(url="https://a.example/", text="<p>Some facts.</p>")
    ai = fake_ai_cls([AIResponseError("model reply is not valid JSON")])

    with pytest.raises(ScrapeError, match="Failed to generate synthesis"):
        await scrape_and_synthesize(["https://a.example/"], ai=ai)
