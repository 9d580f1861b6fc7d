from __future__ import annotations

import asyncio

import pytest

import httpx

from services.base_scraper_service import BaseScraperService, html_to_text


@pytest.fixture
def no_sleep(monkeypatch):
    async def _instant(_delay):
        return None

    monkeypatch.setattr(asyncio, "sleep", _instant)


@pytest.mark.asyncio
async def test_base_scraper_context_manager():
    """Test that BaseScraperService works as async context manager."""
    async with BaseScraperService(user_agent="test-agent/1.0") as service:
        assert service._client is not None
        assert isinstance(service._client, httpx.AsyncClient)

    assert service._client is None


@pytest.mark.asyncio
async def test_base_scraper_fetch_requires_context():
    """Test that fetch() raises error if client not initialized."""
    service = BaseScraperService(user_agent="test-agent/1.0")
    with pytest.raises(RuntimeError, match="not initialized"):
        await service.fetch("https://example.com")


@pytest.mark.asyncio
async def test_default_is_single_attempt(httpx_mock):
    httpx_mock.add_response(url="https://example.com", status_code=500)

    async with BaseScraperService() as service:
        with pytest.raises(httpx.HTTPStatusError):
            await service.fetch("https://example.com")

    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_base_scraper_retry_logic(httpx_mock, no_sleep):
    """Test that retry logic works on failures."""
    httpx_mock.add_response(status_code=500)
    httpx_mock.add_response(status_code=500)
    httpx_mock.add_response(text="Success")

    async with BaseScraperService(user_agent="test-agent/1.0", max_retries=2) as service:
        response = await service.fetch("https://example.com")
        assert response.text == "Success"
        assert len(httpx_mock.get_requests()) == 3


@pytest.mark.asyncio
async def test_fetch_page_text_strips_markup(httpx_mock):
    httpx_mock.add_response(
        url="https://example.com/article",
        text=(
            "<html><head><style>body{color:red}</style>"
            "<script>var tracking = 1;</script></head>"
            "<body><h1>Headline</h1><p>First   paragraph.</p><noscript>enable js</noscript></body></html>"
        ),
    )

    async with BaseScraperService() as service:
        text = await service.fetch_page_text("https://example.com/article", max_chars=100)

    assert text == "Headline First paragraph."
    assert httpx_mock.get_request().headers["User-Agent"].startswith("Mozilla/5.0")


@pytest.mark.asyncio
async def test_fetch_many_texts_isolates_failures(httpx_mock):
    httpx_mock.add_response(url="https://a.example/", text="<p>Alpha</p>")
    httpx_mock.add_response(url="https://b.example/", status_code=404)

    async with BaseScraperService() as service:
        texts = await service.fetch_many_texts(["https://a.example/", "https://b.example/"])

    assert texts == ["Alpha", None]


def test_html_to_text_caps_length():
    assert html_to_text("<p>" + "a" * 50 + "</p>", max_chars=10) == "a" * 10
    assert html_to_text("") == ""
