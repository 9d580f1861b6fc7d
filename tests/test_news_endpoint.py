from __future__ import annotations

from typing import List

import pytest
from fastapi.testclient import TestClient

from api.routers import news as news_router
from app.main import app
from app.models.news_normalized import ExtractedNewsItem
from app.models.news_public import IngestionResult, SearchResponse
from app.models.news_synthesis import ScrapeSynthesis
from services.news_article_service import ArticleGenerationError
from services.news_fetch_service import NewsFetchService
from services.news_refresh_service import NewsRefreshScheduler
from services.news_scraper_service import ScrapeError


class StubScheduler(NewsRefreshScheduler):
    def __init__(self, result=None, error: Exception | None = None):
        super().__init__(self._run, interval_minutes=10)
        self._result = result
        self._error = error
        self.calls = 0

    async def _run(self) -> IngestionResult:
        self.calls += 1
        if self._error:
            raise self._error
        return self._result


@pytest.fixture
def client():
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def _use_scheduler(scheduler: NewsRefreshScheduler) -> None:
    app.dependency_overrides[news_router.get_refresh_scheduler] = lambda: scheduler


def test_fetch_rss_success(client):
    scheduler = StubScheduler(
        IngestionResult(success=True, count=2, message="2 news items added", items=[{"id": 1}, {"id": 2}])
    )
    _use_scheduler(scheduler)

    response = client.post("/api/v1/news/fetch-rss")

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "2 news items added",
        "count": 2,
        "items": [{"id": 1}, {"id": 2}],
    }
    assert scheduler.calls == 1


def test_fetch_rss_no_items_is_200_with_success_false(client):
    _use_scheduler(StubScheduler(IngestionResult(success=False, error="No items fetched from RSS feeds")))

    response = client.post("/api/v1/news/fetch-rss")

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "No items fetched from RSS feeds"}


def test_fetch_rss_exception_is_500(client):
    _use_scheduler(StubScheduler(error=RuntimeError("connection reset")))

    response = client.post("/api/v1/news/fetch-rss", headers={"Origin": "https://app.example"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "connection reset"}
    assert response.headers["access-control-allow-origin"] == "*"


def test_scenario_d_short_query_is_400_without_network(client, monkeypatch):
    fetched: List[str] = []

    async def fake_fetch_feed(self, source):
        fetched.append(source.url)
        return b""

    monkeypatch.setattr(NewsFetchService, "fetch_feed", fake_fetch_feed)

    response = client.post("/api/v1/news/search", json={"query": "a"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Query too short"}
    assert fetched == []


def test_search_missing_query_is_400(client):
    response = client.post("/api/v1/news/search", json={})
    assert response.status_code == 400
    assert response.json()["error"] == "Query too short"


def test_search_response_shape(client, monkeypatch):
    async def fake_search(query, synthesize=True):
        return SearchResponse(
            success=True,
            results=[
                ExtractedNewsItem(
                    title="Ukraine talks",
                    description="Diplomats meet",
                    link="https://example.com/1",
                    pub_date="Mon, 01 Jan 2024 10:00:00 GMT",
                    source="BBC",
                    country="UK",
                )
            ],
            synthesized=None,
            sources_searched=19,
        )

    monkeypatch.setattr(news_router, "search_news_sources", fake_search)

    response = client.post("/api/v1/news/search", json={"query": "Ukraine", "synthesize": False})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["sourcesSearched"] == 19
    assert body["synthesized"] is None
    assert body["results"][0]["pubDate"] == "Mon, 01 Jan 2024 10:00:00 GMT"


def test_search_unexpected_error_is_500(client, monkeypatch):
    async def broken_search(query, synthesize=True):
        raise RuntimeError("feed list unavailable")

    monkeypatch.setattr(news_router, "search_news_sources", broken_search)

    response = client.post("/api/v1/news/search", json={"query": "Ukraine"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "feed list unavailable"}


def test_article_endpoint(client, monkeypatch):
    async def fake_generate(request):
        assert request.source_urls == ["https://example.com/a"]
        return "Full article text."

    monkeypatch.setattr(news_router, "generate_full_article", fake_generate)

    response = client.post(
        "/api/v1/news/article",
        json={"title": "T", "summary": "S", "category": "science", "sourceUrls": ["https://example.com/a"]},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "article": "Full article text."}


def test_article_endpoint_failure(client, monkeypatch):
    async def failing_generate(request):
        raise ArticleGenerationError("Failed to generate article")

    monkeypatch.setattr(news_router, "generate_full_article", failing_generate)

    response = client.post("/api/v1/news/article", json={"title": "T", "summary": "S"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to generate article"}


@pytest.mark.parametrize("payload", [{}, {"urls": []}, {"urls": None}])
def test_scrape_requires_urls(client, payload):
    response = client.post("/api/v1/news/scrape", json=payload)
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_scrape_endpoint(client, monkeypatch):
    async def fake_scrape(urls):
        return ScrapeSynthesis(title="T", summary="S", category="economy", source_urls=urls)

    monkeypatch.setattr(news_router, "scrape_and_synthesize", fake_scrape)

    response = client.post("/api/v1/news/scrape", json={"urls": ["https://example.com/a"]})

    assert response.status_code == 200
    assert response.json() == {
        "title": "T",
        "summary": "S",
        "category": "economy",
        "source_urls": ["https://example.com/a"],
    }


def test_scrape_endpoint_failure(client, monkeypatch):
    async def failing_scrape(urls):
        raise ScrapeError("Could not fetch any content from the provided URLs")

    monkeypatch.setattr(news_router, "scrape_and_synthesize", failing_scrape)

    response = client.post("/api/v1/news/scrape", json={"urls": ["https://example.com/a"]})

    assert response.status_code == 500
    assert response.json()["error"] == "Could not fetch any content from the provided URLs"


def test_refresh_status(client):
    scheduler = StubScheduler(IngestionResult(success=True, count=0, items=[]))
    _use_scheduler(scheduler)

    response = client.get("/api/v1/news/refresh")

    assert response.status_code == 200
    body = response.json()
    assert body["interval_minutes"] == 10
    assert body["is_refreshing"] is False
    assert 0 < body["time_left_ms"] <= 10 * 60 * 1000
    assert "last_result" not in body
