from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from app.config import MissingConfigError
from app.core.logging import get_logger
from app.models.news_public import (
    ArticleRequest,
    ArticleResponse,
    IngestionResult,
    RefreshStatus,
    ScrapeRequest,
    SearchRequest,
    SearchResponse,
)
from app.models.news_synthesis import ScrapeSynthesis
from services.news_article_service import ArticleGenerationError, generate_full_article
from services.news_refresh_service import NewsRefreshScheduler
from services.news_scraper_service import ScrapeError, scrape_and_synthesize
from services.news_search_service import QueryTooShortError, search_news_sources

logger = get_logger()

router = APIRouter(
    prefix="/news",
    tags=["news"],
)


def get_refresh_scheduler(request: Request) -> NewsRefreshScheduler:
    """The app-owned scheduler; created on first use when startup did not run."""
    scheduler = getattr(request.app.state, "news_refresh", None)
    if scheduler is None:
        scheduler = NewsRefreshScheduler()
        request.app.state.news_refresh = scheduler
    return scheduler


@router.post("/fetch-rss", response_model=IngestionResult, response_model_exclude_none=True)
async def fetch_rss(
    scheduler: NewsRefreshScheduler = Depends(get_refresh_scheduler),
) -> IngestionResult:
    """
    Run one ingestion now. "Nothing to store" outcomes come back as 200 with
    success=false; only unexpected failures produce a 500.
    """
    try:
        return await scheduler.refresh()
    except Exception as e:
        logger.exception("news_fetch_rss_failed", error=str(e))
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/search", response_model=SearchResponse)
async def search_news(body: SearchRequest) -> SearchResponse:
    try:
        return await search_news_sources(body.query, body.synthesize)
    except QueryTooShortError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.exception("news_search_failed", error=str(e))
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/article", response_model=ArticleResponse)
async def full_article(body: ArticleRequest) -> ArticleResponse:
    try:
        article = await generate_full_article(body)
    except (ArticleGenerationError, MissingConfigError) as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return ArticleResponse(success=True, article=article)


@router.post("/scrape", response_model=ScrapeSynthesis, response_model_exclude_none=True)
async def scrape_news(body: ScrapeRequest) -> ScrapeSynthesis:
    if not body.urls:
        raise HTTPException(status_code=400, detail="URLs array is required")
    try:
        return await scrape_and_synthesize(body.urls)
    except (ScrapeError, MissingConfigError) as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.get("/refresh", response_model=RefreshStatus, response_model_exclude_none=True)
async def refresh_status(
    scheduler: NewsRefreshScheduler = Depends(get_refresh_scheduler),
) -> RefreshStatus:
    return scheduler.snapshot()
