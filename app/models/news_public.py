from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.news_normalized import ExtractedNewsItem
from app.models.news_synthesis import SearchSynthesis


class IngestionResult(BaseModel):
    """Outcome of one ingestion run. Callers must check ``success``, not the HTTP status."""

    success: bool
    message: Optional[str] = None
    count: Optional[int] = None
    items: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None


class SearchRequest(BaseModel):
    query: str = ""
    synthesize: bool = True


class SearchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    results: List[ExtractedNewsItem] = Field(default_factory=list)
    synthesized: Optional[SearchSynthesis] = None
    sources_searched: int = Field(default=0, alias="sourcesSearched")


class ArticleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    summary: str = ""
    category: Optional[str] = None
    location: Optional[str] = None
    source_urls: List[str] = Field(default_factory=list, alias="sourceUrls")


class ArticleResponse(BaseModel):
    success: bool = True
    article: str


class ScrapeRequest(BaseModel):
    urls: Optional[List[str]] = None


class RefreshStatus(BaseModel):
    """Countdown state of the news refresh schedule."""

    interval_minutes: int
    last_refresh_at: datetime
    next_refresh_at: datetime
    time_left_ms: int
    is_refreshing: bool
    last_result: Optional[IngestionResult] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
