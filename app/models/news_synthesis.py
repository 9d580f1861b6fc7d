from __future__ import annotations

import unicodedata
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NewsCategory(str, Enum):
    POLITICS = "politics"
    ECONOMY = "economy"
    TECHNOLOGY = "technology"
    SPORT = "sport"
    CULTURE = "culture"
    SCIENCE = "science"
    HEALTH = "health"
    ENVIRONMENT = "environment"
    OTHER = "other"


NEWS_CATEGORIES: List[str] = [c.value for c in NewsCategory]

# The model writes in the synthesis language; French labels map onto the enum.
_CATEGORY_ALIASES = {
    "politique": "politics",
    "economie": "economy",
    "economics": "economy",
    "technologie": "technology",
    "tech": "technology",
    "sports": "sport",
    "sante": "health",
    "environnement": "environment",
    "autre": "other",
}


def _strip_accents(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def normalize_category(value: Any) -> Any:
    """Map a free-text category label onto a NewsCategory value; unknown labels pass through."""
    if isinstance(value, NewsCategory) or not isinstance(value, str):
        return value
    key = _strip_accents(value.strip().lower())
    if key in NEWS_CATEGORIES:
        return key
    return _CATEGORY_ALIASES.get(key, value)


def _strip_text(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _null_to_list(value: Any) -> Any:
    return [] if value is None else value


class SynthesisResult(BaseModel):
    """Neutral synthesis of one batch of feed items."""

    model_config = ConfigDict(use_enum_values=True)

    title: str = Field(min_length=1, description="Factual, neutral title (max 100 characters)")
    summary: str = Field(min_length=1, description="Neutral synthesis in 2-3 sentences (max 300 characters)")
    category: NewsCategory
    location: Optional[str] = Field(default=None, description="Main country or region, e.g. France, Europe, World")
    source_urls: List[str] = Field(default_factory=list)

    @field_validator("title", "summary", "location", mode="before")
    @classmethod
    def clean_text(cls, value: Any) -> Any:
        return _strip_text(value)

    @field_validator("category", mode="before")
    @classmethod
    def clean_category(cls, value: Any) -> Any:
        return normalize_category(value)

    @field_validator("source_urls", mode="before")
    @classmethod
    def default_source_urls(cls, value: Any) -> Any:
        return _null_to_list(value)


class SearchSynthesis(BaseModel):
    """Overview of the top search matches."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    title: str = Field(min_length=1)
    summary: str = Field(min_length=1, description="Summary in 2-3 sentences")
    full_article: str = Field(default="", alias="fullArticle", description="Complete article, 5-10 paragraphs")
    sources: List[str] = Field(default_factory=list, description="Names of the cited sources")
    category: NewsCategory
    source_urls: List[str] = Field(default_factory=list, alias="sourceUrls")

    @field_validator("title", "summary", mode="before")
    @classmethod
    def clean_text(cls, value: Any) -> Any:
        return _strip_text(value)

    @field_validator("category", mode="before")
    @classmethod
    def clean_category(cls, value: Any) -> Any:
        return normalize_category(value)

    @field_validator("sources", "source_urls", mode="before")
    @classmethod
    def default_lists(cls, value: Any) -> Any:
        return _null_to_list(value)


class ScrapeSynthesis(BaseModel):
    """Neutral synthesis of arbitrary web pages."""

    model_config = ConfigDict(use_enum_values=True)

    title: str = Field(min_length=1)
    summary: str = Field(min_length=1, description="Neutral synthesis, 2-3 paragraphs at most")
    category: NewsCategory
    location: Optional[str] = None
    source_urls: List[str] = Field(default_factory=list)

    @field_validator("title", "summary", "location", mode="before")
    @classmethod
    def clean_text(cls, value: Any) -> Any:
        return _strip_text(value)

    @field_validator("category", mode="before")
    @classmethod
    def clean_category(cls, value: Any) -> Any:
        return normalize_category(value)

    @field_validator("source_urls", mode="before")
    @classmethod
    def default_source_urls(cls, value: Any) -> Any:
        return _null_to_list(value)
