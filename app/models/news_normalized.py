from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ExtractedNewsItem(BaseModel):
    """
    One feed entry after extraction and cleanup.
    Title and description are always non-empty; link and publish date are
    None when the feed does not provide them. ``pub_date`` keeps the string
    exactly as the source wrote it.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    link: Optional[str] = None
    pub_date: Optional[str] = Field(default=None, alias="pubDate")
    source: str
    country: Optional[str] = None
