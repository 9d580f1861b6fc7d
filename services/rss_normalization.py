from __future__ import annotations

import re
from html import unescape
from typing import Any, Dict, List, Optional, Tuple, Union

import feedparser

from app.core.logging import get_logger
from app.models.news_normalized import ExtractedNewsItem
from app.models.news_sources import NewsSource

logger = get_logger()

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


class RSSNormalizationError(Exception):
    """
    Recoverable extraction failure for a single RSS/Atom entry.
    These are counted and logged but never abort extraction of the feed.
    """

    def __init__(self, message: str, entry_raw: Dict[str, Any] | None = None):
        super().__init__(message)
        self.entry_raw = entry_raw or {}


def strip_html(value: str) -> str:
    text = unescape(value or "")
    text = _HTML_TAG_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def truncate_text(value: str, max_length: Optional[int]) -> str:
    value = value.strip()
    if max_length is None or len(value) <= max_length:
        return value
    if max_length <= 1:
        return value[:max_length]
    return value[: max_length - 1].rstrip() + "…"


def _get_first_content_value(entry: Dict[str, Any]) -> str:
    content = entry.get("content")
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict):
                val = block.get("value")
                if isinstance(val, str) and val.strip():
                    return val
    return ""


def _extract_title(entry: Dict[str, Any]) -> str:
    title = entry.get("title")
    if isinstance(title, str):
        return strip_html(title)
    return ""


def _extract_description(entry: Dict[str, Any]) -> str:
    summary = entry.get("summary") or entry.get("description")
    if isinstance(summary, str) and summary.strip():
        return strip_html(summary)
    return strip_html(_get_first_content_value(entry))


def _extract_link(entry: Dict[str, Any]) -> Optional[str]:
    link = entry.get("link")
    if isinstance(link, str) and link.strip():
        return link.strip()

    links = entry.get("links")
    if isinstance(links, list):
        for link_entry in links:
            if isinstance(link_entry, dict):
                href = link_entry.get("href")
                rel = str(link_entry.get("rel") or "alternate").lower()
                if isinstance(href, str) and href.strip() and rel == "alternate":
                    return href.strip()

    entry_id = entry.get("id")
    if isinstance(entry_id, str) and entry_id.strip().startswith(("http://", "https://")):
        return entry_id.strip()
    return None


def _extract_pub_date(entry: Dict[str, Any]) -> Optional[str]:
    # Kept verbatim; publish dates are not normalized.
    for key in ("published", "updated"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_entry(
    entry: Dict[str, Any],
    source: NewsSource,
    *,
    description_limit: Optional[int] = None,
) -> Tuple[ExtractedNewsItem | None, RSSNormalizationError | None]:
    """
    Extract a single feed entry.
    Returns:
        (ExtractedNewsItem, None) on success
        (None, RSSNormalizationError) when the entry has no usable title/description
    """
    try:
        title = _extract_title(entry)
        description = _extract_description(entry)
        if not title or not description:
            return None, RSSNormalizationError("missing_title_or_description", entry_raw=entry)
        item = ExtractedNewsItem(
            title=title,
            description=truncate_text(description, description_limit),
            link=_extract_link(entry),
            pub_date=_extract_pub_date(entry),
            source=source.name,
            country=source.country,
        )
        return item, None
    except (AttributeError, TypeError, ValueError) as exc:
        return None, RSSNormalizationError(str(exc), entry_raw=entry if isinstance(entry, dict) else {})


def parse_feed_entries(raw: Union[bytes, str, None], source: NewsSource) -> List[Dict[str, Any]]:
    """
    Parse a raw RSS/Atom document into feedparser entries.
    feedparser tolerates malformed markup; anything it cannot read yields [].
    """
    if not raw:
        return []
    if isinstance(raw, str):
        # A str would be treated as a URL or path by feedparser.
        raw = raw.encode("utf-8")
    try:
        parsed = feedparser.parse(raw)
    except Exception as exc:
        logger.warning("news_extract_parse_failed", source=source.name, error=str(exc))
        return []
    entries = parsed.get("entries") or []
    if parsed.get("bozo") and not entries:
        logger.debug(
            "news_extract_malformed_feed",
            source=source.name,
            error=str(parsed.get("bozo_exception")),
        )
    return list(entries)


def extract_items(
    raw: Union[bytes, str, None],
    source: NewsSource,
    *,
    max_items: Optional[int] = None,
    description_limit: Optional[int] = None,
) -> List[ExtractedNewsItem]:
    """
    Main entry point of the extractor.
    - parse the document (RSS or Atom)
    - look at the first ``max_items`` entries in document order (all when None)
    - keep entries with a non-empty title and description
    """
    entries = parse_feed_entries(raw, source)
    if max_items is not None:
        entries = entries[: max(0, max_items)]

    items: List[ExtractedNewsItem] = []
    errors: List[RSSNormalizationError] = []
    for entry in entries:
        item, err = extract_entry(entry, source, description_limit=description_limit)
        if item is not None:
            items.append(item)
        elif err is not None:
            errors.append(err)

    if errors:
        logger.debug(
            "news_extract_entries_dropped",
            source=source.name,
            dropped=len(errors),
            reasons=sorted({str(e) for e in errors}),
        )
    return items
