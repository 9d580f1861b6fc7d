"""
News sources registry loader.

Parses configs/news_sources.yml into NewsSource descriptors with
structlog-backed validation and caching. The file holds two fixed lists:
``ingestion`` (feeds synthesized into the news table) and ``search``
(feeds scanned by the on-demand search).
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import yaml

from app.config import settings
from app.core.logging import get_logger

logger = get_logger()

THIS_FILE = Path(__file__).resolve()
APP_DIR = THIS_FILE.parent.parent  # app/
REPO_ROOT = APP_DIR.parent
NEWS_SOURCES_YML = REPO_ROOT / "configs" / "news_sources.yml"

SOURCE_LISTS: Sequence[str] = ("ingestion", "search")


@dataclass(frozen=True)
class NewsSource:
    """Single RSS feed definition."""

    name: str
    url: str
    country: Optional[str] = None

    @property
    def key(self) -> str:
        return self.url.strip().lower()


def _default_path() -> Path:
    if settings.NEWS_SOURCES_PATH:
        return Path(settings.NEWS_SOURCES_PATH)
    return NEWS_SOURCES_YML


def load_news_sources_config(path: Optional[Path] = None) -> Dict[str, object]:
    """
    Load raw YAML config.

    Returns empty dict if file is missing or invalid to keep the pipeline running.
    """
    cfg_path = Path(path) if path else _default_path()
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.error("news_sources_config_not_found", path=str(cfg_path))
        return {}
    except OSError as exc:
        logger.error("news_sources_config_read_error", path=str(cfg_path), error=str(exc))
        return {}

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        logger.error("news_sources_config_parse_error", path=str(cfg_path), error=str(exc))
        return {}

    if not isinstance(data, dict):
        logger.error(
            "news_sources_config_invalid_root",
            path=str(cfg_path),
            root_type=type(data).__name__,
        )
        return {}

    return data


def _clean_str(value: object) -> Optional[str]:
    if isinstance(value, str):
        value = value.strip()
        if value:
            return value
    return None


def _validate_source(raw: Dict[str, object], *, list_name: str) -> Optional[NewsSource]:
    """Validate raw dict and convert to NewsSource, logging issues."""
    name = _clean_str(raw.get("name"))
    url = _clean_str(raw.get("url"))
    missing = [k for k, v in (("name", name), ("url", url)) if v is None]
    if missing:
        logger.warning(
            "news_source_invalid_missing_fields",
            list_name=list_name,
            missing=missing,
            raw=raw,
        )
        return None

    if not url.startswith(("http://", "https://")):
        logger.warning("news_source_invalid_url", list_name=list_name, url=url)
        return None

    return NewsSource(name=name, url=url, country=_clean_str(raw.get("country")))


@lru_cache(maxsize=8)
def _load_sources_from_path(path_str: str, list_name: str) -> List[NewsSource]:
    cfg_path = Path(path_str)
    cfg = load_news_sources_config(cfg_path)
    raw_sources = cfg.get(list_name, [])

    if not isinstance(raw_sources, list):
        logger.error(
            "news_sources_invalid_sources_type",
            list_name=list_name,
            actual_type=type(raw_sources).__name__,
            path=str(cfg_path),
        )
        return []

    result: List[NewsSource] = []
    for idx, raw in enumerate(raw_sources):
        if not isinstance(raw, dict):
            logger.warning(
                "news_source_invalid_entry_type",
                list_name=list_name,
                index=idx,
                value_type=type(raw).__name__,
            )
            continue
        parsed = _validate_source(raw, list_name=list_name)
        if parsed:
            result.append(parsed)

    logger.info(
        "news_sources_loaded",
        path=str(cfg_path),
        list_name=list_name,
        total=len(result),
    )
    return result


def get_news_sources(list_name: str, path: Optional[Path] = None) -> List[NewsSource]:
    """
    Public accessor for one configured source list.

    Accepts optional path (useful for tests). Results are cached per path.
    """
    if list_name not in SOURCE_LISTS:
        raise ValueError(f"Unknown news source list '{list_name}'. Allowed: {', '.join(SOURCE_LISTS)}")
    cfg_path = Path(path) if path else _default_path()
    return list(_load_sources_from_path(str(cfg_path.resolve()), list_name))


def get_ingestion_sources(path: Optional[Path] = None) -> List[NewsSource]:
    return get_news_sources("ingestion", path)


def get_search_sources(path: Optional[Path] = None) -> List[NewsSource]:
    return get_news_sources("search", path)


def clear_news_sources_cache() -> None:
    """Reset LRU cache (useful for tests)."""
    _load_sources_from_path.cache_clear()
