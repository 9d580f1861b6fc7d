from __future__ import annotations

import os

# Settings are read at import time; keep the suite independent from a local .env.
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ["NEWS_AUTO_REFRESH_ENABLED"] = "false"

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple  # noqa: E402

import pytest  # noqa: E402
from pydantic import ValidationError  # noqa: E402

from app.models.news_normalized import ExtractedNewsItem  # noqa: E402
from app.models.news_sources import NewsSource, clear_news_sources_cache  # noqa: E402
from services.news_store import InsertResult  # noqa: E402
from services.openai_service import AIResponseError  # noqa: E402


def _rss(items: Sequence[Tuple[str, str, str]], channel: str = "Example") -> bytes:
    body = "".join(
        f"""
        <item>
          <title>{title}</title>
          <link>{link}</link>
          <description><![CDATA[{description}]]></description>
          <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
        </item>"""
        for title, description, link in items
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
    <rss version="2.0"><channel><title>{channel}</title>{body}
    </channel></rss>""".encode("utf-8")


class FakeAIService:
    """
    Scripted stand-in for OpenAIService. Each call pops the next reply:
    a dict is validated into the requested model, an exception is raised.
    """

    def __init__(self, replies: Optional[List[Any]] = None, default: Any = None):
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    def _next(self) -> Any:
        if self.replies:
            return self.replies.pop(0)
        return self.default

    async def generate_json(self, system_prompt, user_prompt, response_model, action_type="generic"):
        self.calls.append(
            {"system": system_prompt, "user": user_prompt, "model": response_model, "action": action_type}
        )
        reply = self._next()
        if isinstance(reply, Exception):
            raise reply
        try:
            parsed = response_model.model_validate(reply)
        except ValidationError as exc:
            raise AIResponseError(f"schema validation failed: {exc}") from exc
        return parsed, {"ok": True, "duration_ms": 1}

    async def generate_text(self, system_prompt, user_prompt, action_type="generic"):
        self.calls.append({"system": system_prompt, "user": user_prompt, "action": action_type})
        reply = self._next()
        if isinstance(reply, Exception):
            raise reply
        return reply or ""


class RecordingStore:
    """NewsStore double that records every insert call."""

    def __init__(self, error: Optional[str] = None):
        self.error = error
        self.calls: List[Tuple[str, List[Dict[str, Any]]]] = []

    async def insert(self, table, rows):
        self.calls.append((table, list(rows)))
        if self.error:
            return InsertResult(error=self.error)
        return InsertResult(rows=[{"id": idx + 1, **row} for idx, row in enumerate(rows)])


@pytest.fixture
def rss_doc() -> Callable[..., bytes]:
    return _rss


@pytest.fixture
def fake_ai_cls():
    return FakeAIService


@pytest.fixture
def recording_store_cls():
    return RecordingStore


@pytest.fixture
def make_source() -> Callable[..., NewsSource]:
    def _make(name: str = "Test Source", country: Optional[str] = None) -> NewsSource:
        slug = name.replace(" ", "").lower()
        return NewsSource(name=name, url=f"https://{slug}.example/rss", country=country)

    return _make


@pytest.fixture
def make_item() -> Callable[..., ExtractedNewsItem]:
    def _make(idx: int = 1, **overrides: Any) -> ExtractedNewsItem:
        data: Dict[str, Any] = {
            "title": f"Title {idx}",
            "description": f"Description {idx}",
            "link": f"https://news.example/{idx}",
            "pub_date": "Mon, 01 Jan 2024 10:00:00 GMT",
            "source": "Test Source",
        }
        data.update(overrides)
        return ExtractedNewsItem(**data)

    return _make


@pytest.fixture
def synthesis_reply() -> Callable[..., Dict[str, Any]]:
    def _make(idx: int = 1, **overrides: Any) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": f"Synthesis {idx}",
            "summary": f"Neutral summary {idx}.",
            "category": "politics",
            "location": "France",
            "source_urls": [f"https://news.example/{idx}"],
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture(autouse=True)
def _reset_sources_cache():
    clear_news_sources_cache()
    yield
    clear_news_sources_cache()
