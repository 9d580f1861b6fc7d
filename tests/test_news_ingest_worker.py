from __future__ import annotations

import asyncio

import pytest

from app.core.request_id import get_run_id
from app.models.news_public import IngestionResult
from app.workers import news_ingest_bot


@pytest.mark.asyncio
async def test_run_ingest_success(monkeypatch):
    seen = {}

    async def fake_ingest_news(sources=None, **kwargs):
        seen["sources"] = sources
        seen["run_id"] = get_run_id()
        return IngestionResult(success=True, count=4, message="4 news items added", items=[])

    monkeypatch.setattr(news_ingest_bot, "ingest_news", fake_ingest_news)

    exit_code = await news_ingest_bot.run_ingest(limit=2)

    assert exit_code == 0
    assert len(seen["sources"]) == 2
    assert seen["run_id"]
    assert get_run_id() is None


@pytest.mark.asyncio
async def test_run_ingest_unsuccessful_result(monkeypatch):
    async def fake_ingest_news(sources=None, **kwargs):
        return IngestionResult(success=False, error="AI synthesis failed")

    monkeypatch.setattr(news_ingest_bot, "ingest_news", fake_ingest_news)

    assert await news_ingest_bot.run_ingest(limit=None) == 1


@pytest.mark.asyncio
async def test_run_ingest_failure(monkeypatch):
    async def fake_ingest_news(sources=None, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(news_ingest_bot, "ingest_news", fake_ingest_news)

    assert await news_ingest_bot.run_ingest(limit=None) == 1


def test_parse_args():
    args = news_ingest_bot.parse_args(["--limit", "3", "--loop", "--interval-minutes", "5"])
    assert args.limit == 3
    assert args.loop is True
    assert args.interval_minutes == 5

    defaults = news_ingest_bot.parse_args([])
    assert defaults.limit is None
    assert defaults.loop is False


@pytest.mark.asyncio
async def test_main_async_runs_once_by_default(monkeypatch):
    calls = []

    async def fake_run_ingest(limit):
        calls.append(limit)
        return 0

    monkeypatch.setattr(news_ingest_bot, "run_ingest", fake_run_ingest)

    assert await news_ingest_bot.main_async(["--limit", "1"]) == 0
    assert calls == [1]


@pytest.mark.asyncio
async def test_run_loop_refreshes_immediately_and_stops_on_cancel(monkeypatch):
    calls = []
    first_run = asyncio.Event()

    async def fake_ingest_news(sources=None, **kwargs):
        calls.append(len(sources))
        first_run.set()
        return IngestionResult(success=True, count=1, message="1 news items added", items=[])

    monkeypatch.setattr(news_ingest_bot, "ingest_news", fake_ingest_news)

    task = asyncio.create_task(news_ingest_bot.run_loop(limit=1, interval_minutes=60))
    await asyncio.wait_for(first_run.wait(), timeout=1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert calls == [1]
