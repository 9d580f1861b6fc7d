from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from app.config import settings
from app.core.logging import get_logger
from app.models.news_public import IngestionResult, RefreshStatus
from services.news_ingest_service import ingest_news

logger = get_logger()

Runner = Callable[[], Awaitable[IngestionResult]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NewsRefreshScheduler:
    """
    Countdown state for the periodic news refresh.

    Owned by the application (created at startup, stopped at shutdown) and
    handed to whoever needs it. ``start()`` runs a background task that calls
    ``refresh()`` each time the countdown reaches zero.
    """

    def __init__(
        self,
        runner: Optional[Runner] = None,
        *,
        interval_minutes: Optional[int] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.runner: Runner = runner or ingest_news
        self.interval_minutes = interval_minutes or settings.NEWS_REFRESH_INTERVAL_MINUTES
        self.interval = timedelta(minutes=self.interval_minutes)
        self._now = now
        self.last_refresh_at: datetime = now()
        self.is_refreshing = False
        self.last_result: Optional[IngestionResult] = None
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def next_refresh_at(self) -> datetime:
        return self.last_refresh_at + self.interval

    def time_left(self) -> timedelta:
        left = self.next_refresh_at - self._now()
        return max(left, timedelta(0))

    def is_due(self) -> bool:
        return self.time_left() == timedelta(0)

    def reset(self) -> None:
        self.last_refresh_at = self._now()

    async def refresh(self) -> IngestionResult:
        """
        Run one ingestion. A caller arriving while a run is in progress waits
        for it and gets its result instead of starting a second run.
        """
        if self._lock.locked():
            async with self._lock:
                if self.last_result is not None:
                    return self.last_result

        async with self._lock:
            self.is_refreshing = True
            logger.info("news_refresh_started")
            try:
                result = await self.runner()
            except Exception as exc:
                self.last_result = IngestionResult(success=False, error=str(exc))
                raise
            finally:
                self.is_refreshing = False
                self.reset()
            self.last_result = result
            logger.info(
                "news_refresh_finished",
                success=result.success,
                count=result.count,
                error=result.error,
            )
            return result

    def snapshot(self) -> RefreshStatus:
        return RefreshStatus(
            interval_minutes=self.interval_minutes,
            last_refresh_at=self.last_refresh_at,
            next_refresh_at=self.next_refresh_at,
            time_left_ms=int(self.time_left().total_seconds() * 1000),
            is_refreshing=self.is_refreshing,
            last_result=self.last_result,
        )

    def start(self) -> None:
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._stop_event.clear()
        self._task = loop.create_task(self._run(), name="news-refresh-scheduler")
        logger.info("news_refresh_scheduler_started", interval_minutes=self.interval_minutes)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
            logger.info("news_refresh_scheduler_stopped")

    async def wait_stopped(self) -> None:
        """Block until stop() is called (used by the worker loop)."""
        await self._stop_event.wait()

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            wait_s = self.time_left().total_seconds()
            if wait_s > 0:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=wait_s)
                    break
                except asyncio.TimeoutError:
                    pass
            # A manual refresh may have reset the countdown while we slept.
            if not self.is_due():
                continue
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("news_refresh_run_failed")
