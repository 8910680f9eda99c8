"""
Local picture saver client.

Analysed frames are posted to an optional local recorder service. The call
runs as a detached task: failures are logged and reported once per outage
window in the live feed, never raised into the session transition.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

import httpx

from app.core.config import get_settings
from app.core.i18n import EN_CA, t_all
from app.schemas.coach import FeedItem
from app.services.notification_gate import should_notify

logger = logging.getLogger(__name__)
settings = get_settings()

REPORT_COOLDOWN_MS = 120_000


class FrameRecorderError(RuntimeError):
    pass


FeedRecorder = Callable[[FeedItem], Awaitable[object]]


class FrameRecorder:
    def __init__(
        self,
        url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        record_feed: Optional[FeedRecorder] = None,
    ) -> None:
        self.url = (settings.coach_frame_recorder_url if url is None else url).strip()
        self.timeout_seconds = timeout_seconds or settings.coach_frame_recorder_timeout_seconds
        self.record_feed = record_feed
        self.connected = True
        self.last_error_time = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def _post(self, frame: str, session_id: str, timestamp: int) -> None:
        timeout = httpx.Timeout(self.timeout_seconds)
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(
                    self.url,
                    json={"frameData": frame, "sessionId": session_id, "timestamp": timestamp},
                )
        except httpx.HTTPError as exc:
            raise FrameRecorderError(f"frame recorder request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise FrameRecorderError(f"frame recorder responded with {resp.status_code}")

    async def _feed(self, item_id: str, key: str, timestamp: int) -> None:
        if self.record_feed is None:
            return
        titles = t_all(f"{key}.title")
        messages = t_all(f"{key}.message")
        await self.record_feed(
            FeedItem(
                id=item_id,
                title=titles[EN_CA],
                message=messages[EN_CA],
                title_by_language=titles,
                message_by_language=messages,
                category="system",
                timestamp=timestamp,
            )
        )

    async def save(self, frame: str, session_id: str, timestamp: int, now: int) -> bool:
        try:
            await self._post(frame, session_id, timestamp)
        except FrameRecorderError as exc:
            logger.warning("coach_frame_recorder_unavailable session_id=%s error=%s", session_id, exc)
            if should_notify(now, self.last_error_time, REPORT_COOLDOWN_MS):
                self.last_error_time = now
                self.connected = False
                await self._feed(f"frame-recorder-error-{now}", "recorderOffline", now)
            return False

        if not self.connected:
            self.connected = True
            await self._feed(f"frame-recorder-restored-{now}", "recorderOnline", now)
        return True

    def spawn(self, frame: str, session_id: str, timestamp: int, now: int) -> Optional[asyncio.Task]:
        """Fire-and-forget save; the caller never awaits the result."""
        if not self.enabled:
            return None
        task = asyncio.create_task(self.save(frame, session_id, timestamp, now))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("coach_frame_recorder_task_failed error=%s", exc)
