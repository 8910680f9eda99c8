"""
Notification gating and the persisted live coaching feed.

Every coaching event lands in the feed with a delivery tag. A system
notification is only attempted when notifications are enabled and the
tier's cooldown has elapsed; the issue clock only advances on a
notification that was actually shown.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from app.core.constants import (
    DELIVERY_BLOCKED,
    DELIVERY_FAILED,
    DELIVERY_IN_APP,
    DELIVERY_SHOWN,
    PERMISSION_DENIED,
    PERMISSION_GRANTED,
    PERMISSION_UNKNOWN,
)
from app.schemas.coach import FeedItem
from app.services.coach_storage import CoachStorage, CoachStorageError
from app.services.realtime_bus import SessionBus, session_bus

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MS = 120_000
COACH_CHANNEL = "coach"

TIER_ISSUE = "issue"
TIER_ERROR = "error"


def should_notify(now: int, last_time: int, cooldown_ms: int = DEFAULT_COOLDOWN_MS) -> bool:
    return (now - last_time) > cooldown_ms


class NotificationSink(Protocol):
    async def get_permission_level(self) -> str:
        ...

    async def show(self, notification_id: str, title: str, message: str, priority: int) -> bool:
        ...


class BusNotificationSink:
    """Pushes notifications to connected websocket clients over the session bus."""

    def __init__(self, bus: Optional[SessionBus] = None, channel: str = COACH_CHANNEL) -> None:
        self.bus = bus or session_bus
        self.channel = channel
        self.permission_level = PERMISSION_UNKNOWN

    def set_permission_level(self, level: str) -> None:
        if level in {PERMISSION_GRANTED, PERMISSION_DENIED}:
            self.permission_level = level
        else:
            self.permission_level = PERMISSION_UNKNOWN

    async def get_permission_level(self) -> str:
        return self.permission_level

    async def show(self, notification_id: str, title: str, message: str, priority: int) -> bool:
        envelope = await self.bus.publish(
            self.channel,
            {
                "event": "notification",
                "payload": {
                    "id": notification_id,
                    "title": title,
                    "message": message,
                    "priority": priority,
                },
            },
        )
        return int(envelope.get("delivered") or 0) > 0


@dataclass(frozen=True)
class DeliveryResult:
    item: FeedItem
    attempted: bool
    error: Optional[str] = None

    @property
    def shown(self) -> bool:
        return self.item.delivery == DELIVERY_SHOWN


class NotificationGate:
    def __init__(
        self,
        storage: CoachStorage,
        sink: NotificationSink,
        max_feed_items: int = 50,
        cooldown_ms: int = DEFAULT_COOLDOWN_MS,
    ) -> None:
        self.storage = storage
        self.sink = sink
        self.max_feed_items = max(1, int(max_feed_items))
        self.cooldown_ms = max(0, int(cooldown_ms))
        self.last_notification_time = 0
        self.last_error_notification_time = 0

    async def permission_level(self) -> str:
        try:
            return await self.sink.get_permission_level() or PERMISSION_UNKNOWN
        except Exception:
            logger.debug("coach_permission_query_failed", exc_info=True)
            return PERMISSION_UNKNOWN

    async def append_feed_item(self, item: FeedItem) -> None:
        try:
            current = await self.storage.get_live_coaching_feed()
            await self.storage.save_live_coaching_feed([item, *current][: self.max_feed_items])
        except CoachStorageError:
            logger.warning("coach_feed_append_failed item_id=%s", item.id, exc_info=True)

    async def _attempt(self, item: FeedItem, priority: int) -> Tuple[str, Optional[str]]:
        if await self.permission_level() == PERMISSION_DENIED:
            return DELIVERY_BLOCKED, "Notifications are blocked for this app"
        try:
            shown = await self.sink.show(item.id, item.title, item.message, priority)
        except Exception as exc:
            logger.warning("coach_notification_failed item_id=%s error=%s", item.id, exc)
            return DELIVERY_FAILED, f"Notification failed: {exc}"
        if not shown:
            return DELIVERY_FAILED, "Notification failed: no client received it"
        return DELIVERY_SHOWN, None

    async def deliver(
        self,
        item: FeedItem,
        *,
        now: int,
        notifications_enabled: bool,
        priority: int = 1,
        tier: Optional[str] = None,
    ) -> DeliveryResult:
        """
        Record `item` in the feed and, when allowed, show it.

        tier=TIER_ISSUE applies the shared critical/warning cooldown; no tier
        means a direct notification without cooldown.
        """
        attempt = bool(notifications_enabled)
        if tier == TIER_ISSUE:
            attempt = attempt and should_notify(now, self.last_notification_time, self.cooldown_ms)

        error: Optional[str] = None
        delivery = DELIVERY_IN_APP
        if attempt:
            delivery, error = await self._attempt(item, priority)
            if tier == TIER_ISSUE and delivery == DELIVERY_SHOWN:
                self.last_notification_time = now

        recorded = item.model_copy(update={"delivery": delivery})
        await self.append_feed_item(recorded)
        return DeliveryResult(item=recorded, attempted=attempt, error=error)

    async def deliver_error(
        self,
        item: FeedItem,
        *,
        now: int,
        notifications_enabled: bool,
        rate_limited: bool,
    ) -> Optional[DeliveryResult]:
        """Error notification on its own cooldown clock; rate limits never notify."""
        if rate_limited:
            return None
        if not should_notify(now, self.last_error_notification_time, self.cooldown_ms):
            return None
        self.last_error_notification_time = now
        return await self.deliver(item, now=now, notifications_enabled=notifications_enabled, tier=TIER_ERROR)

    async def record(self, item: FeedItem) -> FeedItem:
        """In-app only entry, never shown as a system notification."""
        recorded = item.model_copy(update={"delivery": DELIVERY_IN_APP})
        await self.append_feed_item(recorded)
        return recorded
