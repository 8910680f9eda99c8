import pytest

from app.core.constants import DELIVERY_BLOCKED, DELIVERY_FAILED, DELIVERY_IN_APP, DELIVERY_SHOWN
from app.schemas.coach import FeedItem
from app.services.notification_gate import (
    TIER_ISSUE,
    BusNotificationSink,
    NotificationGate,
    should_notify,
)
from app.services.realtime_bus import SessionBus

from conftest import BASE_TS, FakeSink


def _item(item_id: str, timestamp: int = BASE_TS, category: str = "critical") -> FeedItem:
    return FeedItem(id=item_id, title="Alert", message="Sit upright", category=category, timestamp=timestamp)


def test_should_notify_requires_strictly_elapsed_cooldown() -> None:
    assert should_notify(BASE_TS, 0) is True
    assert should_notify(BASE_TS + 120_000, BASE_TS) is False
    assert should_notify(BASE_TS + 120_001, BASE_TS) is True
    assert should_notify(BASE_TS + 10, BASE_TS, cooldown_ms=5) is True


@pytest.mark.asyncio
async def test_two_criticals_inside_cooldown_show_once_but_feed_both(storage, sink) -> None:
    gate = NotificationGate(storage, sink)

    first = await gate.deliver(_item("critical-1"), now=BASE_TS, notifications_enabled=True, priority=2, tier=TIER_ISSUE)
    second = await gate.deliver(
        _item("critical-2", BASE_TS + 1000),
        now=BASE_TS + 1000,
        notifications_enabled=True,
        priority=2,
        tier=TIER_ISSUE,
    )

    assert first.shown is True
    assert second.attempted is False
    assert len(sink.shown) == 1
    assert sink.shown[0]["priority"] == 2

    feed = await storage.get_live_coaching_feed()
    assert [item.id for item in feed] == ["critical-2", "critical-1"]
    assert [item.delivery for item in feed] == [DELIVERY_IN_APP, DELIVERY_SHOWN]


@pytest.mark.asyncio
async def test_blocked_notification_does_not_advance_issue_clock(storage) -> None:
    sink = FakeSink(permission="denied")
    gate = NotificationGate(storage, sink)

    blocked = await gate.deliver(_item("critical-1"), now=BASE_TS, notifications_enabled=True, tier=TIER_ISSUE)
    assert blocked.item.delivery == DELIVERY_BLOCKED
    assert blocked.error
    assert gate.last_notification_time == 0

    sink.permission = "granted"
    shown = await gate.deliver(_item("critical-2"), now=BASE_TS + 1, notifications_enabled=True, tier=TIER_ISSUE)
    assert shown.shown is True
    assert gate.last_notification_time == BASE_TS + 1


@pytest.mark.asyncio
async def test_disabled_notifications_record_in_app_only(storage, sink) -> None:
    gate = NotificationGate(storage, sink)
    result = await gate.deliver(_item("warning-1"), now=BASE_TS, notifications_enabled=False)

    assert result.attempted is False
    assert result.item.delivery == DELIVERY_IN_APP
    assert sink.shown == []


@pytest.mark.asyncio
async def test_sink_errors_are_recorded_as_failed(storage) -> None:
    gate = NotificationGate(storage, FakeSink(error=RuntimeError("no display")))
    result = await gate.deliver(_item("critical-1"), now=BASE_TS, notifications_enabled=True, tier=TIER_ISSUE)

    assert result.item.delivery == DELIVERY_FAILED
    assert "no display" in result.error
    assert gate.last_notification_time == 0


@pytest.mark.asyncio
async def test_error_notifications_skip_rate_limits_and_respect_cooldown(storage) -> None:
    sink = FakeSink(permission="denied")
    gate = NotificationGate(storage, sink)

    assert await gate.deliver_error(_item("error-0"), now=BASE_TS, notifications_enabled=True, rate_limited=True) is None
    assert gate.last_error_notification_time == 0

    first = await gate.deliver_error(_item("error-1"), now=BASE_TS, notifications_enabled=True, rate_limited=False)
    assert first is not None
    assert first.item.delivery == DELIVERY_BLOCKED
    assert gate.last_error_notification_time == BASE_TS

    second = await gate.deliver_error(
        _item("error-2"),
        now=BASE_TS + 60_000,
        notifications_enabled=True,
        rate_limited=False,
    )
    assert second is None

    feed = await storage.get_live_coaching_feed()
    assert [item.id for item in feed] == ["error-1"]


@pytest.mark.asyncio
async def test_feed_is_bounded_newest_first(storage, sink) -> None:
    gate = NotificationGate(storage, sink, max_feed_items=3)
    for index in range(5):
        await gate.record(_item(f"info-{index}", BASE_TS + index, category="info"))

    feed = await storage.get_live_coaching_feed()
    assert [item.id for item in feed] == ["info-4", "info-3", "info-2"]


@pytest.mark.asyncio
async def test_bus_sink_delivers_only_with_subscribers() -> None:
    bus = SessionBus()
    sink = BusNotificationSink(bus=bus, channel="coach-test")

    assert await sink.show("n-1", "Alert", "Sit upright", 2) is False

    queue = bus.subscribe("coach-test")
    assert await sink.show("n-2", "Alert", "Sit upright", 2) is True
    event = queue.get_nowait()
    assert event["event"] == "notification"
    assert event["payload"]["id"] == "n-2"
    assert "delivered" not in event

    sink.set_permission_level("denied")
    assert await sink.get_permission_level() == "denied"
    sink.set_permission_level("whatever")
    assert await sink.get_permission_level() == "unknown"
