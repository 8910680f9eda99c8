from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class SessionBus:
    """In-process fan-out of events to websocket subscribers, per channel."""

    def __init__(self, max_queue_size: int = 200) -> None:
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)
        self._seq: Dict[str, int] = defaultdict(int)
        self.max_queue_size = max_queue_size

    def subscribe(self, channel: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers[channel].append(queue)
        return queue

    def unsubscribe(self, channel: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(channel)
        if not queues:
            return
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(channel, None)

    async def publish(self, channel: str, event: Dict[str, Any]) -> Dict[str, Any]:
        self._seq[channel] += 1
        envelope = {
            **event,
            "seq": self._seq[channel],
            "ts_ms": int(time.time() * 1000),
        }
        delivered = 0
        for queue in list(self._subscribers.get(channel) or []):
            try:
                queue.put_nowait(envelope)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("session_bus_queue_full channel=%s event=%s", channel, event.get("event"))
        return {**envelope, "delivered": delivered}


session_bus = SessionBus()
