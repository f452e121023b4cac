"""
Outbound notifications pushed to the UI/host layer.

Channels mirror what the desktop UI listens for: ``session-initializing``,
``update-status``, ``update-response`` and ``save-conversation-turn``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)

SESSION_INITIALIZING = "session-initializing"
UPDATE_STATUS = "update-status"
UPDATE_RESPONSE = "update-response"
SAVE_CONVERSATION_TURN = "save-conversation-turn"


class NotificationSink(Protocol):
    """Receives push notifications. Implementations must not raise."""

    def emit(self, channel: str, payload: Any) -> None: ...


@dataclass
class Notification:
    """A single pushed event."""

    channel: str
    payload: Any
    ts: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {"channel": self.channel, "payload": self.payload, "ts": self.ts.isoformat()}


class LoggingSink:
    """Mirror notifications into the log."""

    def emit(self, channel: str, payload: Any) -> None:
        if channel == SAVE_CONVERSATION_TURN:
            logger.debug("%s: session %s", channel, payload.get("sessionId"))
        else:
            logger.info("%s: %s", channel, payload)


class RecordingSink:
    """Keep every notification in memory, in order."""

    def __init__(self) -> None:
        self.events: list[Notification] = []

    def emit(self, channel: str, payload: Any) -> None:
        self.events.append(Notification(channel, payload))

    def payloads(self, channel: str) -> list[Any]:
        """All payloads pushed on one channel."""
        return [e.payload for e in self.events if e.channel == channel]

    def clear(self) -> None:
        self.events.clear()


class BroadcastSink:
    """
    Fan notifications out to any number of asyncio subscribers.

    Each subscriber gets its own bounded queue; when a slow subscriber's queue
    is full the oldest event is dropped so emitters never block.
    """

    def __init__(self, max_queue: int = 256) -> None:
        self._max_queue = max_queue
        self._queues: set[asyncio.Queue[Notification]] = set()

    def subscribe(self) -> asyncio.Queue[Notification]:
        q: asyncio.Queue[Notification] = asyncio.Queue(maxsize=self._max_queue)
        self._queues.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue[Notification]) -> None:
        self._queues.discard(q)

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def emit(self, channel: str, payload: Any) -> None:
        event = Notification(channel, payload)
        for q in list(self._queues):
            if q.full():
                q.get_nowait()
            q.put_nowait(event)


class FanoutSink:
    """Forward each notification to several sinks."""

    def __init__(self, *sinks: NotificationSink) -> None:
        self.sinks = list(sinks)

    def emit(self, channel: str, payload: Any) -> None:
        for sink in self.sinks:
            try:
                sink.emit(channel, payload)
            except Exception:
                logger.exception("Notification sink %r failed on %s", sink, channel)
