from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from fuelwatch.core.config import get_settings

logger = logging.getLogger(__name__)

EVENT_TYPES = {
    "price_inserted",
    "prices_updated",
    "station_deleted",
    "submission_created",
    "submission_reviewed",
}


@dataclass(slots=True)
class ChangeEvent:
    event_type: str
    payload: dict[str, Any]
    sequence: int
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        data = json.dumps(
            {"type": self.event_type, "payload": self.payload, "emitted_at": self.emitted_at.isoformat()},
            default=str,
        )
        return f"id: {self.sequence}\nevent: {self.event_type}\ndata: {data}\n\n"


class ChangeEventBroker:
    """In-process fan-out of change notifications to stream subscribers.

    Events reach each subscriber in publish order. A subscriber whose queue is
    full loses the event rather than blocking publishers.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = max(1, queue_size)
        self._subscribers: set[asyncio.Queue[ChangeEvent]] = set()
        self._sequence = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event_type: str, payload: dict[str, Any]) -> ChangeEvent:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown event type: {event_type}")
        self._sequence += 1
        event = ChangeEvent(event_type=event_type, payload=payload, sequence=self._sequence)
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("dropping change event seq=%s for slow subscriber", event.sequence)
        return event

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[ChangeEvent]]:
        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)


@lru_cache
def get_event_broker() -> ChangeEventBroker:
    return ChangeEventBroker(queue_size=get_settings().event_queue_size)
