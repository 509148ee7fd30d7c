from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import anyio

from lidarview.models import ViewerEvent


logger = logging.getLogger("lidarview.events")

EventListener = Callable[[ViewerEvent], None]


class EventBus:
    """Numbered in-memory event history with live subscribers."""

    def __init__(self, capacity: int = 500):
        self._events: deque[ViewerEvent] = deque(maxlen=max(1, int(capacity)))
        self._next_id = 1
        self._listeners: list[EventListener] = []
        self._wakeup = asyncio.Event()

    @property
    def last_id(self) -> int:
        return self._next_id - 1

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def publish(self, event_type: str, payload: dict[str, Any] | None = None) -> ViewerEvent:
        event = ViewerEvent(
            id=self._next_id,
            type=event_type,
            timestamp=datetime.now(timezone.utc),
            payload=dict(payload or {}),
        )
        self._next_id += 1
        self._events.append(event)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("event_listener_failed type=%s", event_type)

        wakeup, self._wakeup = self._wakeup, asyncio.Event()
        wakeup.set()
        return event

    def list_events(self, since_id: int | None = None, limit: int = 200) -> list[ViewerEvent]:
        cursor = since_id or 0
        rows = [event for event in self._events if int(event.id or 0) > cursor]
        return rows[: max(1, limit)]

    async def stream(
        self,
        *,
        since_id: int | None = None,
        heartbeat_seconds: float = 10.0,
    ) -> AsyncIterator[ViewerEvent]:
        """Replay history after ``since_id``, then follow new events.

        Yields ``heartbeat`` events while nothing happens.
        """

        cursor = since_id
        while True:
            rows = self.list_events(since_id=cursor)
            if rows:
                for row in rows:
                    cursor = row.id
                    yield row
                continue

            wakeup = self._wakeup
            with anyio.move_on_after(max(1.0, heartbeat_seconds)) as scope:
                await wakeup.wait()
            if scope.cancelled_caught:
                yield ViewerEvent(
                    id=None,
                    type="heartbeat",
                    timestamp=datetime.now(timezone.utc),
                    payload={},
                )
