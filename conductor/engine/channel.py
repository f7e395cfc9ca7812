"""Per-session event channel.

Producers (process streams, the prompt detector, mode runners)
publish event dicts without awaiting; one pump task per channel
delivers them to every subscriber in publish order. A slow or
failing subscriber never blocks the producer.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from .config import EventCallback, fire_event

logger = logging.getLogger(__name__)

_CLOSE = object()


class SessionChannel:
    """Ordered fan-out of one session's events to its subscribers."""

    def __init__(self, session_id: str, maxsize: int = 1000) -> None:
        self.session_id = session_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._subscribers: list[EventCallback] = []
        self._pump_task: asyncio.Task[None] | None = None
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register an async callback. Returns an unsubscribe function."""
        self._subscribers.append(callback)
        self._ensure_pump()

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: dict[str, Any]) -> None:
        """Queue an event for delivery. Dropped once the channel is closed."""
        if self._closed:
            return
        event.setdefault("session_id", self.session_id)
        event.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Channel %s full; dropped %s event",
                self.session_id[:12], event.get("event"),
            )
            return
        self._ensure_pump()

    def _ensure_pump(self) -> None:
        if self._pump_task is not None or self._closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._pump_task = loop.create_task(
            self._pump(), name=f"channel-{self.session_id[:12]}",
        )

    async def _pump(self) -> None:
        while True:
            event = await self._queue.get()
            if event is _CLOSE:
                return
            for callback in list(self._subscribers):
                await fire_event(callback, event)

    async def close(self) -> None:
        """Deliver everything already published, then detach subscribers."""
        if self._closed:
            return
        self._closed = True
        pump = self._pump_task
        if pump is not None:
            if pump is asyncio.current_task():
                # Closed from inside a subscriber: the pump exits on its own.
                try:
                    self._queue.put_nowait(_CLOSE)
                except asyncio.QueueFull:
                    pump.cancel()
            else:
                await self._queue.put(_CLOSE)
                await asyncio.gather(pump, return_exceptions=True)
        self._subscribers.clear()
        logger.debug("Channel closed: %s", self.session_id[:12])
