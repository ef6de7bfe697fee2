"""Session events raised by the TimeManager + async event bus."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Coroutine, Dict, List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    SESSION_TICK = "SESSION_TICK"          # countdown recomputed
    SESSION_EXPIRED = "SESSION_EXPIRED"    # countdown reached 0 (emitted once)


@dataclass
class SessionEvent:
    event_type: EventType
    session_id: str
    payload: Optional[Dict[str, Any]] = None
    event_id: str = field(default_factory=lambda: str(uuid4()))


Handler = Callable[[SessionEvent], Coroutine[Any, Any, None]]


class AsyncEventBus:
    """
    Async event bus.

    Events are buffered in an asyncio.Queue and handed to async handlers by a
    single consumer task, so the clock tick never waits on a handler.
    """

    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue(maxsize=maxsize)
        self._handlers: Dict[EventType, List[Handler]] = {}
        self._running: bool = False
        self._consumer_task: Optional[asyncio.Task] = None

    def register_handler(self, event_type: EventType, handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unregister_handler(self, event_type: EventType, handler: Handler) -> None:
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
            except ValueError:
                pass

    async def publish(self, event: SessionEvent) -> None:
        await self._queue.put(event)

    def publish_sync(self, event: SessionEvent) -> bool:
        """
        Enqueue from non-async code running on the loop thread.

        When the queue is full a tick is dropped, while an expiry takes the
        slot of the oldest queued tick. Returns False only when nothing
        could make room.
        """
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            if event.event_type == EventType.SESSION_EXPIRED and self._evict_tick():
                self._queue.put_nowait(event)
                return True
            if event.event_type == EventType.SESSION_EXPIRED:
                logger.error("[EventBus] Queue full of expiries, could not enqueue expiry for %s", event.session_id)
                return False
            logger.debug("[EventBus] Queue full, dropping %s for %s", event.event_type.value, event.session_id)
            return False

    def _evict_tick(self) -> bool:
        """Drop the oldest queued tick, keeping the order of everything else."""
        queued: List[SessionEvent] = []
        while not self._queue.empty():
            queued.append(self._queue.get_nowait())
            self._queue.task_done()
        evicted = None
        for index, pending in enumerate(queued):
            if pending.event_type == EventType.SESSION_TICK:
                evicted = queued.pop(index)
                break
        for pending in queued:
            self._queue.put_nowait(pending)
        if evicted is None:
            return False
        logger.debug("[EventBus] Queue full, evicted tick for %s to queue an expiry", evicted.session_id)
        return True

    async def dispatch(self, event: SessionEvent) -> None:
        """Run every handler for one event; a failing handler does not stop the others."""
        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                await handler(event)
            except Exception:
                logger.exception("[EventBus] Handler error for %s", event.event_type.value)

    async def drain(self) -> int:
        """Dispatch everything currently queued (used when no consumer loop runs)."""
        count = 0
        while not self._queue.empty():
            event = self._queue.get_nowait()
            await self.dispatch(event)
            self._queue.task_done()
            count += 1
        return count

    async def _consume_loop(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.1)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            await self.dispatch(event)
            self._queue.task_done()

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._consumer_task = asyncio.create_task(self._consume_loop())
        logger.info("[EventBus] Started")

    async def stop(self) -> None:
        self._running = False
        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None
        logger.info("[EventBus] Stopped")

    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._running
