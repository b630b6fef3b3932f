"""
Companion Engine — Notification timeline.

The single ordered, append-only chat timeline. Every producer (reminder
ticks, achievement unlocks, mood entries, ambient messages, the chat
client) publishes into one asyncio queue; one consumer task drains it,
appends to the timeline and fans out to listeners. Delivery order is the
order in which messages were accepted by ``publish``, whichever timer
happened to fire first.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from datetime import datetime
from typing import Callable, Iterable

from companion.data.models import ChatMessage

logger = logging.getLogger(__name__)

# on_notification(text, source_label)
Listener = Callable[[str, str], None]


class NotificationSink:
    """Append-only timeline behind a single-consumer queue.

    Implements ``NotificationPort``.
    """

    def __init__(
        self,
        history: Iterable[ChatMessage] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._clock = clock
        self._queue: asyncio.Queue[ChatMessage] = asyncio.Queue()
        self._timeline: list[ChatMessage] = list(history or [])
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._accepted = 0
        self._pending: deque[ChatMessage] = deque()

    # -- producers ---------------------------------------------------------

    def publish(self, text: str, source: str, *, from_companion: bool = True) -> None:
        """Accept a notification for delivery.

        Safe to call from any thread once ``start()`` has bound the sink to
        its event loop. Before that, producers must share one thread.
        """
        self.accept(
            ChatMessage(
                content=text,
                is_from_companion=from_companion,
                timestamp=self._clock(),
                source=source,
            )
        )

    def accept(self, message: ChatMessage) -> None:
        # Enqueue under the lock so queue order is acceptance order.
        with self._lock:
            self._accepted += 1
            self._pending.append(message)
            loop = self._loop
            if loop is not None and not loop.is_closed():
                loop.call_soon_threadsafe(self._queue.put_nowait, message)
            else:
                self._queue.put_nowait(message)

    def seed(self, history: Iterable[ChatMessage]) -> None:
        """Load persisted history. Only allowed before anything was published."""
        with self._lock:
            if self._timeline or self._accepted:
                raise RuntimeError("Timeline already has entries; seed only at startup")
            self._timeline = list(history)
        logger.info("Timeline seeded with %d messages", len(self._timeline))

    # -- consumer ----------------------------------------------------------

    def start(self) -> None:
        """Start the consumer task. Must be called on the event loop."""
        if self._task is not None and not self._task.done():
            return
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self.run(), name="notification-sink")

    async def run(self) -> None:
        self._loop = asyncio.get_running_loop()
        while True:
            message = await self._queue.get()
            try:
                self._deliver(message)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every accepted message has been delivered."""
        if not self.is_running:
            self.flush()
            return
        while self._has_pending():
            # Let scheduled puts land before joining the queue.
            await asyncio.sleep(0)
            await self._queue.join()

    def _has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    async def stop(self) -> None:
        """Deliver what is pending, then stop the consumer."""
        if self._task is not None and not self._task.done():
            await self.drain()
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        with self._lock:
            self._loop = None
        # Puts already handed to the loop land before the final flush.
        await asyncio.sleep(0)
        self._task = None
        self.flush()

    def flush(self) -> int:
        """Deliver queued messages inline when no consumer task is running."""
        delivered = 0
        while True:
            try:
                message = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return delivered
            try:
                self._deliver(message)
                delivered += 1
            finally:
                self._queue.task_done()

    def _deliver(self, message: ChatMessage) -> None:
        with self._lock:
            if self._pending and self._pending[0] is message:
                self._pending.popleft()
            else:
                self._pending.remove(message)
            self._timeline.append(message)
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(message.content, message.source)
            except Exception as exc:
                logger.error("Notification listener %r failed: %s", listener, exc)

    # -- observers ---------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def messages(self) -> list[ChatMessage]:
        with self._lock:
            return list(self._timeline)

    def accepted_messages(self) -> list[ChatMessage]:
        """The timeline followed by messages accepted but not yet delivered."""
        with self._lock:
            return self._timeline + list(self._pending)

    def has_entries(self) -> bool:
        with self._lock:
            return bool(self._timeline) or self._accepted > 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def __len__(self) -> int:
        with self._lock:
            return len(self._timeline)
