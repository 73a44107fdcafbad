"""
streamglow/events/event_queue.py — Bounded FIFO between transport and pipeline.

Producers (the transport thread) never block: a full queue rejects the event
immediately so the transport keeps servicing its own connection. The single
consumer (the pipeline thread) blocks until an event arrives or the queue is
closed.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Deque, Optional

from streamglow.core.constants import C
from streamglow.core.errors import QueueClosedError, QueueFullError
from streamglow.events.decoder import Event


class EventQueue:
    """
    Bounded, closeable, thread-safe FIFO of :class:`~streamglow.events.decoder.Event`.

    Args:
        capacity: Maximum number of pending events (default 32).

    Usage::

        q = EventQueue()
        q.enqueue(event)            # raises QueueFullError when full
        ev = q.dequeue(timeout=0.25)
        q.close()                   # consumers now drain and then get None
    """

    def __init__(self, capacity: int = C.QUEUE_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._items: Deque[Event] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._dropped = 0

    # ──────────────────────────────────────────
    # Producer side
    # ──────────────────────────────────────────

    def enqueue(self, event: Event) -> None:
        """
        Append *event* without blocking.

        Raises:
            QueueClosedError: After :meth:`close`.
            QueueFullError: When ``capacity`` events are already pending.
        """
        with self._cond:
            if self._closed:
                self._dropped += 1
                raise QueueClosedError("Event queue is closed")
            if len(self._items) >= self._capacity:
                self._dropped += 1
                raise QueueFullError(
                    f"Event queue full ({self._capacity} pending)"
                )
            self._items.append(event)
            self._cond.notify()

    # ──────────────────────────────────────────
    # Consumer side
    # ──────────────────────────────────────────

    def dequeue(self, timeout: Optional[float] = None) -> Optional[Event]:
        """
        Remove and return the oldest event.

        Blocks until an event is available. Returns ``None`` when the queue is
        closed and empty, or when *timeout* seconds pass with nothing to take.

        Args:
            timeout: Seconds to wait; ``None`` waits indefinitely.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._items:
                if self._closed:
                    return None
                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    self._cond.wait(remaining)
            return self._items.popleft()

    def close(self) -> None:
        """Reject further enqueues and wake every waiting consumer. Idempotent."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def discard_pending(self) -> int:
        """Drop every pending event; returns how many were dropped."""
        with self._cond:
            count = len(self._items)
            self._items.clear()
            self._dropped += count
            return count

    # ──────────────────────────────────────────
    # Introspection
    # ──────────────────────────────────────────

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    @property
    def dropped(self) -> int:
        """Events rejected (full / closed) or discarded since creation."""
        with self._cond:
            return self._dropped

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def __repr__(self) -> str:
        return f"EventQueue(depth={len(self)}, capacity={self._capacity}, closed={self.closed})"
