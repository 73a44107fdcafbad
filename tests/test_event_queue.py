"""
tests/test_event_queue.py — pytest unit tests for streamglow.events.event_queue.
"""

from __future__ import annotations

import threading
import time
from decimal import Decimal

import pytest

from streamglow.core.errors import QueueClosedError, QueueFullError
from streamglow.events.decoder import Event, EventKind
from streamglow.events.event_queue import EventQueue


def _event(n: int) -> Event:
    return Event(kind=EventKind.DONATION, amount=Decimal(n), raw_id=str(n))


@pytest.fixture()
def queue() -> EventQueue:
    return EventQueue()


class TestCapacity:

    def test_default_capacity_is_32(self, queue: EventQueue) -> None:
        assert queue.capacity == 32

    def test_33rd_enqueue_fails_without_blocking(self, queue: EventQueue) -> None:
        for n in range(32):
            queue.enqueue(_event(n))

        t0 = time.monotonic()
        with pytest.raises(QueueFullError):
            queue.enqueue(_event(32))
        assert time.monotonic() - t0 < 0.1
        assert len(queue) == 32
        assert queue.dropped == 1

    def test_space_frees_after_dequeue(self) -> None:
        q = EventQueue(capacity=1)
        q.enqueue(_event(1))
        with pytest.raises(QueueFullError):
            q.enqueue(_event(2))
        assert q.dequeue(timeout=0) is not None
        q.enqueue(_event(3))
        assert len(q) == 1

    def test_rejects_non_positive_capacity(self) -> None:
        with pytest.raises(ValueError):
            EventQueue(capacity=0)


class TestOrdering:

    def test_fifo(self, queue: EventQueue) -> None:
        for n in range(5):
            queue.enqueue(_event(n))
        out = [queue.dequeue(timeout=0).raw_id for _ in range(5)]
        assert out == ["0", "1", "2", "3", "4"]

    def test_dequeue_timeout_returns_none(self, queue: EventQueue) -> None:
        t0 = time.monotonic()
        assert queue.dequeue(timeout=0.05) is None
        assert time.monotonic() - t0 >= 0.04

    def test_blocked_consumer_wakes_on_enqueue(self, queue: EventQueue) -> None:
        got = []
        consumer = threading.Thread(target=lambda: got.append(queue.dequeue(timeout=2.0)))
        consumer.start()
        time.sleep(0.05)
        queue.enqueue(_event(7))
        consumer.join(timeout=2.0)
        assert got and got[0].raw_id == "7"


class TestClose:

    def test_enqueue_after_close_raises(self, queue: EventQueue) -> None:
        queue.close()
        with pytest.raises(QueueClosedError):
            queue.enqueue(_event(1))

    def test_close_wakes_blocked_consumer(self, queue: EventQueue) -> None:
        got = ["unset"]
        consumer = threading.Thread(target=lambda: got.__setitem__(0, queue.dequeue()))
        consumer.start()
        time.sleep(0.05)
        queue.close()
        consumer.join(timeout=2.0)
        assert not consumer.is_alive()
        assert got[0] is None

    def test_closed_queue_still_yields_pending(self, queue: EventQueue) -> None:
        queue.enqueue(_event(1))
        queue.close()
        assert queue.dequeue().raw_id == "1"
        assert queue.dequeue() is None

    def test_discard_pending(self, queue: EventQueue) -> None:
        for n in range(3):
            queue.enqueue(_event(n))
        assert queue.discard_pending() == 3
        assert len(queue) == 0
        assert queue.dropped == 3
