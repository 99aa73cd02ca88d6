"""
segscribe/queue/memory.py
==========================
In-Process Priority Broker - SegScribe

A thread-safe WorkQueue held entirely in memory. Used when
SEGSCRIBE_BROKER=memory (API and workers in one process) and by the tests.

Semantics mirror the RabbitMQ adapter closely enough for the pipeline:
    - Higher priority is delivered first, FIFO within one priority
    - Unacknowledged deliveries are tracked by tag; ``nack(requeue=True)``
      puts the message back with ``redelivered=True``
    - A mandatory publish to an undeclared queue raises TransmissionError

One instance is meant to be shared by every producer and consumer in the
process, so ``close()`` does nothing.
"""

import heapq
import itertools
import logging
import threading
from typing import Iterator

from segscribe.errors import TransmissionError
from segscribe.queue.base import TOPOLOGY, Delivery

logger = logging.getLogger("segscribe.queue.memory")


class MemoryBroker:
    def __init__(self):
        self._cond = threading.Condition()
        self._queues: dict[str, list[tuple[int, int, Delivery]]] = {}
        self._unacked: dict[int, tuple[str, Delivery]] = {}
        self._seq = itertools.count()
        self._tags = itertools.count(1)
        self.prefetch: int | None = None

    # -- WorkQueue ----------------------------------------------------------

    def declare_topology(self) -> None:
        with self._cond:
            for spec in TOPOLOGY:
                self._queues.setdefault(spec.name, [])

    def set_prefetch(self, count: int) -> None:
        # consume() hands out one delivery per resume, so the limit is implicit
        self.prefetch = count

    def publish(
        self,
        queue: str,
        body: bytes,
        *,
        priority: int | None = None,
        persistent: bool = True,
        mandatory: bool = False,
    ) -> None:
        with self._cond:
            if queue not in self._queues:
                if mandatory:
                    raise TransmissionError(f"Message to {queue!r} was unroutable")
                logger.debug("Dropping message for undeclared queue %s", queue)
                return
            delivery = Delivery(tag=0, body=bytes(body), priority=priority or 0)
            self._push(queue, delivery)
            self._cond.notify_all()

    def consume(self, queue: str, *, inactivity_timeout: float = 1.0) -> Iterator[Delivery | None]:
        with self._cond:
            if queue not in self._queues:
                raise TransmissionError(f"Queue {queue!r} has not been declared")

        while True:
            with self._cond:
                if not self._queues[queue]:
                    self._cond.wait(timeout=inactivity_timeout)
                if not self._queues[queue]:
                    delivery = None
                else:
                    _, _, pending = heapq.heappop(self._queues[queue])
                    delivery = Delivery(
                        tag=next(self._tags),
                        body=pending.body,
                        priority=pending.priority,
                        redelivered=pending.redelivered,
                    )
                    self._unacked[delivery.tag] = (queue, delivery)
            yield delivery

    def ack(self, delivery: Delivery) -> None:
        with self._cond:
            if self._unacked.pop(delivery.tag, None) is None:
                raise TransmissionError(f"Unknown delivery tag {delivery.tag}")

    def nack(self, delivery: Delivery, *, requeue: bool) -> None:
        with self._cond:
            entry = self._unacked.pop(delivery.tag, None)
            if entry is None:
                raise TransmissionError(f"Unknown delivery tag {delivery.tag}")
            if requeue:
                queue, original = entry
                self._push(
                    queue,
                    Delivery(tag=0, body=original.body, priority=original.priority, redelivered=True),
                )
                self._cond.notify_all()

    def keepalive(self) -> None:
        pass

    def close(self) -> None:
        pass

    def __enter__(self) -> "MemoryBroker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- Inspection ---------------------------------------------------------

    def pending(self, queue: str) -> list[bytes]:
        """Bodies waiting in ``queue``, in delivery order."""
        with self._cond:
            return [d.body for _, _, d in sorted(self._queues.get(queue, []))]

    def unacked_count(self) -> int:
        with self._cond:
            return len(self._unacked)

    # -- Helpers ------------------------------------------------------------

    def _push(self, queue: str, delivery: Delivery) -> None:
        heapq.heappush(self._queues[queue], (-delivery.priority, next(self._seq), delivery))
