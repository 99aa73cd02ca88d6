"""
segscribe/queue/base.py
========================
Work Queue Interface - SegScribe

Responsibility:
    - Define the broker-agnostic priority work queue used by the dispatcher
      and the workers
    - Name the queue topology shared by every participant

Consumption is an explicit pull loop: ``consume()`` yields the next
Delivery, or ``None`` when nothing arrived within ``inactivity_timeout``,
so the caller can check for shutdown between deliveries.

Implementations:
    - segscribe/queue/rabbitmq.py  (pika, durable, multi-process)
    - segscribe/queue/memory.py    (in-process, tests and single-host runs)
"""

from dataclasses import dataclass
from typing import Iterator, Protocol


# ---------------------------------------------------------------------------
# Topology
# ---------------------------------------------------------------------------

SEGMENT_QUEUE = "audio_segments"
RESULTS_QUEUE = "transcription_results"
DEAD_LETTER_QUEUE = "audio_segments.dead"

MAX_PRIORITY = 100


@dataclass(frozen=True)
class QueueSpec:
    name: str
    max_priority: int | None = None


TOPOLOGY: tuple[QueueSpec, ...] = (
    QueueSpec(SEGMENT_QUEUE, max_priority=MAX_PRIORITY),
    QueueSpec(RESULTS_QUEUE),
    QueueSpec(DEAD_LETTER_QUEUE),
)


@dataclass(frozen=True)
class Delivery:
    """One received message; ``tag`` is what ack / nack refer to."""

    tag: int
    body: bytes
    priority: int = 0
    redelivered: bool = False


class WorkQueue(Protocol):
    def declare_topology(self) -> None:
        """Idempotently declare every queue in TOPOLOGY as durable."""

    def set_prefetch(self, count: int) -> None:
        """Limit unacknowledged deliveries held by this consumer."""

    def publish(
        self,
        queue: str,
        body: bytes,
        *,
        priority: int | None = None,
        persistent: bool = True,
        mandatory: bool = False,
    ) -> None:
        """Publish one message; raises TransmissionError on failure."""

    def consume(self, queue: str, *, inactivity_timeout: float = 1.0) -> Iterator[Delivery | None]:
        """Yield deliveries, or None after each idle ``inactivity_timeout``."""

    def ack(self, delivery: Delivery) -> None: ...

    def nack(self, delivery: Delivery, *, requeue: bool) -> None: ...

    def keepalive(self) -> None:
        """Service the connection while a long job runs on another thread."""

    def close(self) -> None: ...

    def __enter__(self) -> "WorkQueue": ...

    def __exit__(self, *exc_info) -> None: ...
