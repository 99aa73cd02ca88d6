# segscribe/queue/__init__.py
# ============================
# Work Queue Layer: SegScribe
#
#   base.py      WorkQueue protocol, Delivery, queue topology
#   messages.py  JSON job / notification / dead-letter bodies
#   memory.py    in-process priority broker
#   rabbitmq.py  pika adapter

from typing import Callable

from segscribe.config import Settings
from segscribe.queue.base import (                       # noqa: F401
    DEAD_LETTER_QUEUE,
    MAX_PRIORITY,
    RESULTS_QUEUE,
    SEGMENT_QUEUE,
    Delivery,
    WorkQueue,
)
from segscribe.queue.memory import MemoryBroker           # noqa: F401

QueueFactory = Callable[[], WorkQueue]


def build_queue_factory(settings: Settings, memory_broker: MemoryBroker | None = None) -> QueueFactory:
    """
    Return a zero-argument callable that opens a WorkQueue handle.

    In memory mode every call returns the same shared broker.
    """
    if settings.broker == "memory":
        broker = memory_broker or MemoryBroker()
        return lambda: broker

    from segscribe.queue.rabbitmq import RabbitMQQueue

    return lambda: RabbitMQQueue.connect(settings)


__all__ = [
    "DEAD_LETTER_QUEUE",
    "MAX_PRIORITY",
    "RESULTS_QUEUE",
    "SEGMENT_QUEUE",
    "Delivery",
    "WorkQueue",
    "MemoryBroker",
    "QueueFactory",
    "build_queue_factory",
]
