"""
main.py
========
Central entry point for the SegScribe API.

Run with:
    uvicorn main:app --reload
or, once installed:
    segscribe-api

With SEGSCRIBE_BROKER=memory the API process also runs
SEGSCRIBE_LOCAL_WORKERS worker threads against an in-process queue.
With the default RabbitMQ broker, workers run separately
(``segscribe-worker``).
"""

import logging
import os
import threading
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()  # Load .env before Settings reads env vars

# Configure logging for the entire application
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Broker heartbeats and SDK transport chatter drown out per-session logs.
for _noisy_logger_name in (
    "pika",
    "openai",
    "openai._base_client",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy_logger_name).setLevel(logging.WARNING)

from segscribe.api import create_app  # noqa: E402
from segscribe.config import Settings  # noqa: E402
from segscribe.queue import MemoryBroker, build_queue_factory  # noqa: E402
from segscribe.service import TranscriptionService  # noqa: E402
from segscribe.store import FileResultStore  # noqa: E402
from segscribe.stt import build_engine  # noqa: E402
from segscribe.worker import start_worker_threads  # noqa: E402

logger = logging.getLogger("segscribe.main")

settings = Settings.from_env()
store = FileResultStore(settings.data_dir)
_memory_broker = MemoryBroker() if settings.broker == "memory" else None
queue_factory = build_queue_factory(settings, _memory_broker)


@asynccontextmanager
async def lifespan(_app):
    stop_event = threading.Event()
    threads: list[threading.Thread] = []
    if _memory_broker is not None:
        threads = start_worker_threads(
            settings.local_workers,
            queue_factory,
            build_engine(settings),
            store,
            settings,
            stop_event,
        )
        logger.info("Started %d in-process worker(s)", len(threads))
    try:
        yield
    finally:
        stop_event.set()
        for thread in threads:
            thread.join(timeout=5.0)


app = create_app(TranscriptionService(settings, store, queue_factory), lifespan=lifespan)


def run() -> None:
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.environ.get("SEGSCRIBE_HOST", "127.0.0.1"),
        port=int(os.environ.get("SEGSCRIBE_PORT", "8000")),
    )


if __name__ == "__main__":
    run()
