"""
segscribe/worker.py
====================
Segment Worker - SegScribe

Responsibility:
    - Hold a broker connection (reconnecting forever until shutdown)
    - Pull one job at a time from ``audio_segments`` (prefetch = 1)
    - Transcribe the segment, persist the result artifact, publish the
      completion notification, then acknowledge
    - Apply the retry policy when transcription fails

State machine::

    DISCONNECTED -> CONNECTING -> READY <-> PROCESSING
                         ^                      |
                         +------- FAULTED <-----+   (broker error)

Retry policy (``max_attempts`` = N):
    N > 0   republish with attempt + 1 until N attempts were made, then send
            the job to ``audio_segments.dead``, mark the segment failed in
            the store and ack the original
    N == 0  nack with requeue, forever

Run standalone:
    segscribe-worker --instances 2

This module does NOT:
    - Plan or dispatch jobs
    - Merge transcripts
"""

import argparse
import enum
import logging
import signal
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import replace
from pathlib import Path
from typing import Any

from segscribe.config import Settings
from segscribe.errors import SegScribeError, TransmissionError
from segscribe.models import ResultArtifact
from segscribe.queue import QueueFactory, build_queue_factory
from segscribe.queue.base import (
    DEAD_LETTER_QUEUE,
    RESULTS_QUEUE,
    SEGMENT_QUEUE,
    Delivery,
    WorkQueue,
)
from segscribe.queue.messages import SegmentJob, SegmentTranscribed, dead_letter_body
from segscribe.store import FileResultStore
from segscribe.stt import TranscriptionEngine, build_engine
from segscribe.stt.base import EngineResult

logger = logging.getLogger("segscribe.worker")

PREFETCH_COUNT = 1
INACTIVITY_TIMEOUT = 1.0  # seconds between shutdown checks while idle
KEEPALIVE_INTERVAL = 1.0  # seconds between heartbeat checks while a job runs


class WorkerState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    PROCESSING = "processing"
    FAULTED = "faulted"


class Outcome(enum.Enum):
    ACKED = "acked"
    RETRIED = "retried"
    DEAD_LETTERED = "dead_lettered"
    REQUEUED = "requeued"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------


class SegmentWorker:
    def __init__(
        self,
        queue_factory: QueueFactory,
        engine: TranscriptionEngine,
        store: FileResultStore,
        *,
        max_attempts: int = 5,
        reconnect_delay: float = 5.0,
        inactivity_timeout: float = INACTIVITY_TIMEOUT,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
        stop_event: threading.Event | None = None,
        name: str = "worker-1",
    ):
        self.queue_factory = queue_factory
        self.engine = engine
        self.store = store
        self.max_attempts = max_attempts
        self.reconnect_delay = reconnect_delay
        self.inactivity_timeout = inactivity_timeout
        self.keepalive_interval = keepalive_interval
        self.stop_event = stop_event or threading.Event()
        self.name = name
        self.state = WorkerState.DISCONNECTED

    def _set_state(self, state: WorkerState) -> None:
        if state is not self.state:
            logger.debug("%s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state

    # -- supervising loop ---------------------------------------------------

    def run(self) -> None:
        """Connect, serve and reconnect until ``stop_event`` is set."""
        logger.info("%s starting (engine=%s)", self.name, getattr(self.engine, "name", "?"))

        while not self.stop_event.is_set():
            self._set_state(WorkerState.CONNECTING)
            try:
                queue = self.queue_factory()
            except SegScribeError as exc:
                self._set_state(WorkerState.DISCONNECTED)
                logger.warning(
                    "%s: broker not ready (%s), retrying in %.0fs",
                    self.name, exc, self.reconnect_delay,
                )
                self.stop_event.wait(self.reconnect_delay)
                continue

            try:
                self.serve(queue)
            except TransmissionError as exc:
                self._set_state(WorkerState.FAULTED)
                logger.error("%s: broker error, reconnecting: %s", self.name, exc)
            finally:
                queue.close()

            if not self.stop_event.is_set():
                self.stop_event.wait(self.reconnect_delay)

        self._set_state(WorkerState.DISCONNECTED)
        logger.info("%s stopped", self.name)

    def serve(self, queue: WorkQueue) -> None:
        """
        Pull and process deliveries until shutdown.

        Raises:
            TransmissionError: On any broker failure; the caller reconnects.
        """
        queue.declare_topology()
        queue.set_prefetch(PREFETCH_COUNT)
        self._set_state(WorkerState.READY)
        logger.info("%s waiting for segments on %s", self.name, SEGMENT_QUEUE)

        for delivery in queue.consume(SEGMENT_QUEUE, inactivity_timeout=self.inactivity_timeout):
            if self.stop_event.is_set():
                if delivery is not None:
                    queue.nack(delivery, requeue=True)
                break
            if delivery is None:
                continue

            self._set_state(WorkerState.PROCESSING)
            self.handle(queue, delivery)
            self._set_state(WorkerState.READY)

    # -- one delivery -------------------------------------------------------

    def handle(self, queue: WorkQueue, delivery: Delivery) -> Outcome:
        """Process one delivery and settle it on ``queue``."""
        try:
            job = SegmentJob.from_bytes(delivery.body)
        except ValueError as exc:
            logger.error("%s: rejecting undecodable message: %s", self.name, exc)
            queue.nack(delivery, requeue=False)
            return Outcome.REJECTED

        audio_path = Path(job.audio_path)
        if not audio_path.is_file():
            logger.warning(
                "[%s] Segment %d audio missing (%s), dropping job",
                job.session_id, job.index, audio_path,
            )
            queue.nack(delivery, requeue=False)
            return Outcome.REJECTED

        logger.info(
            "[%s] Processing segment %d/%d (attempt %d)",
            job.session_id, job.index + 1, job.window.total_count, job.attempt + 1,
        )
        try:
            result = self._transcribe(queue, audio_path, job.window.language_hint)
        except TransmissionError:
            raise
        except Exception as exc:
            logger.error(
                "[%s] Error processing segment %d: %s",
                job.session_id, job.index, exc, exc_info=True,
            )
            return self._on_failure(queue, delivery, job, exc)

        artifact = ResultArtifact(
            session_id=job.session_id,
            index=job.index,
            total_count=job.window.total_count,
            text=result.text,
            start=job.window.start,
            end=job.window.end,
            phrases=result.shifted(job.window.start),
        )
        try:
            self.store.put(job.session_id, job.index, artifact)
        except SegScribeError as exc:
            logger.error("[%s] Failed to save transcription: %s", job.session_id, exc)

        self._notify(queue, job, result.text)
        queue.ack(delivery)
        logger.info("[%s] Segment %d done", job.session_id, job.index + 1)
        return Outcome.ACKED

    def _transcribe(self, queue: WorkQueue, audio_path: Path, language: str) -> EngineResult:
        # This thread owns the broker connection and must keep answering
        # heartbeats until the engine thread finishes.
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.name}-engine") as pool:
            future = pool.submit(self.engine.transcribe, audio_path, language)
            while True:
                try:
                    return future.result(timeout=self.keepalive_interval)
                except FuturesTimeout:
                    if future.done():
                        raise
                    queue.keepalive()

    def _on_failure(
        self,
        queue: WorkQueue,
        delivery: Delivery,
        job: SegmentJob,
        exc: Exception,
    ) -> Outcome:
        if self.max_attempts == 0:
            queue.nack(delivery, requeue=True)
            return Outcome.REQUEUED

        attempts_made = job.attempt + 1
        if attempts_made < self.max_attempts:
            retry = job.next_attempt()
            queue.publish(
                SEGMENT_QUEUE,
                retry.to_bytes(),
                priority=retry.priority,
                persistent=True,
                mandatory=True,
            )
            queue.ack(delivery)
            logger.warning(
                "[%s] Segment %d requeued (attempt %d/%d)",
                job.session_id, job.index, attempts_made, self.max_attempts,
            )
            return Outcome.RETRIED

        queue.publish(DEAD_LETTER_QUEUE, dead_letter_body(job, str(exc)), persistent=True)
        try:
            self.store.record_failure(job.session_id, job.index, str(exc), attempts_made)
        except SegScribeError as persist_exc:
            logger.error("[%s] Failed to record failure: %s", job.session_id, persist_exc)
        queue.ack(delivery)
        logger.error(
            "[%s] Segment %d dead-lettered after %d attempt(s)",
            job.session_id, job.index, attempts_made,
        )
        return Outcome.DEAD_LETTERED

    def _notify(self, queue: WorkQueue, job: SegmentJob, text: str) -> None:
        message = SegmentTranscribed(
            session_id=job.session_id,
            index=job.index,
            total_count=job.window.total_count,
            text=text,
        )
        try:
            queue.publish(RESULTS_QUEUE, message.to_bytes(), persistent=True)
        except TransmissionError as exc:
            logger.warning("[%s] Completion notification not sent: %s", job.session_id, exc)


# ---------------------------------------------------------------------------
# Running several workers
# ---------------------------------------------------------------------------


def start_worker_threads(
    count: int,
    queue_factory: QueueFactory,
    engine: TranscriptionEngine,
    store: FileResultStore,
    settings: Settings,
    stop_event: threading.Event,
) -> list[threading.Thread]:
    """Start ``count`` daemon threads, each running its own SegmentWorker."""
    threads = []
    for i in range(count):
        worker = SegmentWorker(
            queue_factory,
            engine,
            store,
            max_attempts=settings.max_attempts,
            reconnect_delay=settings.reconnect_delay,
            stop_event=stop_event,
            name=f"worker-{i + 1}",
        )
        thread = threading.Thread(target=worker.run, name=worker.name, daemon=True)
        thread.start()
        threads.append(thread)
    return threads


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for name in ("pika", "openai", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="segscribe-worker",
        description="Consume audio segment jobs and write transcriptions.",
    )
    parser.add_argument("--instances", type=int, default=1, help="worker threads in this process")
    parser.add_argument("--max-attempts", type=int, default=None, help="override SEGSCRIBE_MAX_ATTEMPTS")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    if args.instances < 1:
        parser.error("--instances must be >= 1")

    _configure_logging(args.log_level)

    try:
        settings = Settings.from_env()
    except SegScribeError as exc:
        logger.critical("Invalid configuration: %s", exc)
        return 2

    if settings.broker == "memory":
        logger.critical("SEGSCRIBE_BROKER=memory only works inside the API process")
        return 2

    if args.max_attempts is not None:
        if args.max_attempts < 0:
            parser.error("--max-attempts must be >= 0")
        settings = replace(settings, max_attempts=args.max_attempts)

    stop_event = threading.Event()

    def handle_signal(signum: int, _frame: Any) -> None:
        logger.info("Received signal %d, shutting down...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    threads = start_worker_threads(
        args.instances,
        build_queue_factory(settings),
        build_engine(settings),
        FileResultStore(settings.data_dir),
        settings,
        stop_event,
    )
    while any(t.is_alive() for t in threads):
        for thread in threads:
            thread.join(timeout=1.0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
