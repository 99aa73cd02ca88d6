"""
segscribe/dispatch.py
======================
Job Dispatcher - SegScribe

Responsibility:
    - Declare the queue topology
    - For each planned window: produce its audio artifact, then publish a
      persistent, prioritized job to ``audio_segments``

Publishing is mandatory: a job the broker cannot route raises instead of
being dropped. A failure aborts the dispatch; jobs already published stay
on the queue and the session is not rolled back.

This module does NOT:
    - Plan windows (see segscribe/audio/planner.py)
    - Open or close broker connections (the caller owns the handle)
"""

import logging

from segscribe.audio.slicer import AudioArtifactResolver
from segscribe.errors import DispatchError, SegScribeError
from segscribe.models import ChunkWindow
from segscribe.queue.base import SEGMENT_QUEUE, WorkQueue
from segscribe.queue.messages import SegmentJob

logger = logging.getLogger("segscribe.dispatch")


class JobDispatcher:
    def __init__(self, queue: WorkQueue):
        self.queue = queue

    def dispatch(
        self,
        session_id: str,
        windows: list[ChunkWindow],
        resolver: AudioArtifactResolver,
    ) -> list[SegmentJob]:
        """
        Publish one job per window, in plan order.

        Args:
            session_id: Session the windows belong to (used for logging).
            windows:    Output of plan_chunks.
            resolver:   Produces the WAV file for each window.

        Returns:
            The published jobs.

        Raises:
            DispatchError: If topology declaration, audio conversion or a
                publish fails.
        """
        try:
            self.queue.declare_topology()
        except SegScribeError as exc:
            raise DispatchError(f"[{session_id}] Cannot declare queues: {exc}") from exc

        published: list[SegmentJob] = []
        for window in windows:
            try:
                audio_path = resolver.resolve(window)
                job = SegmentJob(window=window, audio_path=str(audio_path))
                self.queue.publish(
                    SEGMENT_QUEUE,
                    job.to_bytes(),
                    priority=job.priority,
                    persistent=True,
                    mandatory=True,
                )
            except DispatchError:
                logger.error(
                    "[%s] Dispatch aborted at segment %d/%d (%d published)",
                    session_id, window.index + 1, window.total_count, len(published),
                )
                raise
            except SegScribeError as exc:
                logger.error(
                    "[%s] Dispatch aborted at segment %d/%d (%d published)",
                    session_id, window.index + 1, window.total_count, len(published),
                )
                raise DispatchError(
                    f"[{session_id}] Failed to publish segment {window.index}: {exc}"
                ) from exc

            published.append(job)
            logger.info(
                "[%s] Sent segment %d/%d (%.1fs-%.1fs, priority %d)",
                session_id, window.index + 1, window.total_count,
                window.start, window.end, job.priority,
            )

        return published
