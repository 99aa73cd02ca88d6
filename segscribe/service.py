"""
segscribe/service.py
=====================
Transcription Service - SegScribe

Transport-agnostic entry point used by the HTTP layer (and usable from any
other front end):

    submit_upload(bytes, filename, language)  -> session_id
    submit(duration, seg, ovl, language, resolver_factory) -> session_id
    get_status(session_id)     -> SessionStatus
    get_assembled(session_id)  -> AssembledTranscript
    get_segments(session_id)   -> list[Phrase]

A broker handle is opened from the injected factory for each dispatch and
closed right after; the service keeps no connection of its own.
"""

import logging
import uuid
from pathlib import Path
from typing import Callable

from segscribe.audio.planner import plan_chunks
from segscribe.audio.slicer import AudioArtifactResolver, PydubSegmentResolver
from segscribe.config import Settings
from segscribe.dispatch import JobDispatcher
from segscribe.errors import DispatchError, InvalidConfigurationError, TransmissionError
from segscribe.models import AssembledTranscript, ChunkWindow, Phrase, SessionStatus
from segscribe.progress import session_status
from segscribe.queue import QueueFactory
from segscribe.stitcher import assemble, list_segments
from segscribe.store import FileResultStore, SessionPaths

logger = logging.getLogger("segscribe.service")

ResolverFactory = Callable[[SessionPaths], AudioArtifactResolver]


class TranscriptionService:
    def __init__(self, settings: Settings, store: FileResultStore, queue_factory: QueueFactory):
        self.settings = settings
        self.store = store
        self.queue_factory = queue_factory

    # -- submission ---------------------------------------------------------

    def submit(
        self,
        audio_duration: float,
        segment_length: float,
        overlap_length: float,
        language_hint: str,
        resolver_factory: ResolverFactory,
        *,
        session_id: str | None = None,
    ) -> tuple[str, list[ChunkWindow]]:
        """
        Plan a recording, persist the plan and dispatch one job per window.

        Args:
            audio_duration:   Recording length in seconds.
            segment_length:   Window length in seconds.
            overlap_length:   Seconds shared by adjacent windows.
            language_hint:    Language code passed to the engine, or "auto".
            resolver_factory: Builds the audio resolver for the session.
            session_id:       Existing session to dispatch into; a new one is
                              created when omitted.

        Returns:
            (session_id, planned windows)

        Raises:
            InvalidConfigurationError: If the parameters are inconsistent or
                the recording is empty.
            DispatchError: If conversion or publishing fails.
        """
        session_id = session_id or uuid.uuid4().hex
        windows = plan_chunks(
            audio_duration,
            segment_length,
            overlap_length,
            session_id=session_id,
            language_hint=language_hint or "auto",
        )
        if not windows:
            raise InvalidConfigurationError(
                f"Audio duration must be positive, got {audio_duration}s"
            )

        paths = self.store.create_session(session_id)
        self.store.save_plan(session_id, windows)
        resolver = resolver_factory(paths)

        try:
            with self.queue_factory() as queue:
                JobDispatcher(queue).dispatch(session_id, windows, resolver)
        except TransmissionError as exc:
            raise DispatchError(f"[{session_id}] Broker unavailable: {exc}") from exc

        logger.info("[%s] Dispatched %d segment(s)", session_id, len(windows))
        return session_id, windows

    def submit_upload(
        self,
        audio_bytes: bytes,
        filename: str,
        language_hint: str = "auto",
    ) -> tuple[str, list[ChunkWindow]]:
        """
        Store an uploaded recording as a new session and dispatch it.

        Raises:
            InvalidConfigurationError: If the upload is empty or has no
                audio.
            DispatchError: If the audio cannot be decoded or published.
        """
        if not audio_bytes:
            raise InvalidConfigurationError("Uploaded file is empty")

        session_id = uuid.uuid4().hex
        paths = self.store.create_session(session_id)
        source = paths.original(Path(filename or "").suffix.lower())
        try:
            source.write_bytes(audio_bytes)
        except OSError as exc:
            raise DispatchError(f"[{session_id}] Cannot store upload: {exc}") from exc
        logger.info("[%s] Stored upload %s (%.2f KB)", session_id, source.name, len(audio_bytes) / 1024)

        resolver = PydubSegmentResolver(source, paths.segments)
        duration = resolver.duration_seconds()

        return self.submit(
            duration,
            self.settings.segment_seconds,
            self.settings.overlap_seconds,
            language_hint,
            lambda _paths: resolver,
            session_id=session_id,
        )

    # -- reads --------------------------------------------------------------

    def get_status(self, session_id: str) -> SessionStatus:
        return session_status(self.store, session_id)

    def get_assembled(self, session_id: str) -> AssembledTranscript:
        return assemble(self.store, session_id)

    def get_segments(self, session_id: str) -> list[Phrase]:
        return list_segments(self.store, session_id)
