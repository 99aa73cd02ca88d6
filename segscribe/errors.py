"""
segscribe/errors.py
====================
Error taxonomy - SegScribe

Every failure the pipeline can surface is one of the classes below.
Adapters (pika, pydub, subprocess, openai) translate library exceptions
into these with ``raise ... from exc`` so callers never depend on a
third-party exception type.

Propagation:
    - InvalidConfigurationError, DispatchError: raised synchronously to the
      submitting caller.
    - SessionNotFoundError: raised by status / assemble / segments reads.
    - TransmissionError, ProcessingError, PersistenceError: contained inside
      the worker and expressed only as retries, dead letters and log records.
"""


class SegScribeError(Exception):
    """Base class for all SegScribe errors."""


class InvalidConfigurationError(SegScribeError):
    """Raised when chunk parameters or settings are invalid."""


class SessionNotFoundError(SegScribeError):
    """Raised when a session is unknown or has no result artifacts yet."""

    def __init__(self, session_id: str, message: str):
        self.session_id = session_id
        self.message = message
        super().__init__(f"[{session_id}] {message}")


class DispatchError(SegScribeError):
    """Raised when audio conversion or job publishing fails during submit."""


class TransmissionError(SegScribeError):
    """Raised when the broker is unreachable or a channel operation fails."""


class ProcessingError(SegScribeError):
    """Raised when the transcription engine fails for a segment."""


class PersistenceError(SegScribeError):
    """Raised when a result artifact or session file cannot be written."""
