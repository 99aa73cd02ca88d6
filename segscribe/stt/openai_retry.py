"""
segscribe/stt/openai_retry.py
==============================
OpenAI transcription retry helper - SegScribe

Wraps ``client.audio.transcriptions.create`` so that a single 429, 5xx or
connection drop does not burn one of the worker's job attempts. The audio
file handle is rewound before each attempt.

This module does NOT:
    - Create OpenAI clients
    - Decide what happens after the last attempt (the worker's retry /
      dead-letter policy does)
"""

import logging
import time
from typing import Any, BinaryIO

import openai

logger = logging.getLogger("segscribe.stt.openai_retry")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

MAX_RETRIES: int = 3          # total calls = MAX_RETRIES + 1
BASE_DELAY: float = 1.0       # seconds
MAX_DELAY: float = 20.0
BACKOFF_FACTOR: float = 2.0

_RETRYABLE_STATUS_CODES: set[int] = {429, 500, 502, 503, 504}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_retryable(exc: Exception) -> bool:
    if isinstance(exc, (openai.RateLimitError, openai.APITimeoutError, openai.APIConnectionError)):
        return True
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code in _RETRYABLE_STATUS_CODES
    return False


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def transcriptions_with_retry(
    client: Any,
    file: BinaryIO,
    *,
    sleep=time.sleep,
    **kwargs: Any,
) -> Any:
    """
    Call ``client.audio.transcriptions.create(file=file, **kwargs)`` with
    exponential back-off on transient errors.

    Raises:
        The last OpenAI exception once retries are exhausted, or the first
        non-retryable one immediately.
    """
    delay = BASE_DELAY

    for attempt in range(MAX_RETRIES + 1):
        file.seek(0)
        try:
            return client.audio.transcriptions.create(file=file, **kwargs)
        except openai.OpenAIError as exc:
            if not is_retryable(exc) or attempt >= MAX_RETRIES:
                logger.warning(
                    "Transcription call failed (attempt %d/%d): %s",
                    attempt + 1, MAX_RETRIES + 1, exc,
                )
                raise
            logger.warning(
                "Transcription call failed (attempt %d/%d): %s, retrying in %.1fs",
                attempt + 1, MAX_RETRIES + 1, exc, delay,
            )
            sleep(delay)
            delay = min(delay * BACKOFF_FACTOR, MAX_DELAY)

    raise AssertionError("unreachable")
