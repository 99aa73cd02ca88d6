"""
segscribe/audio/planner.py
===========================
Chunk Planner - SegScribe

Responsibility:
    - Derive a deterministic, overlap-aware list of time windows from a
      media duration
    - Stamp every window with the final window count so that a consumer can
      act on a window before the rest of the plan is produced

Windowing rule:
    step  = segment_length - overlap
    start = 0, step, 2*step, ...   while start < total_duration
    end   = min(start + segment_length, total_duration)
    Planning stops after the first window whose unclamped end reaches or
    exceeds total_duration.

Example (D=500, S=240, O=2, step=238):
    [0, 240)  [238, 478)  [476, 500)   -> 3 windows

This module does NOT:
    - Read or cut audio (see segscribe/audio/slicer.py)
    - Publish anything to the work queue
"""

import logging

from segscribe.errors import InvalidConfigurationError
from segscribe.models import ChunkWindow

logger = logging.getLogger("segscribe.audio.planner")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_chunk_parameters(segment_length: float, overlap_length: float) -> float:
    """
    Check ``segment_length > overlap_length >= 0`` and return the step size.

    Raises:
        InvalidConfigurationError: If the step would be zero or negative, or
            the overlap is negative.
    """
    if overlap_length < 0:
        raise InvalidConfigurationError(
            f"overlap_length must be >= 0, got {overlap_length}"
        )
    if segment_length <= overlap_length:
        raise InvalidConfigurationError(
            f"segment_length ({segment_length}) must be greater than "
            f"overlap_length ({overlap_length})"
        )
    return segment_length - overlap_length


def count_chunks(
    total_duration: float,
    segment_length: float,
    overlap_length: float,
) -> int:
    """Number of windows ``plan_chunks`` will produce, in one pass."""
    step = validate_chunk_parameters(segment_length, overlap_length)

    count = 0
    start = 0.0
    while start < total_duration:
        count += 1
        if start + segment_length >= total_duration:
            break
        start += step
    return count


def plan_chunks(
    total_duration: float,
    segment_length: float,
    overlap_length: float,
    *,
    session_id: str = "",
    language_hint: str = "auto",
) -> list[ChunkWindow]:
    """
    Build the ordered chunk plan for one recording.

    Args:
        total_duration: Length of the source recording in seconds.
        segment_length: Target window length in seconds.
        overlap_length: Seconds shared by adjacent windows.
        session_id:     Stamped onto every window.
        language_hint:  Caller-supplied language code, or "auto".

    Returns:
        Windows ordered by index. Empty when total_duration <= 0.

    Raises:
        InvalidConfigurationError: If segment_length <= overlap_length or
            overlap_length < 0.
    """
    step = validate_chunk_parameters(segment_length, overlap_length)
    total_count = count_chunks(total_duration, segment_length, overlap_length)

    windows: list[ChunkWindow] = []
    index = 0
    start = 0.0
    while start < total_duration:
        unclamped_end = start + segment_length
        windows.append(
            ChunkWindow(
                session_id=session_id,
                index=index,
                total_count=total_count,
                start=start,
                end=min(unclamped_end, total_duration),
                language_hint=language_hint,
            )
        )
        if unclamped_end >= total_duration:
            break
        index += 1
        start += step

    logger.info(
        "Planned %d chunk(s) for %.1fs of audio (segment=%.1fs overlap=%.1fs).",
        total_count, total_duration, segment_length, overlap_length,
    )
    return windows
