"""
segscribe/stitcher.py
======================
Transcript Stitcher - SegScribe

Responsibility:
    - Merge every result artifact that exists at read time into one
      transcript, removing the text duplicated by overlapping windows
    - Report whether all planned segments are present
    - List timed phrases across segments

Overlap merge (per adjacent pair, back = accumulated text, front = next):
    w    = min(len(back), len(front), 300)
    find the longest L in w..1 with
        back[-L:].lower() == front[:L].lower()
    append " " + front[L:].lstrip() unless that is empty

Example:
    back  = "hello world this is a test"
    front = "This is a test of the system"
    ->      "hello world this is a test of the system"

Nothing here is cached: every call reflects the store as it is now.

This module does NOT:
    - Write anything
    - Use timestamps to merge text (only list_segments looks at times)
"""

import logging

from segscribe.errors import SessionNotFoundError
from segscribe.models import AssembledTranscript, Phrase, ResultArtifact
from segscribe.store import ResultStore

logger = logging.getLogger("segscribe.stitcher")

MAX_OVERLAP_WINDOW = 300  # characters compared at each seam


# ---------------------------------------------------------------------------
# Text merge
# ---------------------------------------------------------------------------


def find_overlap_length(back: str, front: str) -> int:
    """Longest case-insensitive suffix of ``back`` that prefixes ``front``."""
    window = min(len(back), len(front), MAX_OVERLAP_WINDOW)
    if window == 0:
        return 0

    # lower() can change length ("İ"), so compare each slice pair separately
    for length in range(window, 0, -1):
        if back[-length:].lower() == front[:length].lower():
            return length
    return 0


def merge_texts(texts: list[str]) -> str:
    if not texts:
        return ""

    merged = texts[0]
    for front in texts[1:]:
        overlap = find_overlap_length(merged, front)
        remainder = front[overlap:].lstrip()
        if remainder:
            merged += " " + remainder
    return merged.strip()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def assemble(store: ResultStore, session_id: str) -> AssembledTranscript:
    """
    Merge the available artifacts of a session.

    Raises:
        SessionNotFoundError: If the session has no artifacts yet.
    """
    artifacts = _ordered_artifacts(store, session_id)

    total = artifacts[0].total_count
    distinct = len({a.index for a in artifacts})
    merged = merge_texts([a.text for a in artifacts])

    logger.debug("[%s] Assembled %d/%d segment(s)", session_id, distinct, total)
    return AssembledTranscript(
        session_id=session_id,
        is_complete=distinct == total,
        ready_count=distinct,
        total_count=total,
        merged_text=merged,
    )


def list_segments(store: ResultStore, session_id: str) -> list[Phrase]:
    """
    Timed phrases of every available artifact, ordered by time.

    Artifacts without phrases contribute a single phrase spanning their
    window. Phrases repeated by overlapping windows are dropped when both
    start time and text match exactly.

    Raises:
        SessionNotFoundError: If the session has no artifacts yet.
    """
    artifacts = _ordered_artifacts(store, session_id)

    seen: set[tuple[float, str]] = set()
    phrases: list[Phrase] = []
    for artifact in artifacts:
        items = artifact.phrases
        if items is None:
            items = (Phrase(start=artifact.start, end=artifact.end, text=artifact.text),)
        for phrase in items:
            key = (phrase.start, phrase.text)
            if key in seen:
                continue
            seen.add(key)
            phrases.append(phrase)

    phrases.sort(key=lambda p: (p.start, p.end))
    return phrases


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ordered_artifacts(store: ResultStore, session_id: str) -> list[ResultArtifact]:
    artifacts = store.list_ready(session_id)
    if not artifacts:
        raise SessionNotFoundError(session_id, "No transcription segments available")
    # one artifact per index; the store may hand back duplicates
    by_index = {a.index: a for a in artifacts}
    return [by_index[i] for i in sorted(by_index)]
