"""
segscribe/progress.py
======================
Progress Aggregator - SegScribe

Derives a session's state from what is on disk:

    Failed      any segment was dead-lettered
    Created     no windows planned yet
    Done        ready >= total > 0
    Processing  everything else, including ready == 0
"""

import logging

from segscribe.errors import SessionNotFoundError
from segscribe.models import SessionStatus
from segscribe.store import FileResultStore

logger = logging.getLogger("segscribe.progress")

STATE_CREATED = "Created"
STATE_PROCESSING = "Processing"
STATE_DONE = "Done"
STATE_FAILED = "Failed"


def classify(ready: int, total: int, failed: bool = False) -> str:
    if failed:
        return STATE_FAILED
    if total == 0:
        return STATE_CREATED
    if ready >= total:
        return STATE_DONE
    return STATE_PROCESSING


def session_status(store: FileResultStore, session_id: str) -> SessionStatus:
    """
    Raises:
        SessionNotFoundError: If the session namespace does not exist.
    """
    if not store.session_exists(session_id):
        raise SessionNotFoundError(session_id, "Session not found")

    plan = store.load_plan(session_id) or {}
    total = int(plan.get("sectionsTotal") or 0)
    ready = store.count(session_id)
    failed = bool(store.list_failures(session_id))

    percentage = round(ready / total * 100, 2) if total > 0 else 0.0
    state = classify(ready, total, failed)

    logger.debug("[%s] %s %d/%d", session_id, state, ready, total)
    return SessionStatus(
        session_id=session_id,
        state=state,
        ready=ready,
        total=total,
        percentage=percentage,
        updated_at=store.last_modified(session_id),
    )
