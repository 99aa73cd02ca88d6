"""
segscribe/store.py
===================
Result Store - SegScribe

Responsibility:
    - Persist one result artifact per (session, index), overwriting on
      re-delivery
    - Serve the artifacts that exist right now to the stitcher and the
      progress aggregator, while workers may still be writing
    - Own the on-disk session layout

Session layout::

    <data_dir>/<session_id>/
        original<ext>              uploaded recording
        plan.json                  chunk plan (total + windows)
        segments/seg_NNN.wav       audio artifacts
        transcriptions/seg_NNN.json
        failed/seg_NNN.json        dead-letter markers

Every JSON write goes to a temp file in the target directory followed by
``os.replace``, so a reader sees either the old file or the new one.

This module does NOT:
    - Merge text (see segscribe/stitcher.py)
    - Decide session state (see segscribe/progress.py)
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from segscribe.errors import PersistenceError, SessionNotFoundError
from segscribe.models import ChunkWindow, ResultArtifact

logger = logging.getLogger("segscribe.store")

PLAN_FILE = "plan.json"
SEGMENTS_DIR = "segments"
TRANSCRIPTIONS_DIR = "transcriptions"
FAILED_DIR = "failed"
ORIGINAL_STEM = "original"


def artifact_filename(index: int) -> str:
    return f"seg_{index:03d}.json"


class ResultStore(Protocol):
    def put(self, session_id: str, index: int, artifact: ResultArtifact) -> None: ...

    def list_ready(self, session_id: str) -> list[ResultArtifact]: ...

    def count(self, session_id: str) -> int: ...


@dataclass(frozen=True)
class SessionPaths:
    root: Path

    @property
    def segments(self) -> Path:
        return self.root / SEGMENTS_DIR

    @property
    def transcriptions(self) -> Path:
        return self.root / TRANSCRIPTIONS_DIR

    @property
    def failed(self) -> Path:
        return self.root / FAILED_DIR

    @property
    def plan(self) -> Path:
        return self.root / PLAN_FILE

    def original(self, suffix: str) -> Path:
        return self.root / f"{ORIGINAL_STEM}{suffix}"


# ---------------------------------------------------------------------------
# File-backed store
# ---------------------------------------------------------------------------


class FileResultStore:
    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def session_paths(self, session_id: str) -> SessionPaths:
        # session ids are generated server side, but they arrive back via URLs
        if not session_id or "/" in session_id or "\\" in session_id or session_id in (".", ".."):
            raise SessionNotFoundError(session_id, "Invalid session id")
        return SessionPaths(self.data_dir / session_id)

    def session_exists(self, session_id: str) -> bool:
        try:
            return self.session_paths(session_id).root.is_dir()
        except SessionNotFoundError:
            return False

    def create_session(self, session_id: str) -> SessionPaths:
        paths = self.session_paths(session_id)
        try:
            paths.segments.mkdir(parents=True, exist_ok=True)
            paths.transcriptions.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"[{session_id}] Cannot create session directory: {exc}") from exc
        logger.info("[%s] Session created at %s", session_id, paths.root)
        return paths

    # -- plan ---------------------------------------------------------------

    def save_plan(self, session_id: str, windows: list[ChunkWindow]) -> None:
        payload = {
            "sessionId": session_id,
            "sectionsTotal": len(windows),
            "createdAt": _utc_now_iso(),
            "windows": [
                {"sectionIndex": w.index, "startTime": w.start, "endTime": w.end}
                for w in windows
            ],
        }
        self._write_json(self.session_paths(session_id).plan, payload, session_id)

    def load_plan(self, session_id: str) -> dict[str, Any] | None:
        """Return the persisted plan, or None if it was never written."""
        path = self.session_paths(session_id).plan
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("[%s] Unreadable plan file: %s", session_id, exc)
            return None

    # -- ResultStore --------------------------------------------------------

    def put(self, session_id: str, index: int, artifact: ResultArtifact) -> None:
        """
        Write (or overwrite) the artifact for ``index``.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        path = self.session_paths(session_id).transcriptions / artifact_filename(index)
        self._write_json(path, artifact.to_dict(), session_id)
        logger.info("[%s] Saved transcription %s", session_id, path.name)

    def list_ready(self, session_id: str) -> list[ResultArtifact]:
        directory = self.session_paths(session_id).transcriptions
        if not directory.is_dir():
            return []

        artifacts: list[ResultArtifact] = []
        for path in sorted(directory.glob("seg_*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                artifacts.append(ResultArtifact.from_dict(data))
            except (OSError, ValueError) as exc:
                logger.warning("[%s] Skipping unreadable artifact %s: %s", session_id, path.name, exc)
        return artifacts

    def count(self, session_id: str) -> int:
        return len({a.index for a in self.list_ready(session_id)})

    # -- failures -----------------------------------------------------------

    def record_failure(self, session_id: str, index: int, error: str, attempts: int) -> None:
        path = self.session_paths(session_id).failed / artifact_filename(index)
        payload = {
            "sessionId": session_id,
            "sectionIndex": index + 1,
            "error": error,
            "attempts": attempts,
            "failedAt": _utc_now_iso(),
        }
        self._write_json(path, payload, session_id)
        logger.warning("[%s] Recorded failure for segment %d", session_id, index)

    def list_failures(self, session_id: str) -> list[dict[str, Any]]:
        directory = self.session_paths(session_id).failed
        if not directory.is_dir():
            return []
        failures = []
        for path in sorted(directory.glob("seg_*.json")):
            try:
                failures.append(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError):
                # a marker that exists but cannot be parsed still means failure
                failures.append({"sessionId": session_id, "file": path.name})
        return failures

    def last_modified(self, session_id: str) -> str:
        """ISO timestamp of the most recent write inside the session."""
        root = self.session_paths(session_id).root
        mtimes = [root.stat().st_mtime]
        for sub in (TRANSCRIPTIONS_DIR, FAILED_DIR):
            directory = root / sub
            if directory.is_dir():
                mtimes.extend(p.stat().st_mtime for p in directory.glob("seg_*.json"))
        return datetime.fromtimestamp(max(mtimes), tz=timezone.utc).isoformat(timespec="seconds")

    # -- Helpers ------------------------------------------------------------

    def _write_json(self, path: Path, payload: dict[str, Any], session_id: str) -> None:
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"[{session_id}] Failed to write {path.name}: {exc}") from exc


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")
