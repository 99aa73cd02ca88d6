"""
segscribe/queue/messages.py
============================
Wire Messages - SegScribe

JSON bodies exchanged over the work queue:

    audio_segments (job):
        {sessionId, sectionIndex, sectionsTotal, filePath, language,
         startTime, endTime, attempt}

    transcription_results (completion notification):
        {sessionId, sectionIndex, sectionsTotal, text}

    audio_segments.dead (dead letter):
        job body + {"error": "..."}

sectionIndex is 0-based on the wire.
"""

import json
from dataclasses import dataclass, replace
from typing import Any

from segscribe.models import ChunkWindow


@dataclass(frozen=True)
class SegmentJob:
    window: ChunkWindow
    audio_path: str
    attempt: int = 0

    @property
    def session_id(self) -> str:
        return self.window.session_id

    @property
    def index(self) -> int:
        return self.window.index

    @property
    def priority(self) -> int:
        return self.window.priority

    def next_attempt(self) -> "SegmentJob":
        return replace(self, attempt=self.attempt + 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.window.session_id,
            "sectionIndex": self.window.index,
            "sectionsTotal": self.window.total_count,
            "filePath": self.audio_path,
            "language": self.window.language_hint,
            "startTime": self.window.start,
            "endTime": self.window.end,
            "attempt": self.attempt,
        }

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_bytes(cls, body: bytes) -> "SegmentJob":
        """
        Decode a job body.

        Raises:
            ValueError: If the body is not valid JSON or lacks a required key.
        """
        try:
            data = json.loads(body.decode("utf-8"))
            window = ChunkWindow(
                session_id=str(data["sessionId"]),
                index=int(data["sectionIndex"]),
                total_count=int(data["sectionsTotal"]),
                start=float(data.get("startTime") or 0.0),
                end=float(data.get("endTime") or 0.0),
                language_hint=str(data.get("language") or "auto"),
            )
            return cls(
                window=window,
                audio_path=str(data["filePath"]),
                attempt=int(data.get("attempt") or 0),
            )
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed segment job: {exc}") from exc


@dataclass(frozen=True)
class SegmentTranscribed:
    session_id: str
    index: int
    total_count: int
    text: str

    def to_bytes(self) -> bytes:
        payload = {
            "sessionId": self.session_id,
            "sectionIndex": self.index,
            "sectionsTotal": self.total_count,
            "text": self.text,
        }
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def dead_letter_body(job: SegmentJob, error: str) -> bytes:
    payload = job.to_dict()
    payload["error"] = error
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")
