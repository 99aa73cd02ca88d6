"""
segscribe/models.py
====================
Data Types - SegScribe

Responsibility:
    - Define the immutable records that flow between planner, dispatcher,
      worker, store and stitcher
    - Convert result artifacts to / from their persisted JSON shape

On-disk result artifact (one file per session + index):

    {
        "sessionId": "...",
        "sectionIndex": 1,          # 1-based on disk, 0-based in memory
        "sectionsTotal": 3,
        "text": "...",
        "startTime": 0.0,
        "endTime": 240.0,
        "phrases": [{"start": 0.0, "end": 2.1, "text": "..."}]   # optional
    }
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ChunkWindow:
    """One time window of the source recording; the unit of dispatched work."""

    session_id: str
    index: int
    total_count: int
    start: float
    end: float
    language_hint: str = "auto"

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def priority(self) -> int:
        """Queue priority: earlier chunks first, floor of 1."""
        return max(1, 100 - self.index)


@dataclass(frozen=True)
class Phrase:
    """A timed transcript item in absolute seconds of the source recording."""

    start: float
    end: float
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "end": self.end, "text": self.text}


@dataclass(frozen=True)
class ResultArtifact:
    session_id: str
    index: int
    total_count: int
    text: str
    start: float
    end: float
    phrases: tuple[Phrase, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "sessionId": self.session_id,
            "sectionIndex": self.index + 1,
            "sectionsTotal": self.total_count,
            "text": self.text,
            "startTime": self.start,
            "endTime": self.end,
        }
        if self.phrases is not None:
            payload["phrases"] = [p.to_dict() for p in self.phrases]
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResultArtifact":
        """
        Parse a persisted artifact.

        Raises:
            ValueError: If a required key is missing or has the wrong type.
        """
        try:
            raw_phrases = data.get("phrases")
            phrases = None
            if raw_phrases is not None:
                phrases = tuple(
                    Phrase(
                        start=float(p["start"]),
                        end=float(p["end"]),
                        text=str(p["text"]),
                    )
                    for p in raw_phrases
                )
            return cls(
                session_id=str(data["sessionId"]),
                index=int(data["sectionIndex"]) - 1,
                total_count=int(data["sectionsTotal"]),
                text=str(data.get("text") or ""),
                start=float(data.get("startTime") or 0.0),
                end=float(data.get("endTime") or 0.0),
                phrases=phrases,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed result artifact: {exc}") from exc


@dataclass(frozen=True)
class AssembledTranscript:
    """Merged view of every artifact present at read time. Never cached."""

    session_id: str
    is_complete: bool
    ready_count: int
    total_count: int
    merged_text: str


@dataclass(frozen=True)
class SessionStatus:
    session_id: str
    state: str
    ready: int
    total: int
    percentage: float
    updated_at: str
