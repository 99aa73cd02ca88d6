"""
segscribe/stt/base.py
======================
Transcription Engine Interface - SegScribe

An engine turns one segment WAV into text. Engines that can time their
output also return phrases, with times relative to the start of the
segment file; the worker shifts them onto the source recording's clock.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from segscribe.models import Phrase


@dataclass(frozen=True)
class EngineResult:
    text: str
    phrases: tuple[Phrase, ...] | None = None

    def shifted(self, offset: float) -> tuple[Phrase, ...] | None:
        """Phrases moved by ``offset`` seconds, or None if untimed."""
        if self.phrases is None:
            return None
        return tuple(
            Phrase(start=p.start + offset, end=p.end + offset, text=p.text)
            for p in self.phrases
        )


class TranscriptionEngine(Protocol):
    name: str

    def transcribe(self, audio_path: Path, language: str) -> EngineResult:
        """
        Transcribe one segment file.

        Raises:
            ProcessingError: On any engine failure.
        """
