"""
segscribe/stt/openai_engine.py
===============================
OpenAI Whisper API Engine - SegScribe

Responsibility:
    - Transcribe one segment WAV through the OpenAI audio API
    - Return segment-level phrases (relative to the segment file) along
      with the joined text

This module does NOT:
    - Shift phrase times onto the source recording (the worker does)
    - Persist results
"""

import logging
import os
from pathlib import Path
from typing import Any

import openai
from openai import OpenAI

from segscribe.errors import ProcessingError
from segscribe.models import Phrase
from segscribe.stt.base import EngineResult
from segscribe.stt.openai_retry import transcriptions_with_retry

logger = logging.getLogger("segscribe.stt.openai")


class OpenAIWhisperEngine:
    name = "openai"

    def __init__(self, model: str = "whisper-1", client: Any = None):
        self.model = model
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            api_key = os.environ.get("OPENAI_API_KEY")
            if not api_key:
                raise ProcessingError("OPENAI_API_KEY environment variable is not set.")
            self._client = OpenAI(api_key=api_key)
        return self._client

    def transcribe(self, audio_path: Path, language: str) -> EngineResult:
        """
        Raises:
            ProcessingError: If the file cannot be read or the API call fails.
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "response_format": "verbose_json",
            "timestamp_granularities": ["segment"],
        }
        if language and language != "auto":
            kwargs["language"] = language

        try:
            with open(audio_path, "rb") as audio_file:
                response = transcriptions_with_retry(self.client, audio_file, **kwargs)
        except OSError as exc:
            raise ProcessingError(f"Cannot read segment {Path(audio_path).name}: {exc}") from exc
        except openai.OpenAIError as exc:
            raise ProcessingError(f"Whisper transcription failed: {exc}") from exc

        phrases: list[Phrase] = []
        for seg in getattr(response, "segments", None) or []:
            # Handle both dict and object attribute access patterns
            if isinstance(seg, dict):
                text = str(seg.get("text", "")).strip()
                start = float(seg.get("start", 0.0))
                end = float(seg.get("end", 0.0))
            else:
                text = str(getattr(seg, "text", "")).strip()
                start = float(getattr(seg, "start", 0.0))
                end = float(getattr(seg, "end", 0.0))
            if text:
                phrases.append(Phrase(start=start, end=end, text=text))

        text = str(getattr(response, "text", "") or "").strip()
        if not text:
            text = " ".join(p.text for p in phrases)

        logger.debug("Transcribed %s: %d phrase(s)", Path(audio_path).name, len(phrases))
        return EngineResult(text=text, phrases=tuple(phrases))
