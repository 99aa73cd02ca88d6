# segscribe/stt/__init__.py
# ==========================
# Transcription Engines: SegScribe
#
#   whisper_cli.py    whisper.cpp binary via subprocess (default)
#   openai_engine.py  OpenAI audio API, returns timed phrases
#
# Public API:
#   build_engine(settings) -> TranscriptionEngine

from segscribe.config import Settings
from segscribe.stt.base import EngineResult, TranscriptionEngine  # noqa: F401
from segscribe.stt.whisper_cli import WhisperCliEngine            # noqa: F401


def build_engine(settings: Settings) -> TranscriptionEngine:
    if settings.engine == "openai":
        from segscribe.stt.openai_engine import OpenAIWhisperEngine

        return OpenAIWhisperEngine(model=settings.openai_model)

    return WhisperCliEngine(
        settings.whisper_model_path,
        binary=settings.whisper_bin,
        threads=settings.whisper_threads,
    )


__all__ = [
    "EngineResult",
    "TranscriptionEngine",
    "WhisperCliEngine",
    "build_engine",
]
