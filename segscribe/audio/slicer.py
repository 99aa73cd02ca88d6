"""
segscribe/audio/slicer.py
==========================
Segment Audio Resolver - SegScribe

Responsibility:
    - Decode the uploaded source recording once (pydub / ffmpeg)
    - Report its duration for the chunk planner
    - Cut one standalone WAV per chunk window, converted to the format the
      transcription engine requires: mono, 16 kHz, 16-bit PCM

Artifacts are written to ``<segments_dir>/seg_NNN.wav`` where NNN is the
zero-padded window index. Re-resolving a window overwrites its file.

This module does NOT:
    - Decide window boundaries (see segscribe/audio/planner.py)
    - Publish jobs or transcribe audio
"""

import logging
from pathlib import Path
from typing import Protocol

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from segscribe.errors import DispatchError
from segscribe.models import ChunkWindow

logger = logging.getLogger("segscribe.audio.slicer")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TARGET_SAMPLE_RATE = 16000  # Hz
TARGET_CHANNELS = 1  # mono
TARGET_SAMPLE_WIDTH = 2  # bytes, 16-bit PCM
OUTPUT_FORMAT = "wav"


def segment_filename(index: int) -> str:
    return f"seg_{index:03d}.{OUTPUT_FORMAT}"


class AudioArtifactResolver(Protocol):
    """Produces the standalone audio file for one chunk window."""

    def resolve(self, window: ChunkWindow) -> Path:
        """Return the path of a WAV covering exactly [window.start, window.end]."""


# ---------------------------------------------------------------------------
# pydub implementation
# ---------------------------------------------------------------------------


class PydubSegmentResolver:
    """Slices a source recording with pydub; decoding is delegated to ffmpeg."""

    def __init__(self, source_path: Path, segments_dir: Path):
        self.source_path = Path(source_path)
        self.segments_dir = Path(segments_dir)
        self._audio: AudioSegment | None = None

    def _load(self) -> AudioSegment:
        if self._audio is not None:
            return self._audio

        ext = self.source_path.suffix.lower().lstrip(".") or None
        try:
            self._audio = AudioSegment.from_file(self.source_path, format=ext)
        except CouldntDecodeError as exc:
            raise DispatchError(
                f"Audio file is corrupt or could not be decoded: {self.source_path.name}"
            ) from exc
        except (OSError, IndexError) as exc:
            raise DispatchError(f"Unexpected error decoding audio: {exc}") from exc

        logger.info(
            "Decoded %s: %.1fs | %d Hz | %d ch",
            self.source_path.name,
            len(self._audio) / 1000.0,
            self._audio.frame_rate,
            self._audio.channels,
        )
        return self._audio

    def duration_seconds(self) -> float:
        return len(self._load()) / 1000.0

    def resolve(self, window: ChunkWindow) -> Path:
        """
        Export the window as mono 16 kHz 16-bit WAV.

        Raises:
            DispatchError: If decoding or export fails.
        """
        audio = self._load()
        start_ms = int(round(window.start * 1000))
        end_ms = int(round(window.end * 1000))

        piece = (
            audio[start_ms:end_ms]
            .set_channels(TARGET_CHANNELS)
            .set_frame_rate(TARGET_SAMPLE_RATE)
            .set_sample_width(TARGET_SAMPLE_WIDTH)
        )

        out_path = self.segments_dir / segment_filename(window.index)
        try:
            self.segments_dir.mkdir(parents=True, exist_ok=True)
            piece.export(out_path, format=OUTPUT_FORMAT)
        except OSError as exc:
            raise DispatchError(f"Failed to export segment {out_path.name}: {exc}") from exc

        logger.debug(
            "[%s] Exported %s (%.1fs-%.1fs)",
            window.session_id, out_path.name, window.start, window.end,
        )
        return out_path
