"""
segscribe/stt/whisper_cli.py
=============================
whisper.cpp CLI Engine - SegScribe

Responsibility:
    - Run the whisper.cpp command-line binary on one segment WAV
    - Collect stdout as the transcript text

Invocation:
    whisper -m <model> -f <file> -l <lang> -nt -t <threads> -bo 2 -bs 2

``-nt`` suppresses timestamps, so this engine never returns phrases.

This module does NOT:
    - Download or validate model files
    - Persist results (the worker does)
"""

import logging
import subprocess
from pathlib import Path

from segscribe.errors import ProcessingError
from segscribe.stt.base import EngineResult

logger = logging.getLogger("segscribe.stt.whisper_cli")

BEST_OF = 2
BEAM_SIZE = 2
STDERR_TAIL_CHARS = 500  # how much of stderr to keep in the error message


class WhisperCliEngine:
    name = "whisper-cli"

    def __init__(
        self,
        model_path: Path,
        *,
        binary: str = "whisper",
        threads: int = 4,
        timeout: float | None = None,
    ):
        self.model_path = Path(model_path)
        self.binary = binary
        self.threads = threads
        self.timeout = timeout

    def build_command(self, audio_path: Path, language: str) -> list[str]:
        return [
            self.binary,
            "-m", str(self.model_path),
            "-f", str(audio_path),
            "-l", language or "auto",
            "-nt",
            "-t", str(self.threads),
            "-bo", str(BEST_OF),
            "-bs", str(BEAM_SIZE),
        ]

    def transcribe(self, audio_path: Path, language: str) -> EngineResult:
        """
        Transcribe ``audio_path`` with whisper.cpp.

        Raises:
            ProcessingError: If the binary is missing, times out or exits
                non-zero.
        """
        cmd = self.build_command(audio_path, language)
        logger.debug("Running %s", " ".join(cmd))

        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ProcessingError(f"whisper binary not found: {self.binary}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ProcessingError(
                f"whisper timed out after {self.timeout}s on {Path(audio_path).name}"
            ) from exc

        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()[-STDERR_TAIL_CHARS:]
            raise ProcessingError(
                f"Whisper CLI error. Exit code: {proc.returncode}. {stderr}".strip()
            )

        lines = [line.strip() for line in (proc.stdout or "").splitlines()]
        text = "\n".join(line for line in lines if line)
        return EngineResult(text=text)
