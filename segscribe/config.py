"""
segscribe/config.py
====================
Runtime Settings - SegScribe

Responsibility:
    - Load ``.env`` (python-dotenv) and read every recognized option from
      the environment, falling back to documented defaults
    - Validate numeric options and fail fast on garbage values

This module does NOT:
    - Open broker connections or touch the filesystem
    - Configure logging (done by the process entry points)
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from segscribe.errors import InvalidConfigurationError


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_DATA_DIR = "/app/temp_audio"
DEFAULT_SEGMENT_SECONDS: float = 240.0
DEFAULT_OVERLAP_SECONDS: float = 2.0
DEFAULT_MAX_UPLOAD_MB: int = 500
DEFAULT_MAX_ATTEMPTS: int = 5          # 0 = requeue forever
DEFAULT_RECONNECT_DELAY: float = 5.0   # seconds between broker attempts

BROKER_CHOICES = ("rabbitmq", "memory")
ENGINE_CHOICES = ("whisper-cli", "openai")


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of every recognized configuration option."""

    data_dir: Path = Path(DEFAULT_DATA_DIR)
    segment_seconds: float = DEFAULT_SEGMENT_SECONDS
    overlap_seconds: float = DEFAULT_OVERLAP_SECONDS
    max_upload_mb: int = DEFAULT_MAX_UPLOAD_MB

    broker: str = "rabbitmq"
    rabbitmq_host: str = "localhost"
    rabbitmq_port: int = 5672
    rabbitmq_user: str = "guest"
    rabbitmq_password: str = "guest"

    engine: str = "whisper-cli"
    whisper_bin: str = "whisper"
    whisper_models_path: Path = Path("/models")
    whisper_model_file: str = "ggml-large-v3-turbo.bin"
    whisper_threads: int = 4
    openai_model: str = "whisper-1"

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    local_workers: int = 1

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def whisper_model_path(self) -> Path:
        return self.whisper_models_path / self.whisper_model_file

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "Settings":
        """
        Build settings from the process environment (after ``load_dotenv``)
        or from an explicit mapping.

        Raises:
            InvalidConfigurationError: If a numeric option does not parse, a
                choice option is unknown, or segment/overlap are inconsistent.
        """
        if env is None:
            load_dotenv()
            env = dict(os.environ)

        settings = cls(
            data_dir=Path(env.get("SEGSCRIBE_DATA_DIR", DEFAULT_DATA_DIR)),
            segment_seconds=_float(env, "SEGSCRIBE_SEGMENT_SECONDS", DEFAULT_SEGMENT_SECONDS),
            overlap_seconds=_float(env, "SEGSCRIBE_OVERLAP_SECONDS", DEFAULT_OVERLAP_SECONDS),
            max_upload_mb=_int(env, "SEGSCRIBE_MAX_UPLOAD_MB", DEFAULT_MAX_UPLOAD_MB),
            broker=_choice(env, "SEGSCRIBE_BROKER", "rabbitmq", BROKER_CHOICES),
            rabbitmq_host=env.get("RABBITMQ_HOST", "localhost"),
            rabbitmq_port=_int(env, "RABBITMQ_PORT", 5672),
            rabbitmq_user=env.get("RABBITMQ_USER", "guest"),
            rabbitmq_password=env.get("RABBITMQ_PASSWORD", "guest"),
            engine=_choice(env, "SEGSCRIBE_ENGINE", "whisper-cli", ENGINE_CHOICES),
            whisper_bin=env.get("WHISPER_BIN", "whisper"),
            whisper_models_path=Path(env.get("WHISPER_MODELS_PATH", "/models")),
            whisper_model_file=env.get("WHISPER_MODEL_FILE", "ggml-large-v3-turbo.bin"),
            whisper_threads=_int(env, "WHISPER_THREADS", 4),
            openai_model=env.get("OPENAI_TRANSCRIBE_MODEL", "whisper-1"),
            max_attempts=_int(env, "SEGSCRIBE_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            reconnect_delay=_float(env, "SEGSCRIBE_RECONNECT_DELAY", DEFAULT_RECONNECT_DELAY),
            local_workers=_int(env, "SEGSCRIBE_LOCAL_WORKERS", 1),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.overlap_seconds < 0 or self.segment_seconds <= self.overlap_seconds:
            raise InvalidConfigurationError(
                f"segment length ({self.segment_seconds}s) must exceed "
                f"overlap ({self.overlap_seconds}s) and overlap must be >= 0"
            )
        if self.max_upload_mb <= 0:
            raise InvalidConfigurationError("SEGSCRIBE_MAX_UPLOAD_MB must be > 0")
        if self.whisper_threads <= 0:
            raise InvalidConfigurationError("WHISPER_THREADS must be > 0")
        if self.max_attempts < 0:
            raise InvalidConfigurationError("SEGSCRIBE_MAX_ATTEMPTS must be >= 0")
        if self.reconnect_delay < 0:
            raise InvalidConfigurationError("SEGSCRIBE_RECONNECT_DELAY must be >= 0")
        if self.local_workers <= 0:
            raise InvalidConfigurationError("SEGSCRIBE_LOCAL_WORKERS must be > 0")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _int(env: dict[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _float(env: dict[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise InvalidConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _choice(env: dict[str, str], name: str, default: str, choices: tuple[str, ...]) -> str:
    value = env.get(name, "").strip().lower() or default
    if value not in choices:
        raise InvalidConfigurationError(
            f"{name} must be one of {', '.join(choices)}, got {value!r}"
        )
    return value
