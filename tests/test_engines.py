"""
tests/test_engines.py
======================
Transcription engine tests (offline)

Covers:
    - whisper.cpp command line and exit-code handling (subprocess mocked)
    - OpenAI engine request shape, phrase parsing and error translation
      (client mocked)
    - transient-error retry around the OpenAI call
    - engine selection from settings
"""

import os
import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import httpx
import openai

from segscribe.config import Settings
from segscribe.errors import ProcessingError
from segscribe.models import Phrase
from segscribe.stt import WhisperCliEngine, build_engine
from segscribe.stt.base import EngineResult
from segscribe.stt.openai_engine import OpenAIWhisperEngine
from segscribe.stt.openai_retry import transcriptions_with_retry


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestWhisperCliEngine(unittest.TestCase):

    def setUp(self):
        self.engine = WhisperCliEngine(Path("/models/ggml-large-v3-turbo.bin"), threads=8)

    def test_command_line(self):
        cmd = self.engine.build_command(Path("/data/seg_000.wav"), "ru")
        self.assertEqual(cmd, [
            "whisper",
            "-m", "/models/ggml-large-v3-turbo.bin",
            "-f", "/data/seg_000.wav",
            "-l", "ru",
            "-nt",
            "-t", "8",
            "-bo", "2",
            "-bs", "2",
        ])

    def test_empty_language_becomes_auto(self):
        cmd = self.engine.build_command(Path("a.wav"), "")
        self.assertEqual(cmd[cmd.index("-l") + 1], "auto")

    @patch("segscribe.stt.whisper_cli.subprocess.run")
    def test_stdout_is_transcript(self, mock_run):
        mock_run.return_value = _completed(stdout="\n first line \n\nsecond line\n")
        result = self.engine.transcribe(Path("a.wav"), "en")
        self.assertEqual(result, EngineResult(text="first line\nsecond line"))
        self.assertIsNone(result.phrases)

    @patch("segscribe.stt.whisper_cli.subprocess.run")
    def test_nonzero_exit_raises(self, mock_run):
        mock_run.return_value = _completed(returncode=3, stderr="model not found")
        with self.assertRaises(ProcessingError) as ctx:
            self.engine.transcribe(Path("a.wav"), "en")
        self.assertIn("Exit code: 3", str(ctx.exception))

    @patch("segscribe.stt.whisper_cli.subprocess.run", side_effect=FileNotFoundError("whisper"))
    def test_missing_binary_raises(self, _mock_run):
        with self.assertRaises(ProcessingError):
            self.engine.transcribe(Path("a.wav"), "en")

    @patch(
        "segscribe.stt.whisper_cli.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="whisper", timeout=1),
    )
    def test_timeout_raises(self, _mock_run):
        with self.assertRaises(ProcessingError):
            WhisperCliEngine(Path("m.bin"), timeout=1).transcribe(Path("a.wav"), "en")


class TestOpenAIWhisperEngine(unittest.TestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.audio = self.tmp / "seg_000.wav"
        self.audio.write_bytes(b"RIFF....WAVE")
        self.client = MagicMock()

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_phrases_parsed_from_objects_and_dicts(self):
        self.client.audio.transcriptions.create.return_value = SimpleNamespace(
            text="Hello there. General Kenobi.",
            segments=[
                SimpleNamespace(start=0.0, end=1.5, text=" Hello there. "),
                {"start": 1.5, "end": 3.0, "text": "General Kenobi."},
                {"start": 3.0, "end": 3.2, "text": "   "},
            ],
        )
        result = OpenAIWhisperEngine(client=self.client).transcribe(self.audio, "en")

        self.assertEqual(result.text, "Hello there. General Kenobi.")
        self.assertEqual(result.phrases, (
            Phrase(0.0, 1.5, "Hello there."),
            Phrase(1.5, 3.0, "General Kenobi."),
        ))

    def test_request_shape(self):
        self.client.audio.transcriptions.create.return_value = SimpleNamespace(text="x", segments=[])
        OpenAIWhisperEngine(model="whisper-1", client=self.client).transcribe(self.audio, "de")

        kwargs = self.client.audio.transcriptions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "whisper-1")
        self.assertEqual(kwargs["response_format"], "verbose_json")
        self.assertEqual(kwargs["timestamp_granularities"], ["segment"])
        self.assertEqual(kwargs["language"], "de")

    def test_auto_language_omitted(self):
        self.client.audio.transcriptions.create.return_value = SimpleNamespace(text="x", segments=[])
        OpenAIWhisperEngine(client=self.client).transcribe(self.audio, "auto")
        self.assertNotIn("language", self.client.audio.transcriptions.create.call_args.kwargs)

    def test_text_falls_back_to_phrases(self):
        self.client.audio.transcriptions.create.return_value = SimpleNamespace(
            text="", segments=[{"start": 0, "end": 1, "text": "a"}, {"start": 1, "end": 2, "text": "b"}],
        )
        result = OpenAIWhisperEngine(client=self.client).transcribe(self.audio, "en")
        self.assertEqual(result.text, "a b")

    def test_api_error_becomes_processing_error(self):
        self.client.audio.transcriptions.create.side_effect = openai.OpenAIError("bad key")
        with self.assertRaises(ProcessingError):
            OpenAIWhisperEngine(client=self.client).transcribe(self.audio, "en")

    def test_missing_file_becomes_processing_error(self):
        with self.assertRaises(ProcessingError):
            OpenAIWhisperEngine(client=self.client).transcribe(self.tmp / "gone.wav", "en")

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_api_key(self):
        with self.assertRaises(ProcessingError):
            OpenAIWhisperEngine().transcribe(self.audio, "en")


class TestTranscriptionRetry(unittest.TestCase):

    def _rate_limit(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")
        response = httpx.Response(429, request=request)
        return openai.RateLimitError("slow down", response=response, body=None)

    def test_retries_transient_then_succeeds(self):
        client = MagicMock()
        client.audio.transcriptions.create.side_effect = [self._rate_limit(), "ok"]
        sleeps = []
        with tempfile.TemporaryFile() as f:
            result = transcriptions_with_retry(client, f, sleep=sleeps.append, model="whisper-1")
        self.assertEqual(result, "ok")
        self.assertEqual(len(sleeps), 1)

    def test_non_retryable_raises_immediately(self):
        client = MagicMock()
        client.audio.transcriptions.create.side_effect = openai.OpenAIError("nope")
        with tempfile.TemporaryFile() as f:
            with self.assertRaises(openai.OpenAIError):
                transcriptions_with_retry(client, f, sleep=lambda _s: None)
        self.assertEqual(client.audio.transcriptions.create.call_count, 1)


class TestBuildEngine(unittest.TestCase):

    def test_default_is_whisper_cli(self):
        engine = build_engine(Settings(whisper_threads=2))
        self.assertIsInstance(engine, WhisperCliEngine)
        self.assertEqual(engine.threads, 2)
        self.assertEqual(engine.model_path, Path("/models/ggml-large-v3-turbo.bin"))

    def test_openai_selected(self):
        engine = build_engine(Settings(engine="openai", openai_model="whisper-1"))
        self.assertIsInstance(engine, OpenAIWhisperEngine)
        self.assertEqual(engine.model, "whisper-1")


if __name__ == "__main__":
    unittest.main(verbosity=2)
