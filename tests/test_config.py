"""
tests/test_config.py
=====================
Settings loading tests
"""

import os
import sys
import unittest
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from segscribe.config import Settings
from segscribe.errors import InvalidConfigurationError


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        settings = Settings.from_env({})
        self.assertEqual(settings.segment_seconds, 240.0)
        self.assertEqual(settings.overlap_seconds, 2.0)
        self.assertEqual(settings.broker, "rabbitmq")
        self.assertEqual(settings.engine, "whisper-cli")
        self.assertEqual(settings.max_attempts, 5)
        self.assertEqual(settings.max_upload_bytes, 500 * 1024 * 1024)
        self.assertEqual(settings.whisper_model_path, Path("/models/ggml-large-v3-turbo.bin"))

    def test_overrides(self):
        settings = Settings.from_env({
            "SEGSCRIBE_DATA_DIR": "/tmp/segs",
            "SEGSCRIBE_SEGMENT_SECONDS": "60",
            "SEGSCRIBE_OVERLAP_SECONDS": "1.5",
            "SEGSCRIBE_BROKER": "Memory",
            "RABBITMQ_PORT": "5673",
            "WHISPER_THREADS": "12",
            "SEGSCRIBE_MAX_ATTEMPTS": "0",
        })
        self.assertEqual(settings.data_dir, Path("/tmp/segs"))
        self.assertEqual(settings.segment_seconds, 60.0)
        self.assertEqual(settings.overlap_seconds, 1.5)
        self.assertEqual(settings.broker, "memory")
        self.assertEqual(settings.rabbitmq_port, 5673)
        self.assertEqual(settings.whisper_threads, 12)
        self.assertEqual(settings.max_attempts, 0)

    def test_blank_value_uses_default(self):
        self.assertEqual(Settings.from_env({"WHISPER_THREADS": "  "}).whisper_threads, 4)

    def test_non_numeric_rejected(self):
        with self.assertRaises(InvalidConfigurationError):
            Settings.from_env({"RABBITMQ_PORT": "amqp"})

    def test_unknown_broker_rejected(self):
        with self.assertRaises(InvalidConfigurationError):
            Settings.from_env({"SEGSCRIBE_BROKER": "kafka"})

    def test_overlap_must_be_smaller_than_segment(self):
        with self.assertRaises(InvalidConfigurationError):
            Settings.from_env({"SEGSCRIBE_SEGMENT_SECONDS": "2", "SEGSCRIBE_OVERLAP_SECONDS": "2"})

    def test_negative_attempts_rejected(self):
        with self.assertRaises(InvalidConfigurationError):
            Settings.from_env({"SEGSCRIBE_MAX_ATTEMPTS": "-1"})


if __name__ == "__main__":
    unittest.main(verbosity=2)
