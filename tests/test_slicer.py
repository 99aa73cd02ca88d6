"""
tests/test_slicer.py
=====================
pydub segment resolver tests

WAV in, WAV out, so pydub never needs ffmpeg here.
"""

import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from pydub import AudioSegment

from segscribe.audio.planner import plan_chunks
from segscribe.audio.slicer import (
    TARGET_CHANNELS,
    TARGET_SAMPLE_RATE,
    TARGET_SAMPLE_WIDTH,
    PydubSegmentResolver,
    segment_filename,
)
from segscribe.errors import DispatchError


class TestPydubSegmentResolver(unittest.TestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.source = self.tmp / "original.wav"
        AudioSegment.silent(duration=5000, frame_rate=44100).set_channels(2).export(
            self.source, format="wav"
        )
        self.resolver = PydubSegmentResolver(self.source, self.tmp / "segments")

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_duration(self):
        self.assertAlmostEqual(self.resolver.duration_seconds(), 5.0, places=2)

    def test_segments_cover_plan_in_target_format(self):
        windows = plan_chunks(self.resolver.duration_seconds(), 2, 0.5, session_id="s1")
        paths = [self.resolver.resolve(w) for w in windows]

        self.assertEqual([p.name for p in paths], [segment_filename(w.index) for w in windows])
        for window, path in zip(windows, paths):
            piece = AudioSegment.from_wav(path)
            self.assertEqual(piece.channels, TARGET_CHANNELS)
            self.assertEqual(piece.frame_rate, TARGET_SAMPLE_RATE)
            self.assertEqual(piece.sample_width, TARGET_SAMPLE_WIDTH)
            self.assertAlmostEqual(len(piece) / 1000.0, window.duration, delta=0.05)

    def test_segment_filename(self):
        self.assertEqual(segment_filename(7), "seg_007.wav")
        self.assertEqual(segment_filename(123), "seg_123.wav")

    def test_missing_source_raises_dispatch_error(self):
        resolver = PydubSegmentResolver(self.tmp / "missing.wav", self.tmp / "segments")
        with self.assertRaises(DispatchError):
            resolver.duration_seconds()


if __name__ == "__main__":
    unittest.main(verbosity=2)
