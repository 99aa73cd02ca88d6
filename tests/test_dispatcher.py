"""
tests/test_dispatcher.py
=========================
Job dispatcher tests

Uses the in-process broker and a fake resolver that only records the
windows it was asked for.
"""

import json
import os
import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from segscribe.audio.planner import plan_chunks
from segscribe.dispatch import JobDispatcher
from segscribe.errors import DispatchError, TransmissionError
from segscribe.queue.base import SEGMENT_QUEUE
from segscribe.queue.memory import MemoryBroker


class FakeResolver:
    def __init__(self, fail_at=None):
        self.fail_at = fail_at
        self.resolved = []

    def resolve(self, window):
        if window.index == self.fail_at:
            raise DispatchError(f"cannot cut segment {window.index}")
        self.resolved.append(window.index)
        return Path(f"/data/{window.session_id}/segments/seg_{window.index:03d}.wav")


class TestJobDispatcher(unittest.TestCase):

    def setUp(self):
        self.broker = MemoryBroker()
        self.windows = plan_chunks(500, 240, 2, session_id="s1", language_hint="en")

    def test_publishes_one_job_per_window(self):
        jobs = JobDispatcher(self.broker).dispatch("s1", self.windows, FakeResolver())

        self.assertEqual(len(jobs), 3)
        bodies = [json.loads(b) for b in self.broker.pending(SEGMENT_QUEUE)]
        self.assertEqual([b["sectionIndex"] for b in bodies], [0, 1, 2])
        self.assertTrue(all(b["sectionsTotal"] == 3 for b in bodies))
        self.assertTrue(all(b["language"] == "en" for b in bodies))
        self.assertEqual(bodies[1]["filePath"], "/data/s1/segments/seg_001.wav")

    def test_priorities_decrease_with_index(self):
        jobs = JobDispatcher(self.broker).dispatch("s1", self.windows, FakeResolver())
        self.assertEqual([j.priority for j in jobs], [100, 99, 98])

    def test_declares_topology_before_publishing(self):
        queue = MagicMock()
        JobDispatcher(queue).dispatch("s1", self.windows, FakeResolver())
        self.assertEqual(queue.method_calls[0][0], "declare_topology")
        for call in queue.publish.call_args_list:
            self.assertTrue(call.kwargs["mandatory"])
            self.assertTrue(call.kwargs["persistent"])

    def test_conversion_failure_aborts_and_keeps_published(self):
        with self.assertRaises(DispatchError):
            JobDispatcher(self.broker).dispatch("s1", self.windows, FakeResolver(fail_at=1))
        self.assertEqual(len(self.broker.pending(SEGMENT_QUEUE)), 1)

    def test_publish_failure_becomes_dispatch_error(self):
        queue = MagicMock()
        queue.publish.side_effect = TransmissionError("unroutable")
        with self.assertRaises(DispatchError):
            JobDispatcher(queue).dispatch("s1", self.windows, FakeResolver())

    def test_topology_failure_becomes_dispatch_error(self):
        queue = MagicMock()
        queue.declare_topology.side_effect = TransmissionError("down")
        resolver = FakeResolver()
        with self.assertRaises(DispatchError):
            JobDispatcher(queue).dispatch("s1", self.windows, resolver)
        self.assertEqual(resolver.resolved, [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
