"""
tests/test_broker.py
=====================
In-process broker and wire message tests
"""

import json
import os
import sys
import threading
import unittest

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from segscribe.errors import TransmissionError
from segscribe.models import ChunkWindow
from segscribe.queue.base import DEAD_LETTER_QUEUE, RESULTS_QUEUE, SEGMENT_QUEUE
from segscribe.queue.memory import MemoryBroker
from segscribe.queue.messages import SegmentJob, SegmentTranscribed, dead_letter_body


def _first_delivery(broker, queue=SEGMENT_QUEUE, timeout=0.05):
    return next(broker.consume(queue, inactivity_timeout=timeout))


class TestMemoryBroker(unittest.TestCase):

    def setUp(self):
        self.broker = MemoryBroker()
        self.broker.declare_topology()

    def test_topology_declared(self):
        for queue in (SEGMENT_QUEUE, RESULTS_QUEUE, DEAD_LETTER_QUEUE):
            self.assertEqual(self.broker.pending(queue), [])

    def test_higher_priority_first_then_fifo(self):
        self.broker.publish(SEGMENT_QUEUE, b"low", priority=1)
        self.broker.publish(SEGMENT_QUEUE, b"high-a", priority=100)
        self.broker.publish(SEGMENT_QUEUE, b"high-b", priority=100)
        self.assertEqual(self.broker.pending(SEGMENT_QUEUE), [b"high-a", b"high-b", b"low"])

        consumer = self.broker.consume(SEGMENT_QUEUE, inactivity_timeout=0.05)
        bodies = []
        for _ in range(3):
            delivery = next(consumer)
            bodies.append(delivery.body)
            self.broker.ack(delivery)
        self.assertEqual(bodies, [b"high-a", b"high-b", b"low"])

    def test_idle_consume_yields_none(self):
        self.assertIsNone(_first_delivery(self.broker))

    def test_mandatory_to_undeclared_queue_raises(self):
        with self.assertRaises(TransmissionError):
            self.broker.publish("nowhere", b"x", mandatory=True)

    def test_non_mandatory_to_undeclared_queue_dropped(self):
        self.broker.publish("nowhere", b"x")
        self.assertEqual(self.broker.pending("nowhere"), [])

    def test_consume_undeclared_queue_raises(self):
        with self.assertRaises(TransmissionError):
            next(MemoryBroker().consume(SEGMENT_QUEUE))

    def test_nack_requeue_marks_redelivered(self):
        self.broker.publish(SEGMENT_QUEUE, b"job", priority=5)
        delivery = _first_delivery(self.broker)
        self.assertFalse(delivery.redelivered)
        self.broker.nack(delivery, requeue=True)

        again = _first_delivery(self.broker)
        self.assertEqual(again.body, b"job")
        self.assertEqual(again.priority, 5)
        self.assertTrue(again.redelivered)

    def test_nack_without_requeue_discards(self):
        self.broker.publish(SEGMENT_QUEUE, b"job")
        self.broker.nack(_first_delivery(self.broker), requeue=False)
        self.assertEqual(self.broker.pending(SEGMENT_QUEUE), [])
        self.assertEqual(self.broker.unacked_count(), 0)

    def test_double_ack_raises(self):
        self.broker.publish(SEGMENT_QUEUE, b"job")
        delivery = _first_delivery(self.broker)
        self.broker.ack(delivery)
        with self.assertRaises(TransmissionError):
            self.broker.ack(delivery)

    def test_blocked_consumer_wakes_on_publish(self):
        received = []

        def consume():
            for delivery in self.broker.consume(SEGMENT_QUEUE, inactivity_timeout=2.0):
                received.append(delivery)
                break

        thread = threading.Thread(target=consume)
        thread.start()
        self.broker.publish(SEGMENT_QUEUE, b"wake")
        thread.join(timeout=5.0)
        self.assertFalse(thread.is_alive())
        self.assertEqual(received[0].body, b"wake")


class TestMessages(unittest.TestCase):

    def setUp(self):
        self.window = ChunkWindow("s1", 2, 5, 476.0, 716.0, "ru")
        self.job = SegmentJob(self.window, "/data/s1/segments/seg_002.wav")

    def test_job_wire_shape(self):
        data = json.loads(self.job.to_bytes())
        self.assertEqual(data, {
            "sessionId": "s1",
            "sectionIndex": 2,
            "sectionsTotal": 5,
            "filePath": "/data/s1/segments/seg_002.wav",
            "language": "ru",
            "startTime": 476.0,
            "endTime": 716.0,
            "attempt": 0,
        })

    def test_job_decode(self):
        decoded = SegmentJob.from_bytes(self.job.next_attempt().to_bytes())
        self.assertEqual(decoded.window, self.window)
        self.assertEqual(decoded.attempt, 1)
        self.assertEqual(decoded.priority, 98)

    def test_job_without_attempt_defaults_to_zero(self):
        body = json.dumps({
            "sessionId": "s1", "sectionIndex": 0, "sectionsTotal": 1,
            "filePath": "/x.wav", "language": "auto",
        }).encode()
        self.assertEqual(SegmentJob.from_bytes(body).attempt, 0)

    def test_malformed_job_raises_value_error(self):
        for body in (b"not json", b"{}", b"\xff\xfe"):
            with self.assertRaises(ValueError):
                SegmentJob.from_bytes(body)

    def test_notification_shape(self):
        data = json.loads(SegmentTranscribed("s1", 2, 5, "text").to_bytes())
        self.assertEqual(data, {"sessionId": "s1", "sectionIndex": 2, "sectionsTotal": 5, "text": "text"})

    def test_dead_letter_adds_error(self):
        data = json.loads(dead_letter_body(self.job, "boom"))
        self.assertEqual(data["error"], "boom")
        self.assertEqual(data["filePath"], self.job.audio_path)


if __name__ == "__main__":
    unittest.main(verbosity=2)
