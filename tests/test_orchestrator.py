import io
import os
import signal
import tempfile
import threading
import time
import unittest
from pathlib import Path

from stage_fakes import FakeResolver, fake_stages

from vsflow.config.schema import Job
from vsflow.errors import ExecutableNotFound
from vsflow.pipeline.orchestrator import (
    ENCODER_STAGE,
    SOURCE_STAGE,
    Cancelled,
    Completed,
    PipelineOrchestrator,
    StageFailed,
    is_benign_exit,
)
from vsflow.worker.cancellation import CancellationSignal
from vsflow.worker.events import CompleteEvent, LogEvent, ProgressEvent, decode_event
from vsflow.worker.reporter import EventReporter


class TestBenignExit(unittest.TestCase):
    def test_codes(self):
        self.assertTrue(is_benign_exit(0, ENCODER_STAGE))
        self.assertTrue(is_benign_exit(-signal.SIGTERM, ENCODER_STAGE))
        self.assertTrue(is_benign_exit(128 + signal.SIGINT, ENCODER_STAGE))
        self.assertTrue(is_benign_exit(-signal.SIGPIPE, SOURCE_STAGE))
        self.assertFalse(is_benign_exit(-signal.SIGPIPE, ENCODER_STAGE))
        self.assertFalse(is_benign_exit(1, SOURCE_STAGE))
        self.assertFalse(is_benign_exit(2, ENCODER_STAGE))


class OrchestratorTestCase(unittest.TestCase):
    def setUp(self):
        self._temp = tempfile.TemporaryDirectory()
        self.root = Path(self._temp.name)
        self.resolver = fake_stages(self.root)
        self.events = io.StringIO()
        self.diagnostics = io.BytesIO()
        self.reporter = EventReporter(stream=self.events, diagnostics=io.StringIO())
        self.script = self.root / "job.vpy"
        self.script.write_text("# script\n", encoding="utf-8")
        self.output = self.root / "out.mkv"

    def tearDown(self):
        self._temp.cleanup()

    def make_orchestrator(self, env, resolver=None, cancellation=None):
        return PipelineOrchestrator(
            resolver or self.resolver,
            self.reporter,
            cancellation=cancellation,
            diagnostics=self.diagnostics,
            base_env={**os.environ, **env},
            poll_interval=0.02,
            progress_interval=0.0,
        )

    def decoded(self):
        return [decode_event(line) for line in self.events.getvalue().splitlines()]


class TestPipelineRun(OrchestratorTestCase):
    def test_completed_with_marker_total(self):
        job = Job("/in.avi", str(self.output))
        orchestrator = self.make_orchestrator(
            {"FAKE_SOURCE_MARKER": "5000", "FAKE_ENCODER_FRAMES": "1000"}
        )

        outcome = orchestrator.run(self.script, job, lambda: False)

        self.assertEqual(outcome, Completed())
        events = self.decoded()
        self.assertIn(LogEvent("info", "Total frames: 5000"), events)
        progress = [event.sample for event in events if isinstance(event, ProgressEvent)]
        self.assertEqual(len(progress), 1)
        self.assertEqual(progress[0].frame, 1000)
        self.assertEqual(progress[0].total_frames, 5000)
        self.assertEqual(progress[0].eta, 80.0)
        forwarded = self.diagnostics.getvalue()
        self.assertIn(b"loading script\n", forwarded)
        self.assertIn(b"INPUT_INFO:frames=5000", forwarded)
        self.assertIn(b"Input #0, yuv4mpegpipe", forwarded)
        self.assertNotIn(b"frame=1000", forwarded)

    def test_job_total_used_as_is(self):
        job = Job("/in.avi", str(self.output), total_frames=600)
        orchestrator = self.make_orchestrator({"FAKE_ENCODER_FRAMES": "300"})

        self.assertEqual(orchestrator.run(self.script, job, lambda: False), Completed())

        progress = [event.sample for event in self.decoded() if isinstance(event, ProgressEvent)]
        self.assertEqual(progress[0].total_frames, 600)
        self.assertEqual(progress[-1].fraction, 0.5)

    def test_unknown_total(self):
        job = Job("/in.avi", str(self.output))
        orchestrator = self.make_orchestrator({"FAKE_ENCODER_FRAMES": "250"})

        self.assertEqual(orchestrator.run(self.script, job, lambda: False), Completed())

        progress = [event.sample for event in self.decoded() if isinstance(event, ProgressEvent)]
        self.assertEqual(progress[-1].total_frames, 250)
        self.assertEqual(progress[-1].eta, 0.0)

    def test_encoder_failure(self):
        job = Job("/in.avi", str(self.output))
        orchestrator = self.make_orchestrator(
            {
                "FAKE_SOURCE_CHUNKS": "-1",
                "FAKE_ENCODER_FAIL_FAST": "1",
                "FAKE_ENCODER_EXIT": "2",
            }
        )

        outcome = orchestrator.run(self.script, job, lambda: False)

        self.assertEqual(outcome, StageFailed(ENCODER_STAGE, 2))
        self.assertIn(b"Error initializing output stream", self.diagnostics.getvalue())

    def test_source_failure(self):
        job = Job("/in.avi", str(self.output))
        orchestrator = self.make_orchestrator({"FAKE_SOURCE_EXIT": "1"})

        self.assertEqual(orchestrator.run(self.script, job, lambda: False), StageFailed(SOURCE_STAGE, 1))

    def test_cancellation_terminates_both_stages(self):
        job = Job("/in.avi", str(self.output))
        cancellation = CancellationSignal()
        orchestrator = self.make_orchestrator(
            {"FAKE_SOURCE_CHUNKS": "-1", "FAKE_ENCODER_FOREVER": "1"},
            cancellation=cancellation,
        )
        timer = threading.Timer(0.5, cancellation.cancel)
        timer.start()
        started = time.monotonic()
        try:
            outcome = orchestrator.run(self.script, job, cancellation.is_cancelled)
        finally:
            timer.cancel()

        self.assertEqual(outcome, Cancelled())
        self.assertLess(time.monotonic() - started, 10.0)
        self.assertFalse(any(isinstance(event, CompleteEvent) for event in self.decoded()))
        self.assertTrue(any(isinstance(event, ProgressEvent) for event in self.decoded()))

    def test_missing_executable_fails_before_spawn(self):
        job = Job("/in.avi", str(self.output))
        resolver = FakeResolver(vspipe=None, ffmpeg=self.root / "ffmpeg")
        orchestrator = self.make_orchestrator({}, resolver=resolver)

        with self.assertRaises(ExecutableNotFound) as ctx:
            orchestrator.run(self.script, job, lambda: False)
        self.assertEqual(ctx.exception.name, "vspipe")
        self.assertFalse(self.output.exists())


if __name__ == "__main__":
    unittest.main()
