import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from vsflow.cli import app, commands_run
from vsflow.config.loader import write_job_config
from vsflow.config.schema import Job
from vsflow.supervisor import state as states


class TestRunCommand(unittest.TestCase):
    def test_build_job(self):
        command = commands_run.RunCommand(
            input=Path("in.avi"),
            output=Path("out.mov"),
            codec="prores_ks",
            fps_divisor=2,
            sharpness=0.7,
            total_frames=900,
            field_order="tff",
        )
        job = commands_run.build_job(command)
        self.assertTrue(Path(job.input_path).is_absolute())
        self.assertEqual(job.encoding_settings.codec, "prores_ks")
        self.assertEqual(job.filter_parameters.fps_divisor, 2)
        self.assertEqual(job.filter_parameters.sharpness, 0.7)
        self.assertEqual(job.total_frames, 900)
        self.assertEqual(job.field_order, "tff")

    def test_exit_codes(self):
        self.assertEqual(commands_run.exit_code_for(states.Completed(True)), 0)
        self.assertEqual(commands_run.exit_code_for(states.Completed(False, cancelled=True)), 130)
        self.assertEqual(commands_run.exit_code_for(states.Failed("x")), 1)


class TestScriptCommand(unittest.TestCase):
    def test_renders_to_stdout(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config = write_job_config(Job("/tapes/one.avi", "/out.mkv"), Path(temp_dir))
            with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
                app.main(["script", "--config", str(config)])
        self.assertIn('source="/tapes/one.avi"', stdout.getvalue())

    def test_writes_output_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            config = write_job_config(Job("/tapes/one.avi", "/out.mkv"), root)
            target = root / "debug.vpy"
            with mock.patch("sys.stdout", new_callable=io.StringIO):
                app.main(["script", "--config", str(config), "--output", str(target)])
            self.assertIn("haf.QTGMC(", target.read_text(encoding="utf-8"))

    def test_bad_config_exits_1(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config = Path(temp_dir) / "job.json"
            config.write_text(json.dumps({"inputPath": "/a"}), encoding="utf-8")
            with mock.patch("sys.stderr", new_callable=io.StringIO), self.assertRaises(SystemExit) as ctx:
                app.main(["script", "--config", str(config)])
        self.assertEqual(ctx.exception.code, 1)


class TestWorkerCommand(unittest.TestCase):
    def test_missing_config_reports_error_event(self):
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout, mock.patch(
            "vsflow.worker.cancellation.signal.signal"
        ), self.assertRaises(SystemExit) as ctx:
            app.main(["worker"])
        self.assertEqual(ctx.exception.code, 1)
        self.assertEqual(json.loads(stdout.getvalue())["type"], "error")


if __name__ == "__main__":
    unittest.main()
