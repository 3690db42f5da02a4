"""Fake external executables and resolvers shared by the tests."""

from __future__ import annotations

from pathlib import Path
import stat
import sys
import textwrap

from vsflow.pipeline.resolver import RuntimePaths


FAKE_SOURCE = """
import os
import signal
import sys
import time

signal.signal(signal.SIGPIPE, signal.SIG_DFL)
frames = os.environ.get("FAKE_SOURCE_MARKER")
if frames:
    sys.stderr.write("loading script\\n")
    sys.stderr.write(f"INPUT_INFO:frames={frames},fps_num=25,fps_den=1\\n")
    sys.stderr.flush()
chunks = int(os.environ.get("FAKE_SOURCE_CHUNKS", "4"))
delay = float(os.environ.get("FAKE_SOURCE_DELAY", "0.01"))
count = 0
while chunks < 0 or count < chunks:
    sys.stdout.buffer.write(b"\\0" * 4096)
    sys.stdout.buffer.flush()
    count += 1
    time.sleep(delay)
sys.exit(int(os.environ.get("FAKE_SOURCE_EXIT", "0")))
"""

FAKE_ENCODER = """
import os
import sys
import time

output = sys.argv[-1]
with open(output, "wb") as handle:
    handle.write(b"partial")

code = int(os.environ.get("FAKE_ENCODER_EXIT", "0"))
if os.environ.get("FAKE_ENCODER_FAIL_FAST"):
    sys.stderr.write("Error initializing output stream\\n")
    sys.exit(code)

if os.environ.get("FAKE_ENCODER_FOREVER"):
    frame = 0
    while True:
        sys.stdin.buffer.read1(65536)
        frame += 10
        os.write(2, f"frame={frame}\\nfps=20.0\\nprogress=continue\\n".encode())
        time.sleep(0.05)

while sys.stdin.buffer.read1(65536):
    pass
time.sleep(0.2)
sys.stderr.write("Input #0, yuv4mpegpipe, from 'fd:':\\n")
for step in os.environ.get("FAKE_ENCODER_FRAMES", "").split(","):
    if step:
        os.write(2, f"frame={step}\\nfps=50.0\\nspeed=2.0x\\nprogress=continue\\n".encode())
        time.sleep(0.05)
sys.stderr.write("progress=end\\n")
sys.exit(code)
"""

FAKE_WORKER = """
import json
import os
import signal
import sys
import time

def send(payload):
    sys.stdout.write(json.dumps(payload, separators=(",", ":")) + "\\n")
    sys.stdout.flush()

config = sys.argv[sys.argv.index("--config") + 1]
seen = os.environ.get("FAKE_WORKER_SEEN")
if seen:
    with open(seen, "w") as handle:
        handle.write(config if os.path.exists(config) else "")

mode = os.environ.get("FAKE_WORKER_MODE", "success")
if mode == "success":
    send({"type": "log", "level": "info", "message": "Total frames: 100"})
    send({"type": "progress", "frame": 50, "totalFrames": 100, "fps": 25.0, "eta": 2.0})
    sys.stderr.write("vspipe: output 100 frames\\n")
    sys.stderr.flush()
    send({"type": "complete", "success": True, "outputPath": "/tmp/out.mkv"})
    sys.exit(0)
if mode == "split":
    line = json.dumps({"type": "progress", "frame": 7, "totalFrames": 10, "fps": 1.5, "eta": 2.0}) + "\\n"
    for piece in (line[:5], line[5:17], line[17:] + "not json at all\\n"):
        sys.stdout.write(piece)
        sys.stdout.flush()
        time.sleep(0.05)
    sys.exit(0)
if mode == "fail":
    send({"type": "log", "level": "info", "message": "Processing"})
    send({"type": "error", "message": "Pipeline failed: encoder exited with code 2"})
    send({"type": "complete", "success": False, "outputPath": None})
    sys.exit(1)
if mode == "crash":
    sys.exit(3)
if mode == "hang":
    def stop(signum, frame):
        send({"type": "log", "level": "warning", "message": "Job cancelled by user"})
        send({"type": "complete", "success": False, "outputPath": None})
        sys.exit(130)
    signal.signal(signal.SIGTERM, stop)
    send({"type": "progress", "frame": 1, "totalFrames": 100, "fps": 10.0, "eta": 9.9})
    while True:
        time.sleep(0.05)
"""


def write_executable(directory: Path, name: str, source: str) -> Path:
    """Write `source` as a Python program behind an exec'ing shell wrapper."""

    program = directory / f"{name}.py"
    program.write_text(textwrap.dedent(source).lstrip(), encoding="utf-8")
    wrapper = directory / name
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{program}" "$@"\n', encoding="utf-8")
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)
    return wrapper


class FakeResolver:
    """Resolver returning fixed paths; None means "not installed"."""

    def __init__(
        self,
        vspipe: Path | None = None,
        ffmpeg: Path | None = None,
        worker: list[str] | None = None,
        runtime: RuntimePaths | None = None,
    ) -> None:
        self._vspipe = vspipe
        self._ffmpeg = ffmpeg
        self._worker = worker
        self._runtime = runtime or RuntimePaths()

    def vspipe(self) -> str | None:
        return str(self._vspipe) if self._vspipe else None

    def ffmpeg(self) -> str | None:
        return str(self._ffmpeg) if self._ffmpeg else None

    def worker(self) -> list[str] | None:
        return list(self._worker) if self._worker else None

    def runtime_paths(self) -> RuntimePaths:
        return self._runtime


def fake_stages(directory: Path) -> FakeResolver:
    return FakeResolver(
        vspipe=write_executable(directory, "vspipe", FAKE_SOURCE),
        ffmpeg=write_executable(directory, "ffmpeg", FAKE_ENCODER),
    )
