"""Two-stage frame server -> encoder pipeline with progress and cancellation."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import signal
import subprocess
import sys
import threading
import time
from typing import BinaryIO, Callable, Mapping, Union

from vsflow.config.schema import Job
from vsflow.errors import ExecutableNotFound
from vsflow.observability.logging import get_logger, log_event
from vsflow.pipeline.encoder import build_encoder_command, build_source_command
from vsflow.pipeline.environment import build_environment
from vsflow.pipeline.progress import (
    PROGRESS_INTERVAL,
    EncoderProgressParser,
    FrameTotal,
    SourceInfoParser,
)
from vsflow.pipeline.resolver import DependencyResolver
from vsflow.worker.cancellation import CancellationSignal
from vsflow.worker.reporter import EventReporter


SOURCE_STAGE = "source"
ENCODER_STAGE = "encoder"
POLL_INTERVAL = 0.1

_LOGGER = get_logger("vsflow.pipeline")


@dataclass(frozen=True, slots=True)
class Completed:
    pass


@dataclass(frozen=True, slots=True)
class Cancelled:
    pass


@dataclass(frozen=True, slots=True)
class StageFailed:
    stage: str
    code: int


RunOutcome = Union[Completed, Cancelled, StageFailed]


def _signal_codes(signum: int) -> set[int]:
    # Popen reports -N; a shell wrapper reports 128 + N
    return {-signum, 128 + signum}


def is_benign_exit(code: int, stage: str) -> bool:
    """Exit codes that come from a normal shutdown of the pipe."""

    if code == 0:
        return True
    tolerated = _signal_codes(signal.SIGTERM) | _signal_codes(signal.SIGINT)
    if stage == SOURCE_STAGE:
        tolerated |= _signal_codes(signal.SIGPIPE)
    return code in tolerated


class _StreamPump(threading.Thread):
    """Drain one child stderr pipe into a chunk callback."""

    def __init__(
        self,
        name: str,
        stream: BinaryIO,
        on_chunk: Callable[[bytes], None],
        on_close: Callable[[], None],
    ) -> None:
        super().__init__(name=f"vsflow-{name}-stderr", daemon=True)
        self._stream = stream
        self._on_chunk = on_chunk
        self._on_close = on_close

    def run(self) -> None:
        try:
            for chunk in iter(lambda: self._stream.read1(65536), b""):
                self._on_chunk(chunk)
        finally:
            self._stream.close()
            self._on_close()


class PipelineOrchestrator:
    """Run the frame server piped into the encoder for one job."""

    def __init__(
        self,
        resolver: DependencyResolver,
        reporter: EventReporter,
        *,
        cancellation: CancellationSignal | None = None,
        diagnostics: BinaryIO | None = None,
        base_env: Mapping[str, str] | None = None,
        poll_interval: float = POLL_INTERVAL,
        progress_interval: float = PROGRESS_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.resolver = resolver
        self.reporter = reporter
        self.cancellation = cancellation
        self._diagnostics = diagnostics if diagnostics is not None else sys.stderr.buffer
        self._diagnostics_lock = threading.Lock()
        self._base_env = base_env
        self.poll_interval = poll_interval
        self.progress_interval = progress_interval
        self._clock = clock

    def _forward(self, data: bytes) -> None:
        with self._diagnostics_lock:
            try:
                self._diagnostics.write(data)
                self._diagnostics.flush()
            except OSError as exc:
                # keep draining the stage so it never blocks on a full stderr pipe
                log_event(_LOGGER, "diagnostics_forward_failed", level=logging.DEBUG, error=str(exc))

    def _spawn(self, stage: str, command: list[str], env: dict[str, str], **kwargs) -> subprocess.Popen:
        try:
            process = subprocess.Popen(command, env=env, stderr=subprocess.PIPE, **kwargs)
        except OSError as exc:
            raise ExecutableNotFound(Path(command[0]).name, str(exc)) from exc
        if self.cancellation is not None:
            self.cancellation.track(process)
        log_event(_LOGGER, "stage_spawned", stage=stage, pid=process.pid, command=command)
        return process

    def _terminate(self, *processes: subprocess.Popen | None) -> None:
        for process in processes:
            if process is None or process.poll() is not None:
                continue
            try:
                process.terminate()
            except ProcessLookupError:
                continue

    def run(self, script_path: Path | str, job: Job, is_cancelled: Callable[[], bool]) -> RunOutcome:
        vspipe = self.resolver.vspipe()
        if vspipe is None:
            raise ExecutableNotFound("vspipe")
        ffmpeg = self.resolver.ffmpeg()
        if ffmpeg is None:
            raise ExecutableNotFound("ffmpeg")

        env = build_environment(self.resolver.runtime_paths(), self._base_env)
        source_command = build_source_command(vspipe, str(script_path))
        encoder_command = build_encoder_command(ffmpeg, job.output_path, job.encoding_settings)

        total = FrameTotal(fallback=job.total_frames or 0)
        source_info = SourceInfoParser(
            total,
            on_total=lambda frames: self.reporter.emit_log("info", f"Total frames: {frames}"),
        )
        progress = EncoderProgressParser(
            total,
            interval=self.progress_interval,
            clock=self._clock,
            on_sample=self.reporter.emit_progress,
            on_other=lambda line: self._forward((line + "\n").encode("utf-8")),
        )

        def source_chunk(chunk: bytes) -> None:
            source_info.feed(chunk)
            self._forward(chunk)

        log_event(_LOGGER, "pipeline_started", job_id=job.id, script=str(script_path), output=job.output_path)

        read_fd, write_fd = os.pipe()
        open_fds = [read_fd, write_fd]
        source: subprocess.Popen | None = None
        encoder: subprocess.Popen | None = None
        pumps: list[_StreamPump] = []
        try:
            source = self._spawn(SOURCE_STAGE, source_command, env, stdin=subprocess.DEVNULL, stdout=write_fd)
            encoder = self._spawn(ENCODER_STAGE, encoder_command, env, stdin=read_fd, stdout=subprocess.DEVNULL)
            # the children hold their own copies; the encoder only sees EOF once ours are gone
            for fd in open_fds:
                os.close(fd)
            open_fds.clear()

            pumps = [
                _StreamPump(SOURCE_STAGE, source.stderr, source_chunk, source_info.close),
                _StreamPump(ENCODER_STAGE, encoder.stderr, progress.feed, progress.close),
            ]
            for pump in pumps:
                pump.start()

            while encoder.poll() is None:
                if is_cancelled():
                    log_event(_LOGGER, "pipeline_cancelled", job_id=job.id)
                    if self.cancellation is not None:
                        self.cancellation.terminate_tracked()
                    else:
                        self._terminate(source, encoder)
                    return Cancelled()
                time.sleep(self.poll_interval)

            encoder_code = encoder.returncode
            if encoder_code != 0 and source.poll() is None:
                # nothing left to consume the frames
                self._terminate(source)
            source_code = source.wait()
            for pump in pumps:
                pump.join()

            log_event(_LOGGER, "stage_exited", stage=SOURCE_STAGE, code=source_code)
            log_event(_LOGGER, "stage_exited", stage=ENCODER_STAGE, code=encoder_code)

            if is_cancelled():
                return Cancelled()
            if not is_benign_exit(source_code, SOURCE_STAGE):
                return StageFailed(SOURCE_STAGE, source_code)
            if not is_benign_exit(encoder_code, ENCODER_STAGE):
                return StageFailed(ENCODER_STAGE, encoder_code)
            return Completed()
        finally:
            for fd in open_fds:
                os.close(fd)
            self._terminate(source, encoder)
            for process in (source, encoder):
                if process is None:
                    continue
                process.wait()
                if self.cancellation is not None:
                    self.cancellation.untrack(process)
            for pump in pumps:
                pump.join()
            log_event(_LOGGER, "pipeline_finished", job_id=job.id, level=logging.DEBUG)
