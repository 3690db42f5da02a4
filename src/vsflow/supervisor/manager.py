"""Supervisor side of a job: spawn the worker, follow its events, own its lifecycle."""

from __future__ import annotations

from collections import deque
from datetime import datetime
import logging
from pathlib import Path
import signal
import subprocess
import threading
from typing import BinaryIO, Callable

from vsflow.config.loader import write_job_config
from vsflow.config.schema import Job
from vsflow.errors import ConfigError, ExecutableNotFound
from vsflow.observability.logging import get_logger, log_event
from vsflow.pipeline.progress import ProgressSample
from vsflow.pipeline.resolver import DependencyResolver
from vsflow.storage.atomic import remove_quietly
from vsflow.supervisor.protocol import EventStream, LineAssembler, PlainText
from vsflow.supervisor.state import (
    Cancelling,
    Completed,
    Failed,
    Idle,
    PreparingJob,
    Processing,
    ProcessingState,
    can_cancel,
    is_active,
    status_text,
)
from vsflow.worker.app import EXIT_CANCELLED
from vsflow.worker.events import CompleteEvent, ErrorEvent, Event, LogEvent, ProgressEvent


MAX_LOG_LINES = 2000

_LOGGER = get_logger("vsflow.supervisor")

Observer = Callable[["SupervisorProcessManager"], None]


def _pump(stream: BinaryIO, on_chunk: Callable[[bytes], None], on_close: Callable[[], None]) -> None:
    try:
        for chunk in iter(lambda: stream.read1(65536), b""):
            on_chunk(chunk)
    finally:
        stream.close()
        on_close()


class SupervisorProcessManager:
    """Run at most one worker process at a time and expose its observable state.

    The worker's exit code decides the outcome. A `complete` event is kept
    as `pending_outcome` for display only.
    """

    def __init__(
        self,
        resolver: DependencyResolver,
        temp_dir: Path | None = None,
        on_change: Observer | None = None,
    ) -> None:
        self.resolver = resolver
        self.temp_dir = temp_dir
        self._lock = threading.RLock()
        self._done = threading.Event()
        self._done.set()
        self._observers: list[Observer] = []
        if on_change is not None:
            self._observers.append(on_change)

        self._state: ProcessingState = Idle()
        self._progress: ProgressSample | None = None
        self._log: deque[str] = deque(maxlen=MAX_LOG_LINES)
        self._job: Job | None = None
        self._process: subprocess.Popen | None = None
        self._config_path: Path | None = None
        self._last_error: str | None = None
        self._cancel_requested = False
        self.pending_outcome: CompleteEvent | None = None
        self.exit_code: int | None = None

    # observable state

    @property
    def state(self) -> ProcessingState:
        with self._lock:
            return self._state

    @property
    def progress(self) -> ProgressSample | None:
        with self._lock:
            return self._progress

    @property
    def log_lines(self) -> list[str]:
        with self._lock:
            return list(self._log)

    @property
    def log_text(self) -> str:
        return "\n".join(self.log_lines)

    @property
    def status_text(self) -> str:
        return status_text(self.state)

    @property
    def job(self) -> Job | None:
        with self._lock:
            return self._job

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register a change observer; returns a function that removes it."""

        with self._lock:
            self._observers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._observers:
                    self._observers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            observer(self)

    def _append_log(self, message: str, level: str | None = None) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        if level is None:
            entry = f"[{stamp}] {message}"
        else:
            entry = f"[{stamp}] [{level.upper()}] {message}"
        with self._lock:
            self._log.append(entry)

    def _fail(self, message: str) -> None:
        with self._lock:
            self._state = Failed(message)
            self._done.set()
        self._append_log(message, "error")
        log_event(_LOGGER, "job_failed", level=logging.ERROR, reason=message)
        self._notify()

    # lifecycle

    def start_job(self, job: Job) -> bool:
        """Spawn a worker for `job`; returns False if one is already active."""

        with self._lock:
            if is_active(self._state):
                log_event(_LOGGER, "job_rejected", level=logging.WARNING, job_id=job.id)
                return False
            self._state = PreparingJob()
            self._job = job
            self._progress = None
            self._log.clear()
            self._last_error = None
            self._cancel_requested = False
            self.pending_outcome = None
            self.exit_code = None
            self._done.clear()
        self._notify()

        command = self.resolver.worker()
        if command is None:
            self._fail("Worker executable not found")
            raise ExecutableNotFound("vsflow-worker")

        try:
            config_path = write_job_config(job, self.temp_dir)
        except OSError as exc:
            self._fail(f"Failed to write job config: {exc}")
            raise ConfigError(f"Failed to write job config: {exc}") from exc

        argv = [*command, "--config", str(config_path)]
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            remove_quietly(config_path)
            self._fail(f"Failed to start worker: {exc}")
            raise ExecutableNotFound(Path(command[0]).name, str(exc)) from exc

        with self._lock:
            self._process = process
            self._config_path = config_path
            cancel_now = self._cancel_requested
            if isinstance(self._state, PreparingJob):
                self._state = Processing(0.0)
        log_event(_LOGGER, "worker_spawned", job_id=job.id, pid=process.pid, command=argv)
        self._append_log(f"Started worker for {job.input_path}", "info")
        self._notify()

        events = EventStream(self._handle)
        stderr_lines = LineAssembler()

        def stderr_chunk(chunk: bytes) -> None:
            for line in stderr_lines.feed(chunk):
                if line:
                    self._append_log(line)
            self._notify()

        def stderr_close() -> None:
            for line in stderr_lines.finish():
                self._append_log(line)

        readers = [
            threading.Thread(
                target=_pump,
                args=(process.stdout, events.feed, events.close),
                name="vsflow-worker-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=_pump,
                args=(process.stderr, stderr_chunk, stderr_close),
                name="vsflow-worker-stderr",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()
        threading.Thread(
            target=self._wait_for_exit,
            args=(process, readers),
            name="vsflow-worker-wait",
            daemon=True,
        ).start()

        if cancel_now and process.poll() is None:
            # cancel() arrived before there was a process to signal
            process.terminate()
        return True

    def cancel(self) -> bool:
        """Ask the running worker to stop; the exit handler finalizes state."""

        with self._lock:
            if not can_cancel(self._state):
                return False
            self._cancel_requested = True
            process = self._process
            self._state = Cancelling()
        if process is not None and process.poll() is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
        log_event(_LOGGER, "job_cancel_requested", pid=process.pid if process else None)
        self._append_log("Cancelling job", "warning")
        self._notify()
        return True

    def wait(self, timeout: float | None = None) -> ProcessingState:
        """Block until the current job reaches a terminal state (or timeout)."""

        self._done.wait(timeout)
        return self.state

    # worker output

    def _handle(self, item: Event | PlainText) -> None:
        if isinstance(item, ProgressEvent):
            with self._lock:
                self._progress = item.sample
                if isinstance(self._state, Processing):
                    self._state = Processing(item.sample.fraction)
        elif isinstance(item, LogEvent):
            self._append_log(item.message, item.level)
            if item.level == "error":
                with self._lock:
                    self._last_error = item.message
        elif isinstance(item, ErrorEvent):
            self._append_log(item.message, "error")
            with self._lock:
                self._last_error = item.message
        elif isinstance(item, CompleteEvent):
            with self._lock:
                self.pending_outcome = item
        elif isinstance(item, PlainText):
            self._append_log(item.text)
        self._notify()

    def _wait_for_exit(self, process: subprocess.Popen, readers: list[threading.Thread]) -> None:
        code = process.wait()
        for reader in readers:
            reader.join()
        self._on_exit(code)

    def _on_exit(self, code: int) -> None:
        with self._lock:
            self.exit_code = code
            config_path = self._config_path
            self._config_path = None
            self._process = None
            cancelled = code == EXIT_CANCELLED or (
                self._cancel_requested and code in (-signal.SIGTERM, -signal.SIGINT)
            )
            if code == 0:
                self._state = Completed(success=True)
            elif cancelled:
                self._state = Completed(success=False, cancelled=True)
            else:
                message = f"Worker exited with code {code}"
                if self._last_error:
                    message = f"{message}: {self._last_error}"
                self._state = Failed(message)
            state = self._state
            job_id = self._job.id if self._job else None

        try:
            remove_quietly(config_path)
        except OSError as exc:
            log_event(_LOGGER, "config_cleanup_failed", level=logging.WARNING, path=str(config_path), error=str(exc))

        if isinstance(state, Completed) and state.cancelled:
            self._append_log("Job cancelled", "warning")
        elif isinstance(state, Completed):
            self._append_log("Job completed", "info")
        elif isinstance(state, Failed):
            self._append_log(state.message, "error")
        log_event(_LOGGER, "worker_exited", job_id=job_id, code=code, status=status_text(state))
        self._done.set()
        self._notify()
