"""Serialized event output on the worker's stdout."""

from __future__ import annotations

import sys
import threading
from typing import TextIO

from vsflow.pipeline.progress import ProgressSample
from vsflow.worker.events import (
    CompleteEvent,
    ErrorEvent,
    Event,
    LogEvent,
    LogLevel,
    ProgressEvent,
    encode_event,
)


class EventReporter:
    """Write one JSON line per event, whole lines only, flushed immediately.

    Safe to share between the main thread and the stage reader threads.
    Never raises: a failure to serialize or write degrades to a message on
    the diagnostic stream.
    """

    def __init__(self, stream: TextIO | None = None, diagnostics: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._diagnostics = diagnostics if diagnostics is not None else sys.stderr
        self._lock = threading.Lock()

    def emit_progress(self, sample: ProgressSample) -> None:
        self.send(ProgressEvent(sample))

    def emit_log(self, level: LogLevel, message: str) -> None:
        self.send(LogEvent(level=level, message=message))

    def emit_error(self, message: str) -> None:
        self.send(ErrorEvent(message))

    def emit_complete(self, success: bool, output_path: str | None = None) -> None:
        self.send(CompleteEvent(success=success, output_path=output_path))

    def send(self, event: Event) -> None:
        try:
            line = encode_event(event)
        except (TypeError, ValueError) as exc:
            self._diagnose(f"vsflow: failed to encode {type(event).__name__}: {exc}")
            return

        with self._lock:
            try:
                self._stream.write(line + "\n")
                self._stream.flush()
            except (OSError, ValueError) as exc:
                self._diagnose(f"vsflow: failed to write event: {exc}")

    def _diagnose(self, message: str) -> None:
        try:
            self._diagnostics.write(message + "\n")
            self._diagnostics.flush()
        except (OSError, ValueError):
            pass
