"""Signal-driven cancellation for the worker process."""

from __future__ import annotations

import signal
import subprocess
import threading

from vsflow.observability.logging import get_logger, log_event


_LOGGER = get_logger("vsflow.worker")


class CancellationSignal:
    """Process-wide cancellation flag set from SIGINT/SIGTERM.

    The handlers only set the flag; terminating tracked children happens
    when the polling loop calls `terminate_tracked`.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list[subprocess.Popen] = []
        self.signal_number: int | None = None

    def install(self) -> None:
        def _handle_signal(signum: int, _frame: object) -> None:
            self.signal_number = signum
            self._event.set()

        signal.signal(signal.SIGTERM, _handle_signal)
        signal.signal(signal.SIGINT, _handle_signal)
        # either end of the stage pipe may close first while shutting down
        signal.signal(signal.SIGPIPE, signal.SIG_IGN)

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def track(self, process: subprocess.Popen) -> None:
        with self._lock:
            self._children.append(process)

    def untrack(self, process: subprocess.Popen) -> None:
        with self._lock:
            if process in self._children:
                self._children.remove(process)

    def terminate_tracked(self) -> int:
        """Send SIGTERM to every tracked child still running."""

        with self._lock:
            children = list(self._children)
        count = 0
        for process in children:
            if process.poll() is not None:
                continue
            try:
                process.terminate()
            except ProcessLookupError:
                continue
            count += 1
        if count:
            log_event(_LOGGER, "children_terminated", count=count, signal=self.signal_number)
        return count
