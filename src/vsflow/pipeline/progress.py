"""Progress math and stage diagnostic-stream parsers."""

from __future__ import annotations

from dataclasses import dataclass
import math
import threading
import time
from typing import Callable


PROGRESS_INTERVAL = 0.5
INPUT_INFO_PREFIX = "INPUT_INFO:"


@dataclass(frozen=True, slots=True)
class ProgressSample:
    """One throttled progress reading from the encoder."""

    frame: int
    total_frames: int
    fps: float
    eta: float

    @property
    def fraction(self) -> float:
        if self.total_frames <= 0:
            return 0.0
        value = self.frame / self.total_frames
        if not math.isfinite(value):
            return 0.0
        return min(1.0, max(0.0, value))

    @property
    def percent(self) -> int:
        return int(self.fraction * 100)

    @property
    def eta_text(self) -> str:
        if self.eta <= 0 or not math.isfinite(self.eta):
            return "--"
        total = int(self.eta)
        hours, remainder = divmod(total, 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours > 0:
            return f"{hours}h {minutes:02d}m {seconds:02d}s"
        if minutes > 0:
            return f"{minutes}m {seconds:02d}s"
        return f"{seconds}s"

    @property
    def fps_text(self) -> str:
        if self.fps <= 0 or not math.isfinite(self.fps):
            return "-- fps"
        return f"{self.fps:.1f} fps"


def compute_progress(frame: int, known_total: int, fps: float) -> ProgressSample:
    """Build a sample, falling back to `frame` when the total is unknown."""

    frame = max(0, frame)
    if not math.isfinite(fps) or fps < 0:
        fps = 0.0
    effective_total = known_total if known_total > 0 else frame
    remaining = max(0, effective_total - frame)
    eta = remaining / fps if fps > 0 else 0.0
    return ProgressSample(frame=frame, total_frames=effective_total, fps=fps, eta=eta)


class FrameTotal:
    """Total-frame estimate shared between the two stage reader threads."""

    def __init__(self, fallback: int = 0) -> None:
        self._lock = threading.Lock()
        self._value = 0
        self._fallback = max(0, fallback)

    def set(self, value: int) -> None:
        with self._lock:
            self._value = value

    def get(self) -> int:
        with self._lock:
            return self._value if self._value > 0 else self._fallback


def parse_input_info(line: str) -> int | None:
    """Parse `INPUT_INFO:frames=<n>,fps_num=<n>,fps_den=<n>` into the frame count."""

    index = line.find(INPUT_INFO_PREFIX)
    if index < 0:
        return None
    for part in line[index + len(INPUT_INFO_PREFIX) :].split(","):
        key, sep, value = part.partition("=")
        if sep and key.strip() == "frames":
            try:
                return int(value.strip())
            except ValueError:
                return None
    return None


class LineBuffer:
    """Reassemble text lines from arbitrarily split byte chunks."""

    def __init__(self) -> None:
        self._partial = b""

    def feed(self, chunk: bytes) -> list[str]:
        data = self._partial + chunk
        pieces = data.split(b"\n")
        self._partial = pieces.pop()
        return [piece.decode("utf-8", errors="replace").rstrip("\r") for piece in pieces]

    def flush(self) -> list[str]:
        if not self._partial:
            return []
        tail = self._partial.decode("utf-8", errors="replace").rstrip("\r")
        self._partial = b""
        return [tail]


class SourceInfoParser:
    """Scan stage A diagnostics for the input-info marker line."""

    def __init__(self, total: FrameTotal, *, on_total: Callable[[int], None] | None = None) -> None:
        self._total = total
        self._on_total = on_total
        self._lines = LineBuffer()
        self.found = False

    def _consume(self, lines: list[str]) -> None:
        for line in lines:
            if self.found:
                return
            frames = parse_input_info(line)
            if frames is None:
                continue
            self.found = True
            self._total.set(frames)
            if self._on_total is not None:
                self._on_total(frames)

    def feed(self, chunk: bytes) -> None:
        self._consume(self._lines.feed(chunk))

    def close(self) -> None:
        self._consume(self._lines.flush())


class EncoderProgressParser:
    """Throttled parser for the encoder's repeating `key=value` progress blocks.

    A sample is produced from the first chunk carrying a new `frame` value
    that arrives at least `interval` seconds after the previous sample. Lines that are not progress
    pairs are handed to `on_other`.
    """

    _PROGRESS_KEYS = {
        "frame",
        "fps",
        "stream_0_0_q",
        "bitrate",
        "total_size",
        "out_time_us",
        "out_time_ms",
        "out_time",
        "dup_frames",
        "drop_frames",
        "speed",
        "progress",
    }

    def __init__(
        self,
        total: FrameTotal,
        *,
        interval: float = PROGRESS_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        on_sample: Callable[[ProgressSample], None] | None = None,
        on_other: Callable[[str], None] | None = None,
    ) -> None:
        self._total = total
        self._interval = interval
        self._clock = clock
        self._on_sample = on_sample
        self._on_other = on_other
        self._lines = LineBuffer()
        self._block: dict[str, str] = {}
        self._fresh = False
        self._last_sample_at: float | None = None

    def _absorb(self, lines: list[str]) -> None:
        for line in lines:
            key, sep, value = line.partition("=")
            key = key.strip()
            if sep and key in self._PROGRESS_KEYS:
                if key == "frame":
                    # each block starts with frame=; nothing carries over from the last one
                    self._block = {}
                    self._fresh = True
                self._block[key] = value.strip()
                continue
            if line.strip() and self._on_other is not None:
                self._on_other(line)

    def _current(self) -> tuple[int, float] | None:
        raw_frame = self._block.get("frame")
        if raw_frame is None:
            return None
        try:
            frame = int(raw_frame)
        except ValueError:
            return None
        try:
            fps = float(self._block.get("fps", "0"))
        except ValueError:
            fps = 0.0
        return frame, fps

    def feed(self, chunk: bytes) -> ProgressSample | None:
        self._absorb(self._lines.feed(chunk))
        now = self._clock()
        if not self._fresh:
            return None
        if self._last_sample_at is not None and now - self._last_sample_at < self._interval:
            return None
        current = self._current()
        if current is None:
            return None
        frame, fps = current
        sample = compute_progress(frame, self._total.get(), fps)
        self._last_sample_at = now
        self._fresh = False
        if self._on_sample is not None:
            self._on_sample(sample)
        return sample

    def close(self) -> None:
        self._absorb(self._lines.flush())
