"""Reading the worker's stdout: line framing and event dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from vsflow.worker.events import Event, EventDecodeError, decode_event


class LineAssembler:
    """Split a byte stream into lines, holding a trailing partial line."""

    def __init__(self) -> None:
        self._pending = b""

    def feed(self, chunk: bytes) -> list[str]:
        data = self._pending + chunk
        *complete, self._pending = data.split(b"\n")
        return [line.decode("utf-8", errors="replace").strip() for line in complete]

    def finish(self) -> list[str]:
        """Flush a final unterminated line at end of stream."""

        tail, self._pending = self._pending, b""
        text = tail.decode("utf-8", errors="replace").strip()
        return [text] if text else []


@dataclass(frozen=True, slots=True)
class PlainText:
    """A line that is not a wire event (forwarded diagnostics, junk)."""

    text: str


def parse_line(line: str) -> Event | PlainText | None:
    if not line:
        return None
    try:
        return decode_event(line)
    except EventDecodeError:
        return PlainText(line)


class EventStream:
    """Feed raw chunks, receive decoded events and plain-text lines."""

    def __init__(self, on_item: Callable[[Event | PlainText], None]) -> None:
        self._lines = LineAssembler()
        self._on_item = on_item

    def _dispatch(self, lines: list[str]) -> None:
        for line in lines:
            item = parse_line(line)
            if item is not None:
                self._on_item(item)

    def feed(self, chunk: bytes) -> None:
        self._dispatch(self._lines.feed(chunk))

    def close(self) -> None:
        self._dispatch(self._lines.finish())
