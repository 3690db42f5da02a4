"""Worker to supervisor wire events: one compact JSON object per line."""

from __future__ import annotations

from dataclasses import dataclass
import json
import math
from typing import Any, Literal, Union

from vsflow.pipeline.progress import ProgressSample


LogLevel = Literal["debug", "info", "warning", "error"]
LOG_LEVELS: tuple[str, ...] = ("debug", "info", "warning", "error")


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    sample: ProgressSample


@dataclass(frozen=True, slots=True)
class LogEvent:
    level: LogLevel
    message: str


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    message: str


@dataclass(frozen=True, slots=True)
class CompleteEvent:
    success: bool
    output_path: str | None = None


Event = Union[ProgressEvent, LogEvent, ErrorEvent, CompleteEvent]


class EventDecodeError(ValueError):
    """A wire line is not one of the known event shapes."""


def event_to_dict(event: Event) -> dict[str, Any]:
    if isinstance(event, ProgressEvent):
        sample = event.sample
        return {
            "type": "progress",
            "frame": sample.frame,
            "totalFrames": sample.total_frames,
            "fps": float(sample.fps),
            "eta": float(sample.eta),
        }
    if isinstance(event, LogEvent):
        return {"type": "log", "level": event.level, "message": event.message}
    if isinstance(event, ErrorEvent):
        return {"type": "error", "message": event.message}
    if isinstance(event, CompleteEvent):
        return {"type": "complete", "success": event.success, "outputPath": event.output_path}
    raise TypeError(f"Unsupported event: {event!r}")


def encode_event(event: Event) -> str:
    """Serialize an event to one line of compact JSON (no trailing newline)."""

    return json.dumps(event_to_dict(event), separators=(",", ":"), allow_nan=False)


def _int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise EventDecodeError(f"'{key}' must be an integer")
    return value


def _number(payload: dict[str, Any], key: str) -> float:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise EventDecodeError(f"'{key}' must be a number")
    return float(value)


def _str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise EventDecodeError(f"'{key}' must be a string")
    return value


def event_from_dict(payload: Any) -> Event:
    if not isinstance(payload, dict):
        raise EventDecodeError("event must be a JSON object")

    kind = payload.get("type")
    if kind == "progress":
        sample = ProgressSample(
            frame=_int(payload, "frame"),
            total_frames=_int(payload, "totalFrames"),
            fps=_number(payload, "fps"),
            eta=_number(payload, "eta"),
        )
        return ProgressEvent(sample)
    if kind == "log":
        level = _str(payload, "level")
        if level not in LOG_LEVELS:
            raise EventDecodeError(f"unknown log level: {level}")
        return LogEvent(level=level, message=_str(payload, "message"))  # type: ignore[arg-type]
    if kind == "error":
        return ErrorEvent(_str(payload, "message"))
    if kind == "complete":
        success = payload.get("success")
        if not isinstance(success, bool):
            raise EventDecodeError("'success' must be a boolean")
        output_path = payload.get("outputPath")
        if output_path is not None and not isinstance(output_path, str):
            raise EventDecodeError("'outputPath' must be a string or null")
        return CompleteEvent(success=success, output_path=output_path)
    raise EventDecodeError(f"unknown event type: {kind!r}")


def decode_event(line: str) -> Event:
    """Parse one wire line; raises `EventDecodeError` for anything else."""

    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise EventDecodeError(str(exc)) from exc
    return event_from_dict(payload)
