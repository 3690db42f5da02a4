"""Supervisor-side job lifecycle states."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True, slots=True)
class Idle:
    pass


@dataclass(frozen=True, slots=True)
class PreparingJob:
    pass


@dataclass(frozen=True, slots=True)
class Processing:
    fraction: float = 0.0


@dataclass(frozen=True, slots=True)
class Cancelling:
    pass


@dataclass(frozen=True, slots=True)
class Completed:
    success: bool
    cancelled: bool = False


@dataclass(frozen=True, slots=True)
class Failed:
    message: str


ProcessingState = Union[Idle, PreparingJob, Processing, Cancelling, Completed, Failed]


def is_active(state: ProcessingState) -> bool:
    return isinstance(state, (PreparingJob, Processing, Cancelling))


def is_terminal(state: ProcessingState) -> bool:
    return isinstance(state, (Completed, Failed))


def can_cancel(state: ProcessingState) -> bool:
    return isinstance(state, (PreparingJob, Processing))


def status_text(state: ProcessingState) -> str:
    """Short human-readable status line."""

    if isinstance(state, Idle):
        return "Idle"
    if isinstance(state, PreparingJob):
        return "Preparing"
    if isinstance(state, Processing):
        return f"Processing {int(min(1.0, max(0.0, state.fraction)) * 100)}%"
    if isinstance(state, Cancelling):
        return "Cancelling"
    if isinstance(state, Completed):
        if state.cancelled:
            return "Cancelled"
        return "Completed" if state.success else "Failed"
    if isinstance(state, Failed):
        return f"Failed: {state.message}"
    raise TypeError(f"Unsupported state: {state!r}")
