"""`vsflow worker` command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from vsflow.observability.logging import configure_logging
from vsflow.worker.app import run_worker


@dataclass(slots=True)
class WorkerCommand:
    """Run one job from a config file, reporting JSON events on stdout."""

    config: Path | None = None


def execute(command: WorkerCommand) -> None:
    configure_logging()
    argv = [] if command.config is None else ["--config", str(command.config)]
    raise SystemExit(run_worker(argv))
