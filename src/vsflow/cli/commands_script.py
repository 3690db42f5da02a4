"""`vsflow script` command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import sys

from vsflow.config.loader import load_job
from vsflow.errors import VsflowError
from vsflow.script.template import generate, load_template
from vsflow.storage.atomic import atomic_write_text


@dataclass(slots=True)
class ScriptCommand:
    """Render the filter script for a job config without running it."""

    config: Path
    output: Path | None = None
    template: Path | None = None


def execute(command: ScriptCommand) -> None:
    try:
        job = load_job(command.config)
        script = generate(load_template(command.template), job)
    except VsflowError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    if command.output is None:
        sys.stdout.write(script)
        return
    atomic_write_text(command.output, script)
    print(f"script written to {command.output}")
