"""Tyro CLI application entrypoint."""

from __future__ import annotations

from typing import Annotated

import tyro

from vsflow.cli import commands_run, commands_script, commands_worker


TopLevelCommand = Annotated[
    commands_run.RunCommand,
    tyro.conf.subcommand(name="run"),
] | Annotated[
    commands_script.ScriptCommand,
    tyro.conf.subcommand(name="script"),
] | Annotated[
    commands_worker.WorkerCommand,
    tyro.conf.subcommand(name="worker"),
]


def dispatch(command: TopLevelCommand) -> None:
    """Dispatch parsed top-level command object."""

    if isinstance(command, commands_run.RunCommand):
        commands_run.execute(command)
        return
    if isinstance(command, commands_script.ScriptCommand):
        commands_script.execute(command)
        return
    if isinstance(command, commands_worker.WorkerCommand):
        commands_worker.execute(command)
        return
    raise TypeError(f"Unsupported command type: {type(command).__name__}")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and run requested command."""

    command = tyro.cli(TopLevelCommand, args=argv)
    dispatch(command)
