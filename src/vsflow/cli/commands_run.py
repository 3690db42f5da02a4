"""`vsflow run` command."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn

from vsflow.config.schema import EncodingSettings, FieldOrder, FilterParameters, Job, VideoCodec
from vsflow.errors import VsflowError
from vsflow.pipeline.resolver import DEPS_DIR_ENV, DefaultResolver
from vsflow.supervisor.manager import SupervisorProcessManager
from vsflow.supervisor.state import Completed, Failed, ProcessingState, is_terminal
from vsflow.worker.app import EXIT_CANCELLED, EXIT_FAILURE, EXIT_OK


@dataclass(slots=True)
class RunCommand:
    """Deinterlace and encode one video in a supervised worker process."""

    input: Path
    output: Path
    preset: str = "Slower"
    tff: bool | None = None
    field_order: FieldOrder | None = None
    fps_divisor: int = 1
    sharpness: float | None = None
    opencl: bool = False
    device: int | None = None
    codec: VideoCodec = "libx264"
    quality: int = 18
    encoder_preset: str = "medium"
    prores_profile: int = 3
    audio_copy: bool = True
    audio_codec: str = "aac"
    audio_bitrate: int = 192
    custom_args: str = ""
    total_frames: int | None = None
    deps_dir: Path | None = None
    temp_dir: Path | None = None
    show_log: bool = False


def build_job(command: RunCommand) -> Job:
    return Job(
        input_path=str(command.input.resolve()),
        output_path=str(command.output.resolve()),
        filter_parameters=FilterParameters(
            preset=command.preset,
            tff=command.tff,
            fps_divisor=command.fps_divisor,
            sharpness=command.sharpness,
            opencl=command.opencl,
            device=command.device,
        ),
        encoding_settings=EncodingSettings(
            codec=command.codec,
            prores_profile=command.prores_profile,
            encoder_preset=command.encoder_preset,
            quality=command.quality,
            audio_copy=command.audio_copy,
            audio_codec=command.audio_codec,
            audio_bitrate=command.audio_bitrate,
            custom_args=command.custom_args,
        ),
        total_frames=command.total_frames,
        field_order=command.field_order,
    )


def exit_code_for(state: ProcessingState) -> int:
    if isinstance(state, Completed):
        if state.cancelled:
            return EXIT_CANCELLED
        return EXIT_OK if state.success else EXIT_FAILURE
    return EXIT_FAILURE


def _follow(manager: SupervisorProcessManager, console: Console) -> ProcessingState:
    columns = (
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.fields[frames]}"),
        TextColumn("{task.fields[fps]}"),
        TextColumn("eta {task.fields[eta]}"),
    )
    with Progress(*columns, console=console, transient=False) as progress:
        task = progress.add_task(manager.status_text, total=None, frames="", fps="-- fps", eta="--")
        while True:
            try:
                state = manager.wait(0.2)
            except KeyboardInterrupt:
                # the worker sees the same SIGINT; this keeps supervisor state in step
                manager.cancel()
                continue
            sample = manager.progress
            if sample is not None and sample.total_frames > 0:
                progress.update(
                    task,
                    total=sample.total_frames,
                    completed=sample.frame,
                    frames=f"{sample.frame}/{sample.total_frames}",
                    fps=sample.fps_text,
                    eta=sample.eta_text,
                )
            progress.update(task, description=manager.status_text)
            if is_terminal(state):
                return state


def execute(command: RunCommand) -> None:
    console = Console()
    if command.deps_dir is not None:
        # the worker resolves its own stage executables from the environment
        os.environ[DEPS_DIR_ENV] = str(command.deps_dir)

    manager = SupervisorProcessManager(DefaultResolver(command.deps_dir), temp_dir=command.temp_dir)
    job = build_job(command)
    try:
        manager.start_job(job)
    except VsflowError as exc:
        console.print(f"[red]error:[/red] {exc}")
        raise SystemExit(EXIT_FAILURE) from exc

    state = _follow(manager, console)
    if command.show_log or isinstance(state, Failed):
        console.print(manager.log_text, markup=False, highlight=False)
    if isinstance(state, Failed):
        console.print(manager.status_text, style="red", markup=False, highlight=False)
    else:
        console.print(manager.status_text)
        if isinstance(state, Completed) and state.success:
            console.print(f"output: {job.output_path}")
    raise SystemExit(exit_code_for(state))
