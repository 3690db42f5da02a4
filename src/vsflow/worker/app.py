"""Worker process: run one job and report over stdout.

Usage::

    vsflow-worker --config /tmp/vsflow_job_<id>.json

Exit codes are 0 on success, 130 when cancelled and 1 for any failure.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
import tempfile

from vsflow.config.loader import load_job
from vsflow.config.schema import Job
from vsflow.errors import (
    ConfigError,
    ExecutableNotFound,
    ScriptWriteError,
    StageFailure,
    TemplateError,
    TemplateNotFound,
    UsageError,
)
from vsflow.observability.logging import configure_logging, get_logger, log_event
from vsflow.pipeline.orchestrator import Cancelled, Completed, PipelineOrchestrator, RunOutcome, StageFailed
from vsflow.pipeline.resolver import DefaultResolver, DependencyResolver
from vsflow.script.template import generate, load_template, write_script
from vsflow.storage.atomic import remove_quietly
from vsflow.worker.cancellation import CancellationSignal
from vsflow.worker.reporter import EventReporter


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130

_LOGGER = get_logger("vsflow.worker")


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = _ArgumentParser(prog="vsflow-worker", description="Run one vsflow transcode job.")
    parser.add_argument("--config", type=Path, required=True, help="Path to the job config JSON file.")
    return parser.parse_args(argv)


def _remove_output(job: Job) -> None:
    try:
        if remove_quietly(job.output_path):
            log_event(_LOGGER, "partial_output_removed", path=job.output_path)
    except OSError as exc:
        log_event(_LOGGER, "partial_output_remove_failed", level=logging.WARNING, path=job.output_path, error=str(exc))


def _finish(job: Job, outcome: RunOutcome | ExecutableNotFound, reporter: EventReporter) -> int:
    if isinstance(outcome, Completed):
        reporter.emit_log("info", "Encoding complete")
        reporter.emit_complete(True, job.output_path)
        return EXIT_OK
    if isinstance(outcome, Cancelled):
        reporter.emit_log("warning", "Job cancelled by user")
        _remove_output(job)
        reporter.emit_complete(False, None)
        return EXIT_CANCELLED
    if isinstance(outcome, StageFailed):
        reporter.emit_error(f"Pipeline failed: {StageFailure(outcome.stage, outcome.code)}")
    else:
        reporter.emit_error(f"Pipeline failed: {outcome}")
    _remove_output(job)
    reporter.emit_complete(False, None)
    return EXIT_FAILURE


def run_worker(
    argv: list[str] | None = None,
    *,
    reporter: EventReporter | None = None,
    resolver: DependencyResolver | None = None,
    cancellation: CancellationSignal | None = None,
    install_signals: bool = True,
    template_path: Path | None = None,
    script_dir: Path | None = None,
) -> int:
    """Run one job end to end and return the process exit code."""

    reporter = reporter or EventReporter()
    cancellation = cancellation or CancellationSignal()
    if install_signals:
        cancellation.install()

    try:
        args = _parse_args(argv)
    except UsageError as exc:
        reporter.emit_error(f"Usage: vsflow-worker --config <path> ({exc})")
        return EXIT_FAILURE

    try:
        job = load_job(args.config)
    except ConfigError as exc:
        reporter.emit_error(str(exc))
        return EXIT_FAILURE

    log_event(_LOGGER, "job_started", job_id=job.id, input=job.input_path, output=job.output_path)
    reporter.emit_log("info", f"Processing: {job.input_path}")
    reporter.emit_log("info", f"Output: {job.output_path}")

    try:
        script = generate(load_template(template_path), job)
        script_path = write_script(job, script, script_dir or Path(tempfile.gettempdir()))
    except (TemplateNotFound, TemplateError, ScriptWriteError) as exc:
        reporter.emit_error(str(exc))
        return EXIT_FAILURE
    reporter.emit_log("debug", f"Script written to: {script_path}")

    orchestrator = PipelineOrchestrator(resolver or DefaultResolver(), reporter, cancellation=cancellation)
    outcome: RunOutcome | ExecutableNotFound
    try:
        outcome = orchestrator.run(script_path, job, cancellation.is_cancelled)
    except ExecutableNotFound as exc:
        outcome = exc
    finally:
        remove_quietly(script_path)

    code = _finish(job, outcome, reporter)
    log_event(_LOGGER, "worker_exited", job_id=job.id, code=code)
    return code


def main(argv: list[str] | None = None) -> None:
    configure_logging()
    sys.exit(run_worker(argv))


if __name__ == "__main__":
    main()
