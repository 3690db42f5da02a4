"""Error taxonomy shared by the worker, pipeline and supervisor."""

from __future__ import annotations


class VsflowError(Exception):
    """Base class for all vsflow failures."""


class UsageError(VsflowError):
    """Bad worker command-line invocation."""


class ConfigError(VsflowError):
    """Job configuration file missing or undecodable."""


class TemplateNotFound(VsflowError):
    """No script template source is available."""


class TemplateError(VsflowError):
    """Template could not be rendered (e.g. unresolved required placeholder)."""


class ScriptWriteError(VsflowError):
    """Generated script could not be written to its destination."""

    def __init__(self, path: str, reason: str | None = None) -> None:
        self.path = path
        message = f"Failed to write script to: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ExecutableNotFound(VsflowError):
    """A required external executable could not be resolved."""

    def __init__(self, name: str, detail: str | None = None) -> None:
        self.name = name
        message = f"{name} executable not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StageFailure(VsflowError):
    """A pipeline stage exited with a non-tolerated code."""

    def __init__(self, stage: str, code: int) -> None:
        self.stage = stage
        self.code = code
        super().__init__(f"{stage} exited with code {code}")
