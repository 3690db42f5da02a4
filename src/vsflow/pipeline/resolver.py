"""Locating the external executables and runtime paths a job needs."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import shutil
from typing import Mapping, Protocol


DEPS_DIR_ENV = "VSFLOW_DEPS_DIR"
VSPIPE_ENV = "VSFLOW_VSPIPE"
FFMPEG_ENV = "VSFLOW_FFMPEG"
WORKER_ENV = "VSFLOW_WORKER"


@dataclass(frozen=True, slots=True)
class RuntimePaths:
    """Optional paths exported to the source stage's environment."""

    python_home: str | None = None
    python_path: str | None = None
    plugin_path: str | None = None
    weights_path: str | None = None


class DependencyResolver(Protocol):
    def vspipe(self) -> str | None: ...

    def ffmpeg(self) -> str | None: ...

    def worker(self) -> list[str] | None: ...

    def runtime_paths(self) -> RuntimePaths: ...


def _executable(path: Path) -> str | None:
    if path.is_file() and os.access(path, os.X_OK):
        return str(path)
    return None


class DefaultResolver:
    """Resolve dependencies from env overrides, a bundled deps dir, then PATH.

    The deps dir layout is::

        <deps>/bin/vspipe
        <deps>/bin/ffmpeg
        <deps>/python/                 (PYTHONHOME)
        <deps>/site-packages/          (PYTHONPATH)
        <deps>/plugins/vapoursynth/    (VAPOURSYNTH_PLUGIN_PATH)
        <deps>/weights/nnedi3_weights.bin
    """

    def __init__(self, deps_dir: Path | None = None, env: Mapping[str, str] | None = None) -> None:
        self._env = dict(os.environ if env is None else env)
        if deps_dir is None and self._env.get(DEPS_DIR_ENV):
            deps_dir = Path(self._env[DEPS_DIR_ENV]).expanduser()
        self.deps_dir = deps_dir

    def _lookup(self, override_env: str, name: str) -> str | None:
        override = self._env.get(override_env)
        if override:
            return _executable(Path(override).expanduser())
        if self.deps_dir is not None:
            bundled = _executable(self.deps_dir / "bin" / name)
            if bundled is not None:
                return bundled
        return shutil.which(name, path=self._env.get("PATH"))

    def vspipe(self) -> str | None:
        return self._lookup(VSPIPE_ENV, "vspipe")

    def ffmpeg(self) -> str | None:
        return self._lookup(FFMPEG_ENV, "ffmpeg")

    def worker(self) -> list[str] | None:
        override = self._env.get(WORKER_ENV)
        if override:
            found = _executable(Path(override).expanduser())
            return [found] if found else None
        found = shutil.which("vsflow-worker", path=self._env.get("PATH"))
        return [found] if found else None

    def runtime_paths(self) -> RuntimePaths:
        if self.deps_dir is None:
            return RuntimePaths()

        def existing(path: Path) -> str | None:
            return str(path) if path.exists() else None

        return RuntimePaths(
            python_home=existing(self.deps_dir / "python"),
            python_path=existing(self.deps_dir / "site-packages"),
            plugin_path=existing(self.deps_dir / "plugins" / "vapoursynth"),
            weights_path=existing(self.deps_dir / "weights" / "nnedi3_weights.bin"),
        )
