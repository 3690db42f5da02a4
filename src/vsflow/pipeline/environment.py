"""Child process environment for the pipeline stages."""

from __future__ import annotations

import os
from typing import Mapping

from vsflow.pipeline.resolver import RuntimePaths


# Markers of another interpreter/environment that would shadow the bundled runtime.
CONFLICTING_VARIABLES = (
    "CONDA_PREFIX",
    "CONDA_DEFAULT_ENV",
    "VIRTUAL_ENV",
    "PYTHONHOME",
    "PYTHONPATH",
)


def build_environment(paths: RuntimePaths, base: Mapping[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    for name in CONFLICTING_VARIABLES:
        env.pop(name, None)

    if paths.python_home:
        env["PYTHONHOME"] = paths.python_home
        env["PYTHONNOUSERSITE"] = "1"
    if paths.python_path:
        env["PYTHONPATH"] = paths.python_path
    if paths.plugin_path:
        env["VAPOURSYNTH_PLUGIN_PATH"] = paths.plugin_path
    if paths.weights_path:
        env["NNEDI3CL_WEIGHTS_PATH"] = paths.weights_path
    return env
