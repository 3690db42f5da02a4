"""Filter script generation from `{{NAME}}` / `{{#NAME}}...{{/NAME}}` templates."""

from __future__ import annotations

import os
from pathlib import Path
import re
from typing import Mapping, Union

from vsflow.config.schema import Job
from vsflow.errors import ScriptWriteError, TemplateError, TemplateNotFound
from vsflow.observability.logging import get_logger, log_event
from vsflow.script.parameters import template_bindings
from vsflow.storage.atomic import atomic_write_text


TemplateValue = Union[bool, int, float, str]

TEMPLATE_ENV = "VSFLOW_TEMPLATE"
PACKAGED_TEMPLATE = Path(__file__).resolve().parent.parent / "templates" / "deinterlace.vpy"

_BLOCK_RE = re.compile(
    r"\{\{#(?P<name>[A-Za-z0-9_]+)\}\}(?P<body>.*?)\{\{/(?P=name)\}\}",
    re.DOTALL,
)
_PLACEHOLDER_RE = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")

_LOGGER = get_logger("vsflow.script")

EMBEDDED_TEMPLATE = '''import sys

import vapoursynth as vs

core = vs.core

clip = core.ffms2.Source(source="{{INPUT_PATH}}")

import havsfunc as haf

clip = haf.QTGMC(
    clip,
    Preset="{{PRESET}}",
{{#TFF}}
    TFF={{TFF}},
{{/TFF}}
{{#FPS_DIVISOR}}
    FPSDivisor={{FPS_DIVISOR}},
{{/FPS_DIVISOR}}
{{#SHARPNESS}}
    Sharpness={{SHARPNESS}},
{{/SHARPNESS}}
{{#OPENCL}}
    opencl={{OPENCL}},
{{/OPENCL}}
{{#DEVICE}}
    device={{DEVICE}},
{{/DEVICE}}
)

# counted after deinterlacing so the total matches the encoder's frame numbers
print(
    f"INPUT_INFO:frames={clip.num_frames},fps_num={clip.fps.numerator},fps_den={clip.fps.denominator}",
    file=sys.stderr,
)

clip.set_output()
'''


def escape_string(value: str) -> str:
    """Escape a value for embedding inside a double-quoted Python literal."""

    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def format_float(value: float) -> str:
    if float(value).is_integer():
        return f"{value:.1f}"
    return f"{value:.4f}".rstrip("0").rstrip(".")


def format_value(value: TemplateValue) -> str:
    """Render one substitution value in the script's literal syntax."""

    # bool first: it is an int subclass
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    return escape_string(str(value))


def _line_start(text: str, index: int) -> int | None:
    """Start of the line holding `index` if only whitespace precedes it."""

    start = text.rfind("\n", 0, index) + 1
    if text[start:index].strip(" \t"):
        return None
    return start


def _line_end(text: str, index: int) -> int | None:
    """Offset just past the line terminator if only whitespace follows `index`."""

    end = text.find("\n", index)
    if end == -1:
        return len(text) if not text[index:].strip(" \t\r") else None
    if text[index:end].strip(" \t\r"):
        return None
    return end + 1


def _expand_block(script: str, match: re.Match[str], value: TemplateValue) -> tuple[str, int]:
    name = match.group("name")
    start_tag_end = match.start("body")
    end_tag_start = match.end("body")

    head = match.start()
    body_start = start_tag_end
    standalone_start = _line_start(script, head)
    after_start = _line_end(script, start_tag_end)
    if standalone_start is not None and after_start is not None:
        head = standalone_start
        body_start = after_start

    tail = match.end()
    body_end = end_tag_start
    before_end = _line_start(script, end_tag_start)
    after_end = _line_end(script, match.end())
    if before_end is not None and after_end is not None and before_end >= body_start:
        body_end = before_end
        tail = after_end

    body = script[body_start:body_end].replace("{{" + name + "}}", format_value(value))
    return script[:head] + body + script[tail:], head


def _remove_block(script: str, match: re.Match[str]) -> tuple[str, int]:
    head = match.start()
    standalone = _line_start(script, head)
    if standalone is not None:
        head = standalone
    tail = match.end()
    if script.startswith("\r\n", tail):
        tail += 2
    elif script.startswith("\n", tail):
        tail += 1
    return script[:head] + script[tail:], head


def render_template(
    template: str,
    required: Mapping[str, TemplateValue],
    optional: Mapping[str, TemplateValue | None],
) -> str:
    """Expand conditional blocks, then substitute placeholders.

    A block whose name has a non-None value in `optional` keeps its body with
    the value substituted; any other block is removed through its line
    terminator. Required placeholders must all be resolvable.
    """

    script = template
    pos = 0
    while True:
        match = _BLOCK_RE.search(script, pos)
        if match is None:
            break
        value = optional.get(match.group("name"))
        if value is None:
            script, pos = _remove_block(script, match)
        else:
            script, pos = _expand_block(script, match, value)

    for name, value in optional.items():
        if value is not None:
            script = script.replace("{{" + name + "}}", format_value(value))

    for name, value in required.items():
        if value is None:
            raise TemplateError(f"Required placeholder {{{{{name}}}}} has no value.")
        script = script.replace("{{" + name + "}}", format_value(value))
    return script


def unresolved_placeholders(script: str) -> list[str]:
    """Names of `{{NAME}}` placeholders left in a rendered script."""

    return sorted(set(_PLACEHOLDER_RE.findall(script)))


def load_template(path: Path | None = None, *, allow_embedded: bool = True) -> str:
    """Load the filter template, falling back to the embedded copy."""

    if path is not None:
        if not path.is_file():
            raise TemplateNotFound(f"Script template not found: {path}")
        return path.read_text(encoding="utf-8")

    candidates: list[Path] = []
    env_path = os.environ.get(TEMPLATE_ENV)
    if env_path:
        candidates.append(Path(env_path).expanduser())
    candidates.append(PACKAGED_TEMPLATE)

    for candidate in candidates:
        if candidate.is_file():
            try:
                content = candidate.read_text(encoding="utf-8")
            except OSError:
                continue
            log_event(_LOGGER, "template_loaded", path=str(candidate))
            return content

    if not allow_embedded:
        raise TemplateNotFound("No script template file found and embedded fallback disabled.")
    log_event(_LOGGER, "template_embedded_fallback")
    return EMBEDDED_TEMPLATE


def generate(template: str, job: Job) -> str:
    """Produce the runnable filter script text for a job."""

    required, optional = template_bindings(job)
    script = render_template(template, required, optional)
    leftover = unresolved_placeholders(script)
    if leftover:
        raise TemplateError(f"Unresolved placeholders in script template: {', '.join(leftover)}")
    return script


def write_script(job: Job, script: str, directory: Path) -> Path:
    """Write a generated script to the job's exclusive temp path."""

    path = directory / f"vsflow-{job.id}.vpy"
    try:
        atomic_write_text(path, script)
    except OSError as exc:
        raise ScriptWriteError(str(path), exc.strerror) from exc
    return path
