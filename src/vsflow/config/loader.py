"""Job config (de)serialization.

The on-disk format uses camelCase keys so the config file, like the event
protocol, stays language neutral.
"""

from __future__ import annotations

from dataclasses import asdict, fields
import json
from pathlib import Path
import tempfile
from types import UnionType
from typing import Any, Literal, Union, get_args, get_origin, get_type_hints

from vsflow.config.schema import EncodingSettings, FilterParameters, Job
from vsflow.errors import ConfigError
from vsflow.storage.atomic import atomic_write_json, read_json


_FIELD_ORDERS = {"tff", "bff", "progressive"}


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _camel_keys(payload: dict[str, Any]) -> dict[str, Any]:
    return {_to_camel(key): value for key, value in payload.items()}


_INVALID = object()


def _coerce(value: Any, hint: Any) -> Any:
    """Return `value` checked against a field annotation, or `_INVALID`."""

    origin = get_origin(hint)
    if origin is Literal:
        return value if value in get_args(hint) else _INVALID
    if origin in (Union, UnionType):
        for option in get_args(hint):
            checked = _coerce(value, option)
            if checked is not _INVALID:
                return checked
        return _INVALID
    if hint is type(None):
        return None if value is None else _INVALID
    if hint is bool:
        return value if isinstance(value, bool) else _INVALID
    if isinstance(value, bool):
        return _INVALID
    if hint is int:
        return value if isinstance(value, int) else _INVALID
    if hint is float:
        return float(value) if isinstance(value, (int, float)) else _INVALID
    if hint is str:
        return value if isinstance(value, str) else _INVALID
    return value


def _describe(hint: Any) -> str:
    origin = get_origin(hint)
    if origin is Literal:
        return "one of " + ", ".join(repr(arg) for arg in get_args(hint))
    if origin in (Union, UnionType):
        return " or ".join(_describe(arg) for arg in get_args(hint))
    if hint is type(None):
        return "null"
    return {bool: "a boolean", int: "an integer", float: "a number", str: "a string"}.get(hint, str(hint))


def _section_from_dict(cls: type, payload: Any, section: str) -> Any:
    if payload is None:
        return cls()
    if not isinstance(payload, dict):
        raise ConfigError(f"'{section}' must be a JSON object.")
    hints = get_type_hints(cls)
    kwargs = {}
    for item in fields(cls):
        key = _to_camel(item.name)
        if key not in payload:
            if item.name not in payload:
                continue
            key = item.name
        value = _coerce(payload[key], hints[item.name])
        if value is _INVALID:
            raise ConfigError(
                f"'{section}.{key}' must be {_describe(hints[item.name])}, got {payload[key]!r}."
            )
        kwargs[item.name] = value
    return cls(**kwargs)


def _optional_int(payload: dict[str, Any], key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}.")
    return int(value)


def _optional_float(payload: dict[str, Any], key: str) -> float | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}.")
    return float(value)


def job_to_dict(job: Job) -> dict[str, Any]:
    """Serialize a job to its camelCase JSON representation."""

    return {
        "id": job.id,
        "inputPath": job.input_path,
        "outputPath": job.output_path,
        "filterParameters": _camel_keys(asdict(job.filter_parameters)),
        "encodingSettings": _camel_keys(asdict(job.encoding_settings)),
        "totalFrames": job.total_frames,
        "inputFrameRate": job.input_frame_rate,
        "fieldOrder": job.field_order,
    }


def job_from_dict(payload: Any) -> Job:
    """Rebuild a job from a decoded JSON object."""

    if not isinstance(payload, dict):
        raise ConfigError("Job configuration must be a JSON object.")

    input_path = payload.get("inputPath")
    output_path = payload.get("outputPath")
    if not isinstance(input_path, str) or not input_path:
        raise ConfigError("Job configuration is missing 'inputPath'.")
    if not isinstance(output_path, str) or not output_path:
        raise ConfigError("Job configuration is missing 'outputPath'.")

    field_order = payload.get("fieldOrder")
    if field_order is not None and field_order not in _FIELD_ORDERS:
        raise ConfigError(f"Unsupported 'fieldOrder': {field_order!r}.")

    extra: dict[str, Any] = {}
    job_id = payload.get("id")
    if job_id is not None:
        extra["id"] = str(job_id)

    return Job(
        input_path=input_path,
        output_path=output_path,
        filter_parameters=_section_from_dict(
            FilterParameters, payload.get("filterParameters"), "filterParameters"
        ),
        encoding_settings=_section_from_dict(
            EncodingSettings, payload.get("encodingSettings"), "encodingSettings"
        ),
        total_frames=_optional_int(payload, "totalFrames"),
        input_frame_rate=_optional_float(payload, "inputFrameRate"),
        field_order=field_order,
        **extra,
    )


def load_job(path: Path) -> Job:
    """Read and decode a job config file."""

    try:
        payload = read_json(path)
    except FileNotFoundError as exc:
        raise ConfigError(f"Job configuration not found: {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Failed to read job configuration {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse job configuration {path}: {exc}") from exc
    return job_from_dict(payload)


def write_job_config(job: Job, directory: Path | None = None) -> Path:
    """Write a per-job config file and return its path."""

    root = directory if directory is not None else Path(tempfile.gettempdir())
    path = root / f"vsflow_job_{job.id}.json"
    atomic_write_json(path, job_to_dict(job))
    return path
