"""Presence decisions for filter template placeholders.

Each optional placeholder is either given a value or `None`. `None` means the
filter's own default applies and the whole conditional block is dropped.
"""

from __future__ import annotations

from vsflow.config.schema import FilterParameters, Job


REQUIRED_PLACEHOLDERS = ("INPUT_PATH", "PRESET")


def _unless(value, default):
    return None if value == default else value


def resolve_tff(job: Job) -> bool | None:
    """Explicit field order wins; otherwise use the probed field order."""

    params = job.filter_parameters
    if params.tff is not None:
        return params.tff
    if job.field_order == "tff":
        return True
    if job.field_order == "bff":
        return False
    return None


def optional_values(params: FilterParameters) -> dict[str, object]:
    return {
        "INPUT_TYPE": _unless(params.input_type, 0),
        "FPS_DIVISOR": _unless(params.fps_divisor, 1),
        "TR0": params.tr0,
        "TR1": params.tr1,
        "TR2": params.tr2,
        "REP0": params.rep0,
        "REP1": _unless(params.rep1, 0),
        "REP2": params.rep2,
        "EDI_MODE": params.edi_mode,
        "NN_SIZE": params.nn_size,
        "NN_NEURONS": params.nn_neurons,
        "CHROMA_EDI": params.chroma_edi or None,
        "SHARPNESS": params.sharpness,
        "SL_MODE": params.sl_mode,
        "SV_THIN": _unless(params.sv_thin, 0.0),
        "NOISE_PRESET": _unless(params.noise_preset, "Fast"),
        "DENOISER": params.denoiser,
        "EZ_DENOISE": params.ez_denoise,
        "EZ_KEEP_GRAIN": params.ez_keep_grain,
        "SOURCE_MATCH": _unless(params.source_match, 0),
        "MATCH_ENHANCE": None if abs(params.match_enhance - 0.5) <= 0.001 else params.match_enhance,
        "LOSSLESS": _unless(params.lossless, 0),
        "BORDER": True if params.border else None,
        "PRECISE": params.precise,
        # always emitted so the filter picks the matching code path
        "OPENCL": params.opencl,
        "DEVICE": params.device,
    }


def template_bindings(job: Job) -> tuple[dict[str, object], dict[str, object]]:
    """Return `(required, optional)` placeholder values for a job."""

    params = job.filter_parameters
    required = {
        "INPUT_PATH": job.input_path,
        "PRESET": params.preset,
    }
    optional = optional_values(params)
    optional["TFF"] = resolve_tff(job)
    return required, optional
