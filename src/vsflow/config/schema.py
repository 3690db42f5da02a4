"""Dataclass-based job schema for vsflow."""

from dataclasses import dataclass, field
from typing import Literal
from uuid import uuid4


VideoCodec = Literal["libx264", "libx265", "ffv1", "prores_ks"]
FieldOrder = Literal["tff", "bff", "progressive"]


@dataclass(slots=True)
class EncodingSettings:
    """Encoder (stage B) output options."""

    codec: VideoCodec = "libx264"
    prores_profile: int = 3
    encoder_preset: str = "medium"
    quality: int = 18
    audio_copy: bool = True
    audio_codec: str = "aac"
    audio_bitrate: int = 192
    custom_args: str = ""


@dataclass(slots=True)
class FilterParameters:
    """Deinterlacer knobs substituted into the filter script.

    Fields left at their implicit default are omitted from the generated
    script so the filter falls back to its own defaults.
    """

    preset: str = "Slower"
    tff: bool | None = None
    input_type: int = 0
    fps_divisor: int = 1
    tr0: int | None = None
    tr1: int | None = None
    tr2: int | None = None
    rep0: int | None = None
    rep1: int = 0
    rep2: int | None = None
    edi_mode: str | None = None
    nn_size: int | None = None
    nn_neurons: int | None = None
    chroma_edi: str = ""
    sharpness: float | None = None
    sl_mode: int | None = None
    sv_thin: float = 0.0
    noise_preset: str = "Fast"
    denoiser: str | None = None
    ez_denoise: float | None = None
    ez_keep_grain: float | None = None
    source_match: int = 0
    match_enhance: float = 0.5
    lossless: int = 0
    border: bool = False
    precise: bool | None = None
    opencl: bool = False
    device: int | None = None


@dataclass(frozen=True, slots=True)
class Job:
    """One user-requested processing run, immutable once handed to a worker."""

    input_path: str
    output_path: str
    filter_parameters: FilterParameters = field(default_factory=FilterParameters)
    encoding_settings: EncodingSettings = field(default_factory=EncodingSettings)
    total_frames: int | None = None
    input_frame_rate: float | None = None
    field_order: FieldOrder | None = None
    id: str = field(default_factory=lambda: uuid4().hex)
