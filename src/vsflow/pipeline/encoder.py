"""Command lines for the source (frame server) and encoder stages."""

from __future__ import annotations

from vsflow.config.schema import EncodingSettings


def build_source_command(vspipe: str, script_path: str) -> list[str]:
    return [vspipe, "-c", "y4m", script_path, "-"]


def codec_arguments(settings: EncodingSettings) -> list[str]:
    args = ["-c:v", settings.codec]
    if settings.codec == "prores_ks":
        args += ["-profile:v", str(settings.prores_profile)]
    elif settings.codec != "ffv1":
        args += ["-crf", str(settings.quality), "-preset", settings.encoder_preset]
    return args


def audio_arguments(settings: EncodingSettings) -> list[str]:
    if settings.audio_copy:
        return ["-c:a", "copy"]
    return ["-c:a", settings.audio_codec, "-b:a", f"{settings.audio_bitrate}k"]


def build_encoder_command(ffmpeg: str, output_path: str, settings: EncodingSettings) -> list[str]:
    """Encoder reading y4m on stdin and writing `key=value` progress to stderr."""

    command = [ffmpeg, "-f", "yuv4mpegpipe", "-i", "-", "-progress", "pipe:2", "-nostats"]
    command += codec_arguments(settings)
    command += audio_arguments(settings)
    command += settings.custom_args.split()
    command += ["-y", output_path]
    return command
