"""Example vsflow job config."""

from pathlib import Path

from vsflow.config.loader import write_job_config
from vsflow.config.schema import EncodingSettings, FilterParameters, Job


SOURCE = "/mnt/capture/tapes/hi8_family_1998_side_a.avi"

JOB = Job(
    input_path=SOURCE,
    output_path=str(Path(SOURCE).with_name("hi8_family_1998_side_a_qtgmc.mov")),
    filter_parameters=FilterParameters(
        preset="Slower",
        fps_divisor=1,
        sharpness=0.8,
        tr2=1,
        denoiser="fft3df",
        ez_denoise=1.5,
        opencl=True,
        device=0,
    ),
    encoding_settings=EncodingSettings(
        codec="prores_ks",
        prores_profile=3,
        audio_copy=False,
        audio_codec="pcm_s16le",
        audio_bitrate=1536,
    ),
    total_frames=162_000,
    input_frame_rate=25.0,
    field_order="bff",
)


if __name__ == "__main__":
    print(write_job_config(JOB, Path(".")))
