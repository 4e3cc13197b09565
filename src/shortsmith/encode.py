"""Encoding settings and ffmpeg argument builders for vertical shorts.

The builders are pure: they return the ffmpeg arguments after the binary
name. The engine prepends the binary and its progress flags.
"""

from dataclasses import dataclass, fields, replace


@dataclass(frozen=True)
class EncodeSpec:
    """Target format for every extracted clip.

    Defaults produce 1080x1920 H.264/AAC MP4 with the moov atom moved to
    the front for progressive playback.
    """

    width: int = 1080
    height: int = 1920
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    preset: str = "fast"
    crf: int = 23
    pix_fmt: str = "yuv420p"
    faststart: bool = True
    thumbnail_quality: int = 2

    @property
    def video_filter(self) -> str:
        """Scale to cover the target frame, then center-crop the overflow."""
        w, h = self.width, self.height
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=increase,"
            f"crop={w}:{h}"
        )


_SPEC_FIELDS = {f.name for f in fields(EncodeSpec)}


def encode_spec_from_dict(raw: dict | None, base: EncodeSpec | None = None) -> EncodeSpec:
    """Build an EncodeSpec from a manifest's `encode:` block.

    Keys not given keep the value from `base` (or the defaults).

    Raises:
        ValueError: Unknown key, non-positive size, or crf outside 0..51.
    """
    spec = base or EncodeSpec()
    if not raw:
        return spec
    if not isinstance(raw, dict):
        raise ValueError(f"encode: expected a mapping, got {type(raw).__name__}")

    unknown = sorted(set(raw) - _SPEC_FIELDS)
    if unknown:
        raise ValueError(f"encode: unknown field(s): {', '.join(unknown)}")

    overrides = {}
    for key, value in raw.items():
        if key in ("width", "height", "crf", "thumbnail_quality"):
            value = int(value)
        elif key == "faststart":
            value = bool(value)
        else:
            value = str(value)
        overrides[key] = value

    spec = replace(spec, **overrides)
    if spec.width <= 0 or spec.height <= 0:
        raise ValueError(
            f"encode: width and height must be > 0, got {spec.width}x{spec.height}"
        )
    if not 0 <= spec.crf <= 51:
        raise ValueError(f"encode: crf must be in 0..51, got {spec.crf}")
    return spec


def segment_args(
    source: str,
    start: float,
    duration: float,
    output: str,
    spec: EncodeSpec,
) -> list[str]:
    """ffmpeg arguments that cut, reframe and re-encode one segment."""
    args = [
        "-ss", f"{start:.3f}",
        "-t", f"{duration:.3f}",
        "-i", source,
        "-vf", spec.video_filter,
        "-c:v", spec.video_codec,
        "-preset", spec.preset,
        "-crf", str(spec.crf),
        "-pix_fmt", spec.pix_fmt,
        "-c:a", spec.audio_codec,
    ]
    if spec.faststart:
        args += ["-movflags", "+faststart"]
    args.append(output)
    return args


def thumbnail_args(
    clip_path: str,
    at: float,
    output: str,
    spec: EncodeSpec,
) -> list[str]:
    """ffmpeg arguments that grab a single JPEG frame `at` seconds in."""
    return [
        "-ss", f"{at:.3f}",
        "-i", clip_path,
        "-frames:v", "1",
        "-q:v", str(spec.thumbnail_quality),
        output,
    ]
