"""Shared test fixtures for shortsmith tests."""

import asyncio
import subprocess
from pathlib import Path

import pytest
import imageio_ffmpeg
from PIL import Image

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


@pytest.fixture
def source_video(tmp_path):
    """Create a 12-second test video (320x240, 10fps) with audio using ffmpeg.

    Landscape on purpose, so the vertical reframe has something to crop.
    """
    out = tmp_path / "source.mp4"
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "testsrc=s=320x240:d=12:r=10",
            "-f", "lavfi", "-i", "anullsrc=r=44100:cl=mono",
            "-shortest",
            "-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p",
            "-c:a", "aac", "-b:a", "32k",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


class FakeEngine:
    """Stand-in for FFmpegEngine that records calls instead of encoding.

    - load_error: raised from load() (after one loop turn).
    - fail_when: predicate on the args list; True -> the run exits 1.
    - gate: asyncio.Event the run waits on before finishing.
    - events: ("start", output_name) / ("end", output_name) in order.
    """

    def __init__(self, load_error=None, fail_when=None, gate=None):
        self.load_error = load_error
        self.fail_when = fail_when
        self.gate = gate
        self.load_calls = 0
        self.runs = []
        self.events = []

    async def load(self):
        self.load_calls += 1
        await asyncio.sleep(0)
        if self.load_error is not None:
            raise self.load_error

    async def run(self, args, duration=None, on_progress=None):
        output = Path(args[-1])
        self.runs.append(list(args))
        self.events.append(("start", output.name))
        if on_progress is not None:
            on_progress(0.5)
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        if on_progress is not None:
            on_progress(0.25)  # progress never goes backwards
            on_progress(1.0)
        self.events.append(("end", output.name))
        if self.fail_when is not None and self.fail_when(args):
            raise subprocess.CalledProcessError(
                1, ["ffmpeg", *args], stderr=b"Invalid data found when processing input",
            )
        if output.suffix == ".jpg":
            Image.new("RGB", (108, 192), (10, 20, 30)).save(output, "JPEG")
        else:
            output.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64)


def starts_at(seconds):
    """fail_when predicate: the segment whose -ss is `seconds`."""
    value = f"{seconds:.3f}"
    return lambda args: args[:2] == ["-ss", value] and args[-1].endswith(".mp4")


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def fake_source(tmp_path):
    """A SourceVideo pointing at a placeholder file with a known duration."""
    from shortsmith.clips import SourceVideo

    path = tmp_path / "match.mp4"
    path.write_bytes(b"not really a video")
    return SourceVideo(path=path, duration=600.0, mime_type="video/mp4")


@pytest.fixture
def make_engine():
    return FakeEngine


@pytest.fixture
def fail_at():
    return starts_at
