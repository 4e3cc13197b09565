"""Transcoding engine and the adapter that serializes access to it.

FFmpegEngine is the single engine instance for the process. It knows how
to find the ffmpeg binary and run one command at a time, reporting
progress. TranscodeAdapter is the only thing that talks to it: it loads
the engine once, queues every call behind one lock, and translates
engine failures into ExtractionError / ThumbnailError.
"""

import asyncio
import logging
import shutil
import subprocess
import tempfile
import uuid
from pathlib import Path

import imageio_ffmpeg
from PIL import Image, UnidentifiedImageError

from .clips import Artifact, SourceVideo
from .encode import EncodeSpec, segment_args, thumbnail_args
from .errors import EngineLoadError, ExtractionError, ThumbnailError

logger = logging.getLogger(__name__)

_STDERR_TAIL = 2000


def parse_progress_line(line: str, duration: float | None) -> float | None:
    """Turn one `-progress` key=value line into a 0..1 fraction.

    ffmpeg reports `out_time_us` and (despite the name, also in
    microseconds) `out_time_ms`. Returns None for lines that carry no
    position, or when the total duration is unknown.
    """
    key, _, value = line.strip().partition("=")
    if key == "progress" and value == "end":
        return 1.0
    if key not in ("out_time_us", "out_time_ms") or not duration:
        return None
    try:
        micros = int(value)
    except ValueError:
        return None
    return max(0.0, min(1.0, micros / (duration * 1_000_000)))


class FFmpegEngine:
    """The one ffmpeg instance shared by every extraction.

    Not safe for concurrent use; go through TranscodeAdapter.
    """

    def __init__(self, exe: str | None = None):
        self.exe = exe
        self.loaded = False

    async def load(self) -> None:
        """Resolve the ffmpeg binary and check that it runs."""
        if self.exe is None:
            self.exe = await asyncio.to_thread(imageio_ffmpeg.get_ffmpeg_exe)
        proc = await asyncio.create_subprocess_exec(
            self.exe, "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise subprocess.CalledProcessError(
                proc.returncode, [self.exe, "-version"], stdout, stderr,
            )
        banner = stdout.decode(errors="replace").splitlines()
        logger.debug("ffmpeg ready: %s", banner[0] if banner else self.exe)
        self.loaded = True

    async def run(self, args: list[str], duration: float | None = None, on_progress=None) -> None:
        """Run one ffmpeg command to completion.

        Args:
            args: Arguments after the binary (see shortsmith.encode).
            duration: Expected output length, used to scale progress.
            on_progress: Called with a 0..1 fraction as ffmpeg advances.

        Raises:
            subprocess.CalledProcessError: ffmpeg exited nonzero.
        """
        if not self.loaded:
            raise RuntimeError("FFmpegEngine.run() called before load()")
        cmd = [
            self.exe, "-hide_banner", "-nostats",
            "-progress", "pipe:1", "-y",
            *args,
        ]
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        async def _pump_progress():
            async for raw in proc.stdout:
                fraction = parse_progress_line(raw.decode(errors="replace"), duration)
                if fraction is not None and on_progress is not None:
                    on_progress(fraction)

        try:
            _, stderr = await asyncio.gather(_pump_progress(), proc.stderr.read())
            returncode = await proc.wait()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        if returncode != 0:
            raise subprocess.CalledProcessError(returncode, cmd, stderr=stderr)


def _stderr_text(exc: subprocess.CalledProcessError) -> str:
    stderr = exc.stderr or b""
    if isinstance(stderr, bytes):
        stderr = stderr.decode(errors="replace")
    return stderr.strip()[-_STDERR_TAIL:]


class TranscodeAdapter:
    """Single point of contact with the transcoding engine.

    - ensure_loaded() loads the engine once; concurrent callers share the
      in-flight attempt.
    - extract_segment() / extract_thumbnail() are queued behind one FIFO
      lock, so the engine never sees two commands at once.
    - current_progress() is the 0..100 progress of the running command.
    """

    def __init__(
        self,
        engine: FFmpegEngine,
        work_dir: str | Path | None = None,
        spec: EncodeSpec | None = None,
    ):
        self._engine = engine
        self.spec = spec or EncodeSpec()
        self._work_dir = Path(work_dir) if work_dir is not None else None
        self._owns_work_dir = work_dir is None
        self._loaded = False
        self._load_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._progress = 0

    # -- loading --

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    async def ensure_loaded(self) -> None:
        """Load the engine if needed.

        Raises:
            EngineLoadError: The engine could not be initialized. Every
                caller waiting on the same attempt sees the same error;
                a later call starts a fresh attempt.
        """
        if self._loaded:
            return
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        await asyncio.shield(self._load_task)

    async def _load(self) -> None:
        logger.info("Loading transcoding engine")
        try:
            await self._engine.load()
        except (OSError, RuntimeError, subprocess.CalledProcessError) as exc:
            self._load_task = None
            logger.error("Engine load failed: %s", exc)
            raise EngineLoadError(f"Failed to load transcoding engine: {exc}") from exc
        except BaseException:
            self._load_task = None
            raise
        self._loaded = True
        logger.info("Transcoding engine loaded")

    # -- progress --

    def current_progress(self) -> int:
        return self._progress

    def _on_progress(self, fraction: float) -> None:
        pct = int(round(fraction * 100))
        self._progress = max(self._progress, min(100, pct))

    # -- work files --

    @property
    def work_dir(self) -> Path:
        if self._work_dir is None:
            self._work_dir = Path(tempfile.mkdtemp(prefix="shortsmith-"))
        self._work_dir.mkdir(parents=True, exist_ok=True)
        return self._work_dir

    def _work_path(self, suffix: str) -> Path:
        return self.work_dir / f"{uuid.uuid4().hex}{suffix}"

    def close(self) -> None:
        """Remove the work directory if this adapter created it."""
        if self._owns_work_dir and self._work_dir is not None:
            shutil.rmtree(self._work_dir, ignore_errors=True)
            self._work_dir = None

    # -- operations --

    async def extract_segment(
        self,
        source: SourceVideo,
        start: float,
        duration: float,
        spec: EncodeSpec | None = None,
    ) -> Artifact:
        """Cut `duration` seconds at `start`, reframe to vertical and encode.

        Raises:
            ExtractionError: Bad range for this source, or the engine
                failed to encode.
        """
        if start < 0 or duration <= 0:
            raise ExtractionError(
                f"Invalid segment: start={start}, duration={duration}",
                start=start, duration=duration,
            )
        if source.duration is not None and start + duration > source.duration:
            raise ExtractionError(
                f"Segment {start:.1f}s + {duration:.1f}s runs past the end of "
                f"{source.path.name} ({source.duration:.1f}s)",
                start=start, duration=duration,
            )

        await self.ensure_loaded()
        spec = spec or self.spec
        output = self._work_path(".mp4")
        args = segment_args(str(source.path), start, duration, str(output), spec)

        async with self._lock:
            self._progress = 0
            try:
                await self._engine.run(args, duration=duration, on_progress=self._on_progress)
            except subprocess.CalledProcessError as exc:
                output.unlink(missing_ok=True)
                raise ExtractionError(
                    f"Encode failed at {start:.1f}s (exit {exc.returncode}): {_stderr_text(exc)}",
                    start=start, duration=duration,
                ) from exc
            except OSError as exc:
                output.unlink(missing_ok=True)
                raise ExtractionError(
                    f"Encode failed at {start:.1f}s: {exc}",
                    start=start, duration=duration,
                ) from exc
            except asyncio.CancelledError:
                output.unlink(missing_ok=True)
                raise
            if not output.exists() or output.stat().st_size == 0:
                output.unlink(missing_ok=True)
                raise ExtractionError(
                    f"Encode at {start:.1f}s produced no output",
                    start=start, duration=duration,
                )
            self._progress = 100

        return Artifact(output, "video/mp4")

    async def extract_thumbnail(self, clip_artifact: Artifact, at: float = 2.0) -> Artifact:
        """Grab one JPEG frame from an encoded clip.

        Raises:
            ThumbnailError: The engine failed or produced an unreadable image.
        """
        await self.ensure_loaded()
        output = self._work_path(".jpg")
        args = thumbnail_args(str(clip_artifact.path), at, str(output), self.spec)

        async with self._lock:
            self._progress = 0
            try:
                await self._engine.run(args, on_progress=self._on_progress)
            except subprocess.CalledProcessError as exc:
                output.unlink(missing_ok=True)
                raise ThumbnailError(
                    f"Thumbnail failed (exit {exc.returncode}): {_stderr_text(exc)}"
                ) from exc
            except OSError as exc:
                output.unlink(missing_ok=True)
                raise ThumbnailError(f"Thumbnail failed: {exc}") from exc
            except asyncio.CancelledError:
                output.unlink(missing_ok=True)
                raise
            self._progress = 100

        try:
            with Image.open(output) as img:
                img.verify()
        except (OSError, UnidentifiedImageError) as exc:
            output.unlink(missing_ok=True)
            raise ThumbnailError(f"Thumbnail output is not a readable image: {exc}") from exc

        return Artifact(output, "image/jpeg")
