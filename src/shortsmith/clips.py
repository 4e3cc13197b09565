"""Clip entities, their encoded artifacts, and the in-memory registry.

The registry is the only owner of Clip objects. Removing a clip from it
(delete, replace_all, clear, load_source) releases the clip's artifacts.
"""

import asyncio
import itertools
import logging
import mimetypes
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from moviepy import VideoFileClip

from .errors import InvalidRangeError, UnsupportedMediaError
from .timerange import source_range_problem

logger = logging.getLogger(__name__)


# ── Source video ───────────────────────────────────────────────────

@dataclass(frozen=True)
class SourceVideo:
    """The active input video. `duration` is None until probed."""

    path: Path
    duration: float | None = None
    mime_type: str | None = None

    @classmethod
    def open(cls, path: str | Path) -> "SourceVideo":
        """Sniff the MIME type and probe the duration of a video file.

        Raises:
            FileNotFoundError: path does not exist.
            UnsupportedMediaError: the file does not sniff as video/*.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Source video not found: {path}")
        mime_type, _ = mimetypes.guess_type(path.name)
        if mime_type is None or not mime_type.startswith("video/"):
            raise UnsupportedMediaError(
                f"{path.name}: expected a video/* file, got {mime_type or 'unknown type'}"
            )
        with VideoFileClip(str(path)) as clip:
            duration = clip.duration
        return cls(path=path, duration=duration, mime_type=mime_type)

    @classmethod
    async def open_async(cls, path: str | Path) -> "SourceVideo":
        return await asyncio.to_thread(cls.open, path)


# ── Artifacts ──────────────────────────────────────────────────────

class Artifact:
    """An encoded payload produced by the engine.

    The bytes live in `path`, which doubles as the playable handle for
    preview and export. `release()` deletes the file.
    """

    def __init__(self, path: str | Path, media_type: str):
        self.path = Path(path)
        self.media_type = media_type
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def data(self) -> bytes:
        if self._released:
            raise ValueError(f"Artifact {self.path.name} has been released")
        return self.path.read_bytes()

    @property
    def size(self) -> int:
        if self._released:
            return 0
        return self.path.stat().st_size

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self.path.unlink(missing_ok=True)

    def __repr__(self):
        state = "released" if self._released else self.media_type
        return f"Artifact({self.path.name!r}, {state})"


# ── Clips ──────────────────────────────────────────────────────────

def _new_clip_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class Clip:
    """One exportable segment of the source video.

    `duration` is always derived from the bounds. The clip is ready once
    `artifact` is set.
    """

    title: str
    start_time: float
    end_time: float
    artifact: Artifact | None = None
    thumbnail: Artifact | None = None
    id: str = field(default_factory=_new_clip_id)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def is_ready(self) -> bool:
        return self.artifact is not None and not self.artifact.released

    def release(self) -> None:
        """Drop the encoded video and thumbnail."""
        if self.artifact is not None:
            self.artifact.release()
            self.artifact = None
        if self.thumbnail is not None:
            self.thumbnail.release()
            self.thumbnail = None


# ── Registry ───────────────────────────────────────────────────────

class ClipRegistry:
    """Ordered, in-memory collection of the clips for one source video."""

    def __init__(self, source: SourceVideo | None = None):
        self._source = source
        self._clips: dict[str, Clip] = {}
        self._selected_id: str | None = None
        self._counter = itertools.count(1)

    # -- source --

    @property
    def source(self) -> SourceVideo | None:
        return self._source

    def load_source(self, source: SourceVideo) -> None:
        """Make `source` the active video. Every existing clip is dropped."""
        self.clear()
        self._source = source
        logger.info("Loaded source %s (duration=%s)", source.path.name, source.duration)

    # -- validation --

    def _check_range(self, start: float, end: float) -> None:
        source_duration = self._source.duration if self._source is not None else None
        problem = source_range_problem(start, end, source_duration)
        if problem is not None:
            raise InvalidRangeError(
                f"Invalid clip range {start:.1f}s - {end:.1f}s: {problem}",
                start=start, end=end,
            )

    # -- mutation --

    def create(self, start: float, end: float, title: str | None = None) -> Clip:
        """Add an unencoded clip for a manually selected range.

        Raises:
            InvalidRangeError: duration outside 5..60s or outside the source.
        """
        self._check_range(start, end)
        n = next(self._counter)
        clip = Clip(title=title or f"Clip {n}", start_time=start, end_time=end)
        self._clips[clip.id] = clip
        logger.debug("Created clip %s (%s)", clip.id, clip.title)
        return clip

    def update_range(self, clip_id: str, start: float, end: float) -> Clip:
        """Move a clip's bounds. Existing artifacts no longer match and are released."""
        clip = self._clips[clip_id]
        self._check_range(start, end)
        clip.release()
        clip.start_time = start
        clip.end_time = end
        return clip

    def delete(self, clip_id: str) -> None:
        """Remove a clip. Unknown ids are ignored."""
        clip = self._clips.pop(clip_id, None)
        if clip is None:
            return
        clip.release()
        if self._selected_id == clip_id:
            self._selected_id = None

    def replace_all(self, clips) -> None:
        """Swap in a new batch of clips, releasing any clip not carried over."""
        new = {clip.id: clip for clip in clips}
        for clip_id, clip in self._clips.items():
            if clip_id not in new:
                clip.release()
        self._clips = new
        if self._selected_id not in new:
            self._selected_id = None

    def clear(self) -> None:
        for clip in self._clips.values():
            clip.release()
        self._clips = {}
        self._selected_id = None

    # -- selection --

    def select(self, clip_id: str | None) -> None:
        """Select a clip by id, or clear the selection with None.

        Raises:
            KeyError: clip_id is not in the registry.
        """
        if clip_id is not None and clip_id not in self._clips:
            raise KeyError(clip_id)
        self._selected_id = clip_id

    @property
    def selected(self) -> Clip | None:
        if self._selected_id is None:
            return None
        return self._clips.get(self._selected_id)

    # -- queries --

    def get(self, clip_id: str) -> Clip | None:
        return self._clips.get(clip_id)

    def list(self) -> list[Clip]:
        return list(self._clips.values())

    def __len__(self):
        return len(self._clips)

    def __iter__(self):
        return iter(self.list())

    def __contains__(self, clip_id):
        return clip_id in self._clips
