"""Export ready clips through the host's save mechanism.

The save mechanism is any async callable `(filename, artifact) -> Path`.
DirectorySaver, which writes into a folder, is the one the CLI uses.
"""

import asyncio
import logging
import re
import time
from pathlib import Path

from .clips import Artifact, Clip
from .errors import ClipNotReadyError
from .timerange import is_valid_range, range_problem

logger = logging.getLogger(__name__)

DEFAULT_STAGGER = 0.5


def export_filename(title: str) -> str:
    """'Epic Victory Moment' -> 'Epic_Victory_Moment_short.mp4'."""
    stem = re.sub(r"\s+", "_", title)
    return f"{stem}_short.mp4"


class DirectorySaver:
    """Save artifacts as files in one directory, overwriting on every call."""

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)

    def _write(self, filename: str, data: bytes) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        # Titles are user text; never let them escape the output directory.
        out_path = self.output_dir / filename.replace("/", "_").replace("\\", "_")
        out_path.write_bytes(data)
        return out_path

    async def __call__(self, filename: str, artifact: Artifact) -> Path:
        return await asyncio.to_thread(self._write, filename, artifact.data)


class ExportCoordinator:
    """Hands clips to the saver one at a time, in order.

    Successive saves within one export_all() are at least `stagger`
    seconds apart; bursts of saves are unreliable on some hosts.
    """

    def __init__(self, saver, stagger: float = DEFAULT_STAGGER):
        self._saver = saver
        self.stagger = stagger

    async def export_one(self, clip: Clip):
        """Save one clip. Calling it again saves again.

        Raises:
            ClipNotReadyError: The clip has no encoded artifact.
        """
        if not clip.is_ready:
            raise ClipNotReadyError(clip)
        filename = export_filename(clip.title)
        logger.info("Exporting %s as %s", clip.title, filename)
        return await self._saver(filename, clip.artifact)

    async def export_all(self, clips) -> list:
        """Save every clip within the duration bounds, in input order.

        Clips outside the bounds are left out. Readiness is checked for
        all remaining clips before the first save.

        Raises:
            ClipNotReadyError: A clip within the bounds is not encoded.
        """
        valid = []
        for clip in clips:
            if is_valid_range(clip.start_time, clip.end_time):
                valid.append(clip)
            else:
                logger.warning(
                    "Not exporting %s: %s",
                    clip.title, range_problem(clip.start_time, clip.end_time),
                )
        for clip in valid:
            if not clip.is_ready:
                raise ClipNotReadyError(clip)

        results = []
        last_call = None
        for clip in valid:
            if last_call is not None:
                wait = self.stagger - (time.monotonic() - last_call)
                if wait > 0:
                    await asyncio.sleep(wait)
            last_call = time.monotonic()
            results.append(await self.export_one(clip))
        return results
