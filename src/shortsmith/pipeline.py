"""Pipeline orchestrator: segments in, ready clips out.

One run walks the state machine

    IDLE -> [ENGINE_LOADING ->] EXTRACTING -> COMPLETE | FAILED

and goes back to IDLE (clearing progress) when the next run starts or
reset() is called. Segments are processed one at a time in the order
given; the engine is single-flight, so there is nothing to gain from
overlapping them. A segment that fails is skipped and logged; the run
only fails when no clip at all was produced.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field

from .clips import Clip, ClipRegistry
from .engine import TranscodeAdapter
from .errors import (
    EngineLoadError,
    ExtractionError,
    NoClipsProducedError,
    NoSourceVideoError,
    PipelineBusyError,
    ThumbnailError,
)
from .timerange import Segment, source_range_problem

logger = logging.getLogger(__name__)


class PipelineState(enum.Enum):
    IDLE = "idle"
    ENGINE_LOADING = "engine_loading"
    EXTRACTING = "extracting"
    COMPLETE = "complete"
    FAILED = "failed"


_BUSY = (PipelineState.ENGINE_LOADING, PipelineState.EXTRACTING)


@dataclass(frozen=True)
class SkippedSegment:
    """A segment that did not become a clip, and why."""

    index: int
    segment: Segment
    reason: str
    error: Exception | None = None


@dataclass
class PipelineResult:
    clips: list[Clip] = field(default_factory=list)
    skipped: list[SkippedSegment] = field(default_factory=list)

    @property
    def produced(self) -> int:
        return len(self.clips)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def total(self) -> int:
        return self.produced + self.skipped_count

    def summary(self) -> str:
        text = f"{self.produced} of {self.total} segments ready"
        if self.skipped:
            text += f", {self.skipped_count} skipped"
        return text


class PipelineOrchestrator:
    """Drives extraction runs against one adapter and one registry.

    Observers poll `state` and `current_progress()`.
    """

    def __init__(
        self,
        adapter: TranscodeAdapter,
        registry: ClipRegistry,
        *,
        segment_timeout: float | None = None,
        thumbnail_offset: float = 2.0,
    ):
        self._adapter = adapter
        self._registry = registry
        self.segment_timeout = segment_timeout
        self.thumbnail_offset = thumbnail_offset
        self._state = PipelineState.IDLE
        self._progress = 0
        self._cancel_requested = False
        self.last_result: PipelineResult | None = None
        self.last_error: BaseException | None = None

    # -- observable state --

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state in _BUSY

    def current_progress(self) -> int:
        return self._progress

    def _set_state(self, state: PipelineState) -> None:
        logger.debug("Pipeline %s -> %s", self._state.value, state.value)
        self._state = state

    def _fail(self, exc: BaseException) -> None:
        self.last_error = exc
        self._set_state(PipelineState.FAILED)

    def reset(self) -> None:
        """Return a finished run to IDLE and clear its progress.

        Raises:
            PipelineBusyError: A run is still active.
        """
        if self.is_busy:
            raise PipelineBusyError(f"Cannot reset while {self._state.value}")
        if self._state is not PipelineState.IDLE:
            self._set_state(PipelineState.IDLE)
        self._progress = 0
        self._cancel_requested = False

    def cancel(self) -> None:
        """Stop the active run at the next segment boundary."""
        if self.is_busy:
            logger.info("Cancellation requested")
            self._cancel_requested = True

    # -- runs --

    async def start_auto_detect(self, segments) -> PipelineResult:
        """Extract every segment into a clip and publish them to the registry.

        Args:
            segments: Candidate Segments, in the order to process them.

        Returns:
            PipelineResult with the ready clips and the skipped segments.

        Raises:
            PipelineBusyError: Another run is active (state and progress
                are left untouched).
            NoSourceVideoError: The registry has no source video.
            EngineLoadError: The engine failed to load (state FAILED).
            NoClipsProducedError: Every segment was skipped (state FAILED).
        """
        if self.is_busy:
            raise PipelineBusyError(f"Pipeline is {self._state.value}")
        source = self._registry.source
        if source is None:
            raise NoSourceVideoError("Load a source video before generating clips")

        self.reset()
        self.last_result = None
        self.last_error = None
        segments = list(segments)

        try:
            if not self._adapter.is_loaded:
                self._set_state(PipelineState.ENGINE_LOADING)
                try:
                    await self._adapter.ensure_loaded()
                except EngineLoadError as exc:
                    self._fail(exc)
                    raise

            self._set_state(PipelineState.EXTRACTING)
            result = await self._extract_all(source, segments)
        except BaseException as exc:
            if self.is_busy:
                self._fail(exc)
            raise

        self.last_result = result
        for skip in result.skipped:
            logger.warning("Skipped segment %d (%s): %s", skip.index + 1, _label(skip.segment), skip.reason)

        if not result.clips:
            exc = NoClipsProducedError(result.skipped)
            self._fail(exc)
            raise exc

        self._registry.replace_all(result.clips)
        self._set_state(PipelineState.COMPLETE)
        logger.info("Pipeline complete: %s", result.summary())
        return result

    async def _extract_all(self, source, segments) -> PipelineResult:
        result = PipelineResult()
        total = len(segments)
        try:
            for index, segment in enumerate(segments):
                if self._cancel_requested:
                    result.skipped.append(SkippedSegment(index, segment, "cancelled"))
                else:
                    outcome = await self._extract_one(source, index, segment)
                    if isinstance(outcome, Clip):
                        result.clips.append(outcome)
                    else:
                        result.skipped.append(outcome)
                self._progress = round(100 * (index + 1) / total)
        except BaseException:
            for clip in result.clips:
                clip.release()
            raise
        return result

    async def _extract_one(self, source, index: int, segment: Segment):
        """Return a ready Clip, or a SkippedSegment explaining the failure."""
        problem = source_range_problem(segment.start, segment.end, source.duration)
        if problem is not None:
            return SkippedSegment(index, segment, problem)

        logger.info("Extracting segment %d: %s", index + 1, _label(segment))
        try:
            artifact = await self._with_timeout(
                self._adapter.extract_segment(source, segment.start, segment.duration)
            )
        except ExtractionError as exc:
            return SkippedSegment(index, segment, str(exc), exc)
        except asyncio.TimeoutError as exc:
            return SkippedSegment(
                index, segment, f"timed out after {self.segment_timeout:g}s", exc,
            )

        clip = Clip(
            title=segment.title or f"Highlight {index + 1}",
            start_time=segment.start,
            end_time=segment.end,
            artifact=artifact,
        )
        clip.thumbnail = await self._thumbnail(clip.title, artifact, clip.duration)
        return clip

    async def _with_timeout(self, coro):
        if self.segment_timeout is None:
            return await coro
        return await asyncio.wait_for(coro, self.segment_timeout)

    async def _thumbnail(self, title: str, artifact, duration: float):
        at = min(self.thumbnail_offset, duration / 2)
        try:
            return await self._with_timeout(
                self._adapter.extract_thumbnail(artifact, at=at)
            )
        except (ThumbnailError, asyncio.TimeoutError) as exc:
            logger.warning("No thumbnail for %s: %s", title, exc)
            return None

    def _ensure_unchanged(self, clip: Clip, start: float, end: float, *artifacts) -> None:
        """Release `artifacts` and raise if `clip` left the registry or moved."""
        if self._registry.get(clip.id) is clip and (clip.start_time, clip.end_time) == (start, end):
            return
        for artifact in artifacts:
            if artifact is not None:
                artifact.release()
        logger.info("Discarding render of %s: clip changed while encoding", clip.title)
        raise ExtractionError(
            f"Clip {clip.title} was deleted or re-ranged while encoding",
            start=start, duration=end - start,
        )

    async def render_clip(self, clip_id: str) -> Clip:
        """Encode a manually created registry clip.

        Shares the adapter's queue with any active run.

        Raises:
            KeyError: Unknown clip id.
            NoSourceVideoError: No source video is loaded.
            EngineLoadError, ExtractionError: From the adapter.
            ExtractionError: The clip was deleted, replaced or re-ranged
                before its encode finished. Nothing is attached to it.
        """
        clip = self._registry.get(clip_id)
        if clip is None:
            raise KeyError(clip_id)
        source = self._registry.source
        if source is None:
            raise NoSourceVideoError("Load a source video before rendering clips")

        start, end = clip.start_time, clip.end_time
        artifact = await self._with_timeout(
            self._adapter.extract_segment(source, start, end - start)
        )
        self._ensure_unchanged(clip, start, end, artifact)
        try:
            thumbnail = await self._thumbnail(clip.title, artifact, end - start)
        except BaseException:
            artifact.release()
            raise
        self._ensure_unchanged(clip, start, end, artifact, thumbnail)

        clip.release()
        clip.artifact = artifact
        clip.thumbnail = thumbnail
        return clip


def _label(segment: Segment) -> str:
    span = f"{segment.start:.1f}s-{segment.end:.1f}s"
    return f"{segment.title} [{span}]" if segment.title else span
