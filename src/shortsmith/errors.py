"""Error taxonomy for the clip pipeline.

Recoverable per-segment failures (ExtractionError, ThumbnailError) are
caught by the orchestrator. Contract violations (InvalidRangeError,
PipelineBusyError, ClipNotReadyError) go straight back to the caller.
"""


class ShortsmithError(Exception):
    """Base class for every error raised by shortsmith."""


class EngineLoadError(ShortsmithError):
    """The transcoding engine could not be initialized."""


class ExtractionError(ShortsmithError):
    """A segment could not be extracted and encoded."""

    def __init__(self, message, start=None, duration=None):
        super().__init__(message)
        self.start = start
        self.duration = duration


class ThumbnailError(ShortsmithError):
    """A thumbnail could not be produced. Never fatal to a clip."""


class InvalidRangeError(ShortsmithError, ValueError):
    """A (start, end) pair violates the clip duration or source bounds."""

    def __init__(self, message, start=None, end=None):
        super().__init__(message)
        self.start = start
        self.end = end


class PipelineBusyError(ShortsmithError):
    """An extraction run is already in progress."""


class NoClipsProducedError(ShortsmithError):
    """Every segment of a run was skipped."""

    def __init__(self, skipped):
        self.skipped = list(skipped)
        n = len(self.skipped)
        super().__init__(
            f"No clips produced: all {n} segment{'s' if n != 1 else ''} skipped"
        )


class ClipNotReadyError(ShortsmithError):
    """A clip was exported before its artifact was encoded."""

    def __init__(self, clip):
        super().__init__(f"Clip '{clip.title}' ({clip.id}) has no encoded artifact")
        self.clip = clip


class UnsupportedMediaError(ShortsmithError, ValueError):
    """An input file does not sniff as video/*."""


class NoSourceVideoError(ShortsmithError):
    """An operation needs an active source video and none is loaded."""
