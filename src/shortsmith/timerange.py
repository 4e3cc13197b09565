"""Clip duration bounds and candidate segments.

Short-form platforms accept clips between 5 and 60 seconds. Both bounds
are inclusive: a 5.0s clip and a 60.0s clip are valid.
"""

from dataclasses import dataclass

MIN_CLIP_SECONDS = 5.0
MAX_CLIP_SECONDS = 60.0


def range_problem(
    start: float,
    end: float,
    min_duration: float = MIN_CLIP_SECONDS,
    max_duration: float = MAX_CLIP_SECONDS,
) -> str | None:
    """Return why (start, end) is not a valid clip range, or None if it is."""
    if end <= start:
        return "end must be after start"
    length = end - start
    if length < min_duration:
        return f"too short ({length:.1f}s, min {min_duration:g}s)"
    if length > max_duration:
        return f"too long ({length:.1f}s, max {max_duration:g}s)"
    return None


def source_range_problem(
    start: float,
    end: float,
    source_duration: float | None = None,
    min_duration: float = MIN_CLIP_SECONDS,
    max_duration: float = MAX_CLIP_SECONDS,
) -> str | None:
    """Like range_problem, but the range must also sit inside the source.

    An unknown source duration only rules out a negative start.
    """
    problem = range_problem(start, end, min_duration, max_duration)
    if problem is not None:
        return problem
    if start < 0:
        return "start must be >= 0"
    if source_duration is not None and end > source_duration:
        return (
            f"end ({end:.1f}s) is past the source duration "
            f"({source_duration:.1f}s)"
        )
    return None


def is_valid_range(
    start: float,
    end: float,
    min_duration: float = MIN_CLIP_SECONDS,
    max_duration: float = MAX_CLIP_SECONDS,
) -> bool:
    return range_problem(start, end, min_duration, max_duration) is None


def normalize_selection(
    a: float, b: float, source_duration: float | None = None,
) -> tuple[float, float]:
    """Order a drag selection and clamp it to the source timeline.

    Selections can be dragged right-to-left, so either endpoint may come
    first.
    """
    start, end = min(a, b), max(a, b)
    start = max(0.0, start)
    end = max(0.0, end)
    if source_duration is not None:
        start = min(start, source_duration)
        end = min(end, source_duration)
    return start, end


@dataclass(frozen=True)
class Segment:
    """A candidate (start, end) range considered for clip creation."""

    start: float
    end: float
    title: str | None = None

    @property
    def duration(self) -> float:
        return self.end - self.start
