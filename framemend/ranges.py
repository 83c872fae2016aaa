"""Frame-range arithmetic: option bounds, time-to-frame conversion, merging."""

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from framemend.models import FrameRange, TimeRange


@dataclass
class FrameBounds:
    """Normalized run-length filter. ``max_frames`` of None means unbounded."""

    min_frames: int = 1
    max_frames: int | None = None

    def accepts(self, length: int) -> bool:
        if length < self.min_frames:
            return False
        if self.max_frames is not None and length > self.max_frames:
            return False
        return True


def _floor_or_none(value: float | None) -> int | None:
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return math.floor(value)


def resolve_bounds(min_frames: float, max_frames: float | None) -> FrameBounds:
    """Coerce user-facing min/max frame options into a FrameBounds.

    ``min_frames`` is floored and clamped to at least 1. A ``max_frames`` that
    floors to zero or below (or is missing) disables the upper bound; otherwise
    it is raised to at least ``min_frames``.
    """
    lo = max(1, _floor_or_none(min_frames) or 1)
    hi = _floor_or_none(max_frames)
    if hi is None or hi <= 0:
        return FrameBounds(min_frames=lo, max_frames=None)
    return FrameBounds(min_frames=lo, max_frames=max(lo, hi))


def resolve_segment_cap(max_segments: float | None) -> int | None:
    cap = _floor_or_none(max_segments)
    if cap is None or cap <= 0:
        return None
    return cap


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def frames_from_time_range(time_range: TimeRange, fps: float) -> FrameRange | None:
    """Convert a freeze interval in seconds to the frames that need repair.

    The interval is treated as [start, end) in time. One frame is trimmed
    from each side so that a good frame remains before (s - 1) and after
    (e + 1) the range. Returns None when nothing is left in between.
    """
    start_frame = max(0, round_half_up(time_range.start * fps))
    end_exclusive = max(0, round_half_up(time_range.end * fps))
    s = max(1, start_frame)
    e = end_exclusive - 1
    if e < s:
        return None
    return FrameRange(start=s, end=e)


def merge_ranges(ranges: Iterable[Sequence[float]]) -> list[FrameRange]:
    """Sort and merge overlapping or adjacent inclusive frame ranges.

    Pairs with a non-finite bound or with start > end are dropped.
    """
    valid: list[tuple[float, float]] = []
    for start, end in ranges:
        if not (math.isfinite(start) and math.isfinite(end)):
            continue
        if start > end:
            continue
        valid.append((start, end))
    valid.sort(key=lambda pair: pair[0])

    merged: list[FrameRange] = []
    for start, end in valid:
        if merged and start <= merged[-1].end + 1:
            merged[-1].end = max(merged[-1].end, int(end))
            continue
        merged.append(FrameRange(start=int(start), end=int(end)))
    return merged


def cap_segments(ranges: list[FrameRange], cap: int | None) -> list[FrameRange]:
    if cap is None:
        return ranges
    return ranges[:cap]
