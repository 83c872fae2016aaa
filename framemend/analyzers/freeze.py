"""Perceptual freeze detection via ffmpeg's freezedetect filter."""

import logging
import math
import re
from pathlib import Path
from typing import Callable, Iterable

from framemend import ffutil
from framemend.models import FrameRange, TimeRange
from framemend.ranges import (
    FrameBounds,
    cap_segments,
    frames_from_time_range,
    merge_ranges,
    resolve_bounds,
    resolve_segment_cap,
)

logger = logging.getLogger(__name__)

_FREEZE_START = re.compile(r"freeze_start:\s*([0-9.]+)")
_FREEZE_END = re.compile(r"freeze_end:\s*([0-9.]+)")


def _to_seconds(text: str) -> float | None:
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


class FreezeLogParser:
    """Pairs freeze_start/freeze_end lines from freezedetect's log.

    A new start replaces any unmatched pending start. An end with no pending
    start is ignored.
    """

    def __init__(self) -> None:
        self.pending_start: float | None = None
        self.ranges: list[TimeRange] = []

    def feed(self, line: str) -> TimeRange | None:
        m = _FREEZE_START.search(line)
        if m:
            start = _to_seconds(m.group(1))
            if start is not None:
                self.pending_start = start
            return None

        m = _FREEZE_END.search(line)
        if m is None or self.pending_start is None:
            return None

        end = _to_seconds(m.group(1))
        if end is None:
            return None

        start, self.pending_start = self.pending_start, None
        if end < start:
            logger.debug("Ignoring freeze ending before it starts: %s < %s", end, start)
            return None

        time_range = TimeRange(start=start, end=end)
        self.ranges.append(time_range)
        return time_range


def parse_freeze_ranges(lines: Iterable[str]) -> list[TimeRange]:
    """Parse freezedetect output lines into TimeRanges."""
    parser = FreezeLogParser()
    for line in lines:
        parser.feed(line)
    return parser.ranges


def freeze_ranges_to_frames(
    time_ranges: Iterable[TimeRange],
    fps: float,
    bounds: FrameBounds,
    max_segments: int | None = None,
) -> list[FrameRange]:
    """Convert freeze intervals to merged, length-filtered repair ranges."""
    raw: list[FrameRange] = []
    for tr in time_ranges:
        fr = frames_from_time_range(tr, fps)
        if fr is None:
            continue
        if not bounds.accepts(fr.length):
            continue
        raw.append(fr)

    return cap_segments(merge_ranges(raw), max_segments)


def build_freezedetect_cmd(
    ffmpeg_path: str, video_path: Path, noise: float, min_duration: float
) -> list[str]:
    return [
        ffmpeg_path,
        "-hide_banner",
        "-nostats",
        "-loglevel", "info",
        "-i", str(video_path),
        "-an",
        "-vf", f"freezedetect=n={noise}:d={min_duration:.6f}",
        "-f", "null", "-",
    ]


def detect_freeze_ranges(
    ffmpeg_path: str,
    video_path: Path,
    fps: float,
    noise: float,
    min_frames: float,
    max_frames: float | None,
    max_segments: float | None = None,
    on_line: Callable[[str], None] | None = None,
) -> list[FrameRange]:
    """Run freezedetect and return the frame ranges to interpolate.

    Assumes a constant frame rate: ``fps`` converts freeze timestamps into
    frame indices. An unusable ``fps`` returns no ranges without running
    ffmpeg. A non-zero exit is only an error if no freeze was parsed.
    """
    if fps is None or not math.isfinite(fps) or fps <= 0:
        logger.warning("Skipping freeze detection for %s: invalid fps %r", video_path, fps)
        return []

    bounds = resolve_bounds(min_frames, max_frames)
    cap = resolve_segment_cap(max_segments)
    # freezedetect expects seconds; N frames span roughly N/fps seconds
    min_duration = bounds.min_frames / fps

    cmd = build_freezedetect_cmd(ffmpeg_path, video_path, noise, min_duration)
    with ffutil.open_line_stream(cmd, source="stderr", on_line=on_line) as stream:
        time_ranges = parse_freeze_ranges(stream)
        returncode = stream.wait()

    if returncode != 0:
        if not time_ranges:
            raise ffutil.ProcessError(
                f"ffmpeg freezedetect exited with code {returncode}",
                returncode=returncode,
                cmd=cmd,
            )
        logger.warning(
            "ffmpeg freezedetect exited with code %s; keeping %d parsed freezes",
            returncode, len(time_ranges),
        )

    ranges = freeze_ranges_to_frames(time_ranges, fps, bounds, cap)
    logger.info(
        "Freeze detection found %d range(s) from %d freeze(s) in %s",
        len(ranges), len(time_ranges), video_path,
    )
    return ranges
