"""Exact duplicate-frame detection via ffmpeg's framemd5 muxer."""

import logging
from pathlib import Path
from typing import Callable, Iterable, Iterator

from framemend import ffutil
from framemend.models import FrameRange
from framemend.ranges import FrameBounds, merge_ranges, resolve_bounds

logger = logging.getLogger(__name__)


def extract_frame_hash(line: str) -> str | None:
    """Return the normalized hash from one framemd5 line, or None.

    framemd5 data lines look like ``0, 0, 0, 1, 6220800, 5f2e...``; the hash
    is the last comma-separated field (``key=value`` forms keep the value).
    """
    if not line or line.startswith("#"):
        return None

    parts = [p.strip() for p in line.split(",")]
    if len(parts) < 2:
        return None

    last = parts[-1]
    if not last:
        return None

    raw = last.split("=")[-1] if "=" in last else last
    normalized = raw.strip().lower()
    return normalized or None


class DuplicateRunTracker:
    """Tracks runs of consecutive identical frame hashes.

    The first frame of a run is kept as the reference; the repeats after it
    are recorded as a repair range when their count passes ``bounds``.
    """

    def __init__(self, bounds: FrameBounds):
        self.bounds = bounds
        self.frame_count = 0
        self.ranges: list[FrameRange] = []
        self._previous_hash: str | None = None
        self._run_start: int | None = None
        self._run_length = 0

    def feed(self, frame_hash: str) -> None:
        if self._previous_hash is not None and frame_hash == self._previous_hash:
            if self._run_start is None:
                self._run_start = self.frame_count - 1
                self._run_length = 2
            else:
                self._run_length += 1
        else:
            self._close_run()

        self._previous_hash = frame_hash
        self.frame_count += 1

    def finish(self) -> list[FrameRange]:
        self._close_run()
        return self.ranges

    def _close_run(self) -> None:
        if self._run_start is None:
            return
        start = self._run_start + 1
        end = self._run_start + self._run_length - 1
        if self.bounds.accepts(end - start + 1):
            self.ranges.append(FrameRange(start=start, end=end))
        self._run_start = None
        self._run_length = 0


def drop_tail_ranges(ranges: Iterable[FrameRange], total_frames: int) -> list[FrameRange]:
    """Drop ranges that touch the last frame; they have no frame to interpolate toward."""
    return [r for r in ranges if r.end < total_frames - 1]


def iter_frame_hashes(lines: Iterable[str]) -> Iterator[str]:
    """Yield the hash of each framemd5 data line, skipping headers and noise."""
    for line in lines:
        frame_hash = extract_frame_hash(line)
        if frame_hash is not None:
            yield frame_hash


def find_duplicate_ranges(
    hashes: Iterable[str], bounds: FrameBounds
) -> tuple[list[FrameRange], int]:
    """Run-track a hash sequence. Returns (merged ranges, total frames)."""
    tracker = DuplicateRunTracker(bounds)
    for frame_hash in hashes:
        tracker.feed(frame_hash)
    raw = tracker.finish()
    total = tracker.frame_count
    return merge_ranges(drop_tail_ranges(raw, total)), total


def build_framemd5_cmd(ffmpeg_path: str, video_path: Path) -> list[str]:
    return [
        ffmpeg_path,
        "-hide_banner",
        "-nostats",
        "-loglevel", "error",
        # -vsync is deprecated since ffmpeg 5.1 in favour of -fps_mode passthrough,
        # but newer builds still accept it and older ones know nothing else
        "-vsync", "0",
        "-i", str(video_path),
        "-an",
        "-map", "0:v:0",
        "-f", "framemd5", "-",
    ]


def detect_exact_duplicate_ranges(
    ffmpeg_path: str,
    video_path: Path,
    min_frames: float,
    max_frames: float | None,
    on_line: Callable[[str], None] | None = None,
) -> list[FrameRange]:
    """Hash every frame with framemd5 and return duplicated-frame ranges.

    A non-zero exit is only an error if no frame was hashed.
    """
    bounds = resolve_bounds(min_frames, max_frames)
    cmd = build_framemd5_cmd(ffmpeg_path, video_path)

    with ffutil.open_line_stream(cmd, source="stdout", on_line=on_line) as stream:
        ranges, total = find_duplicate_ranges(iter_frame_hashes(stream), bounds)
        returncode = stream.wait()

    if returncode != 0:
        if total == 0:
            raise ffutil.ProcessError(
                f"ffmpeg framemd5 exited with code {returncode}",
                returncode=returncode,
                cmd=cmd,
            )
        logger.warning(
            "ffmpeg framemd5 exited with code %s after %d frames; using partial result",
            returncode, total,
        )

    logger.info(
        "Duplicate detection found %d range(s) across %d frames in %s",
        len(ranges), total, video_path,
    )
    return ranges
