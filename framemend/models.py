"""Shared data types used across FrameMend."""

from dataclasses import dataclass
from typing import Iterator


@dataclass
class TimeRange:
    """A start/end time pair in seconds."""

    start: float
    end: float


@dataclass
class FrameRange:
    """An inclusive [start, end] span of frame indices selected for repair."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def __iter__(self) -> Iterator[int]:
        yield self.start
        yield self.end

    def to_list(self) -> list[int]:
        return [self.start, self.end]


@dataclass
class ProbeResult:
    """Metadata extracted from a media file via ffprobe."""

    duration: float
    width: int
    height: int
    fps: float | None
    frame_rate: str
    codec_video: str
    frame_count: int | None = None
