"""FFmpeg/ffprobe subprocess helpers."""

import json
import logging
import math
import re
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, IO, Iterable, Iterator

from framemend.models import ProbeResult

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

_FLOAT_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class FFmpegNotFoundError(RuntimeError):
    pass


class ProcessError(RuntimeError):
    """Raised when ffmpeg exits non-zero without producing usable output."""

    def __init__(self, message: str, returncode: int | None, cmd: list[str] | None = None):
        super().__init__(message)
        self.returncode = returncode
        self.cmd = cmd


def check_ffmpeg(*cmds: str) -> None:
    """Raise FFmpegNotFoundError if any of ``cmds`` (default ffmpeg and ffprobe) is missing."""
    for cmd in cmds or ("ffmpeg", "ffprobe"):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def _parse_float(text: str) -> float | None:
    """Parse the leading number in ``text``; None if there is none."""
    m = _FLOAT_PREFIX.match(text.strip())
    if m is None:
        return None
    return float(m.group(0))


def parse_fps(value: str | None) -> float | None:
    """Parse a frame rate such as ``"30000/1001"`` or ``"29.97"``.

    Returns None for empty or malformed input, a zero denominator, or a
    non-finite result. A zero or negative rate is returned as-is; callers
    decide whether it is usable.
    """
    if not value:
        return None

    trimmed = value.strip()
    parts = trimmed.split("/")
    if len(parts) == 2:
        num = _parse_float(parts[0])
        den = _parse_float(parts[1])
        if num is None or den is None:
            return None
        if not math.isfinite(num) or not math.isfinite(den) or den == 0:
            return None
        return num / den

    fps = _parse_float(trimmed)
    if fps is None or not math.isfinite(fps):
        return None
    return fps


def iter_lines(chunks: Iterable[bytes]) -> Iterator[str]:
    """Split a stream of byte chunks into complete text lines.

    Partial lines are held back until a newline completes them; an
    unterminated tail at end of stream is discarded.
    """
    buffer = b""
    for chunk in chunks:
        buffer += chunk
        while True:
            idx = buffer.find(b"\n")
            if idx == -1:
                break
            line, buffer = buffer[:idx], buffer[idx + 1:]
            yield line.decode("utf-8", errors="replace").rstrip()


def _read_chunks(stream: IO[bytes]) -> Iterator[bytes]:
    while True:
        chunk = stream.read1(CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


class LineStream:
    """Lines read from one pipe of a running ffmpeg process.

    Iterate once to consume the pipe; then call :meth:`wait` for the exit
    code. Each line is passed to ``on_line`` before it is yielded.
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        stream: IO[bytes],
        on_line: Callable[[str], None] | None = None,
        side_output: IO[bytes] | None = None,
    ):
        self.proc = proc
        self._stream = stream
        self._on_line = on_line
        self._side_output = side_output

    def __iter__(self) -> Iterator[str]:
        for line in iter_lines(_read_chunks(self._stream)):
            if self._on_line:
                self._on_line(line)
            yield line

    def wait(self) -> int:
        returncode = self.proc.wait()
        if self._side_output is not None and self._on_line:
            self._side_output.seek(0)
            for line in iter_lines([self._side_output.read(), b"\n"]):
                if line:
                    self._on_line(line)
        return returncode


@contextmanager
def open_line_stream(
    cmd: list[str],
    source: str = "stderr",
    on_line: Callable[[str], None] | None = None,
) -> Iterator[LineStream]:
    """Launch ``cmd`` and stream lines from its stdout or stderr.

    The other stream is discarded for ``source="stderr"``; for
    ``source="stdout"`` stderr is spooled to a temporary file and handed to
    ``on_line`` once the process has exited. Pipes are closed and the process
    is reaped on every exit path.
    """
    if source not in ("stdout", "stderr"):
        raise ValueError(f"source must be 'stdout' or 'stderr', got {source!r}")

    side_output = tempfile.TemporaryFile() if source == "stdout" else None
    logger.debug("Running: %s", " ".join(cmd))
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE if source == "stdout" else subprocess.DEVNULL,
            stderr=side_output if side_output is not None else subprocess.PIPE,
        )
    except OSError as e:
        if side_output is not None:
            side_output.close()
        raise FFmpegNotFoundError(f"could not start {cmd[0]}: {e}") from e

    try:
        stream = proc.stdout if source == "stdout" else proc.stderr
        yield LineStream(proc, stream, on_line=on_line, side_output=side_output)
    finally:
        for pipe in (proc.stdout, proc.stderr):
            if pipe is not None:
                pipe.close()
        if proc.poll() is None:
            proc.kill()
        proc.wait()
        if side_output is not None:
            side_output.close()


def probe(input_path: Path, ffprobe_path: str = "ffprobe") -> ProbeResult:
    """Extract video metadata via ffprobe."""
    cmd = [
        ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(input_path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    data = json.loads(result.stdout)

    video_stream = next(
        (s for s in data["streams"] if s["codec_type"] == "video"), None
    )
    if video_stream is None:
        raise ValueError(f"No video stream found in {input_path}")

    # r_frame_rate is the container's base rate; avg_frame_rate is a fallback
    frame_rate = video_stream.get("r_frame_rate") or video_stream.get("avg_frame_rate") or ""
    fps = parse_fps(frame_rate)
    if (fps is None or fps <= 0) and video_stream.get("avg_frame_rate"):
        frame_rate = video_stream["avg_frame_rate"]
        fps = parse_fps(frame_rate)

    nb_frames = video_stream.get("nb_frames")
    frame_count = int(nb_frames) if nb_frames and str(nb_frames).isdigit() else None

    return ProbeResult(
        duration=float(data["format"].get("duration", 0.0)),
        width=int(video_stream["width"]),
        height=int(video_stream["height"]),
        fps=fps,
        frame_rate=frame_rate,
        codec_video=video_stream["codec_name"],
        frame_count=frame_count,
    )
