"""Orchestrator — runs frame-range detection defined by a Manifest."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from framemend import ffutil
from framemend.analyzers.duplicates import detect_exact_duplicate_ranges
from framemend.analyzers.freeze import detect_freeze_ranges
from framemend.manifest import Manifest
from framemend.models import FrameRange

logger = logging.getLogger(__name__)
ffmpeg_logger = logging.getLogger("framemend.ffmpeg")


@dataclass
class EngineResult:
    output_path: Path
    mode: str = "disabled"
    fps: float | None = None
    ranges: list[FrameRange] = field(default_factory=list)

    @property
    def frames_flagged(self) -> int:
        return sum(r.length for r in self.ranges)


def resolve_fps(manifest: Manifest) -> float | None:
    """Use the manifest's rate override if it parses, else ask ffprobe."""
    fps = ffutil.parse_fps(manifest.fps)
    if fps is not None and fps > 0:
        return fps
    if manifest.fps:
        logger.warning("Ignoring unusable fps override %r", manifest.fps)
    ffutil.check_ffmpeg(manifest.ffprobe)
    return ffutil.probe(manifest.input, ffprobe_path=manifest.ffprobe).fps


def write_ranges(result: EngineResult, input_path: Path) -> None:
    payload = {
        "input": str(input_path),
        "mode": result.mode,
        "fps": result.fps,
        "ranges": [r.to_list() for r in result.ranges],
    }
    result.output_path.parent.mkdir(parents=True, exist_ok=True)
    result.output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def process(
    manifest: Manifest,
    on_progress: Callable[[str, float], None] | None = None,
    on_line: Callable[[str], None] | None = None,
) -> EngineResult:
    """Run the configured detector and write the repair ranges.

    Args:
        manifest: Validated detection manifest.
        on_progress: Optional callback(stage_name, fraction_complete).
        on_line: Optional observer for raw ffmpeg output lines. Defaults to
            debug logging.
    """

    def _progress(stage: str, frac: float) -> None:
        if on_progress:
            on_progress(stage, frac)

    if on_line is None:
        on_line = ffmpeg_logger.debug

    cfg = manifest.freeze_repair
    result = EngineResult(output_path=manifest.output)

    if not cfg.enabled:
        logger.info("Freeze repair disabled; writing empty range list")
    else:
        _progress("Checking ffmpeg", 0.0)
        ffutil.check_ffmpeg(manifest.ffmpeg)

        if cfg.exact:
            result.mode = "exact"
            _progress("Hashing frames", 0.1)
            result.ranges = detect_exact_duplicate_ranges(
                manifest.ffmpeg,
                manifest.input,
                min_frames=cfg.min_frames,
                max_frames=cfg.max_frames,
                on_line=on_line,
            )
        else:
            result.mode = "perceptual"
            _progress("Probing video metadata", 0.05)
            result.fps = resolve_fps(manifest)
            _progress("Scanning video for freezes", 0.1)
            result.ranges = detect_freeze_ranges(
                manifest.ffmpeg,
                manifest.input,
                fps=result.fps if result.fps is not None else 0.0,
                noise=cfg.noise,
                min_frames=cfg.min_frames,
                max_frames=cfg.max_frames,
                max_segments=cfg.max_segments,
                on_line=on_line,
            )

    _progress("Writing ranges", 0.95)
    write_ranges(result, manifest.input)

    _progress("Done", 1.0)
    return result
