"""JSON manifest schema — the contract between CLI/API and engine."""

import json
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class FreezeRepairConfig:
    """Configuration for duplicated/frozen frame detection."""

    enabled: bool = False
    exact: bool = False
    noise: float = 0.003
    min_frames: int = 2
    max_frames: int = 8
    max_segments: int | None = None


@dataclass
class Manifest:
    """Top-level detection manifest."""

    input: Path
    output: Path
    version: str = "1"
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    fps: str | None = None
    freeze_repair: FreezeRepairConfig = field(default_factory=FreezeRepairConfig)


def load_manifest(path: str | Path) -> Manifest:
    """Load and validate a manifest from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text())

    if "input" not in data or "output" not in data:
        raise ValueError("Manifest must contain 'input' and 'output' fields")

    freeze_repair = (
        FreezeRepairConfig(**data["freeze_repair"])
        if "freeze_repair" in data
        else FreezeRepairConfig()
    )
    fps = data.get("fps")

    return Manifest(
        version=data.get("version", "1"),
        input=Path(data["input"]),
        output=Path(data["output"]),
        ffmpeg=data.get("ffmpeg", "ffmpeg"),
        ffprobe=data.get("ffprobe", "ffprobe"),
        fps=str(fps) if fps is not None else None,
        freeze_repair=freeze_repair,
    )
