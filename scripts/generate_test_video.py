#!/usr/bin/env python3
"""Generate a synthetic test video with known duplicated frames.

Produces a 201-frame, 30 fps clip of moving testsrc2 content in which single
frames are held (exact duplicates), encoded losslessly:
  frame 30 held for 3 extra frames  -> repair range 31-33
  frame 90 held for 6 extra frames  -> repair range 91-96
  frame 150 held for 12 extra frames -> repair range 151-162 (longer than the default max of 8)
"""

import subprocess
import sys
from pathlib import Path


def generate_test_video(output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)

    video_filter = (
        "testsrc2=s=320x240:r=30:d=6,"
        "loop=loop=3:size=1:start=30,"
        "loop=loop=6:size=1:start=90,"
        "loop=loop=12:size=1:start=150,"
        "setpts=N/30/TB"
    )

    cmd = [
        "ffmpeg", "-y",
        "-f", "lavfi",
        "-i", video_filter,
        "-c:v", "libx264",
        "-qp", "0",
        "-pix_fmt", "yuv420p",
        str(output),
    ]
    subprocess.run(cmd, check=True)
    print(f"Generated: {output}")


if __name__ == "__main__":
    out = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("tests/fixtures/synthetic.mp4")
    generate_test_video(out)
