"""Thin CLI entry point — builds a Manifest and calls the engine."""

import argparse
import sys
from pathlib import Path

from framemend.engine import process
from framemend.logsetup import setup_logging
from framemend.manifest import FreezeRepairConfig, Manifest, load_manifest


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="framemend",
        description="FrameMend — find duplicated and frozen frames for interpolation repair.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log raw ffmpeg output")
    sub = parser.add_subparsers(dest="command")

    det = sub.add_parser("detect", help="Detect repairable frame ranges in a video")
    det.add_argument("video", nargs="?", type=Path, help="Input video file")
    det.add_argument("--manifest", "-m", type=Path, help="Path to a JSON manifest file")
    det.add_argument("--output", "-o", type=Path, help="Output JSON path for the ranges")
    det.add_argument("--exact", action="store_true", help="Match byte-identical frames (framemd5) instead of freezedetect")
    det.add_argument("--noise", type=float, default=0.003, help="freezedetect noise tolerance")
    det.add_argument("--min-frames", type=int, default=2, help="Minimum run length in frames")
    det.add_argument("--max-frames", type=int, default=8, help="Maximum run length in frames (0 = no limit)")
    det.add_argument("--max-segments", type=int, default=None, help="Cap on the number of ranges (perceptual only)")
    det.add_argument("--fps", type=str, default=None, help="Frame rate override, e.g. 30000/1001")
    det.add_argument("--ffmpeg", type=str, default="ffmpeg", help="Path to the ffmpeg binary")
    det.add_argument("--ffprobe", type=str, default="ffprobe", help="Path to the ffprobe binary")

    serve = sub.add_parser("serve", help="Launch the web API")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    serve.add_argument("--ffmpeg", type=str, default="ffmpeg", help="Path to the ffmpeg binary")
    serve.add_argument("--ffprobe", type=str, default="ffprobe", help="Path to the ffprobe binary")
    serve.add_argument("--max-jobs", type=int, default=100, help="Idle jobs kept before the oldest is dropped")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    setup_logging("DEBUG" if args.verbose else "INFO")

    if args.command == "serve":
        from framemend.web import create_app
        app = create_app(ffmpeg=args.ffmpeg, ffprobe=args.ffprobe, max_jobs=args.max_jobs)
        print(f"FrameMend API: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False)
        return

    if args.manifest:
        m = load_manifest(args.manifest)
    elif args.video:
        output = args.output or args.video.with_name(args.video.stem + "_ranges.json")
        m = Manifest(
            input=args.video,
            output=output,
            ffmpeg=args.ffmpeg,
            ffprobe=args.ffprobe,
            fps=args.fps,
            freeze_repair=FreezeRepairConfig(
                enabled=True,
                exact=args.exact,
                noise=args.noise,
                min_frames=args.min_frames,
                max_frames=args.max_frames,
                max_segments=args.max_segments,
            ),
        )
    else:
        print("Error: provide either a VIDEO argument or --manifest.", file=sys.stderr)
        sys.exit(1)

    def on_progress(stage: str, frac: float) -> None:
        print(f"  [{frac:3.0%}] {stage}")

    result = process(m, on_progress=on_progress)

    print()
    print(f"Done! Ranges: {result.output_path}")
    print(f"  Mode: {result.mode}")
    if result.fps:
        print(f"  Frame rate: {result.fps:.3f} fps")
    print(f"  Ranges found: {len(result.ranges)} ({result.frames_flagged} frames)")
    for r in result.ranges:
        print(f"    {r.start}-{r.end}")


if __name__ == "__main__":
    main()
