"""Web API routes for FrameMend."""

import json
import logging
import queue
import re
import threading
from pathlib import Path

from flask import Blueprint, Response, current_app, jsonify, request

from framemend.engine import process
from framemend.ffutil import FFmpegNotFoundError, ProcessError
from framemend.manifest import FreezeRepairConfig, Manifest
from framemend.web.jobs import IDLE_STATUSES, Job, JobStore

logger = logging.getLogger(__name__)
ffmpeg_logger = logging.getLogger("framemend.ffmpeg")

bp = Blueprint("web", __name__)

EVENT_TIMEOUT = 120

# framemd5 data: "stream, dts, pts, duration, size, hash"
_FRAMEMD5_DATA = re.compile(r"^\d+,\s*-?\d+,")


def _store() -> JobStore:
    return current_app.extensions["framemend_jobs"]


def _optional_int(value) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _is_diagnostic(line: str) -> bool:
    """True for ffmpeg log lines; False for blank, header and framemd5 data lines."""
    if not line or line.startswith("#"):
        return False
    return _FRAMEMD5_DATA.match(line) is None


def _build_manifest(job: Job, config: dict) -> Manifest:
    fr = config.get("freeze_repair", {})
    fps = config.get("fps")
    return Manifest(
        input=job.input_path,
        output=job.dir / "ranges.json",
        ffmpeg=current_app.config["FFMPEG"],
        ffprobe=current_app.config["FFPROBE"],
        fps=str(fps) if fps is not None else None,
        freeze_repair=FreezeRepairConfig(
            enabled=True,
            exact=bool(fr.get("exact", False)),
            noise=float(fr.get("noise", 0.003)),
            min_frames=int(fr.get("min_frames", 2)),
            max_frames=int(fr.get("max_frames", 8)),
            max_segments=_optional_int(fr.get("max_segments")),
        ),
    )


@bp.route("/api/upload", methods=["POST"])
def upload():
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400

    f = request.files["file"]
    if not f.filename:
        return jsonify({"error": "Empty filename"}), 400

    store = _store()
    job_id, job_dir = store.new_job_dir()
    input_path = job_dir / f"input{Path(f.filename).suffix or '.mp4'}"
    f.save(input_path)

    job = store.add(Job(id=job_id, dir=job_dir, input_path=input_path, filename=f.filename))
    return jsonify(job.to_dict())


@bp.route("/api/jobs", methods=["POST"])
def create_job():
    """Register a video already on the server's disk, without uploading it."""
    body = request.get_json(silent=True) or {}
    raw = body.get("input")
    if not raw:
        return jsonify({"error": "Missing 'input' path"}), 400

    input_path = Path(raw)
    if not input_path.is_file():
        return jsonify({"error": f"No such file: {input_path}"}), 400

    store = _store()
    job_id, job_dir = store.new_job_dir()
    job = store.add(Job(id=job_id, dir=job_dir, input_path=input_path, filename=input_path.name))
    return jsonify(job.to_dict()), 201


@bp.route("/api/jobs/<job_id>/detect", methods=["POST"])
def start_detect(job_id: str):
    job = _store().get(job_id)
    if job is None:
        return jsonify({"error": "Job not found"}), 404
    if job.status not in IDLE_STATUSES:
        return jsonify({"error": f"Job is already {job.status}"}), 409

    try:
        manifest = _build_manifest(job, request.get_json(silent=True) or {})
    except (TypeError, ValueError, AttributeError) as e:
        return jsonify({"error": f"Invalid options: {e}"}), 400

    events: queue.Queue = queue.Queue()
    job.events = events
    job.status = "processing"
    job.error = None
    job.result = None

    def on_progress(stage: str, frac: float):
        events.put({"stage": stage, "progress": round(frac, 3)})

    def on_line(line: str):
        ffmpeg_logger.debug(line)
        if _is_diagnostic(line):
            events.put({"log": line})

    def run():
        try:
            result = process(manifest, on_progress=on_progress, on_line=on_line)
            job.result = {
                "input": str(manifest.input),
                "mode": result.mode,
                "fps": result.fps,
                "ranges": [r.to_list() for r in result.ranges],
                "frames_flagged": result.frames_flagged,
            }
            job.status = "done"
        except ProcessError as e:
            job.status = "error"
            job.error = f"ffmpeg failed: {e}"
        except FFmpegNotFoundError as e:
            job.status = "error"
            job.error = str(e)
        except Exception as e:
            logger.exception("Detection job %s failed", job_id)
            job.status = "error"
            job.error = str(e)
        finally:
            events.put(None)  # sentinel

    threading.Thread(target=run, daemon=True).start()
    return jsonify({"job_id": job_id, "status": "started"}), 202


@bp.route("/api/jobs/<job_id>/events")
def event_stream(job_id: str):
    """Server-sent events: stage progress, ffmpeg diagnostics, then the outcome."""
    job = _store().get(job_id)
    if job is None:
        return jsonify({"error": "Job not found"}), 404
    if job.events is None:
        return jsonify({"error": "No detection has been started"}), 409

    events = job.events

    def generate():
        while True:
            try:
                msg = events.get(timeout=EVENT_TIMEOUT)
            except queue.Empty:
                yield "data: {\"error\": \"timeout\"}\n\n"
                break
            if msg is None:
                if job.status == "error":
                    data = json.dumps({"error": job.error})
                else:
                    data = json.dumps({"stage": "complete", "progress": 1.0, "result": job.result})
                yield f"data: {data}\n\n"
                break
            yield f"data: {json.dumps(msg)}\n\n"

    return Response(generate(), mimetype="text/event-stream")


@bp.route("/api/jobs/<job_id>")
def job_status(job_id: str):
    job = _store().get(job_id)
    if job is None:
        return jsonify({"error": "Job not found"}), 404
    return jsonify(job.to_dict())


@bp.route("/api/jobs/<job_id>/ranges")
def job_ranges(job_id: str):
    """The repair ranges of a finished job, in the same shape as the ranges file."""
    job = _store().get(job_id)
    if job is None:
        return jsonify({"error": "Job not found"}), 404
    if job.status != "done":
        return jsonify({"error": f"Job is {job.status}", "status": job.status}), 409

    return jsonify({k: job.result[k] for k in ("input", "mode", "fps", "ranges")})
