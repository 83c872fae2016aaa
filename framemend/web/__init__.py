"""Flask application factory for the FrameMend web API."""

import tempfile
from pathlib import Path

from flask import Flask, jsonify

from framemend.web.jobs import JobStore


def create_app(
    work_dir: Path | None = None,
    ffmpeg: str = "ffmpeg",
    ffprobe: str = "ffprobe",
    max_jobs: int = 100,
) -> Flask:
    """Build the API app. Jobs and their ranges files live under ``work_dir``."""
    app = Flask(__name__)
    work_dir = Path(work_dir or tempfile.mkdtemp(prefix="framemend_"))
    app.config["MAX_CONTENT_LENGTH"] = 10 * 1024 * 1024 * 1024  # 10 GB
    app.config["FFMPEG"] = ffmpeg
    app.config["FFPROBE"] = ffprobe
    app.extensions["framemend_jobs"] = JobStore(work_dir, max_jobs=max_jobs)

    from framemend.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(413)
    def request_entity_too_large(error):
        return jsonify({"error": "Video too large to upload; submit its path instead"}), 413

    return app
