"""In-memory detection jobs for the web API."""

import logging
import queue
import shutil
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

IDLE_STATUSES = ("ready", "done", "error")


@dataclass
class Job:
    id: str
    dir: Path
    input_path: Path
    filename: str
    status: str = "ready"
    error: str | None = None
    result: dict | None = None
    events: queue.Queue | None = None

    def to_dict(self) -> dict:
        resp = {"job_id": self.id, "status": self.status, "filename": self.filename}
        if self.status == "done":
            resp["result"] = self.result
        if self.status == "error":
            resp["error"] = self.error
        return resp


class JobStore:
    """Holds at most ``max_jobs`` jobs, evicting the oldest idle ones.

    A job is idle unless it is processing. Evicted jobs have their work
    directory removed; a running job is never evicted.
    """

    def __init__(self, work_dir: Path, max_jobs: int = 100):
        self.work_dir = Path(work_dir)
        self.max_jobs = max_jobs
        self._jobs: "OrderedDict[str, Job]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def new_job_dir(self) -> tuple[str, Path]:
        job_id = uuid.uuid4().hex[:12]
        job_dir = self.work_dir / job_id
        job_dir.mkdir(parents=True, exist_ok=True)
        return job_id, job_dir

    def add(self, job: Job) -> Job:
        with self._lock:
            self._jobs[job.id] = job
            self._evict(keep=job.id)
        return job

    def _evict(self, keep: str) -> None:
        while len(self._jobs) > self.max_jobs:
            victim = next(
                (j for j in self._jobs.values() if j.status in IDLE_STATUSES and j.id != keep), None
            )
            if victim is None:
                return
            del self._jobs[victim.id]
            logger.info("Evicting job %s (%s)", victim.id, victim.status)
            shutil.rmtree(victim.dir, ignore_errors=True)
