# vidq/models/store.py
import threading
from dataclasses import replace
from pathlib import Path

from ..errors import JobStateError
from .job import Job, JobStatus, can_transition
from .media import ProgressSnapshot


class JobStore:
    """Ordered, thread-safe collection of Job records.

    Readers always get copies so a job observed on another thread never
    changes underneath them. Status changes are checked against the job
    state machine here, whoever the caller is.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._jobs: list[Job] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _find(self, job_id: str) -> Job:
        for job in self._jobs:
            if job.id == job_id:
                return job
        raise KeyError(job_id)

    def add(self, job: Job) -> Job:
        with self._lock:
            self._jobs.append(job)
            return replace(job)

    def get(self, job_id: str) -> Job:
        with self._lock:
            return replace(self._find(job_id))

    def all(self) -> list[Job]:
        with self._lock:
            return [replace(j) for j in self._jobs]

    def first_pending(self) -> Job | None:
        with self._lock:
            for job in self._jobs:
                if job.status is JobStatus.PENDING:
                    return replace(job)
            return None

    def pending_ids(self) -> list[str]:
        with self._lock:
            return [j.id for j in self._jobs if j.status is JobStatus.PENDING]

    def live_for_source(self, source: Path) -> Job | None:
        with self._lock:
            for job in self._jobs:
                if job.source == source and job.status.is_live:
                    return replace(job)
            return None

    def transition(self, job_id: str, status: JobStatus, **changes) -> Job:
        with self._lock:
            job = self._find(job_id)
            if not can_transition(job.status, status):
                raise JobStateError(f"Job {job_id}: {job.status.value} -> {status.value} is not allowed")
            if "compressed_size" in changes and status is not JobStatus.COMPLETED:
                raise JobStateError("compressed_size is only recorded for completed jobs")
            job.status = status
            for key, value in changes.items():
                setattr(job, key, value)
            return replace(job)

    def set_progress(self, job_id: str, snapshot: ProgressSnapshot) -> Job | None:
        """Attach a snapshot; returns None (and drops it) unless the job is processing."""
        with self._lock:
            job = self._find(job_id)
            if job.status is not JobStatus.PROCESSING:
                return None
            job.progress = snapshot
            return replace(job)

    def remove(self, job_id: str) -> Job:
        with self._lock:
            job = self._find(job_id)
            if job.status is not JobStatus.PENDING:
                raise JobStateError(f"Job {job_id} is {job.status.value}; only pending jobs can be removed")
            self._jobs.remove(job)
            return job

    def remove_finished(self) -> list[str]:
        with self._lock:
            gone = [j.id for j in self._jobs if j.status.is_terminal]
            self._jobs = [j for j in self._jobs if not j.status.is_terminal]
            return gone
