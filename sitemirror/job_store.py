"""
Job Store
=========
Thread-safe registry of mirror jobs keyed by identifier.

The store is injected into the engine (never a module-level singleton).
Every read returns a snapshot; every mutation is a single-field update
serialised by one lock, so concurrent readers never observe a torn write
and concurrent job runs never corrupt each other's records.

Lifecycle rules enforced here:
    - progress is clamped to 0..100 and never decreases
    - once a job is terminal (completed / failed / cancelled) it is frozen
    - at most one engine run may hold a job at a time (``claim_run``)
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Set

from .errors import JobConflict, JobNotFound
from .models import Job, JobStatus, LogEntry, utc_now

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
}


class JobStore:
    """In-memory job registry.

    Usage::

        store = JobStore(output_root="downloads")
        job_id = store.create("https://example.com/")
        store.append_log(job_id, "Starting scrape")
        snapshot = store.get(job_id)
    """

    def __init__(self, output_root: str = "downloads"):
        self.output_root = Path(output_root)
        self._jobs: Dict[str, Job] = {}
        self._active_runs: Set[str] = set()
        self._cancel_requested: Set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    def create(self, url: str, job_id: Optional[str] = None) -> str:
        """Register a new ``queued`` job and return its identifier."""
        job_id = job_id or str(uuid.uuid4())
        job = Job(
            id=job_id,
            url=url,
            output_dir=str(self.output_root / job_id),
        )
        with self._lock:
            if job_id in self._jobs:
                raise JobConflict(f"Job already exists: {job_id}")
            self._jobs[job_id] = job
        logger.info(f"[JOB] Created {job_id} for {url}")
        return job_id

    def get(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            return job.snapshot()

    def list(self) -> List[Job]:
        """All jobs in creation order."""
        with self._lock:
            return [job.snapshot() for job in self._jobs.values()]

    def delete(self, job_id: str) -> Job:
        """Remove a job and its archive file. The output directory is kept."""
        with self._lock:
            job = self._jobs.pop(job_id, None)
            if job is None:
                raise JobNotFound(job_id)
            self._cancel_requested.discard(job_id)

        if job.archive_path and os.path.exists(job.archive_path):
            os.remove(job.archive_path)
            logger.info(f"[JOB] Removed archive {job.archive_path}")
        logger.info(f"[JOB] Deleted {job_id}")
        return job

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    # ------------------------------------------------------------------
    # Mutation primitives (engine-side)
    #
    # Each returns False instead of raising when the job has been deleted
    # or is already terminal, so a run racing a delete never crashes.
    # ------------------------------------------------------------------

    def set_status(self, job_id: str, status: JobStatus, error: Optional[str] = None) -> bool:
        with self._lock:
            job = self._mutable(job_id)
            if job is None:
                return False
            if status != job.status and status not in _ALLOWED_TRANSITIONS.get(job.status, set()):
                logger.warning(
                    f"[JOB] {job_id}: illegal transition {job.status.value} -> {status.value}"
                )
                return False
            job.status = status
            if status == JobStatus.COMPLETED:
                # 100 is only ever observed together with ``completed``
                job.progress = 100
            if error is not None:
                job.error = error
            job.updated_at = utc_now()
            return True

    def set_progress(self, job_id: str, progress: int) -> bool:
        progress = max(0, min(100, int(progress)))
        with self._lock:
            job = self._mutable(job_id)
            if job is None:
                return False
            if progress > job.progress:
                job.progress = progress
                job.updated_at = utc_now()
            return True

    def append_log(self, job_id: str, message: str) -> bool:
        entry = LogEntry(timestamp=utc_now(), message=message)
        with self._lock:
            job = self._mutable(job_id)
            if job is None:
                return False
            job.logs = job.logs + (entry,)
            job.updated_at = entry.timestamp
        logger.info(f"[{job_id}] {message}")
        return True

    def set_archive(self, job_id: str, archive_path: str) -> bool:
        with self._lock:
            job = self._mutable(job_id)
            if job is None:
                return False
            job.archive_path = archive_path
            job.updated_at = utc_now()
            return True

    # ------------------------------------------------------------------
    # Run ownership and cancellation
    # ------------------------------------------------------------------

    def claim_run(self, job_id: str) -> None:
        """Mark *job_id* as held by an engine run.

        Raises:
            JobNotFound: unknown job.
            JobConflict: another run already holds the job, or it is terminal.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            if job_id in self._active_runs:
                raise JobConflict(f"Job {job_id} is already running")
            if job.status.is_terminal:
                raise JobConflict(f"Job {job_id} is already {job.status.value}")
            self._active_runs.add(job_id)

    def release_run(self, job_id: str) -> None:
        with self._lock:
            self._active_runs.discard(job_id)

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._active_runs

    def request_cancel(self, job_id: str) -> bool:
        """Ask the active run to stop at its next loop iteration."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            if job.status.is_terminal:
                return False
            self._cancel_requested.add(job_id)
        logger.info(f"[JOB] Cancellation requested for {job_id}")
        return True

    def is_cancel_requested(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._cancel_requested or job_id not in self._jobs

    def handle(self, job_id: str) -> "JobHandle":
        if job_id not in self:
            raise JobNotFound(job_id)
        return JobHandle(self, job_id)

    # ------------------------------------------------------------------

    def _mutable(self, job_id: str) -> Optional[Job]:
        """Return the live record if it may still be mutated. Caller holds the lock."""
        job = self._jobs.get(job_id)
        if job is None:
            logger.debug(f"[JOB] Ignoring update for unknown job {job_id}")
            return None
        if job.status.is_terminal:
            logger.debug(f"[JOB] Ignoring update for terminal job {job_id}")
            return None
        return job


class JobHandle:
    """Mutation handle for one job, held by the engine for the length of a run."""

    def __init__(self, store: JobStore, job_id: str):
        self.store = store
        self.job_id = job_id

    def log(self, message: str) -> None:
        self.store.append_log(self.job_id, message)

    def progress(self, value: int) -> None:
        self.store.set_progress(self.job_id, value)

    def status(self, status: JobStatus, error: Optional[str] = None) -> bool:
        return self.store.set_status(self.job_id, status, error=error)

    def archive(self, path: str) -> bool:
        return self.store.set_archive(self.job_id, path)

    @property
    def cancel_requested(self) -> bool:
        return self.store.is_cancel_requested(self.job_id)

    def snapshot(self) -> Job:
        return self.store.get(self.job_id)
