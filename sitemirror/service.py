"""
Mirror Service
==============
Job-level façade for any outer surface (CLI, HTTP layer, UI).

- ``submit``  validates the request (``ValidationError`` before any job
              exists), registers a ``queued`` job, and starts its run on a
              dedicated worker thread with its own event loop
- ``get_job`` / ``list_jobs`` return snapshots
- ``cancel_job`` asks a running job to stop at its next page
- ``delete_job`` cancels if needed, then removes the record and its archive

Multiple jobs run concurrently, each with its own browser and output
directory; the shared ``JobStore`` serialises their writes.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, List, Mapping, Optional, Union

from .archiver import ZipArchiver
from .engine import MirrorEngine
from .errors import JobNotFound
from .job_store import JobStore
from .models import AuthDescriptor, CrawlRequest, Job, JobStatus, ProxyDescriptor
from .renderer import RendererFactory
from .run_config import MirrorRunConfig

logger = logging.getLogger(__name__)

PROXY_ENV_VAR = "PROXY_TARGET"


class MirrorService:
    """
    Usage::

        service = MirrorService(MirrorRunConfig(output_root="downloads"))
        job_id = service.submit("https://example.com/")
        service.wait(job_id)
        print(service.get_job(job_id).to_dict())
    """

    def __init__(
        self,
        config: Optional[MirrorRunConfig] = None,
        store: Optional[JobStore] = None,
        renderer_factory: Optional[RendererFactory] = None,
        archiver: Optional[ZipArchiver] = None,
        engine: Optional[MirrorEngine] = None,
    ):
        self.config = config if config is not None else MirrorRunConfig()
        self.store = store if store is not None else JobStore(output_root=self.config.output_root)
        self.engine = engine if engine is not None else MirrorEngine(
            self.store,
            config=self.config,
            renderer_factory=renderer_factory,
            archiver=archiver,
        )
        self._threads: Dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def build_request(
        self,
        url: Optional[str],
        auth: Union[None, AuthDescriptor, Mapping[str, Any]] = None,
        proxy: Union[None, str, ProxyDescriptor] = None,
    ) -> CrawlRequest:
        """Validate raw inputs; falls back to ``$PROXY_TARGET`` when no proxy is given."""
        if proxy is None:
            proxy = os.environ.get(PROXY_ENV_VAR) or None
        return CrawlRequest.build(url, auth=auth, proxy=proxy)

    def submit(
        self,
        url: Optional[str],
        auth: Union[None, AuthDescriptor, Mapping[str, Any]] = None,
        proxy: Union[None, str, ProxyDescriptor] = None,
        background: bool = True,
    ) -> str:
        """Create a job and start it.

        Returns:
            The new job identifier.

        Raises:
            ValidationError: malformed URL / auth / proxy (no job is created).
        """
        request = self.build_request(url, auth=auth, proxy=proxy)
        job_id = self.store.create(request.url)

        if not background:
            self.engine.run_sync(job_id, request)
            return job_id

        thread = threading.Thread(
            target=self.engine.run_sync,
            args=(job_id, request),
            name=f"mirror-{job_id[:8]}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads[job_id] = thread
        thread.start()
        return job_id

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Block until the job's worker thread finishes (or *timeout* elapses)."""
        with self._threads_lock:
            thread = self._threads.get(job_id)
        if thread is not None:
            thread.join(timeout)
            if not thread.is_alive():
                with self._threads_lock:
                    self._threads.pop(job_id, None)
        return self.store.get(job_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Job:
        return self.store.get(job_id)

    def list_jobs(self) -> List[Job]:
        return self.store.list()

    def archive_path(self, job_id: str) -> str:
        """Path of a completed job's archive.

        Raises:
            JobNotFound: unknown job, job not completed, or archive missing on disk.
        """
        job = self.store.get(job_id)
        if job.status != JobStatus.COMPLETED or not job.archive_path:
            raise JobNotFound(job_id)
        if not os.path.exists(job.archive_path):
            raise JobNotFound(job_id)
        return job.archive_path

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def cancel_job(self, job_id: str) -> bool:
        return self.store.request_cancel(job_id)

    def delete_job(self, job_id: str) -> Job:
        """Delete a job; a running job is asked to stop first."""
        job = self.store.get(job_id)
        if not job.status.is_terminal:
            self.store.request_cancel(job_id)
        with self._threads_lock:
            self._threads.pop(job_id, None)
        return self.store.delete(job_id)
