"""In-memory job store for background clip renders, with TTL cleanup.

WHY: A render takes from several seconds to minutes. Callers that cannot
hold a request open that long submit a job, get its id back immediately,
and poll for status, progress and the final URL. A single worker process
has no persistence requirements, so an in-memory store is sufficient.

HOW: Three components work together:
  JobStatus: enum of valid job states
  Job: dataclass holding the request, status, progress and result
  JobStore: thread-safe dict-based store with create/update/get/delete
    and TTL cleanup of finished jobs

RULES:
- All store mutations are protected by threading.Lock
- Job IDs are UUID4 hex strings generated at creation time
- TTL-based expiry only removes terminal jobs (completed, failed)
- progress_percent never decreases
- The pipeline owns its temp files; the store holds no files
"""

from __future__ import annotations

import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Default time-to-live for completed/failed jobs (seconds)
DEFAULT_TTL_SECONDS = 3600


class JobStatus(str, enum.Enum):
    """Valid states for a clip job.

    RULES:
    - pending: job created, not yet started
    - downloading / analyzing / captioning / rendering / publishing: the
      pipeline stage currently running (values match PipelineStage)
    - completed: clip published, url set
    - failed: unrecoverable error at any stage, error set
    """

    PENDING = "pending"
    DOWNLOADING = "downloading"
    ANALYZING = "analyzing"
    CAPTIONING = "captioning"
    RENDERING = "rendering"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class Job:
    """State for a single clip job.

    RULES:
    - id: UUID4 hex, unique and immutable after creation
    - job_ref: the caller's own job id (used in the object name)
    - progress_percent: last published global percentage (0-100)
    - url: public URL once completed
    - error: message if status is FAILED, else None
    """

    id: str
    job_ref: str
    status: JobStatus
    created_at: float
    updated_at: float
    completed_at: Optional[float] = None
    progress_percent: float = 0.0
    progress_stage: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)


class JobStore:
    """Thread-safe in-memory store for clip jobs.

    RULES:
    - get_job() returns None for missing ids (no exceptions)
    - create_job() raises ValueError once max_jobs are stored
    - update_job() only applies non-None arguments
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_jobs: int = 100,
    ) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_jobs = max_jobs

    def create_job(self, job_ref: str, config: Optional[Dict[str, Any]] = None) -> Job:
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                raise ValueError(
                    "Maximum number of concurrent jobs ({}) reached".format(self.max_jobs)
                )
            now = time.time()
            job = Job(
                id=uuid.uuid4().hex,
                job_ref=job_ref,
                status=JobStatus.PENDING,
                created_at=now,
                updated_at=now,
                config=config or {},
            )
            self._jobs[job.id] = job

        logger.info("Created job %s for %s", job.id, job_ref)
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> List[Job]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at)

    def update_job(
        self,
        job_id: str,
        status: Optional[JobStatus] = None,
        error: Optional[str] = None,
        progress_percent: Optional[float] = None,
        progress_stage: Optional[str] = None,
        url: Optional[str] = None,
    ) -> Optional[Job]:
        """Update a job's mutable fields.

        HOW: Acquires the lock, applies non-None updates, bumps updated_at,
        and sets completed_at when the job reaches a terminal state.

        RULES:
        - Returns the updated Job, or None if job_id not found
        - A lower progress_percent than the stored one is ignored
        - A completed job reports 100 percent
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            now = time.time()
            if status is not None:
                job.status = status
            if error is not None:
                job.error = error
            if progress_percent is not None and progress_percent > job.progress_percent:
                job.progress_percent = progress_percent
            if progress_stage is not None:
                job.progress_stage = progress_stage
            if url is not None:
                job.url = url

            job.updated_at = now
            if job.status is JobStatus.COMPLETED:
                job.progress_percent = 100.0
            if job.status.is_terminal:
                job.completed_at = now
            return job

    def delete_job(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        logger.info("Deleted job %s", job_id)
        return True

    def cleanup_expired(self) -> int:
        """Remove terminal jobs whose completed_at is older than the TTL."""
        now = time.time()
        expired: List[Job] = []

        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if not job.status.is_terminal or job.completed_at is None:
                    continue
                if now - job.completed_at > self._ttl_seconds:
                    expired.append(self._jobs.pop(job_id))

        for job in expired:
            logger.info("Expired job %s (completed %.0fs ago)", job.id, now - job.completed_at)
        return len(expired)
