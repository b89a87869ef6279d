"""
In-memory job registry

Transient, single-process store of job records. Every operation is atomic
under one lock and returns a snapshot copy, so callers never hold a live
record. The status helpers are the only way job state should change; they
enforce the lifecycle rules:

- status moves forward only: queued -> processing -> completed | failed
- completed and failed are terminal
- progress never decreases while processing, is 100 on completion and 0 on failure
- result_url is set only on completed jobs, error_detail only on failed jobs
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from app.models.job import BackendType, Job, JobStatus, STATUS_ORDER, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(hours=24)


class JobRegistry:
    """Thread-safe transient store of job records"""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def create(self, job_id: str, source_url: str, backend: BackendType, **fields: Any) -> Job:
        """Create a queued job. Raises ValueError if the id is already taken."""
        with self._lock:
            if job_id in self._jobs:
                raise ValueError(f"Job {job_id} already exists")

            now = utcnow()
            job = Job(
                id=job_id,
                source_url=source_url,
                backend=BackendType(backend),
                created_at=now,
                updated_at=now,
                **fields
            )
            self._jobs[job_id] = job
            logger.info(f"Created job {job_id} ({job.backend.value}) for {source_url}")
            return replace(job)

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    def list(self) -> List[Job]:
        with self._lock:
            return [replace(job) for job in self._jobs.values()]

    def update(self, job_id: str, **fields: Any) -> Optional[Job]:
        """
        Merge fields into a job and refresh updated_at.

        Returns None for unknown ids instead of raising. Attempts to change
        an immutable field raise ValueError.
        """
        for name in fields:
            if name in Job.IMMUTABLE_FIELDS:
                raise ValueError(f"Job field '{name}' is immutable")
            if name == "updated_at" or name not in Job.__dataclass_fields__:
                raise ValueError(f"Unknown job field '{name}'")

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            updated = replace(job, **fields, updated_at=utcnow())
            self._jobs[job_id] = updated
            return replace(updated)

    def delete(self, job_id: str) -> bool:
        with self._lock:
            removed = self._jobs.pop(job_id, None) is not None
        if removed:
            logger.info(f"Deleted job {job_id}")
        return removed

    def sweep(self, max_age: timedelta = DEFAULT_MAX_AGE, now: Optional[datetime] = None) -> int:
        """Remove jobs created more than max_age ago. Returns how many were removed."""
        now = now or utcnow()
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if now - job.created_at > max_age
            ]
            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            logger.info(f"Swept {len(expired)} expired job(s)")
        return len(expired)

    # Status helpers

    def _transition(self, job_id: str, target: JobStatus, **fields: Any) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            if job.is_terminal:
                logger.debug(f"Ignoring {target.value} for terminal job {job_id} ({job.status.value})")
                return replace(job)

            if STATUS_ORDER[target] < STATUS_ORDER[job.status]:
                logger.debug(f"Ignoring backwards transition {job.status.value} -> {target.value} for job {job_id}")
                return replace(job)

            if job.status != target:
                logger.info(f"Job {job_id}: {job.status.value} -> {target.value}")

            return self.update(job_id, status=target, **fields)

    def set_processing(self, job_id: str) -> Optional[Job]:
        return self._transition(job_id, JobStatus.PROCESSING)

    def set_progress(self, job_id: str, progress: int) -> Optional[Job]:
        """Record progress; a queued job becomes processing. Lower values are ignored."""
        progress = max(0, min(100, int(progress)))
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if job.is_terminal:
                return replace(job)
            return self._transition(job_id, JobStatus.PROCESSING, progress=max(job.progress, progress))

    def set_completed(self, job_id: str, result_url: str, **extra: Any) -> Optional[Job]:
        if not result_url:
            raise ValueError("A completed job requires a result url")
        return self._transition(
            job_id,
            JobStatus.COMPLETED,
            result_url=result_url,
            error_detail=None,
            progress=100,
            **extra
        )

    def set_failed(self, job_id: str, detail: Any) -> Optional[Job]:
        message = str(detail) if detail else "Processing failed"
        return self._transition(
            job_id,
            JobStatus.FAILED,
            error_detail=message,
            result_url=None,
            progress=0
        )

    def mark_delegated(
        self,
        job_id: str,
        external_job_id: Optional[str],
        submitted_at: Optional[datetime] = None,
        service_type: Optional[str] = None
    ) -> Optional[Job]:
        """Record that the remote worker accepted the job. Status stays queued."""
        return self.update(
            job_id,
            external_job_id=external_job_id,
            submitted_at=submitted_at or utcnow(),
            service_type=service_type
        )
