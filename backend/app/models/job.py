from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Position of each status along the only permitted path
STATUS_ORDER = {
    JobStatus.QUEUED: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


class BackendType(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass
class Job:
    id: str
    source_url: str
    backend: BackendType
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    external_job_id: Optional[str] = None
    result_url: Optional[str] = None
    error_detail: Optional[str] = None
    submitted_at: Optional[datetime] = None
    processing_time: Optional[float] = None
    service_type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    fallback: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    # Fields fixed at creation
    IMMUTABLE_FIELDS = ("id", "source_url", "backend", "created_at")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

