from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from app.models.job import Job, JobStatus
from app.services.jobs.progress import current_step, estimate_remaining, progress_message

STATUS_MESSAGES = {
    JobStatus.QUEUED: "Job queued for processing",
    JobStatus.PROCESSING: "Processing video...",
    JobStatus.COMPLETED: "Audio extraction completed successfully",
    JobStatus.FAILED: "Audio extraction failed",
}


class ExtractAudioRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sourceUrl: Optional[str] = None
    videoUrl: Optional[str] = None  # accepted from older clients
    backend: Optional[str] = None
    strictRemote: Optional[bool] = None

    @property
    def source(self) -> Optional[str]:
        return self.sourceUrl or self.videoUrl


class ExtractAudioResponse(BaseModel):
    success: bool = True
    jobId: str
    status: str
    message: str
    statusUrl: str
    downloadUrl: str
    backend: str
    externalProcessing: bool
    fallback: bool = False


class JobStatusResponse(BaseModel):
    jobId: str
    status: str
    progress: int
    createdAt: datetime
    updatedAt: datetime
    sourceUrl: str
    backend: str
    message: str
    fallback: bool = False
    externalJobId: Optional[str] = None

    # processing
    currentStep: Optional[str] = None
    progressMessage: Optional[str] = None
    estimatedCompletion: Optional[str] = None

    # completed
    audioUrl: Optional[str] = None
    downloadUrl: Optional[str] = None
    completedAt: Optional[datetime] = None
    processingTime: Optional[float] = None
    serviceType: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    # failed
    error: Optional[str] = None
    failedAt: Optional[datetime] = None
    retryUrl: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job, api_prefix: str = "", now: Optional[datetime] = None) -> "JobStatusResponse":
        response = cls(
            jobId=job.id,
            status=job.status.value,
            progress=job.progress,
            createdAt=job.created_at,
            updatedAt=job.updated_at,
            sourceUrl=job.source_url,
            backend=job.backend.value,
            message=STATUS_MESSAGES[job.status],
            fallback=job.fallback,
            externalJobId=job.external_job_id
        )

        if job.status in (JobStatus.QUEUED, JobStatus.PROCESSING):
            response.currentStep = current_step(job.progress)
            response.progressMessage = progress_message(job.progress)
            response.estimatedCompletion = estimate_remaining(job.progress, job.created_at, now)
        elif job.status == JobStatus.COMPLETED:
            response.audioUrl = job.result_url
            response.downloadUrl = f"{api_prefix}/download/{job.id}"
            response.completedAt = job.updated_at
            response.processingTime = job.processing_time
            response.serviceType = job.service_type
            response.metadata = job.metadata
        else:
            response.error = job.error_detail
            response.failedAt = job.updated_at
            response.retryUrl = f"{api_prefix}/extract-audio"

        return response


class WebhookResponse(BaseModel):
    success: bool = True
    outcome: str
    jobId: str
    status: Optional[str] = None
    message: str = ""
