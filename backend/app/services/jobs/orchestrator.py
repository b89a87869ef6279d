"""
Job orchestration

Entry point for job submission and the read side of the API. Submission
validates the source, picks a backend, creates the job record and starts the
work: a background task for local jobs, an HTTP hand-off for remote ones.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Set

import aiohttp

from app.core.exceptions import (
    ArtifactUnavailableError,
    InternalError,
    JobNotFoundError,
    JobNotReadyError,
    ValidationError
)
from app.core.http_client import StreamedBody, UnifiedHTTPClient
from app.core.security_utils import InputValidator
from app.models.job import BackendType, Job, JobStatus
from app.services.jobs.registry import JobRegistry
from app.services.processing.delegation import RemoteDelegate
from app.services.processing.local_engine import LocalEngine
from app.services.processing.selector import BackendSelector
from app.services.sources.resolver import SUPPORTED_DOMAINS, SourceResolver
from app.services.webhooks.reconciler import WebhookReconciler

logger = logging.getLogger(__name__)


@dataclass
class Submission:
    job: Job
    fallback: bool = False

    @property
    def external_processing(self) -> bool:
        return self.job.backend == BackendType.REMOTE


class JobOrchestrator:
    """Creates jobs, dispatches them to a backend and serves job reads"""

    def __init__(
        self,
        registry: JobRegistry,
        resolver: SourceResolver,
        selector: BackendSelector,
        local_engine: LocalEngine,
        remote: Optional[RemoteDelegate] = None,
        http_client: Optional[UnifiedHTTPClient] = None,
        reconciler: Optional[WebhookReconciler] = None
    ):
        self.registry = registry
        self.resolver = resolver
        self.selector = selector
        self.local_engine = local_engine
        self.remote = remote
        self.http_client = http_client
        self.reconciler = reconciler
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active_runs(self) -> int:
        return len(self._tasks)

    def validate_source(self, source_url: Optional[str]) -> str:
        if not source_url or not str(source_url).strip():
            raise ValidationError("sourceUrl is required")

        source_url = str(source_url).strip()
        if not self.resolver.is_well_formed_url(source_url):
            raise ValidationError("Invalid URL format")

        if not self.resolver.is_supported_source(source_url):
            raise ValidationError(
                "Unsupported video source. Supported sources: "
                f"{', '.join(SUPPORTED_DOMAINS)} or direct video file links"
            )

        return source_url

    async def submit(
        self,
        source_url: Optional[str],
        backend: Optional[str] = None,
        strict_remote: Optional[bool] = None
    ) -> Submission:
        """
        Create a job and start processing it

        Args:
            source_url: Video URL submitted by the client
            backend: Optional explicit backend ("local" or "remote")
            strict_remote: Override of the configured strict-remote mode

        Returns:
            Submission with the created job and whether it fell back to local

        Raises:
            ValidationError: Missing, malformed or unsupported source URL
            ConfigurationError: Strict remote mode without a remote worker
            DelegationUnavailable, AuthError, RequestTimeoutError: Remote
                submission failed in strict remote mode; no job is created
        """
        source_url = self.validate_source(source_url)
        choice = self.selector.choose(backend, strict_remote)

        # The id exists before the record so the remote worker can be told about it
        job_id = str(uuid.uuid4())
        fallback = False

        if choice == BackendType.REMOTE and self.remote is not None:
            # The worker may call back before dispatch returns
            if self.reconciler is not None:
                self.reconciler.expect(job_id)
            try:
                receipt = await self.remote.dispatch(job_id, source_url)
            except Exception as e:
                if not self.selector.should_fall_back(e, strict_remote):
                    raise
                logger.warning(f"Remote processing unavailable for job {job_id}, falling back to local: {e}")
                fallback = True
            else:
                self.registry.create(job_id, source_url, BackendType.REMOTE)
                job = self.registry.mark_delegated(
                    job_id,
                    receipt.external_job_id,
                    submitted_at=receipt.submitted_at,
                    service_type=receipt.service_type
                )
                if self.reconciler is not None:
                    job = self.reconciler.release(job_id) or job
                return Submission(job=job)
            finally:
                if self.reconciler is not None:
                    self.reconciler.discard(job_id)

        job = self.registry.create(job_id, source_url, BackendType.LOCAL, fallback=fallback)
        self._start_local(job)
        return Submission(job=job, fallback=fallback)

    def _start_local(self, job: Job) -> None:
        task = asyncio.create_task(self.local_engine.run(job.id, job.source_url), name=f"job-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def join(self) -> None:
        """Wait for every running local job to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def drain(self) -> None:
        """Cancel outstanding local runs; used at shutdown"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running job(s)")

    # Reads

    def get_job(self, job_id: str) -> Job:
        if not InputValidator.validate_job_id(job_id):
            raise ValidationError("Invalid job ID format")
        job = self.registry.get(job_id)
        if job is None:
            raise JobNotFoundError()
        return job

    def delete_job(self, job_id: str) -> None:
        if not InputValidator.validate_job_id(job_id) or not self.registry.delete(job_id):
            raise JobNotFoundError()

    def completed_job(self, job_id: str) -> Job:
        job = self.get_job(job_id)

        if job.status != JobStatus.COMPLETED:
            raise JobNotReadyError(
                f"Job is {job.status.value}, audio is not available yet",
                job_status=job.status.value,
                progress=job.progress
            )

        if not job.result_url:
            logger.error(f"Completed job {job_id} has no result url")
            raise InternalError("Audio file URL not found")

        return job

    async def open_result(self, job_id: str) -> StreamedBody:
        """Open the stored artifact of a completed job for relaying to the client"""
        job = self.completed_job(job_id)

        if self.http_client is None:
            raise ArtifactUnavailableError()

        try:
            body = await self.http_client.open_stream(job.result_url)
        except aiohttp.ClientResponseError as e:
            logger.error(f"Storage returned {e.status} for job {job_id}")
            if e.status in (403, 404):
                raise ArtifactUnavailableError(
                    "Audio file not found in storage" if e.status == 404 else "Access to audio file denied",
                    status_code=e.status
                )
            raise ArtifactUnavailableError()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Failed to retrieve audio for job {job_id}: {e}")
            raise ArtifactUnavailableError()

        body.metadata["job_id"] = job.id
        return body
