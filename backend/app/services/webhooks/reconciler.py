"""
Processing-complete webhook reconciliation

The remote worker reports job outcomes by POSTing to the processing-complete
webhook. This module authenticates those pushes and applies them to the job
registry. Redelivered or late payloads for finished jobs are accepted as
no-ops so the worker's retries never flip a terminal job. Deliveries that
arrive while the dispatch call for their job is still in flight are held and
applied once the job record exists.
"""

import json
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from app.core.exceptions import UnauthorizedError, ValidationError
from app.core.security_utils import InputValidator, WebhookSigner
from app.models.job import BackendType, Job, JobStatus
from app.services.jobs.registry import JobRegistry

logger = logging.getLogger(__name__)

STATUS_ALIASES = {
    "completed": JobStatus.COMPLETED,
    "success": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
    "processing": JobStatus.PROCESSING,
    "in_progress": JobStatus.PROCESSING,
}

MISSING_RESULT_DETAIL = "completed without result url"
DEFAULT_FAILURE_DETAIL = "external processing failed"


class WebhookOutcome(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"
    DEFERRED = "deferred"


@dataclass
class WebhookResult:
    outcome: WebhookOutcome
    job_id: str
    status: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "outcome": self.outcome.value,
            "jobId": self.job_id,
            "status": self.status,
            "message": self.message,
        }


def canonical_status(value: Any) -> JobStatus:
    status = STATUS_ALIASES.get(str(value).strip().lower())
    if status is None:
        raise ValidationError(f"Invalid status: {value}")
    return status


class WebhookReconciler:
    """Authenticates worker callbacks and applies them to the registry"""

    def __init__(self, registry: JobRegistry, secret: str = "", require_signature: bool = False):
        self.registry = registry
        self.signer = WebhookSigner(secret)
        self.require_signature = require_signature
        # Deliveries for jobs whose dispatch to the worker has not returned yet
        self._held: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def verify_signature(self, signature: Optional[str], raw_body: bytes) -> None:
        if not signature:
            if self.require_signature:
                logger.warning("Rejected unsigned webhook")
                raise UnauthorizedError("Missing webhook signature")
            return

        if not self.signer.configured:
            logger.warning("Rejected signed webhook: WEBHOOK_SECRET is not configured")
            raise UnauthorizedError("Webhook signature cannot be verified")

        if not self.signer.verify(raw_body, signature):
            logger.warning("Webhook signature mismatch")
            raise UnauthorizedError()

    @staticmethod
    def parse(raw_body: bytes) -> Dict[str, Any]:
        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            raise ValidationError("Webhook body must be a JSON object")
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body must be a JSON object")
        return payload

    def handle(
        self,
        signature: Optional[str],
        raw_body: bytes,
        payload: Optional[Dict[str, Any]] = None
    ) -> WebhookResult:
        """
        Apply one webhook delivery

        Args:
            signature: Value of the X-Signature header, if any
            raw_body: Request body exactly as received
            payload: Parsed body; parsed from raw_body when omitted

        Returns:
            WebhookResult describing what happened

        Raises:
            UnauthorizedError: Signature missing (when required), wrong, or
                unverifiable because no secret is configured
            ValidationError: Body is not JSON, or jobId/status missing or invalid
        """
        self.verify_signature(signature, raw_body)

        if payload is None:
            payload = self.parse(raw_body)

        job_id = payload.get("jobId")
        raw_status = payload.get("status")
        if not job_id or not raw_status:
            raise ValidationError("Missing required fields: jobId, status")
        job_id = str(job_id)

        job = self.registry.get(job_id)
        if job is None:
            if self._hold(job_id, payload):
                return WebhookResult(
                    WebhookOutcome.DEFERRED, job_id, message="Job dispatch in progress, delivery queued"
                )
            logger.warning(f"Webhook received for unknown job {job_id}")
            return WebhookResult(WebhookOutcome.NOT_FOUND, job_id, message="Job not found")

        return self._reconcile(job, payload)

    # Deliveries that race the dispatch call

    def expect(self, job_id: str) -> None:
        """Hold deliveries for job_id until release() or discard()"""
        with self._lock:
            self._held.setdefault(job_id, [])

    def release(self, job_id: str) -> Optional[Job]:
        """Apply deliveries held for a job that now exists. Returns the job afterwards."""
        with self._lock:
            held = self._held.pop(job_id, [])

        for payload in held:
            job = self.registry.get(job_id)
            if job is None:
                break
            try:
                self._reconcile(job, payload)
            except ValidationError as e:
                logger.warning(f"Dropped held webhook for job {job_id}: {e.message}")

        return self.registry.get(job_id)

    def discard(self, job_id: str) -> None:
        with self._lock:
            held = self._held.pop(job_id, None)
        if held:
            logger.warning(f"Discarded {len(held)} webhook(s) for job {job_id}: dispatch did not complete")

    def _hold(self, job_id: str, payload: Dict[str, Any]) -> bool:
        with self._lock:
            if job_id not in self._held:
                return False
            canonical_status(payload.get("status"))
            self._held[job_id].append(payload)
        logger.info(f"Holding webhook for job {job_id} until dispatch returns")
        return True

    def _reconcile(self, job: Job, payload: Dict[str, Any]) -> WebhookResult:
        job_id = job.id
        status = canonical_status(payload.get("status"))

        if job.backend == BackendType.LOCAL:
            logger.warning(f"Ignoring webhook for locally processed job {job_id}")
            return WebhookResult(
                WebhookOutcome.IGNORED, job_id, job.status.value, "Job is processed locally"
            )

        if job.is_terminal:
            logger.info(f"Ignoring webhook for finished job {job_id} ({job.status.value})")
            return WebhookResult(
                WebhookOutcome.DUPLICATE, job_id, job.status.value, "Job already finished"
            )

        updated = self._apply(job, status, payload)
        return WebhookResult(WebhookOutcome.ACCEPTED, job_id, updated.status.value, "Webhook processed")

    def _apply(self, job: Job, status: JobStatus, payload: Dict[str, Any]) -> Job:
        extra = self._auxiliary_fields(job, payload)

        if status == JobStatus.COMPLETED:
            audio_url = payload.get("audioUrl")
            if audio_url:
                logger.info(f"Remote job {job.id} completed: {audio_url}")
                return self.registry.set_completed(job.id, str(audio_url), **extra)
            logger.error(f"Remote job {job.id} reported completion without a result url")
            return self._fail(job.id, MISSING_RESULT_DETAIL, extra)

        if status == JobStatus.FAILED:
            detail = InputValidator.sanitize_string(payload.get("error") or DEFAULT_FAILURE_DETAIL)
            logger.error(f"Remote job {job.id} failed: {detail}")
            return self._fail(job.id, detail, extra)

        progress = payload.get("progress")
        try:
            progress = int(progress) if progress is not None else job.progress
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid progress: {progress}")

        if extra:
            self.registry.update(job.id, **extra)
        return self.registry.set_progress(job.id, progress)

    def _fail(self, job_id: str, detail: Any, extra: Dict[str, Any]) -> Job:
        if extra:
            self.registry.update(job_id, **extra)
        return self.registry.set_failed(job_id, detail)

    @staticmethod
    def _auxiliary_fields(job: Job, payload: Dict[str, Any]) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        processing_time = payload.get("processingTime")
        if processing_time is not None:
            try:
                fields["processing_time"] = float(processing_time)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid processingTime: {processing_time}")
        if payload.get("serviceType"):
            fields["service_type"] = str(payload["serviceType"])
        if payload.get("externalJobId"):
            fields["external_job_id"] = str(payload["externalJobId"])

        metadata = payload.get("metadata")
        if isinstance(metadata, dict):
            fields["metadata"] = {**(job.metadata or {}), **metadata}

        return fields
