"""
Remote processing delegation

Submits jobs to an external processing worker over HTTP. The worker accepts
the job, processes it on its own schedule and reports back through the
processing-complete webhook.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential
)

from app.core.config import Settings
from app.core.exceptions import (
    AuthError,
    ConfigurationError,
    DelegationUnavailable,
    RequestTimeoutError
)
from app.core.http_client import UnifiedHTTPClient
from app.models.job import utcnow

logger = logging.getLogger(__name__)


@dataclass
class DelegationReceipt:
    """What the remote worker told us when it accepted a job"""
    external_job_id: str
    submitted_at: datetime
    service_type: str


class RemoteServerError(Exception):
    """5xx from the remote worker; worth another attempt"""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Processing service returned {status_code}")


TRANSIENT_ERRORS = (httpx.TransportError, RemoteServerError)


class DelegationClient:
    """HTTP client for the remote processing worker"""

    def __init__(
        self,
        http_client: UnifiedHTTPClient,
        base_url: str,
        token: str = "",
        callback_secret: str = "",
        service_name: str = "remote",
        enabled: bool = True,
        timeout: float = 30.0,
        max_attempts: int = 2,
        backoff_base: float = 2.0,
        health_timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self._http = http_client
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.callback_secret = callback_secret
        self.service_name = service_name
        self.enabled = enabled
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.health_timeout = health_timeout
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        http_client: UnifiedHTTPClient,
        config: Settings,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None
    ) -> "DelegationClient":
        return cls(
            http_client,
            base_url=config.REMOTE_PROCESSING_URL,
            token=config.PROCESSING_SERVICE_TOKEN,
            callback_secret=config.WEBHOOK_SECRET,
            service_name=config.REMOTE_SERVICE_NAME,
            enabled=config.REMOTE_PROCESSING_ENABLED,
            timeout=config.DELEGATION_TIMEOUT,
            max_attempts=config.DELEGATION_MAX_ATTEMPTS,
            backoff_base=config.DELEGATION_BACKOFF_BASE,
            health_timeout=config.REMOTE_HEALTH_TIMEOUT,
            sleep=sleep or asyncio.sleep
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url) and self.enabled

    def _auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, exp_base=2, max=60),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True
        )

    async def submit(self, job_id: str, source_url: str, callback_url: str) -> DelegationReceipt:
        """
        Hand a job to the remote worker

        Args:
            job_id: Our job id, echoed back by the worker in its webhook
            source_url: Video URL the worker should fetch
            callback_url: Where the worker reports completion

        Returns:
            DelegationReceipt for the accepted job

        Raises:
            ConfigurationError: No remote worker configured
            AuthError: The worker rejected our credential (not retried)
            DelegationUnavailable: The worker refused the job or stayed
                unreachable after all attempts
            RequestTimeoutError: The final attempt timed out
        """
        if not self.configured:
            raise ConfigurationError()

        payload = {
            "jobId": job_id,
            "sourceUrl": source_url,
            "callbackUrl": callback_url,
            "callbackAuth": f"Bearer {self.callback_secret}" if self.callback_secret else None,
        }

        logger.info(f"Delegating job {job_id} to {self.service_name} at {self.base_url}")

        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await self._post_job(payload)
        except httpx.TimeoutException as e:
            logger.error(f"Delegation of job {job_id} timed out after {self.max_attempts} attempt(s)")
            raise RequestTimeoutError("Processing service did not respond in time") from e
        except TRANSIENT_ERRORS as e:
            logger.error(f"Delegation of job {job_id} failed after {self.max_attempts} attempt(s): {e}")
            raise DelegationUnavailable(last_error=e) from e

        receipt = self._receipt(job_id, response)
        logger.info(f"Job {job_id} accepted by {receipt.service_type} as {receipt.external_job_id}")
        return receipt

    async def _post_job(self, payload: Dict[str, Any]) -> httpx.Response:
        response = await self._http.post_json(
            f"{self.base_url}/process",
            json=payload,
            headers=self._auth_headers(),
            timeout=self.timeout
        )

        if response.status_code in (401, 403):
            raise AuthError(f"Processing service rejected credentials ({response.status_code})")
        if response.status_code >= 500:
            raise RemoteServerError(response.status_code, response.text)
        if response.status_code >= 400:
            raise DelegationUnavailable(f"Processing service refused the job ({response.status_code})")

        return response

    def _receipt(self, job_id: str, response: httpx.Response) -> DelegationReceipt:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        return DelegationReceipt(
            external_job_id=str(data.get("externalJobId") or job_id),
            submitted_at=utcnow(),
            service_type=str(data.get("serviceType") or self.service_name)
        )

    async def health(self) -> Dict[str, Any]:
        """Probe the remote worker for the health report"""
        if not self.configured:
            return {"enabled": False, "status": "disabled", "url": None}

        try:
            response = await self._http.get(
                f"{self.base_url}/health",
                headers=self._auth_headers(),
                timeout=self.health_timeout
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Remote processing health check failed: {e}")
            return {"enabled": True, "status": "unavailable", "url": self.base_url, "error": str(e)}

        available = response.status_code < 400
        return {
            "enabled": True,
            "status": "available" if available else "unavailable",
            "url": self.base_url,
            "responseStatus": response.status_code,
        }


class RemoteDelegate:
    """Remote conversion backend: submit and return, the webhook finishes the job"""

    def __init__(self, client: DelegationClient, callback_url: str):
        self.client = client
        self.callback_url = callback_url

    @property
    def available(self) -> bool:
        return self.client.configured

    async def dispatch(self, job_id: str, source_url: str) -> DelegationReceipt:
        return await self.client.submit(job_id, source_url, self.callback_url)
