"""
Tests for backend selection, submission, fallback and job reads.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import aiohttp
import httpx
import pytest

from app.core.exceptions import (
    ArtifactUnavailableError,
    AuthError,
    ConfigurationError,
    DelegationUnavailable,
    InternalError,
    JobNotFoundError,
    JobNotReadyError,
    RequestTimeoutError,
    ValidationError
)
from app.core.http_client import StreamedBody
from app.models.job import BackendType, JobStatus
from app.services.processing.selector import BackendSelector
from app.services.webhooks.reconciler import WebhookOutcome
from tests.fakes import REMOTE_URL, SOURCE_URL, video_response


def worker(status_code=202, payload=None, error: Exception = None):
    """MockTransport handler: worker endpoints on REMOTE_URL, video everywhere else."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url).startswith(REMOTE_URL):
            calls.append(request)
            if error is not None:
                raise error
            return httpx.Response(status_code, json=payload or {"externalJobId": "ext-1"})
        return video_response(request)

    handler.calls = calls
    return handler


@pytest.mark.unit
class TestBackendSelector:

    def test_requested_local_always_wins(self):
        assert BackendSelector(remote_available=True).choose("local") == BackendType.LOCAL

    def test_remote_when_configured(self):
        assert BackendSelector(remote_available=True).choose() == BackendType.REMOTE
        assert BackendSelector(remote_available=True).choose("remote") == BackendType.REMOTE

    def test_local_when_remote_missing(self):
        assert BackendSelector(remote_available=False).choose() == BackendType.LOCAL
        assert BackendSelector(remote_available=False).choose("remote") == BackendType.LOCAL

    def test_strict_without_remote_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            BackendSelector(remote_available=False, strict_remote=True).choose()

        with pytest.raises(ConfigurationError):
            BackendSelector(remote_available=False).choose(strict_remote=True)

    def test_request_can_relax_strict_default(self):
        selector = BackendSelector(remote_available=False, strict_remote=True)

        assert selector.choose(strict_remote=False) == BackendType.LOCAL

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            BackendSelector(remote_available=True).choose("gpu")

    @pytest.mark.parametrize("error", [
        DelegationUnavailable(),
        AuthError(),
        RequestTimeoutError(),
    ])
    def test_fallback_errors(self, error):
        assert BackendSelector(remote_available=True).should_fall_back(error)
        assert not BackendSelector(remote_available=True, strict_remote=True).should_fall_back(error)

    def test_other_errors_do_not_fall_back(self):
        assert not BackendSelector(remote_available=True).should_fall_back(ValueError("x"))


@pytest.mark.unit
class TestSubmission:

    @pytest.mark.parametrize("url,detail", [
        (None, "sourceUrl is required"),
        ("   ", "sourceUrl is required"),
        ("not-a-url", "Invalid URL format"),
    ])
    async def test_invalid_sources(self, container, url, detail):
        with pytest.raises(ValidationError) as exc_info:
            await container.orchestrator.submit(url)

        assert exc_info.value.message == detail
        assert len(container.registry) == 0

    async def test_unsupported_source(self, container):
        with pytest.raises(ValidationError) as exc_info:
            await container.orchestrator.submit("https://example.com/page")

        assert exc_info.value.message.startswith("Unsupported video source")

    async def test_local_submission_runs_to_completion(self, container):
        submission = await container.orchestrator.submit(SOURCE_URL)

        assert submission.job.backend == BackendType.LOCAL
        assert submission.job.status == JobStatus.QUEUED
        assert not submission.fallback
        assert not submission.external_processing

        await container.orchestrator.join()

        job = container.registry.get(submission.job.id)
        assert job.status == JobStatus.COMPLETED
        assert job.result_url == f"http://test/media/{job.id}.mp3"

    async def test_remote_submission_marks_job_delegated(self, build_container, remote_settings):
        handler = worker(payload={"externalJobId": "ext-77", "serviceType": "gpu-worker"})
        container = build_container(remote_settings, handler)

        submission = await container.orchestrator.submit(SOURCE_URL)

        job = container.registry.get(submission.job.id)
        assert job.backend == BackendType.REMOTE
        assert job.status == JobStatus.QUEUED
        assert job.external_job_id == "ext-77"
        assert job.service_type == "gpu-worker"
        assert job.submitted_at is not None
        assert submission.external_processing
        assert container.orchestrator.active_runs == 0
        assert len(handler.calls) == 1

    async def test_unreachable_remote_falls_back_to_local(self, build_container, remote_settings):
        handler = worker(error=httpx.ConnectError("refused"))
        container = build_container(remote_settings, handler)

        submission = await container.orchestrator.submit(SOURCE_URL)
        await container.orchestrator.join()

        job = container.registry.get(submission.job.id)
        assert submission.fallback
        assert job.fallback
        assert job.backend == BackendType.LOCAL
        assert job.status == JobStatus.COMPLETED
        assert len(handler.calls) == 2

    async def test_rejected_credentials_fall_back_to_local(self, build_container, remote_settings):
        container = build_container(remote_settings, worker(status_code=401))

        submission = await container.orchestrator.submit(SOURCE_URL)

        assert submission.fallback
        assert submission.job.backend == BackendType.LOCAL
        await container.orchestrator.join()

    async def test_strict_mode_surfaces_delegation_failure(self, build_container, remote_settings):
        container = build_container(remote_settings, worker(status_code=503))

        with pytest.raises(DelegationUnavailable):
            await container.orchestrator.submit(SOURCE_URL, strict_remote=True)

        assert len(container.registry) == 0

    async def test_strict_mode_timeout(self, build_container, remote_settings):
        container = build_container(remote_settings, worker(error=httpx.ReadTimeout("slow")))

        with pytest.raises(RequestTimeoutError):
            await container.orchestrator.submit(SOURCE_URL, strict_remote=True)

        assert len(container.registry) == 0

    async def test_strict_mode_without_remote(self, container):
        with pytest.raises(ConfigurationError):
            await container.orchestrator.submit(SOURCE_URL, strict_remote=True)

        assert len(container.registry) == 0

    async def test_callback_before_dispatch_returns_is_applied(self, build_container, remote_settings):
        outcomes = []
        container = None

        def handler(request: httpx.Request) -> httpx.Response:
            job_id = json.loads(request.content)["jobId"]
            callback = json.dumps({"jobId": job_id, "status": "failed", "error": "source unreachable"})
            outcomes.append(container.reconciler.handle(None, callback.encode()).outcome)
            return httpx.Response(202, json={"externalJobId": "ext-1"})

        container = build_container(remote_settings, handler)

        submission = await container.orchestrator.submit(SOURCE_URL)

        assert outcomes == [WebhookOutcome.DEFERRED]
        assert submission.job.status == JobStatus.FAILED
        job = container.registry.get(submission.job.id)
        assert job.backend == BackendType.REMOTE
        assert job.status == JobStatus.FAILED
        assert job.error_detail == "source unreachable"
        assert job.external_job_id == "ext-1"

    async def test_callback_for_failed_dispatch_is_dropped(self, build_container, remote_settings):
        container = None

        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url).startswith(REMOTE_URL):
                job_id = json.loads(request.content)["jobId"]
                callback = json.dumps({"jobId": job_id, "status": "completed", "audioUrl": "https://x.example.com/a.mp3"})
                container.reconciler.handle(None, callback.encode())
                return httpx.Response(401)
            return video_response(request)

        container = build_container(remote_settings, handler)

        submission = await container.orchestrator.submit(SOURCE_URL)
        await container.orchestrator.join()

        job = container.registry.get(submission.job.id)
        assert submission.fallback
        assert job.backend == BackendType.LOCAL
        assert job.result_url == f"http://test/media/{job.id}.mp3"

        late = json.dumps({"jobId": job.id, "status": "failed"}).encode()
        assert container.reconciler.handle(None, late).outcome == WebhookOutcome.IGNORED

    async def test_explicit_local_skips_remote(self, build_container, remote_settings):
        handler = worker()
        container = build_container(remote_settings, handler)

        submission = await container.orchestrator.submit(SOURCE_URL, backend="local")
        await container.orchestrator.join()

        assert submission.job.backend == BackendType.LOCAL
        assert handler.calls == []

    async def test_drain_cancels_running_jobs(self, build_container, fake_converter):
        started = asyncio.Event()

        async def block(path):
            started.set()
            await asyncio.sleep(3600)

        fake_converter.validate_media = block
        container = build_container()

        submission = await container.orchestrator.submit(SOURCE_URL)
        await started.wait()
        await container.orchestrator.drain()

        job = container.registry.get(submission.job.id)
        assert job.status == JobStatus.FAILED
        assert job.error_detail == "Processing cancelled"
        assert container.orchestrator.active_runs == 0


@pytest.mark.unit
class TestJobReads:

    @pytest.fixture
    def completed_job(self, container) -> str:
        container.registry.create("job-done", SOURCE_URL, BackendType.LOCAL)
        container.registry.set_completed("job-done", "http://test/media/job-done.mp3")
        return "job-done"

    def test_get_unknown_job(self, container):
        with pytest.raises(JobNotFoundError):
            container.orchestrator.get_job("3b1f4a9e-0000-4000-8000-000000000000")

    def test_get_rejects_malformed_id(self, container):
        with pytest.raises(ValidationError):
            container.orchestrator.get_job("../../etc/passwd")

    def test_result_of_unfinished_job(self, container):
        container.registry.create("job-1", SOURCE_URL, BackendType.LOCAL)
        container.registry.set_progress("job-1", 40)

        with pytest.raises(JobNotReadyError) as exc_info:
            container.orchestrator.completed_job("job-1")

        assert exc_info.value.job_status == "processing"
        assert exc_info.value.progress == 40

    def test_result_without_url_is_internal_error(self, container):
        container.registry.create("job-1", SOURCE_URL, BackendType.LOCAL)
        container.registry.update("job-1", status=JobStatus.COMPLETED, progress=100)

        with pytest.raises(InternalError):
            container.orchestrator.completed_job("job-1")

    async def test_open_result_relays_stream(self, container, completed_job, mocker):
        async def chunks():
            yield b"ID3"

        body = StreamedBody(status_code=200, headers={"Content-Length": "3"}, chunks=chunks())
        open_stream = mocker.patch.object(container.http_client, "open_stream", AsyncMock(return_value=body))

        result = await container.orchestrator.open_result(completed_job)

        open_stream.assert_awaited_once_with("http://test/media/job-done.mp3")
        assert result.metadata["job_id"] == completed_job

    @pytest.mark.parametrize("upstream,expected", [(404, 404), (403, 403), (500, 502)])
    async def test_open_result_maps_upstream_status(self, container, completed_job, mocker, upstream, expected):
        error = aiohttp.ClientResponseError(request_info=None, history=(), status=upstream, message="x")
        mocker.patch.object(container.http_client, "open_stream", AsyncMock(side_effect=error))

        with pytest.raises(ArtifactUnavailableError) as exc_info:
            await container.orchestrator.open_result(completed_job)

        assert exc_info.value.status_code == expected

    async def test_open_result_connection_failure(self, container, completed_job, mocker):
        mocker.patch.object(
            container.http_client, "open_stream", AsyncMock(side_effect=aiohttp.ClientConnectionError("down"))
        )

        with pytest.raises(ArtifactUnavailableError) as exc_info:
            await container.orchestrator.open_result(completed_job)

        assert exc_info.value.status_code == 502

    def test_delete(self, container, completed_job):
        container.orchestrator.delete_job(completed_job)

        with pytest.raises(JobNotFoundError):
            container.orchestrator.delete_job(completed_job)
