from unittest.mock import AsyncMock

import aiohttp
import pytest
from httpx import AsyncClient

from app.core.http_client import StreamedBody
from app.models.job import BackendType
from tests.fakes import SOURCE_URL

UNKNOWN_ID = "3b1f4a9e-5c7d-4e2f-8a6b-9c0d1e2f3a4b"


async def audio_chunks():
    yield b"ID3"
    yield b"\xff\xfb"


@pytest.fixture
def completed_job(container) -> str:
    container.registry.create("job-done", SOURCE_URL, BackendType.LOCAL)
    container.registry.set_completed("job-done", "http://test/media/job-done.mp3", processing_time=4.2)
    return "job-done"


@pytest.mark.integration
class TestJobStatusEndpoint:
    """Job status endpoint tests."""

    async def test_queued_job(self, async_client: AsyncClient, container):
        container.registry.create("job-1", SOURCE_URL, BackendType.LOCAL)

        response = await async_client.get("/api/v1/status/job-1")

        assert response.status_code == 202
        data = response.json()
        assert data["jobId"] == "job-1"
        assert data["status"] == "queued"
        assert data["progress"] == 0
        assert data["message"] == "Job queued for processing"
        assert data["sourceUrl"] == SOURCE_URL
        assert "currentStep" in data
        assert "audioUrl" not in data
        assert "error" not in data

    async def test_processing_job(self, async_client: AsyncClient, container):
        container.registry.create("job-1", SOURCE_URL, BackendType.LOCAL)
        container.registry.set_progress("job-1", 60)

        response = await async_client.get("/api/v1/status/job-1")

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "processing"
        assert data["progress"] == 60
        assert data["progressMessage"]
        assert data["estimatedCompletion"]

    async def test_completed_job(self, async_client: AsyncClient, completed_job):
        response = await async_client.get(f"/api/v1/status/{completed_job}")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["progress"] == 100
        assert data["audioUrl"] == "http://test/media/job-done.mp3"
        assert data["downloadUrl"] == f"/api/v1/download/{completed_job}"
        assert data["processingTime"] == 4.2
        assert "completedAt" in data
        assert "currentStep" not in data

    async def test_failed_job(self, async_client: AsyncClient, container):
        container.registry.create("job-1", SOURCE_URL, BackendType.LOCAL)
        container.registry.set_failed("job-1", "Download failed: 404 Not Found")

        response = await async_client.get("/api/v1/status/job-1")

        assert response.status_code == 422
        data = response.json()
        assert data["status"] == "failed"
        assert data["error"] == "Download failed: 404 Not Found"
        assert data["retryUrl"] == "/api/v1/extract-audio"

    async def test_unknown_job(self, async_client: AsyncClient):
        response = await async_client.get(f"/api/v1/status/{UNKNOWN_ID}")

        assert response.status_code == 404
        assert response.json() == {"error": "Job not found", "detail": "Job not found"}

    async def test_malformed_job_id(self, async_client: AsyncClient):
        response = await async_client.get("/api/v1/status/bad%20id")

        assert response.status_code == 400

    async def test_status_after_local_run(self, async_client: AsyncClient, container):
        submitted = await async_client.post("/api/v1/extract-audio", json={"sourceUrl": SOURCE_URL})
        await container.orchestrator.join()

        response = await async_client.get(submitted.json()["statusUrl"])

        assert response.status_code == 200
        assert response.json()["audioUrl"].endswith(".mp3")


@pytest.mark.integration
class TestDownloadEndpoint:
    """Audio download relay tests."""

    async def test_streams_completed_audio(self, async_client: AsyncClient, container, completed_job, mocker):
        body = StreamedBody(status_code=200, headers={"Content-Length": "5"}, chunks=audio_chunks())
        open_stream = mocker.patch.object(container.http_client, "open_stream", AsyncMock(return_value=body))

        response = await async_client.get(f"/api/v1/download/{completed_job}")

        assert response.status_code == 200
        assert response.content == b"ID3\xff\xfb"
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.headers["content-disposition"] == f'attachment; filename="audio_{completed_job}.mp3"'
        assert response.headers["x-job-id"] == completed_job
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["content-length"] == "5"
        open_stream.assert_awaited_once_with("http://test/media/job-done.mp3")

    async def test_job_not_ready(self, async_client: AsyncClient, container):
        container.registry.create("job-1", SOURCE_URL, BackendType.LOCAL)
        container.registry.set_progress("job-1", 30)

        response = await async_client.get("/api/v1/download/job-1")

        assert response.status_code == 409
        data = response.json()
        assert data["status"] == "processing"
        assert data["progress"] == 30

    async def test_unknown_job(self, async_client: AsyncClient):
        response = await async_client.get(f"/api/v1/download/{UNKNOWN_ID}")

        assert response.status_code == 404

    @pytest.mark.parametrize("upstream,expected", [(404, 404), (403, 403), (500, 502)])
    async def test_storage_errors(self, async_client: AsyncClient, container, completed_job, mocker, upstream, expected):
        error = aiohttp.ClientResponseError(request_info=None, history=(), status=upstream, message="x")
        mocker.patch.object(container.http_client, "open_stream", AsyncMock(side_effect=error))

        response = await async_client.get(f"/api/v1/download/{completed_job}")

        assert response.status_code == expected
        assert response.json()["error"] == "Audio file not available"

    async def test_storage_unreachable(self, async_client: AsyncClient, container, completed_job, mocker):
        mocker.patch.object(
            container.http_client, "open_stream", AsyncMock(side_effect=aiohttp.ClientConnectionError("down"))
        )

        response = await async_client.get(f"/api/v1/download/{completed_job}")

        assert response.status_code == 502


@pytest.mark.integration
class TestDeleteJobEndpoint:

    async def test_delete(self, async_client: AsyncClient, container, completed_job):
        response = await async_client.delete(f"/api/v1/jobs/{completed_job}")

        assert response.status_code == 204
        assert completed_job not in container.registry

        response = await async_client.get(f"/api/v1/status/{completed_job}")
        assert response.status_code == 404

    async def test_delete_unknown_job(self, async_client: AsyncClient):
        response = await async_client.delete(f"/api/v1/jobs/{UNKNOWN_ID}")

        assert response.status_code == 404
