from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings, settings
from app.core.exceptions import ConversionError
from app.core.rate_limiting import configure_limiter, limiter
from app.main import create_app
from app.services.container import ServiceContainer
from app.services.jobs.registry import JobRegistry
from tests.fakes import FakeConverter, REMOTE_URL, video_response


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings isolated from the environment and pointed at tmp_path."""
    (tmp_path / "tmp").mkdir()
    (tmp_path / "storage").mkdir()
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        PUBLIC_BASE_URL="http://test",
        WEBHOOK_URL="",
        WEBHOOK_SECRET="test-webhook-secret",
        WEBHOOK_REQUIRE_SIGNATURE=False,
        REMOTE_PROCESSING_URL="",
        PROCESSING_SERVICE_TOKEN="",
        STRICT_REMOTE=False,
        STORAGE_DIR=str(tmp_path / "storage"),
        STORAGE_PUBLIC_URL="http://test/media",
        TEMP_DIR=str(tmp_path / "tmp"),
        EXTRA_SUPPORTED_DOMAINS=["drive.example.com"],
        RATE_LIMIT_ENABLED=False,
    )


@pytest.fixture
def remote_settings(test_settings) -> Settings:
    """Settings with a remote processing worker configured."""
    return test_settings.model_copy(update={
        "REMOTE_PROCESSING_URL": REMOTE_URL,
        "PROCESSING_SERVICE_TOKEN": "worker-token",
    })


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def fake_converter(test_settings) -> FakeConverter:
    return FakeConverter(Path(test_settings.TEMP_DIR))


@pytest.fixture
def build_container(test_settings, fake_converter) -> Callable[..., ServiceContainer]:
    """Factory for service containers whose outbound HTTP goes to a handler."""
    def _build(config: Settings = None, handler: Callable = None, converter=None) -> ServiceContainer:
        return ServiceContainer.build(
            config or test_settings,
            transport=httpx.MockTransport(handler or video_response),
            converter=converter or fake_converter,
            sleep=AsyncMock()
        )
    return _build


@pytest.fixture
def container(build_container) -> ServiceContainer:
    return build_container()


@pytest.fixture
def test_app(test_settings, container):
    return create_app(test_settings, container)


@pytest_asyncio.fixture
async def async_client(test_app, container):
    """Create an async HTTP client for testing."""
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as client:
        yield client
    await container.orchestrator.drain()
    await container.http_client.close()


@pytest.fixture
def client_for():
    """Serve a given settings/container pair through an in-process client."""
    @asynccontextmanager
    async def _client(config: Settings, container: ServiceContainer):
        app = create_app(config, container)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
        await container.orchestrator.drain()
        await container.http_client.close()
    return _client


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()
    configure_limiter(settings)


@pytest.fixture
def conversion_failure(test_settings) -> FakeConverter:
    return FakeConverter(Path(test_settings.TEMP_DIR), error=ConversionError("Audio extraction failed: bad codec"))
