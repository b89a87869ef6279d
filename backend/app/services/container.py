"""
Service wiring

Builds the long-lived service objects once per application and owns their
startup and shutdown. The registry lives here, so every request handler and
background run of one app shares the same job state.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx

from app.core.config import Settings
from app.core.http_client import HTTPClientConfig, UnifiedHTTPClient
from app.services.jobs.orchestrator import JobOrchestrator
from app.services.jobs.registry import JobRegistry
from app.services.jobs.sweeper import JobSweeper
from app.services.processing.delegation import DelegationClient, RemoteDelegate
from app.services.processing.interfaces import ArtifactStorage, MediaConverter
from app.services.processing.local_engine import LocalEngine
from app.services.processing.selector import BackendSelector
from app.services.sources.resolver import SourceResolver
from app.services.storage.local_storage import LocalArtifactStorage
from app.services.video_processing.converter import FFmpegConverter
from app.services.webhooks.reconciler import WebhookReconciler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    http_client: UnifiedHTTPClient
    registry: JobRegistry
    resolver: SourceResolver
    converter: MediaConverter
    storage: ArtifactStorage
    delegation: DelegationClient
    selector: BackendSelector
    orchestrator: JobOrchestrator
    reconciler: WebhookReconciler
    sweeper: JobSweeper

    @classmethod
    def build(
        cls,
        config: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        converter: Optional[MediaConverter] = None,
        storage: Optional[ArtifactStorage] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None
    ) -> "ServiceContainer":
        """
        Wire the services for one application

        Args:
            config: Settings to build from
            transport: Optional httpx transport for every outbound request
            converter: Replaces the ffmpeg converter
            storage: Replaces local-directory storage
            sleep: Replaces the delay between delegation attempts
        """
        http_client = UnifiedHTTPClient(
            HTTPClientConfig(
                timeout=config.DELEGATION_TIMEOUT,
                user_agent=config.USER_AGENT,
                max_redirects=config.SOURCE_MAX_REDIRECTS
            ),
            transport=transport
        )

        registry = JobRegistry()
        resolver = SourceResolver(
            http_client,
            temp_dir=config.TEMP_DIR or None,
            timeout=config.SOURCE_FETCH_TIMEOUT,
            extra_domains=config.EXTRA_SUPPORTED_DOMAINS
        )
        converter = converter or FFmpegConverter.from_settings(config)
        storage = storage or LocalArtifactStorage(config.STORAGE_DIR, config.STORAGE_PUBLIC_URL)

        delegation = DelegationClient.from_settings(http_client, config, sleep=sleep)

        selector = BackendSelector(remote_available=delegation.configured, strict_remote=config.STRICT_REMOTE)
        remote = RemoteDelegate(delegation, config.callback_url) if delegation.configured else None

        reconciler = WebhookReconciler(
            registry,
            secret=config.WEBHOOK_SECRET,
            require_signature=config.WEBHOOK_REQUIRE_SIGNATURE
        )

        orchestrator = JobOrchestrator(
            registry,
            resolver,
            selector,
            LocalEngine(registry, resolver, converter, storage),
            remote=remote,
            http_client=http_client,
            reconciler=reconciler
        )

        return cls(
            settings=config,
            http_client=http_client,
            registry=registry,
            resolver=resolver,
            converter=converter,
            storage=storage,
            delegation=delegation,
            selector=selector,
            orchestrator=orchestrator,
            reconciler=reconciler,
            sweeper=JobSweeper(
                registry,
                max_age=timedelta(hours=config.JOB_MAX_AGE_HOURS),
                interval=config.JOB_SWEEP_INTERVAL
            )
        )

    async def startup(self):
        Path(self.settings.STORAGE_DIR).mkdir(parents=True, exist_ok=True)
        if self.settings.TEMP_DIR:
            Path(self.settings.TEMP_DIR).mkdir(parents=True, exist_ok=True)
        await self.sweeper.start()
        logger.info(
            f"Services started (remote processing "
            f"{'enabled' if self.delegation.configured else 'disabled'})"
        )

    async def shutdown(self):
        await self.sweeper.stop()
        await self.orchestrator.drain()
        await self.http_client.close()
        logger.info("Services stopped")
