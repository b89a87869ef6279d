"""
Local processing engine

Runs the whole pipeline in-process for one job:

    download (10-50%) -> validate (55%) -> convert (60-90%) -> store (95%) -> completed

The engine is the only writer of its job's state. Any failure marks the job
failed with the error text, and temporary files are removed on every exit path.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiofiles

from app.services.jobs.progress import Stage, stage_sink, stage_start
from app.services.jobs.registry import JobRegistry
from app.services.processing.interfaces import ArtifactStorage, MediaConverter
from app.services.sources.resolver import SourceResolver

logger = logging.getLogger(__name__)

ARTIFACT_CONTENT_TYPE = "audio/mpeg"


class LocalEngine:
    """In-process conversion backend"""

    def __init__(
        self,
        registry: JobRegistry,
        resolver: SourceResolver,
        converter: MediaConverter,
        storage: ArtifactStorage
    ):
        self.registry = registry
        self.resolver = resolver
        self.converter = converter
        self.storage = storage

    def _progress_sink(self, job_id: str):
        def report(progress: int) -> None:
            self.registry.set_progress(job_id, progress)
        return report

    @staticmethod
    def artifact_name(job_id: str) -> str:
        return f"{job_id}.mp3"

    async def run(self, job_id: str, source_url: str) -> None:
        """Process one job to a terminal state. Never raises except on cancellation."""
        sink = self._progress_sink(job_id)
        video_path: Optional[Path] = None
        audio_path: Optional[Path] = None

        try:
            self.registry.set_processing(job_id)
            sink(stage_start(Stage.DOWNLOAD))

            video_path = await self.resolver.fetch(
                source_url, job_id, on_progress=stage_sink(Stage.DOWNLOAD, sink)
            )

            media_info = await self.converter.validate_media(video_path)
            sink(stage_start(Stage.VALIDATE))

            sink(stage_start(Stage.CONVERT))
            audio_path = await self.converter.convert(
                video_path,
                job_id,
                on_progress=stage_sink(Stage.CONVERT, sink),
                duration=getattr(media_info, "duration", None)
            )

            async with aiofiles.open(audio_path, "rb") as audio_file:
                audio_data = await audio_file.read()

            result_url = await self.storage.store(audio_data, self.artifact_name(job_id), ARTIFACT_CONTENT_TYPE)
            sink(stage_start(Stage.STORE))

            self.registry.set_completed(job_id, result_url)
            logger.info(f"Job {job_id} completed: {result_url}")

        except asyncio.CancelledError:
            logger.warning(f"Job {job_id} cancelled")
            self.registry.set_failed(job_id, "Processing cancelled")
            raise
        except Exception as e:
            logger.error(f"Job {job_id} failed: {e}", exc_info=True)
            self.registry.set_failed(job_id, str(e) or e.__class__.__name__)
        finally:
            self.resolver.cleanup_file(video_path)
            self.converter.cleanup(audio_path)
