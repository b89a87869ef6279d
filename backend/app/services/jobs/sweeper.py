"""
Periodic removal of expired jobs from the registry
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from app.services.jobs.registry import JobRegistry

logger = logging.getLogger(__name__)


class JobSweeper:
    """Background task that sweeps the registry on a fixed interval"""

    def __init__(self, registry: JobRegistry, max_age: timedelta, interval: int = 600):
        self._registry = registry
        self._max_age = max_age
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the sweep loop"""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Job sweeper started (interval {self._interval}s, max age {self._max_age})")

    async def stop(self):
        """Stop the sweep loop"""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Job sweeper stopped")

    def sweep_once(self) -> int:
        return self._registry.sweep(self._max_age)

    async def _sweep_loop(self):
        while self._running:
            try:
                await asyncio.sleep(self._interval)
                self.sweep_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in sweep loop: {e}")
