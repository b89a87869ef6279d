"""
Local-directory artifact storage

Writes artifacts under STORAGE_DIR and returns URLs under STORAGE_PUBLIC_URL;
the API mounts the same directory as static files so those URLs resolve.
"""

import logging
import os
import re
from pathlib import Path

import aiofiles

logger = logging.getLogger(__name__)

SAFE_FILENAME = re.compile(r'^[A-Za-z0-9._-]{1,255}$')


class LocalArtifactStorage:
    """Stores artifacts in a local directory"""

    def __init__(self, base_dir: str, public_url: str):
        self._base = Path(base_dir).resolve()
        self._public_url = public_url.rstrip("/")

    @property
    def base_dir(self) -> Path:
        return self._base

    def is_configured(self) -> bool:
        if not self._public_url:
            return False
        if self._base.exists():
            return os.access(self._base, os.W_OK)
        return True

    def path_for(self, filename: str) -> Path:
        if not SAFE_FILENAME.match(filename) or filename in (".", ".."):
            raise ValueError(f"Unsafe artifact name: {filename}")
        return self._base / filename

    async def store(self, data: bytes, filename: str, content_type: str = "audio/mpeg") -> str:
        path = self.path_for(filename)
        path.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(path, "wb") as out_file:
            await out_file.write(data)

        url = f"{self._public_url}/{filename}"
        logger.info(f"Stored {len(data)} bytes ({content_type}) at {url}")
        return url
