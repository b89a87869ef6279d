from pathlib import Path
from typing import Any, Callable, Optional, Protocol


class MediaConverter(Protocol):
    async def validate_media(self, path: Path) -> Any:
        """Raise InvalidMediaError unless the file carries an audio stream.
        The returned object may expose a ``duration`` in seconds.
        """

    async def convert(
        self,
        path: Path,
        job_id: str,
        on_progress: Optional[Callable[[int], None]] = None,
        duration: Optional[float] = None
    ) -> Path:
        """Convert the file to the target audio format, reporting 0-100."""

    def cleanup(self, path: Optional[Path]) -> None:
        ...


class ArtifactStorage(Protocol):
    def is_configured(self) -> bool:
        ...

    async def store(self, data: bytes, filename: str, content_type: str) -> str:
        """Persist the bytes and return a public URL for them."""
