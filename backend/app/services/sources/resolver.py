"""
Source resolution and download

Decides whether a submitted URL is something we can fetch, rewrites sharing
links into direct-download links, and streams the source video to a local
temporary file while reporting progress.
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Callable, Iterable, Optional
from urllib.parse import urlparse

import aiofiles
import httpx

from app.core.exceptions import FetchError, RequestTimeoutError
from app.core.http_client import UnifiedHTTPClient
from app.core.security_utils import InputValidator

logger = logging.getLogger(__name__)

SUPPORTED_DOMAINS = (
    "drive.google.com",
    "docs.google.com",
    "youtube.com",
    "youtu.be",
    "vimeo.com",
    "dropbox.com",
    "onedrive.live.com",
)

SUPPORTED_EXTENSIONS = (
    ".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm", ".mkv", ".m4v",
)

# Sharing-link shapes that embed a file id: /file/d/<id>/... and /open?id=<id>
SHARING_LINK_PATTERNS = (
    re.compile(r"^/file/d/(?P<file_id>[A-Za-z0-9_-]+)"),
    re.compile(r"^/open\?(?:.*&)?id=(?P<file_id>[A-Za-z0-9_-]+)"),
)

# Hosts whose sharing links are served for download from another host
DOWNLOAD_HOSTS = {
    "docs.google.com": "drive.google.com",
}

CONFIRM_TOKEN_PATTERN = re.compile(r'confirm=([^&"\'\s<>]+)')

DEFAULT_EXTENSION = ".mp4"
CHUNK_SIZE = 64 * 1024


class SourceResolver:
    """Validates, normalizes and downloads source videos"""

    def __init__(
        self,
        http_client: UnifiedHTTPClient,
        temp_dir: Optional[str] = None,
        timeout: float = 300.0,
        extra_domains: Iterable[str] = ()
    ):
        self._http = http_client
        self.temp_dir = Path(temp_dir or tempfile.gettempdir())
        self.timeout = timeout
        self.supported_domains = tuple(SUPPORTED_DOMAINS) + tuple(d.lower() for d in extra_domains)

    # URL checks

    @staticmethod
    def is_well_formed_url(value: str) -> bool:
        return InputValidator.validate_url(value)

    def is_supported_source(self, url: str) -> bool:
        """True for allow-listed hosts, known video extensions, or sharing links"""
        if not self.is_well_formed_url(url):
            return False

        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        path = parsed.path.lower()

        if any(host == domain or host.endswith(f".{domain}") for domain in self.supported_domains):
            return True

        if path.endswith(SUPPORTED_EXTENSIONS):
            return True

        return self.extract_file_id(url) is not None

    @staticmethod
    def extract_file_id(url: str) -> Optional[str]:
        parsed = urlparse(url)
        target = parsed.path + (f"?{parsed.query}" if parsed.query else "")
        for pattern in SHARING_LINK_PATTERNS:
            match = pattern.match(target)
            if match:
                return match.group("file_id")
        return None

    def to_direct_url(self, url: str) -> str:
        """Rewrite a sharing link into its direct-download form; other URLs pass through"""
        file_id = self.extract_file_id(url)
        if file_id is None:
            return url

        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        host = DOWNLOAD_HOSTS.get(host, host)
        return f"https://{host}/uc?export=download&id={file_id}"

    @staticmethod
    def _extension_for(url: str) -> str:
        suffix = Path(urlparse(url).path).suffix.lower()
        return suffix if suffix in SUPPORTED_EXTENSIONS else DEFAULT_EXTENSION

    def destination_for(self, url: str, job_id: str) -> Path:
        return self.temp_dir / f"{job_id}_video{self._extension_for(url)}"

    # Download

    async def fetch(
        self,
        url: str,
        job_id: str,
        on_progress: Optional[Callable[[int], None]] = None
    ) -> Path:
        """
        Download the source video to a temporary file

        Args:
            url: Source URL as submitted
            job_id: Job id, used to name the file
            on_progress: Receives 0-100 while bytes arrive (only when the
                server sends a content length)

        Returns:
            Path to the downloaded file

        Raises:
            FetchError: Non-success status, no response, interstitial page
                without a usable token, or a local write failure
            RequestTimeoutError: The download exceeded its time bound
        """
        download_url = self.to_direct_url(url)
        file_path = self.destination_for(url, job_id)

        logger.info(f"Downloading source for job {job_id} from {download_url}")

        try:
            await self._download(download_url, file_path, on_progress)
        except BaseException:
            self.cleanup_file(file_path)
            raise

        logger.info(f"Download completed for job {job_id}: {file_path}")
        return file_path

    async def _download(
        self,
        url: str,
        file_path: Path,
        on_progress: Optional[Callable[[int], None]]
    ) -> None:
        # One extra request at most, for the confirmation token of an interstitial page
        for attempt in range(2):
            confirm_token = await self._stream_once(url, file_path, on_progress, allow_interstitial=attempt == 0)
            if confirm_token is None:
                return
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}confirm={confirm_token}"
            logger.info(f"Following download confirmation for {file_path.name}")

    async def _stream_once(
        self,
        url: str,
        file_path: Path,
        on_progress: Optional[Callable[[int], None]],
        allow_interstitial: bool
    ) -> Optional[str]:
        """Stream one response to disk. Returns a confirm token when an interstitial page came back."""
        try:
            async with self._http.stream("GET", url, timeout=self.timeout) as response:
                if response.status_code >= 400:
                    raise FetchError(f"Download failed: {response.status_code} {response.reason_phrase}")

                content_type = response.headers.get("content-type", "").lower()
                if "text/html" in content_type:
                    body = (await response.aread()).decode(errors="replace")
                    token = self.extract_confirm_token(body)
                    if token is None:
                        raise FetchError("Download failed: source returned a web page instead of a media file")
                    if not allow_interstitial:
                        raise FetchError("Download failed: confirmation page returned again after confirming")
                    return token

                total = int(response.headers.get("content-length") or 0)
                received = 0

                async with aiofiles.open(file_path, "wb") as out_file:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        await out_file.write(chunk)
                        received += len(chunk)
                        if on_progress and total > 0:
                            on_progress(min(100, round(received / total * 100)))

                return None

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Download timed out after {self.timeout:.0f}s") from e
        except httpx.RequestError as e:
            logger.error(f"Download request failed for {url}: {e}")
            raise FetchError("Download failed: No response received from server") from e
        except httpx.HTTPError as e:
            raise FetchError(f"Download failed: {e}") from e
        except OSError as e:
            raise FetchError(f"Download failed: could not write {file_path.name}: {e}") from e

    @staticmethod
    def extract_confirm_token(html: str) -> Optional[str]:
        match = CONFIRM_TOKEN_PATTERN.search(html)
        return match.group(1) if match else None

    @staticmethod
    def cleanup_file(file_path: Optional[Path]) -> None:
        if not file_path:
            return
        try:
            if os.path.exists(file_path):
                os.unlink(file_path)
                logger.info(f"Cleaned up file: {file_path}")
        except OSError as e:
            logger.error(f"Failed to cleanup file {file_path}: {e}")
