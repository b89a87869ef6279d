"""
Media metadata extraction and validation with ffprobe
"""

import logging
import asyncio
import json
from dataclasses import dataclass
from typing import Dict, Any, Optional
from pathlib import Path

from app.core.config import settings
from app.core.exceptions import InvalidMediaError

logger = logging.getLogger(__name__)


@dataclass
class MediaInfo:
    """Summary of the streams found in a media file"""
    has_video: bool
    has_audio: bool
    duration: Optional[float] = None
    format_name: str = "unknown"
    audio_codec: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_video": self.has_video,
            "has_audio": self.has_audio,
            "duration": self.duration,
            "format": self.format_name,
            "audio_codec": self.audio_codec
        }


class VideoMetadataExtractor:
    """Service for inspecting media files before conversion"""

    def __init__(self, ffprobe_path: str = None):
        self.ffprobe_path = ffprobe_path or settings.FFPROBE_PATH

    async def extract_full_metadata(self, media_path: Path) -> Dict[str, Any]:
        """
        Run ffprobe and return its JSON report

        Args:
            media_path: Path to the media file

        Returns:
            Parsed ffprobe output with "format" and "streams"

        Raises:
            InvalidMediaError: If ffprobe cannot read the file
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(media_path)
        ]

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise InvalidMediaError(f"ffprobe is not available: {e}") from e

        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip() or f"exit code {process.returncode}"
            raise InvalidMediaError(f"Invalid video file: {detail}")

        try:
            return json.loads(stdout.decode() or "{}")
        except json.JSONDecodeError as e:
            raise InvalidMediaError(f"Invalid video file: unreadable probe output ({e})") from e

    async def validate_media(self, media_path: Path) -> MediaInfo:
        """
        Check that a file carries audio we can extract

        Raises:
            InvalidMediaError: If the file has no streams at all, or a video
                without any audio track
        """
        metadata = await self.extract_full_metadata(media_path)
        info = self.summarize(metadata)

        if not info.has_video and not info.has_audio:
            raise InvalidMediaError("File contains no video or audio streams")

        if not info.has_audio:
            raise InvalidMediaError("Video file contains no audio stream")

        logger.debug(f"Validated {media_path}: {info.to_dict()}")
        return info

    @staticmethod
    def summarize(metadata: Dict[str, Any]) -> MediaInfo:
        streams = metadata.get("streams", []) or []
        audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)
        has_video = any(s.get("codec_type") == "video" for s in streams)

        format_info = metadata.get("format", {}) or {}
        duration = None
        try:
            duration = float(format_info["duration"])
        except (KeyError, TypeError, ValueError):
            pass

        return MediaInfo(
            has_video=has_video,
            has_audio=audio_stream is not None,
            duration=duration,
            format_name=format_info.get("format_name", "unknown"),
            audio_codec=audio_stream.get("codec_name") if audio_stream else None
        )


