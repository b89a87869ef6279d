"""
ffmpeg-backed media converter used by the local processing engine
"""

from pathlib import Path
from typing import Callable, Optional

from app.core.config import Settings
from .audio_extractor import AudioExtractor
from .metadata_extractor import MediaInfo, VideoMetadataExtractor


class FFmpegConverter:
    """Validates sources with ffprobe and converts them with ffmpeg"""

    def __init__(
        self,
        metadata_extractor: VideoMetadataExtractor,
        audio_extractor: AudioExtractor
    ):
        self.metadata_extractor = metadata_extractor
        self.audio_extractor = audio_extractor

    @classmethod
    def from_settings(cls, config: Settings) -> "FFmpegConverter":
        return cls(
            VideoMetadataExtractor(ffprobe_path=config.FFPROBE_PATH),
            AudioExtractor(
                ffmpeg_path=config.FFMPEG_PATH,
                temp_dir=config.TEMP_DIR or None,
                bitrate=config.AUDIO_BITRATE,
                channels=config.AUDIO_CHANNELS,
                sample_rate=config.AUDIO_SAMPLE_RATE
            )
        )

    async def validate_media(self, path: Path) -> MediaInfo:
        return await self.metadata_extractor.validate_media(path)

    async def convert(
        self,
        path: Path,
        job_id: str,
        on_progress: Optional[Callable[[int], None]] = None,
        duration: Optional[float] = None
    ) -> Path:
        return await self.audio_extractor.extract_audio(path, job_id, on_progress, duration)

    def cleanup(self, path: Optional[Path]) -> None:
        self.audio_extractor.cleanup_temp_file(path)
