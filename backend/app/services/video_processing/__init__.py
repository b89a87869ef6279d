"""
Video processing services: probing, validation and audio extraction
"""

from .audio_extractor import AudioExtractor
from .converter import FFmpegConverter
from .metadata_extractor import MediaInfo, VideoMetadataExtractor

__all__ = [
    "AudioExtractor",
    "FFmpegConverter",
    "MediaInfo",
    "VideoMetadataExtractor"
]
