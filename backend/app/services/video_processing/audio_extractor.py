"""
Audio extraction service: converts a fetched video into an MP3 with ffmpeg
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

from app.core.config import settings
from app.core.exceptions import ConversionError

logger = logging.getLogger(__name__)


class AudioExtractor:
    """Service for extracting the audio track of a video file"""

    def __init__(
        self,
        ffmpeg_path: str = None,
        temp_dir: Optional[str] = None,
        bitrate: str = None,
        channels: int = None,
        sample_rate: int = None
    ):
        self.ffmpeg_path = ffmpeg_path or settings.FFMPEG_PATH
        self.temp_dir = Path(temp_dir or settings.TEMP_DIR or tempfile.gettempdir())
        self.bitrate = bitrate or settings.AUDIO_BITRATE
        self.channels = channels or settings.AUDIO_CHANNELS
        self.sample_rate = sample_rate or settings.AUDIO_SAMPLE_RATE

    def output_path_for(self, job_id: str) -> Path:
        return self.temp_dir / f"{job_id}.mp3"

    def build_command(self, input_path: Path, output_path: Path) -> list:
        return [
            self.ffmpeg_path,
            "-i", str(input_path),
            "-vn",  # No video
            "-acodec", "libmp3lame",
            "-ab", self.bitrate,
            "-ac", str(self.channels),
            "-ar", str(self.sample_rate),
            "-f", "mp3",
            "-progress", "pipe:1",
            "-nostats",
            "-y",  # Overwrite output file
            str(output_path)
        ]

    async def extract_audio(
        self,
        input_path: Path,
        job_id: str,
        on_progress: Optional[Callable[[int], None]] = None,
        duration: Optional[float] = None
    ) -> Path:
        """
        Extract the audio track of a video file

        Args:
            input_path: Path to the downloaded video
            job_id: Job id, used to name the output
            on_progress: Receives 0-100 as encoding advances (needs duration)
            duration: Source duration in seconds, from the probe

        Returns:
            Path to the MP3 file

        Raises:
            ConversionError: If ffmpeg fails or produces no output
        """
        output_path = self.output_path_for(job_id)
        cmd = self.build_command(Path(input_path), output_path)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise ConversionError(f"ffmpeg is not available: {e}") from e

        # stderr is drained concurrently so a chatty ffmpeg cannot block on a full pipe
        stderr_task = asyncio.create_task(process.stderr.read())

        try:
            async for raw_line in process.stdout:
                percent = self._parse_progress(raw_line.decode(errors="replace"), duration)
                if percent is not None and on_progress:
                    on_progress(percent)

            returncode = await process.wait()
            stderr = await stderr_task
        except BaseException:
            stderr_task.cancel()
            if process.returncode is None:
                process.kill()
                await process.wait()
            self.cleanup_temp_file(output_path)
            raise

        if returncode != 0:
            self.cleanup_temp_file(output_path)
            tail = stderr.decode(errors="replace").strip().splitlines()[-1:] or [f"exit code {returncode}"]
            raise ConversionError(f"Audio extraction failed: {tail[0]}")

        if not output_path.exists():
            raise ConversionError("Audio extraction failed - output file not created")

        if output_path.stat().st_size == 0:
            self.cleanup_temp_file(output_path)
            raise ConversionError("Audio extraction failed - output file is empty")

        if on_progress:
            on_progress(100)

        logger.info(f"Extracted audio for job {job_id}: {output_path}")
        return output_path

    @staticmethod
    def _parse_progress(line: str, duration: Optional[float]) -> Optional[int]:
        """Turn an ffmpeg -progress line into a percentage of the source duration"""
        key, _, value = line.strip().partition("=")
        if key not in ("out_time_us", "out_time_ms") or not duration or duration <= 0:
            return None

        try:
            # ffmpeg reports both keys in microseconds
            elapsed = int(value) / 1_000_000
        except ValueError:
            return None

        return max(0, min(100, round(elapsed / duration * 100)))

    @staticmethod
    def cleanup_temp_file(file_path: Optional[Path]) -> None:
        if not file_path:
            return
        try:
            if os.path.exists(file_path):
                os.unlink(file_path)
                logger.debug(f"Cleaned up temporary file: {file_path}")
        except OSError as e:
            logger.error(f"Failed to cleanup temp file {file_path}: {e}")
