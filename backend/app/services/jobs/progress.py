"""
Progress aggregation across pipeline stages

Each stage owns a fixed slice of the overall 0-100 range. A stage reports its
own 0-100 sub-progress and the aggregator maps it into the job's range, so the
overall value stays monotonic across stage boundaries as long as each stage
reports non-decreasing sub-progress.
"""

from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from app.models.job import utcnow

ProgressSink = Callable[[int], None]


class Stage(str, Enum):
    DOWNLOAD = "download"
    VALIDATE = "validate"
    CONVERT = "convert"
    STORE = "store"
    COMPLETE = "complete"


STAGE_RANGES: Dict[Stage, Tuple[int, int]] = {
    Stage.DOWNLOAD: (10, 50),
    Stage.VALIDATE: (50, 55),
    Stage.CONVERT: (60, 90),
    Stage.STORE: (90, 95),
    Stage.COMPLETE: (95, 100),
}

# Stages without sub-progress jump straight to the top of their range
FIXED_JUMP_STAGES = frozenset({Stage.VALIDATE, Stage.STORE, Stage.COMPLETE})


def aggregate(
    stage: Stage,
    sub_progress: float,
    ranges: Optional[Dict[Stage, Tuple[int, int]]] = None
) -> int:
    """Map a stage's 0-100 sub-progress into overall job progress"""
    lo, hi = (ranges or STAGE_RANGES)[Stage(stage)]
    sub_progress = max(0.0, min(100.0, float(sub_progress)))
    return round(lo + sub_progress / 100 * (hi - lo))


def stage_start(stage: Stage) -> int:
    if Stage(stage) in FIXED_JUMP_STAGES:
        return aggregate(stage, 100)
    return aggregate(stage, 0)


def stage_sink(stage: Stage, sink: ProgressSink) -> ProgressSink:
    """Wrap a job-level sink so it accepts stage sub-progress"""
    def report(sub_progress: int) -> None:
        sink(aggregate(stage, sub_progress))
    return report


def current_step(progress: int) -> str:
    if progress < 10:
        return "Initializing"
    if progress < 50:
        return "Downloading video"
    if progress < 60:
        return "Validating video file"
    if progress < 90:
        return "Extracting audio"
    if progress < 100:
        return "Uploading audio file"
    return "Finalizing"


def progress_message(progress: int) -> str:
    if progress < 10:
        return "Preparing to download video..."
    if progress < 50:
        return f"Downloading video... {progress}%"
    if progress < 60:
        return "Checking video file format..."
    if progress < 90:
        return f"Converting video to audio... {progress}%"
    if progress < 100:
        return "Saving audio file..."
    return "Processing complete!"


def estimate_remaining(progress: int, started_at: datetime, now: Optional[datetime] = None) -> Optional[str]:
    """Rough linear estimate of the time left, as display text"""
    if progress <= 0:
        return None

    now = now or utcnow()
    elapsed = (now - started_at).total_seconds()
    remaining = elapsed / progress * 100 - elapsed

    if remaining <= 0:
        return "Almost done"

    minutes = -(-remaining // 60)
    if minutes <= 1:
        return "Less than 1 minute"
    if minutes <= 5:
        return f"About {int(minutes)} minutes"
    return "A few more minutes"
