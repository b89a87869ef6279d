"""
Job state: registry, progress model and expiry sweep
"""

from .progress import ProgressSink, Stage, aggregate, stage_sink
from .registry import JobRegistry
from .sweeper import JobSweeper

__all__ = [
    "JobRegistry",
    "JobSweeper",
    "ProgressSink",
    "Stage",
    "aggregate",
    "stage_sink"
]
