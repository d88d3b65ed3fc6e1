"""Video conversion for a whole directory tree.

This package provides the pieces of a batch run, leaf first:
- probe: ffprobe stream inspection (StreamDescriptor, StreamProbe)
- planner: per-file decisions (Policy, TranscodePlan, plan_transcode)
- engine: ffmpeg command building and execution (FFmpegEngine)
- walker: discovery of pending files and their output paths (FileSetWalker)
- batch: high-level orchestration and savings stats (BatchController)
- errors: the exceptions that stop a run
"""

from .batch import BatchController, BatchStats, FileOutcome
from .engine import FFmpegEngine, available_encoders, build_ffmpeg_cmd
from .errors import (
    BatchError,
    EngineError,
    FilesystemError,
    PathEncodingError,
    ProbeError,
)
from .planner import (
    Policy,
    TrackAction,
    TrackActionKind,
    TranscodePlan,
    VideoParams,
    plan_transcode,
)
from .probe import StreamDescriptor, StreamKind, StreamProbe, parse_probe_output
from .walker import FileSetWalker, WalkEntry

__all__ = [
    # Probing
    "StreamDescriptor",
    "StreamKind",
    "StreamProbe",
    "parse_probe_output",
    # Planning
    "Policy",
    "TrackAction",
    "TrackActionKind",
    "TranscodePlan",
    "VideoParams",
    "plan_transcode",
    # Engine
    "FFmpegEngine",
    "available_encoders",
    "build_ffmpeg_cmd",
    # Batch
    "FileSetWalker",
    "WalkEntry",
    "BatchController",
    "BatchStats",
    "FileOutcome",
    # Errors
    "BatchError",
    "ProbeError",
    "EngineError",
    "FilesystemError",
    "PathEncodingError",
]
