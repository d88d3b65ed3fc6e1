"""
A module providing constants, utility functions, and logging mechanisms
for batch re-encoding.

This module includes the default settings of a run, helpers for running
external commands and reading file sizes, and the structured logger used by
every other part of the package.
"""

from .constants import (
    AUDIO_CODEC,
    CRF,
    ENCODER,
    OUTPUT_EXTENSION,
    PASSTHROUGH_AUDIO_CODECS,
    PRESET,
    SKIP_VIDEO_CODECS,
    VIDEO_FILE_TYPES,
    WORKERS,
)
from .logger import LogLevel, StructuredLogger, get_logger

__all__ = [
    "VIDEO_FILE_TYPES",
    "OUTPUT_EXTENSION",
    "ENCODER",
    "PRESET",
    "CRF",
    "SKIP_VIDEO_CODECS",
    "PASSTHROUGH_AUDIO_CODECS",
    "AUDIO_CODEC",
    "WORKERS",
    "LogLevel",
    "StructuredLogger",
    "get_logger",
]
