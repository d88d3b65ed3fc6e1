"""
Constants and default settings for batch re-encoding.

Defaults for every option of the command line live here. Each of them can be
overridden through the environment or a `.env` file in the working directory,
which is loaded on import.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if not value:
        return default
    return value.replace(",", " ").split()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


# Run settings
WORKERS = _env_int("MKVBATCH_WORKERS", 1)

# Source files considered for conversion (no leading dot, matched case-sensitively)
VIDEO_FILE_TYPES = _env_list("MKVBATCH_VIDEO_FILE_TYPES", ["mp4", "avi", "mov", "mkv"])
OUTPUT_EXTENSION = "mkv"

# Video encoding
ENCODER = os.getenv("MKVBATCH_ENCODER", "hevc_nvenc")
PRESET = os.getenv("MKVBATCH_PRESET", "slow")
CRF = _env_int("MKVBATCH_CRF", 18)
SKIP_VIDEO_CODECS = _env_list("MKVBATCH_SKIP_VIDEO_CODECS", ["hevc", "h264"])
DEINTERLACE_FILTER = "yadif"

# Audio encoding
PASSTHROUGH_AUDIO_CODECS = _env_list("MKVBATCH_PASSTHROUGH_AUDIO_CODECS", ["flac", "aac", "ac3", "eac3"])
AUDIO_CODEC = os.getenv("MKVBATCH_AUDIO_CODEC", "aac")

# Probe defaults for fields ffprobe leaves out
DEFAULT_PIX_FMT = "yuv420p"
DEFAULT_FIELD_ORDER = "progressive"

# Logging
LOG_DIR = os.getenv("MKVBATCH_LOG_DIR")
LOG_FILE = os.getenv("MKVBATCH_LOG_FILE")

# Seconds between two progress lines for a running ffmpeg
PROGRESS_INTERVAL = 60
# ffmpeg stderr lines kept for the error report of a failed run
STDERR_TAIL_LINES = 50

MIB = 1024 * 1024

# Processing status codes
STATUS_SKIP = "SKIP"
STATUS_OK = "OK"
STATUS_DRY_RUN = "DRY-RUN"

# Skip reasons
SKIP_ALREADY_CONVERTED = "already converted"
SKIP_EXCLUDED_CODEC = "excluded codec"
SKIP_NO_VIDEO = "no video stream"
SKIP_OUTPUT_CLAIMED = "output already claimed"
