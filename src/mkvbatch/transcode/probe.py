"""
Stream inspection with ffprobe.

ffprobe is asked for a fixed set of per-stream fields and its JSON answer is
turned into `StreamDescriptor` values. Missing fields get their defaults here,
once, so the planner only ever sees complete descriptors.
"""
import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple

from mkvbatch.utils import system_util
from mkvbatch.utils.constants import DEFAULT_FIELD_ORDER, DEFAULT_PIX_FMT
from .errors import MalformedProbeOutput, ToolExitedWithError, ToolLaunchFailed

STREAM_ENTRIES = "stream=index,codec_type,codec_name,pix_fmt,field_order,channels,bit_rate"


class StreamKind(Enum):
    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLE = "subtitle"
    OTHER = "other"

    @classmethod
    def from_codec_type(cls, codec_type: Optional[str]) -> "StreamKind":
        """Map ffprobe's codec_type; data, attachment and unknown types are OTHER."""
        try:
            return cls(normalize_token(codec_type))
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class StreamDescriptor:
    index: int
    kind: StreamKind
    codec_name: str = ""
    pixel_format: str = DEFAULT_PIX_FMT
    field_order: str = DEFAULT_FIELD_ORDER
    channels: Optional[int] = None
    bit_rate: Optional[str] = None


ProbeResult = Tuple[StreamDescriptor, ...]


def normalize_token(value: Optional[str]) -> str:
    """Lowercase and trim a codec or type name; None becomes ""."""
    if value is None:
        return ""
    return str(value).strip().lower()


def build_ffprobe_cmd(path: Path, ffprobe_bin: str = "ffprobe") -> list[str]:
    return [
        ffprobe_bin, "-v", "error",
        "-show_entries", STREAM_ENTRIES,
        "-of", "json",
        str(path),
    ]


def _optional_int(stream: dict, key: str) -> Optional[int]:
    value = stream.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedProbeOutput(f"stream field '{key}' is not an integer: {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise MalformedProbeOutput(f"stream field '{key}' is not an integer: {value!r}") from e
    if number < 0:
        raise MalformedProbeOutput(f"stream field '{key}' is negative: {number}")
    return number


def _optional_str(stream: dict, key: str) -> Optional[str]:
    value = stream.get(key)
    if value is None:
        return None
    if isinstance(value, (dict, list, bool)):
        raise MalformedProbeOutput(f"stream field '{key}' is not a string: {value!r}")
    return str(value)


def parse_stream(stream: Any) -> StreamDescriptor:
    """Build a fully-defaulted descriptor from one ffprobe stream object."""
    if not isinstance(stream, dict):
        raise MalformedProbeOutput(f"stream entry is not an object: {stream!r}")

    pix_fmt = _optional_str(stream, "pix_fmt")
    field_order = _optional_str(stream, "field_order")
    return StreamDescriptor(
        index=_optional_int(stream, "index") or 0,
        kind=StreamKind.from_codec_type(_optional_str(stream, "codec_type")),
        codec_name=normalize_token(_optional_str(stream, "codec_name")),
        pixel_format=pix_fmt or DEFAULT_PIX_FMT,
        field_order=field_order or DEFAULT_FIELD_ORDER,
        channels=_optional_int(stream, "channels"),
        bit_rate=_optional_str(stream, "bit_rate"),
    )


def parse_probe_output(text: str) -> ProbeResult:
    """Parse ffprobe's JSON output into an ordered tuple of descriptors."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedProbeOutput(f"ffprobe produced invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedProbeOutput("ffprobe output is not a JSON object")
    streams = data.get("streams")
    if not isinstance(streams, list):
        raise MalformedProbeOutput("ffprobe output has no 'streams' list")

    return tuple(parse_stream(s) for s in streams)


class StreamProbe:
    """Runs ffprobe against one file at a time."""

    def __init__(self, ffprobe_bin: str = "ffprobe"):
        self.ffprobe_bin = ffprobe_bin

    def probe(self, path: Path) -> ProbeResult:
        """Probe video file streams.

        Raises:
            ToolLaunchFailed: ffprobe could not be started.
            ToolExitedWithError: ffprobe returned a non-zero exit code.
            MalformedProbeOutput: the output did not have the expected shape.
        """
        cmd = build_ffprobe_cmd(path, self.ffprobe_bin)
        try:
            code, out, err = system_util.run_cmd(cmd)
        except OSError as e:
            raise ToolLaunchFailed(f"Failed to execute {self.ffprobe_bin}: {e}", path) from e

        if code != 0:
            raise ToolExitedWithError(path, err, code)

        try:
            return parse_probe_output(out)
        except MalformedProbeOutput as e:
            raise MalformedProbeOutput(f"Error decoding ffprobe output for {path}: {e.message}", path) from e
