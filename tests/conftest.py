# tests/conftest.py
from __future__ import annotations

from pathlib import Path

import pytest

from mkvbatch.transcode import Policy, StreamDescriptor, StreamKind
from mkvbatch.transcode.errors import EngineExitedWithError
from mkvbatch.utils import logger
from mkvbatch.utils.logger import LogLevel, StructuredLogger

MIB = 1024 * 1024


class RecordingLogger(StructuredLogger):
    """Keeps every event instead of printing it."""

    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    def debug(self, event, **fields):
        self.events.append(("DEBUG", event, fields))

    def info(self, event, **fields):
        self.events.append(("INFO", event, fields))

    def warn(self, event, **fields):
        self.events.append(("WARN", event, fields))

    def error(self, event, **fields):
        self.events.append(("ERROR", event, fields))

    def named(self, event: str) -> list[dict]:
        return [fields for _, name, fields in self.events if name == event]


class FakeProbe:
    """Returns canned streams per file name; an exception instance is raised instead."""

    def __init__(self, by_name: dict | None = None, default=None):
        self.by_name = by_name or {}
        self.default = default
        self.calls: list[Path] = []

    def probe(self, path: Path):
        self.calls.append(path)
        result = self.by_name.get(path.name, self.default)
        if isinstance(result, Exception):
            raise result
        return result


class FakeEngine:
    """Writes `output_size` bytes to the destination, or fails for names in `fail_on`."""

    def __init__(self, output_size: int = 10, fail_on: set[str] | None = None):
        self.output_size = output_size
        self.fail_on = fail_on or set()
        self.calls: list[tuple] = []

    def transcode(self, plan, src: Path, dst: Path) -> int:
        self.calls.append((plan, src, dst))
        if src.name in self.fail_on:
            raise EngineExitedWithError(src, "boom", 1)
        dst.write_bytes(b"\0" * self.output_size)
        return self.output_size


def video(index=0, codec="mpeg2video", pix_fmt="yuv420p", field_order="progressive"):
    return StreamDescriptor(index=index, kind=StreamKind.VIDEO, codec_name=codec,
                            pixel_format=pix_fmt, field_order=field_order)


def audio(index, codec="mp3", bit_rate=None, channels=None):
    return StreamDescriptor(index=index, kind=StreamKind.AUDIO, codec_name=codec,
                            bit_rate=bit_rate, channels=channels)


def subtitle(index, codec="subrip"):
    return StreamDescriptor(index=index, kind=StreamKind.SUBTITLE, codec_name=codec)


def write_file(path: Path, size: int = 100) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\0" * size)
    return path


@pytest.fixture(autouse=True)
def _reset_log_level():
    logger.set_log_level(LogLevel.INFO)
    yield
    logger.set_log_level(LogLevel.INFO)


@pytest.fixture()
def policy() -> Policy:
    return Policy.create(
        video_file_extensions=["mp4", "avi", "mov", "mkv"],
        audio_passthrough_codecs=["flac", "aac", "ac3", "eac3"],
        skip_video_codecs=["hevc", "h264"],
        target_audio_codec="aac",
        encoder="libx265",
        preset="slow",
        quality=18,
    )


@pytest.fixture()
def rec_log() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture()
def trees(tmp_path):
    src = tmp_path / "src"
    out = tmp_path / "out"
    src.mkdir()
    return src, out
