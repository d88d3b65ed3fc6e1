"""Exceptions raised while processing a batch.

Every exception here is fatal to the whole run: the controller does not catch
them per file. Expected conditions such as an existing output or an excluded
video codec are skips and never raise.
"""
from pathlib import Path


class BatchError(Exception):
    """Base exception for anything that stops a batch run."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)


class ProbeError(BatchError):
    """ffprobe could not describe the streams of a file."""


class ToolLaunchFailed(ProbeError):
    """The ffprobe process could not be started."""


class ToolExitedWithError(ProbeError):
    """ffprobe ran but exited with a non-zero status."""

    def __init__(self, path: Path, stderr: str, exit_code: int) -> None:
        self.stderr = stderr
        self.exit_code = exit_code
        super().__init__(f"ffprobe failed for {path} (exit {exit_code}): {stderr.strip()}", path)


class MalformedProbeOutput(ProbeError):
    """ffprobe output could not be parsed into stream descriptors."""


class EngineError(BatchError):
    """ffmpeg could not produce the output file."""


class EngineLaunchFailed(EngineError):
    """The ffmpeg process could not be started."""


class EngineExitedWithError(EngineError):
    """ffmpeg ran but exited with a non-zero status."""

    def __init__(self, path: Path, stderr: str, exit_code: int) -> None:
        self.stderr = stderr
        self.exit_code = exit_code
        super().__init__(f"ffmpeg failed for {path} (exit {exit_code})", path)


class FilesystemError(BatchError):
    """A filesystem operation needed by the batch failed."""


class OutputDirectoryError(FilesystemError):
    """The directory for an output file could not be created."""


class FileSizeError(FilesystemError):
    """The size of an input or output file could not be read."""


class DirectoryReadError(FilesystemError):
    """A source directory could not be listed."""


class PathEncodingError(BatchError):
    """A path cannot be represented as text for the external tools."""
