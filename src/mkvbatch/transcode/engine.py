"""
Functions to turn a transcode plan into an ffmpeg run.

This module is the only place where an ffmpeg command line is put together.
`build_ffmpeg_cmd` renders a `TranscodePlan` into arguments and `FFmpegEngine`
runs them, reporting progress while ffmpeg works and cleaning up after a
failed run so a half-written file is never mistaken for a finished one.
"""
import re
import subprocess
import time
from collections import deque
from functools import lru_cache
from pathlib import Path
from typing import List

from mkvbatch.utils import system_util
from mkvbatch.utils.constants import DEINTERLACE_FILTER, PROGRESS_INTERVAL, STDERR_TAIL_LINES
from mkvbatch.utils.logger import StructuredLogger, get_logger
from .errors import EngineExitedWithError, EngineLaunchFailed, FileSizeError
from .planner import TrackActionKind, TranscodePlan

_TIME_RE = re.compile(r'time=(\S+)')
_SPEED_RE = re.compile(r'speed=\s*(\S+)')

# Output stream type used for the per-stream option specifiers of each action
_STREAM_TYPE = {
    TrackActionKind.COPY_VIDEO: "v",
    TrackActionKind.COPY_AUDIO: "a",
    TrackActionKind.REENCODE_AUDIO: "a",
    TrackActionKind.COPY_SUBTITLE: "s",
}


@lru_cache(maxsize=1)
def available_encoders(ffmpeg_bin: str = "ffmpeg") -> List[str]:
    """Return a cached list of video encoders ffmpeg was built with."""
    try:
        code, out, _ = system_util.run_cmd([ffmpeg_bin, "-hide_banner", "-encoders"])
    except OSError:
        return []
    if code != 0:
        return []

    encoders = []
    for line in out.splitlines():
        parts = line.split()
        # Lines look like: " V....D hevc_nvenc  NVIDIA NVENC hevc encoder"
        # The legend (" V..... = Video") is not an encoder.
        if len(parts) >= 2 and parts[0].startswith("V") and parts[1] != "=":
            encoders.append(parts[1])
    return encoders


def build_ffmpeg_cmd(plan: TranscodePlan, src: Path, dst: Path, ffmpeg_bin: str = "ffmpeg") -> List[str]:
    """Build the ffmpeg command converting `src` into `dst` according to `plan`."""
    if plan.skip or plan.video is None:
        raise ValueError("cannot build an ffmpeg command for a skipped plan")

    video = plan.video
    cmd = [
        ffmpeg_bin,
        "-hide_banner",
        "-nostdin",
        "-n",
        "-loglevel", "error",
        "-stats",
        "-i", str(src),
        "-map", "0:v:0",
        "-c:v", video.encoder,
        "-preset", video.preset,
        "-crf", str(video.quality),
        "-pix_fmt", video.pixel_format,
    ]

    if plan.apply_deinterlace_filter:
        cmd += ["-vf", DEINTERLACE_FILTER]

    # Output ordinal per stream type, so each mapped track gets its own options
    ordinals = {"v": 1, "a": 0, "s": 0}
    for action in plan.actions:
        stream_type = _STREAM_TYPE[action.action]
        n = ordinals[stream_type]
        ordinals[stream_type] += 1

        cmd += ["-map", f"0:{action.source_index}"]
        if action.action is TrackActionKind.REENCODE_AUDIO:
            cmd += [f"-c:a:{n}", action.codec]
        else:
            cmd += [f"-c:{stream_type}:{n}", "copy"]

        if stream_type == "a":
            if action.bit_rate is not None:
                cmd += [f"-b:a:{n}", action.bit_rate]
            if action.channels is not None:
                cmd += [f"-ac:a:{n}", str(action.channels)]

    cmd.append(str(dst))
    return cmd


class FFmpegEngine:
    """Runs ffmpeg for one plan at a time."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg", log: StructuredLogger | None = None,
                 progress_interval: float = PROGRESS_INTERVAL):
        self.ffmpeg_bin = ffmpeg_bin
        self.log = log or get_logger()
        self.progress_interval = progress_interval

    def transcode(self, plan: TranscodePlan, src: Path, dst: Path) -> int:
        """
        Convert `src` into `dst` and return the number of bytes written.

        Args:
            plan: A non-skipped plan from the planner
            src: Source video file path
            dst: Destination file path; its directory must already exist

        Returns:
            Size of the written output file in bytes

        Raises:
            EngineLaunchFailed: ffmpeg could not be started
            EngineExitedWithError: ffmpeg exited with a non-zero code
            FileSizeError: the output file could not be read afterwards
        """
        cmd = build_ffmpeg_cmd(plan, src, dst, self.ffmpeg_bin)

        self.log.info("transcode.start", file=src.name, dst=str(dst))
        self.log.debug("transcode.command", cmd=" ".join(cmd))

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise EngineLaunchFailed(f"Failed to execute {self.ffmpeg_bin}: {e}", src) from e

        stderr_output = deque(maxlen=STDERR_TAIL_LINES)
        last_progress_log = time.monotonic()

        try:
            # Read stderr line by line for progress updates
            while True:
                line = process.stderr.readline()
                if not line and process.poll() is not None:
                    break

                if line:
                    stderr_output.append(line)

                    # Example: frame= 1234 fps=18 q=-0.0 size=  10240KiB time=00:01:23.45 bitrate=1234.5kbits/s speed=0.75x
                    if "time=" in line and "speed=" in line:
                        now = time.monotonic()
                        if now - last_progress_log >= self.progress_interval:
                            time_match = _TIME_RE.search(line)
                            speed_match = _SPEED_RE.search(line)
                            if time_match and speed_match:
                                self.log.info("transcode.progress",
                                              file=src.name,
                                              position=time_match.group(1),
                                              speed=speed_match.group(1))
                            last_progress_log = now

            # Wait for process to complete and get remaining output
            _, remaining_stderr = process.communicate()
        except BaseException:
            # Interrupted mid-run: stop ffmpeg and drop what it wrote so far
            process.kill()
            process.wait()
            self.log.warn("transcode.aborted", file=src.name)
            self._remove_partial(dst)
            raise

        if remaining_stderr:
            stderr_output.extend(remaining_stderr.splitlines(keepends=True))

        stderr_text = ''.join(stderr_output)
        code = process.returncode

        if code != 0:
            self.log.error("transcode.failed",
                           file=src.name,
                           exit_code=code,
                           error=stderr_text[-200:])
            self._remove_partial(dst)
            raise EngineExitedWithError(src, stderr_text, code)

        try:
            written = dst.stat().st_size
        except OSError as e:
            raise FileSizeError(f"Failed to read size of {dst}: {e}", dst) from e

        self.log.info("transcode.complete", file=src.name)
        return written

    def _remove_partial(self, dst: Path) -> None:
        """Delete a partially written output so a later run converts the file again."""
        if not dst.exists():
            return
        try:
            dst.unlink()
        except OSError as e:
            self.log.warn("transcode.cleanup_failed", file=str(dst), error=str(e))
