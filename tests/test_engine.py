import io
import subprocess
from pathlib import Path

import pytest

from conftest import audio, subtitle, video
from mkvbatch.transcode import engine as engine_mod
from mkvbatch.transcode import (
    FFmpegEngine,
    StreamKind,
    TrackAction,
    TrackActionKind,
    TranscodePlan,
    VideoParams,
    build_ffmpeg_cmd,
    plan_transcode,
)
from mkvbatch.transcode.errors import EngineExitedWithError, EngineLaunchFailed
from mkvbatch.utils import system_util
from mkvbatch.utils.constants import STDERR_TAIL_LINES


def _opt(cmd, flag):
    return cmd[cmd.index(flag) + 1]


def test_video_part_of_command(policy, tmp_path):
    plan = plan_transcode((video(field_order="tt", pix_fmt="yuv420p10le"),), policy)
    src, dst = tmp_path / "in.avi", tmp_path / "out.mkv"

    cmd = build_ffmpeg_cmd(plan, src, dst)

    assert cmd[0] == "ffmpeg"
    assert _opt(cmd, "-i") == str(src)
    assert _opt(cmd, "-map") == "0:v:0"
    assert _opt(cmd, "-c:v") == "libx265"
    assert _opt(cmd, "-preset") == "slow"
    assert _opt(cmd, "-crf") == "18"
    assert _opt(cmd, "-pix_fmt") == "yuv420p10le"
    assert _opt(cmd, "-vf") == "yadif"
    assert "-n" in cmd
    assert cmd[-1] == str(dst)


def test_progressive_command_has_no_filter(policy, tmp_path):
    plan = plan_transcode((video(),), policy)
    assert "-vf" not in build_ffmpeg_cmd(plan, tmp_path / "a.mp4", tmp_path / "a.mkv")


def test_each_track_gets_its_own_options(policy, tmp_path):
    streams = (
        video(),
        audio(1, "ac3", bit_rate="448000", channels=6),
        audio(2, "mp3", bit_rate="192000", channels=2),
        audio(3, "wmav2"),
        subtitle(4),
    )
    plan = plan_transcode(streams, policy)

    cmd = build_ffmpeg_cmd(plan, tmp_path / "a.mp4", tmp_path / "a.mkv")
    tail = cmd[cmd.index("-pix_fmt") + 2:-1]

    assert tail == [
        "-map", "0:1", "-c:a:0", "copy", "-b:a:0", "448000", "-ac:a:0", "6",
        "-map", "0:2", "-c:a:1", "aac", "-b:a:1", "192000", "-ac:a:1", "2",
        "-map", "0:3", "-c:a:2", "aac",
        "-map", "0:4", "-c:s:0", "copy",
    ]


def test_copy_video_action_uses_next_video_output(tmp_path):
    plan = TranscodePlan(
        skip=False,
        video=VideoParams("libx264", "fast", 23, "yuv420p"),
        actions=(TrackAction(2, StreamKind.VIDEO, TrackActionKind.COPY_VIDEO),),
    )

    cmd = build_ffmpeg_cmd(plan, tmp_path / "a.mp4", tmp_path / "a.mkv")

    assert cmd[-4:-1] == ["0:2", "-c:v:1", "copy"]


def test_skipped_plan_cannot_be_rendered(tmp_path):
    with pytest.raises(ValueError):
        build_ffmpeg_cmd(TranscodePlan(skip=True), tmp_path / "a.mp4", tmp_path / "a.mkv")


class _FakePopen:
    """Stands in for an ffmpeg process; writes `size` bytes to the output."""

    returncode_to_use = 0
    size = 1234
    stderr_lines = "frame=  10 fps=5 time=00:00:01.00 bitrate=1k speed=2.0x\n"
    last_cmd = None

    def __init__(self, cmd, **kwargs):
        _FakePopen.last_cmd = cmd
        Path(cmd[-1]).write_bytes(b"\0" * self.size)
        self.stderr = io.StringIO(self.stderr_lines)
        self.returncode = None

    def poll(self):
        self.returncode = self.returncode_to_use
        return self.returncode

    def communicate(self):
        self.returncode = self.returncode_to_use
        return "", ""

    def kill(self):
        self.killed = True

    def wait(self):
        self.returncode = -9
        return self.returncode


@pytest.fixture()
def fake_popen(monkeypatch):
    monkeypatch.setattr(_FakePopen, "returncode_to_use", 0)
    monkeypatch.setattr(subprocess, "Popen", _FakePopen)
    return _FakePopen


def test_transcode_returns_bytes_written(policy, tmp_path, fake_popen, rec_log):
    plan = plan_transcode((video(), audio(1, "aac")), policy)
    dst = tmp_path / "out.mkv"

    written = FFmpegEngine(log=rec_log, progress_interval=0).transcode(plan, tmp_path / "in.mp4", dst)

    assert written == 1234
    assert fake_popen.last_cmd[-1] == str(dst)
    assert rec_log.named("transcode.start")
    assert rec_log.named("transcode.complete")
    (progress,) = rec_log.named("transcode.progress")
    assert progress["position"] == "00:00:01.00"
    assert progress["speed"] == "2.0x"


def test_failed_run_removes_partial_output(policy, tmp_path, fake_popen, rec_log):
    fake_popen.returncode_to_use = 1
    plan = plan_transcode((video(),), policy)
    dst = tmp_path / "out.mkv"

    with pytest.raises(EngineExitedWithError) as exc:
        FFmpegEngine(log=rec_log).transcode(plan, tmp_path / "in.mp4", dst)

    assert exc.value.exit_code == 1
    assert not dst.exists()
    assert rec_log.named("transcode.failed")


class _InterruptedStderr:
    def readline(self):
        raise KeyboardInterrupt


def test_interrupted_run_kills_ffmpeg_and_removes_partial_output(policy, tmp_path, monkeypatch, rec_log):
    started = []

    class _Interrupted(_FakePopen):
        def __init__(self, cmd, **kwargs):
            super().__init__(cmd, **kwargs)
            self.killed = False
            self.stderr = _InterruptedStderr()
            started.append(self)

    monkeypatch.setattr(subprocess, "Popen", _Interrupted)
    plan = plan_transcode((video(),), policy)
    dst = tmp_path / "out.mkv"

    with pytest.raises(KeyboardInterrupt):
        FFmpegEngine(log=rec_log).transcode(plan, tmp_path / "in.mp4", dst)

    (process,) = started
    assert process.killed
    assert not dst.exists()
    assert rec_log.named("transcode.aborted")


def test_failure_report_keeps_only_the_stderr_tail(policy, tmp_path, fake_popen, rec_log, monkeypatch):
    progress = "".join(f"frame={i} time=00:00:{i % 60:02d}.00 speed=1.0x\n" for i in range(500))
    monkeypatch.setattr(fake_popen, "stderr_lines", progress + "Conversion failed!\n")
    fake_popen.returncode_to_use = 1
    plan = plan_transcode((video(),), policy)

    with pytest.raises(EngineExitedWithError) as exc:
        FFmpegEngine(log=rec_log).transcode(plan, tmp_path / "in.mp4", tmp_path / "out.mkv")

    lines = exc.value.stderr.splitlines()
    assert lines[-1] == "Conversion failed!"
    assert len(lines) == STDERR_TAIL_LINES
    assert "frame=0 " not in exc.value.stderr


def test_launch_failure(policy, tmp_path, monkeypatch, rec_log):
    def _missing(cmd, **kwargs):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(subprocess, "Popen", _missing)
    plan = plan_transcode((video(),), policy)

    with pytest.raises(EngineLaunchFailed):
        FFmpegEngine(log=rec_log).transcode(plan, tmp_path / "in.mp4", tmp_path / "out.mkv")


def test_available_encoders_parses_listing(monkeypatch):
    listing = (
        "Encoders:\n"
        " V..... = Video\n"
        " A..... = Audio\n"
        " ------\n"
        " V....D libx264              libx264 H.264 / AVC\n"
        " V....D hevc_nvenc           NVIDIA NVENC hevc encoder (codec hevc)\n"
        " A....D aac                  AAC (Advanced Audio Coding)\n"
    )
    monkeypatch.setattr(system_util, "run_cmd", lambda cmd: (0, listing, ""))
    engine_mod.available_encoders.cache_clear()
    try:
        assert engine_mod.available_encoders() == ["libx264", "hevc_nvenc"]
    finally:
        engine_mod.available_encoders.cache_clear()


def test_available_encoders_without_ffmpeg(monkeypatch):
    def _missing(cmd):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(system_util, "run_cmd", _missing)
    engine_mod.available_encoders.cache_clear()
    try:
        assert engine_mod.available_encoders() == []
    finally:
        engine_mod.available_encoders.cache_clear()
