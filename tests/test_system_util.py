import shutil

import pytest

from mkvbatch.utils import system_util


def test_missing_binary_is_logged_and_exits(monkeypatch, rec_log):
    monkeypatch.setattr(shutil, "which", lambda binary: None)

    with pytest.raises(SystemExit) as exc:
        system_util.which_or_die("ffprobe", rec_log)

    assert exc.value.code == 2
    (missing,) = rec_log.named("startup.missing_binary")
    assert missing["binary"] == "ffprobe"


def test_present_binary_passes(monkeypatch, rec_log):
    monkeypatch.setattr(shutil, "which", lambda binary: f"/usr/bin/{binary}")

    system_util.which_or_die("ffmpeg", rec_log)

    assert rec_log.events == []
