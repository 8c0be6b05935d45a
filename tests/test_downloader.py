"""Tests for the channel download / post-process collaborator."""

from __future__ import annotations

import asyncio
import os
import shlex
import sys
from pathlib import Path

import pytest
from yt_dlp.utils import DownloadError

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from channel_metrics import downloader
from channel_metrics.errors import PostProcessError

LINK = "https://www.youtube.com/@example"
PYTHON = shlex.quote(sys.executable)


class Args:
    verbose = False
    cookies_from_browser = None
    proxy = None


def make_fake_ytdl(created, error=None):
    class FakeYoutubeDL:
        def __init__(self, opts):
            self.opts = opts
            created.append(self)

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def download(self, urls):
            self.urls = urls
            if error is not None:
                raise error
            folder = os.path.dirname(self.opts["outtmpl"])
            for name in ("vid1.mp4", "vid2.mp4", "vid3.mp4.part"):
                Path(folder, name).write_bytes(b"")

    return FakeYoutubeDL


def test_safe_dirname():
    assert downloader.safe_dirname('AC/DC: "Live"') == "AC_DC_ _Live_"
    assert downloader.safe_dirname("Kênh Ví Dụ") == "Kênh Ví Dụ"
    assert downloader.safe_dirname(" .. ") == "channel"


def test_build_post_process_command_substitutes_placeholders():
    command = downloader.build_post_process_command(
        "python Columbia_test.py --videoName {video} --videoFolder '{folder}'",
        "abc.mp4",
        "/out/My Channel",
    )
    assert command == [
        "python", "Columbia_test.py", "--videoName", "abc.mp4", "--videoFolder", "/out/My Channel",
    ]


def test_run_downloads_into_channel_directory(monkeypatch: pytest.MonkeyPatch, tmp_path):
    created = []
    monkeypatch.setattr(downloader.yt_dlp, "YoutubeDL", make_fake_ytdl(created))

    collaborator = downloader.YtDlpChannelDownloader(Args(), f"{PYTHON} -c pass {{video}} {{folder}}", max_items=10)
    asyncio.run(collaborator.run(LINK, "Example", str(tmp_path)))

    assert created[0].urls == [LINK + "/videos"]
    assert created[0].opts["playlistend"] == 10
    assert (tmp_path / "Example" / "vid1.mp4").exists()


def test_failing_post_process_command(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setattr(downloader.yt_dlp, "YoutubeDL", make_fake_ytdl([]))
    command = f"{PYTHON} -c 'import sys; sys.exit(3)' {{video}}"

    collaborator = downloader.YtDlpChannelDownloader(Args(), command)
    with pytest.raises(PostProcessError) as excinfo:
        asyncio.run(collaborator.run(LINK, "Example", str(tmp_path)))

    assert "2/2" in str(excinfo.value)


def test_download_error_becomes_post_process_error(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setattr(
        downloader.yt_dlp, "YoutubeDL", make_fake_ytdl([], error=DownloadError("ERROR: blocked"))
    )

    collaborator = downloader.YtDlpChannelDownloader(Args())
    with pytest.raises(PostProcessError):
        asyncio.run(collaborator.run(LINK, "Example", str(tmp_path)))
