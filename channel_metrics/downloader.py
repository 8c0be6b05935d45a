"""Channel video download and optional per-file post-processing."""

import asyncio
import os
import re
import shlex
from typing import List, Optional, Protocol

import yt_dlp
from yt_dlp.utils import DownloadError, ExtractorError

from .errors import PostProcessError
from .logger import YtDlpLogger, log_with_timestamp
from .sources import videos_tab_url
from .ytdlp_options import build_download_options


class ChannelDownloader(Protocol):
    async def run(self, link: str, channel_name: str, output_dir: str) -> None: ...


def safe_dirname(name: str) -> str:
    """Turn a channel name into a directory name."""
    cleaned = re.sub(r'[\\/:*?"<>|\x00-\x1f]+', "_", name).strip(" .")
    return cleaned or "channel"


def build_post_process_command(template: str, video: str, folder: str) -> List[str]:
    """Split ``template`` and substitute ``{video}`` and ``{folder}`` in each argument."""
    return [part.replace("{video}", video).replace("{folder}", folder) for part in shlex.split(template)]


def _download(ydl_opts: dict, url: str) -> None:
    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            ydl.download([url])
    except (DownloadError, ExtractorError) as exc:
        raise PostProcessError(f"{url}: download failed: {exc}") from exc


class YtDlpChannelDownloader:
    """Downloads a channel's videos to ``<output_dir>/<channel name>/``."""

    def __init__(self, args, post_process_cmd: Optional[str] = None, max_items: Optional[int] = None) -> None:
        self.args = args
        self.post_process_cmd = post_process_cmd
        self.max_items = max_items

    async def run(self, link: str, channel_name: str, output_dir: str) -> None:
        channel_dir = os.path.join(output_dir, safe_dirname(channel_name))
        try:
            os.makedirs(channel_dir, exist_ok=True)
        except OSError as exc:
            raise PostProcessError(f"Failed to create {channel_dir}: {exc}") from exc

        log_with_timestamp(f"{link}: start download and processing videos")
        logger = YtDlpLogger(link, verbose=getattr(self.args, "verbose", False))
        ydl_opts = build_download_options(self.args, logger, channel_dir, self.max_items)
        await asyncio.to_thread(_download, ydl_opts, videos_tab_url(link))

        if self.post_process_cmd:
            await self._post_process(channel_dir)

        log_with_timestamp(f"{link}: finished download and processing videos")

    async def _post_process(self, channel_dir: str) -> None:
        videos = sorted(
            name for name in os.listdir(channel_dir)
            if os.path.isfile(os.path.join(channel_dir, name)) and not name.endswith(".part")
        )
        results = await asyncio.gather(
            *(self._run_command(video, channel_dir) for video in videos),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            raise PostProcessError(
                f"{len(failures)}/{len(videos)} post-process commands failed in {channel_dir}: {failures[0]}"
            )

    async def _run_command(self, video: str, folder: str) -> None:
        command = build_post_process_command(self.post_process_cmd, video, folder)
        try:
            process = await asyncio.create_subprocess_exec(*command)
        except OSError as exc:
            raise PostProcessError(f"Failed to start {command[0]}: {exc}") from exc
        returncode = await process.wait()
        if returncode != 0:
            raise PostProcessError(f"{' '.join(command)} exited with status {returncode}")
