"""yt-dlp options builders for name lookup, page extraction and downloads."""

import os
import random
from typing import Optional

from .logger import YtDlpLogger
from .models import USER_AGENTS


def select_random_user_agent() -> str:
    """Select a random User-Agent from the pool to rotate through different browsers."""
    return random.choice(USER_AGENTS)


def build_base_options(args, logger: YtDlpLogger) -> dict:
    """Options shared by every yt-dlp call."""
    ydl_opts = {
        "quiet": True,
        "no_warnings": not getattr(args, "verbose", False),
        "noprogress": True,
        "retries": 5,
        "logger": logger,
        "http_headers": {
            "User-Agent": select_random_user_agent(),
        },
    }

    cookies_from_browser = getattr(args, "cookies_from_browser", None)
    if cookies_from_browser:
        ydl_opts["cookiesfrombrowser"] = (cookies_from_browser,)
    proxy = getattr(args, "proxy", None)
    if proxy:
        ydl_opts["proxy"] = proxy

    return ydl_opts


def build_channel_info_options(args, logger: YtDlpLogger) -> dict:
    """Options for reading a channel's name without listing its videos."""
    ydl_opts = build_base_options(args, logger)
    ydl_opts.update(
        {
            "skip_download": True,
            "extract_flat": "in_playlist",
            "playlist_items": "0",
        }
    )
    return ydl_opts


def build_page_options(args, logger: YtDlpLogger, start: int, end: int) -> dict:
    """Options for fully extracting videos ``start``..``end`` (1-based, inclusive)."""
    ydl_opts = build_base_options(args, logger)
    ydl_opts.update(
        {
            "skip_download": True,
            "ignoreerrors": True,
            "playliststart": start,
            "playlistend": end,
            "writesubtitles": False,
            "writeautomaticsub": False,
        }
    )
    return ydl_opts


def build_download_options(args, logger: YtDlpLogger, channel_dir: str, max_items: Optional[int] = None) -> dict:
    """Options for downloading a channel's videos into ``channel_dir``."""
    ydl_opts = build_base_options(args, logger)
    ydl_opts.update(
        {
            "continuedl": True,
            "ignoreerrors": "only_download",
            "outtmpl": os.path.join(channel_dir, "%(id)s.%(ext)s"),
            "restrictfilenames": True,
        }
    )
    if max_items:
        ydl_opts["playlistend"] = max_items
    return ydl_opts
