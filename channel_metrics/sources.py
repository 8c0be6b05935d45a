"""Remote sources (channel info, video pages, captions) and input loading."""

import asyncio
import csv
import html
import os
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Protocol, Set

import aiohttp
import yt_dlp
from yt_dlp.utils import DownloadError, ExtractorError

from .errors import InputError, SourceUnavailableError
from .logger import YtDlpLogger, log_with_timestamp
from .models import (
    DEFAULT_CAPTION_EXT,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_LANGUAGE,
    CaptionEntry,
    VideoItem,
    normalize_url,
)
from .polling import poll_until
from .ytdlp_options import build_channel_info_options, build_page_options, select_random_user_agent


class ChannelInfoSource(Protocol):
    async def resolve(self, link: str) -> str: ...


class PagedItemSource(Protocol):
    async def fetch(self, link: str, start: int, end: int) -> List[VideoItem]: ...


class CaptionSource(Protocol):
    async def fetch(self, url: str) -> List[CaptionEntry]: ...


def videos_tab_url(link: str) -> str:
    return f"{link}/videos"


def _extract_info(ydl_opts: dict, url: str) -> Optional[Dict[str, Any]]:
    """Blocking yt-dlp metadata extraction; runs on a worker thread."""
    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            return ydl.extract_info(url, download=False)
    except (DownloadError, ExtractorError) as exc:
        raise SourceUnavailableError(f"{url}: {exc}") from exc


class YtDlpChannelInfoSource:
    """Resolves a channel's display name through yt-dlp."""

    def __init__(self, args, attempts: int = 3, base_delay: float = 2.0) -> None:
        self.args = args
        self.attempts = attempts
        self.base_delay = base_delay

    async def _lookup_once(self, link: str) -> Optional[str]:
        logger = YtDlpLogger(link, verbose=getattr(self.args, "verbose", False))
        ydl_opts = build_channel_info_options(self.args, logger)
        info = await asyncio.to_thread(_extract_info, ydl_opts, videos_tab_url(link))
        if not info:
            return None
        for key in ("channel", "uploader"):
            value = info.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    async def resolve(self, link: str) -> str:
        return await poll_until(
            lambda: self._lookup_once(link),
            attempts=self.attempts,
            base_delay=self.base_delay,
            description=f"channel name for {link}",
        )


def find_caption_url(
    entry: Dict[str, Any],
    language: str = DEFAULT_LANGUAGE,
    ext: str = DEFAULT_CAPTION_EXT,
) -> Optional[str]:
    """Return the caption URL for ``language`` in format ``ext``.

    Uploaded subtitles win over automatic captions.
    """
    for key in ("subtitles", "automatic_captions"):
        tracks = entry.get(key) or {}
        for track in tracks.get(language) or []:
            if isinstance(track, dict) and track.get("ext") == ext and track.get("url"):
                return track["url"]
    return None


def entry_to_item(entry: Any, language: str = DEFAULT_LANGUAGE) -> Optional[VideoItem]:
    """Convert one yt-dlp playlist entry; ``None`` if it has no usable duration."""
    if not isinstance(entry, dict):
        return None

    duration = entry.get("duration")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return None

    return VideoItem(
        video_id=str(entry.get("id") or ""),
        duration=float(duration),
        caption_url=find_caption_url(entry, language),
    )


class YtDlpPagedItemSource:
    """Lists a window of a channel's uploads, one full extraction per video."""

    def __init__(self, args, language: str = DEFAULT_LANGUAGE) -> None:
        self.args = args
        self.language = language

    async def fetch(self, link: str, start: int, end: int) -> List[VideoItem]:
        logger = YtDlpLogger(link, verbose=getattr(self.args, "verbose", False))
        ydl_opts = build_page_options(self.args, logger, start, end)
        info = await asyncio.to_thread(_extract_info, ydl_opts, videos_tab_url(link))

        if not info or info.get("entries") is None:
            raise SourceUnavailableError(
                f"{link}: no playlist entries for videos {start}-{end}"
                + (f" ({logger.last_error})" if logger.last_error else "")
            )

        items: List[VideoItem] = []
        for entry in info["entries"]:
            item = entry_to_item(entry, self.language)
            if item is not None:
                items.append(item)
        return items


def parse_srv1(document: str) -> List[CaptionEntry]:
    """Parse a YouTube srv1 caption document.

    Format: ``<transcript><text start="0.0" dur="1.5">Hello</text>...</transcript>``.
    Text is HTML-escaped a second time inside the XML, so it is unescaped again.
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        raise SourceUnavailableError(f"malformed caption document: {exc}") from exc

    entries: List[CaptionEntry] = []
    for node in root.iter("text"):
        try:
            duration = float(node.get("dur") or 0.0)
        except ValueError as exc:
            raise SourceUnavailableError(f"invalid caption duration {node.get('dur')!r}") from exc
        text = html.unescape(node.text or "")
        entries.append(CaptionEntry(text=text, duration=duration))
    return entries


class HttpCaptionSource:
    """Downloads caption tracks over one shared aiohttp session.

    Use as an async context manager; the session is closed on exit.
    """

    def __init__(self, timeout: float = DEFAULT_FETCH_TIMEOUT, proxy: Optional[str] = None) -> None:
        self.timeout = timeout
        self.proxy = proxy
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpCaptionSource":
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={"User-Agent": select_random_user_agent()},
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch(self, url: str) -> List[CaptionEntry]:
        if self._session is None:
            raise RuntimeError("HttpCaptionSource used outside 'async with'")

        try:
            async with self._session.get(url, proxy=self.proxy) as response:
                if response.status >= 400:
                    raise SourceUnavailableError(f"caption request failed with HTTP {response.status}")
                document = await response.text()
        except aiohttp.ClientError as exc:
            raise SourceUnavailableError(f"caption request failed: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise SourceUnavailableError(f"caption document is not valid text: {exc}") from exc

        return parse_srv1(document)


def parse_input_line(line: str) -> Optional[str]:
    """Parse a line of a plain-text channel list; ``None`` for blanks and comments."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None

    comment_match = re.search(r"\s#", stripped)
    if comment_match:
        stripped = stripped[: comment_match.start()].rstrip()
        if not stripped:
            return None

    return normalize_url(stripped)


def _load_csv_links(path: str) -> Set[str]:
    links: Set[str] = set()
    with open(path, "r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        columns = {name.strip().lower(): name for name in (reader.fieldnames or [])}
        if "url" not in columns:
            raise InputError(f"{path}: missing 'Url' column")
        url_column = columns["url"]
        for idx, row in enumerate(reader, start=2):
            value = (row.get(url_column) or "").strip()
            if not value:
                continue
            try:
                links.add(normalize_url(value))
            except ValueError as exc:
                raise InputError(f"{path}:{idx}: {exc}") from exc
    return links


def _load_text_links(path: str) -> Set[str]:
    links: Set[str] = set()
    with open(path, "r", encoding="utf-8") as f:
        for idx, line in enumerate(f, start=1):
            try:
                link = parse_input_line(line)
            except ValueError as exc:
                raise InputError(f"{path}:{idx}: {exc}") from exc
            if link:
                links.add(link)
    return links


def load_channel_links(path: str) -> Set[str]:
    """Load the set of channel URLs to process from a CSV or text file."""
    try:
        if os.path.splitext(path)[1].lower() == ".csv":
            links = _load_csv_links(path)
        else:
            links = _load_text_links(path)
    except OSError as exc:
        raise InputError(f"Failed to read {path}: {exc}") from exc

    log_with_timestamp(f"Loaded {len(links)} channels from {path}")
    return links
