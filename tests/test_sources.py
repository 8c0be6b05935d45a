"""Tests for the yt-dlp and caption sources and for input loading."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp import test_utils
from yt_dlp.utils import DownloadError

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from channel_metrics import sources
from channel_metrics.aggregator import BatchAggregator
from channel_metrics.errors import InputError, SourceTimeoutError, SourceUnavailableError
from channel_metrics.models import CaptionEntry, VideoItem

LINK = "https://www.youtube.com/@example"


class SimpleArgs:
    verbose = False
    cookies_from_browser = None
    proxy = None


SRV1 = (
    '<?xml version="1.0" encoding="utf-8" ?><transcript>'
    '<text start="0.0" dur="1.5">Xin ch&amp;agrave;o</text>'
    '<text start="1.5" dur="2.25">It&amp;#39;s me</text>'
    '<text start="4.0">&lt;no duration&gt;</text>'
    "</transcript>"
)


def make_fake_ytdl(responses, created):
    """Build a YoutubeDL stand-in returning (or raising) queued responses."""

    class FakeYoutubeDL:
        def __init__(self, opts):
            self.opts = opts
            created.append(self)

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def extract_info(self, url, download=False):
            self.url = url
            assert download is False
            response = responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response

    return FakeYoutubeDL


def test_parse_srv1_unescapes_text():
    entries = sources.parse_srv1(SRV1)
    assert entries == [
        CaptionEntry("Xin chào", 1.5),
        CaptionEntry("It's me", 2.25),
        CaptionEntry("<no duration>", 0.0),
    ]


def test_parse_srv1_rejects_malformed_document():
    with pytest.raises(SourceUnavailableError):
        sources.parse_srv1("<transcript><text>")


def test_find_caption_url_prefers_uploaded_subtitles():
    entry = {
        "subtitles": {"vi": [{"ext": "vtt", "url": "u-vtt"}, {"ext": "srv1", "url": "u-srv1"}]},
        "automatic_captions": {"vi": [{"ext": "srv1", "url": "a-srv1"}]},
    }
    assert sources.find_caption_url(entry, "vi") == "u-srv1"


def test_find_caption_url_falls_back_to_automatic_captions():
    entry = {
        "subtitles": {"en": [{"ext": "srv1", "url": "en-srv1"}]},
        "automatic_captions": {"vi": [{"ext": "json3", "url": "a-json3"}, {"ext": "srv1", "url": "a-srv1"}]},
    }
    assert sources.find_caption_url(entry, "vi") == "a-srv1"
    assert sources.find_caption_url(entry, "de") is None


@pytest.mark.parametrize(
    "entry",
    [None, {"id": "x"}, {"id": "x", "duration": None}, {"id": "x", "duration": "12"}],
)
def test_entry_to_item_skips_entries_without_duration(entry):
    assert sources.entry_to_item(entry) is None


def test_entry_to_item_builds_item():
    entry = {
        "id": "abc",
        "duration": 61,
        "automatic_captions": {"vi": [{"ext": "srv1", "url": "cap"}]},
    }
    assert sources.entry_to_item(entry, "vi") == VideoItem("abc", 61.0, "cap")


def test_paged_item_source_requests_window(monkeypatch: pytest.MonkeyPatch):
    created = []
    info = {
        "_type": "playlist",
        "entries": [
            {"id": "a", "duration": 10},
            None,
            {"id": "b", "duration": 20.5, "subtitles": {"vi": [{"ext": "srv1", "url": "cap-b"}]}},
            {"id": "live", "duration": None},
        ],
    }
    monkeypatch.setattr(sources.yt_dlp, "YoutubeDL", make_fake_ytdl([info], created))

    source = sources.YtDlpPagedItemSource(SimpleArgs(), language="vi")
    items = asyncio.run(source.fetch(LINK, 101, 200))

    assert items == [VideoItem("a", 10.0, None), VideoItem("b", 20.5, "cap-b")]
    assert created[0].url == LINK + "/videos"
    assert created[0].opts["playliststart"] == 101
    assert created[0].opts["playlistend"] == 200
    assert created[0].opts["skip_download"] is True


def test_paged_item_source_past_the_end_is_empty(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(sources.yt_dlp, "YoutubeDL", make_fake_ytdl([{"entries": []}], []))
    source = sources.YtDlpPagedItemSource(SimpleArgs())
    assert asyncio.run(source.fetch(LINK, 5001, 5100)) == []


@pytest.mark.parametrize("response", [None, {"id": "x"}, DownloadError("ERROR: HTTP Error 429")])
def test_paged_item_source_failures(monkeypatch: pytest.MonkeyPatch, response):
    monkeypatch.setattr(sources.yt_dlp, "YoutubeDL", make_fake_ytdl([response], []))
    source = sources.YtDlpPagedItemSource(SimpleArgs())
    with pytest.raises(SourceUnavailableError):
        asyncio.run(source.fetch(LINK, 1, 100))


def test_channel_info_source_polls_until_name(monkeypatch: pytest.MonkeyPatch):
    created = []
    responses = [
        DownloadError("ERROR: temporary failure"),
        {"title": "Example - Videos"},
        {"channel": "Example Channel", "uploader": "Uploader"},
    ]
    monkeypatch.setattr(sources.yt_dlp, "YoutubeDL", make_fake_ytdl(responses, created))

    source = sources.YtDlpChannelInfoSource(SimpleArgs(), attempts=3, base_delay=0.0)
    name = asyncio.run(source.resolve(LINK))

    assert name == "Example Channel"
    assert len(created) == 3
    assert created[0].opts["playlist_items"] == "0"


def test_channel_info_source_gives_up(monkeypatch: pytest.MonkeyPatch):
    responses = [{"title": "no name"}, {"title": "no name"}]
    monkeypatch.setattr(sources.yt_dlp, "YoutubeDL", make_fake_ytdl(responses, []))

    source = sources.YtDlpChannelInfoSource(SimpleArgs(), attempts=2, base_delay=0.0)
    with pytest.raises(SourceTimeoutError):
        asyncio.run(source.resolve(LINK))


def test_http_caption_source_fetches_and_parses():
    async def captions(request):
        return web.Response(text=SRV1, content_type="text/xml")

    async def missing(request):
        return web.Response(status=404)

    async def scenario():
        app = web.Application()
        app.router.add_get("/captions", captions)
        app.router.add_get("/missing", missing)
        async with test_utils.TestServer(app) as server:
            async with sources.HttpCaptionSource(timeout=5) as source:
                entries = await source.fetch(str(server.make_url("/captions")))
                with pytest.raises(SourceUnavailableError):
                    await source.fetch(str(server.make_url("/missing")))
            assert source._session is None
        return entries

    entries = asyncio.run(scenario())
    assert [entry.text for entry in entries] == ["Xin chào", "It's me", "<no duration>"]


def test_undecodable_caption_body_is_contained():
    async def garbled(request):
        return web.Response(
            body=b"<transcript><text dur='1'>\xff\xfe</text></transcript>",
            content_type="text/xml",
            charset="utf-8",
        )

    class OneVideoSource:
        def __init__(self, caption_url):
            self.caption_url = caption_url

        async def fetch(self, link, start, end):
            return [VideoItem("v1", 30.0, self.caption_url)] if start == 1 else []

    async def scenario():
        app = web.Application()
        app.router.add_get("/garbled", garbled)
        async with test_utils.TestServer(app) as server:
            url = str(server.make_url("/garbled"))
            async with sources.HttpCaptionSource(timeout=5) as source:
                with pytest.raises(SourceUnavailableError):
                    await source.fetch(url)
                aggregator = BatchAggregator(OneVideoSource(url), source)
                return await aggregator.aggregate(LINK, 4, 2)

    total = asyncio.run(scenario())
    assert total.video_count == 1
    assert total.total_duration == 30.0
    assert total.sentence_count == 0


def test_http_caption_source_requires_context():
    with pytest.raises(RuntimeError):
        asyncio.run(sources.HttpCaptionSource().fetch("http://localhost/captions"))


def test_parse_input_line_strips_comments():
    assert sources.parse_input_line("  # comment") is None
    assert sources.parse_input_line("") is None
    assert sources.parse_input_line("youtube.com/@Example/videos # old") == "https://youtube.com/@Example"


def test_load_channel_links_from_csv(tmp_path):
    path = tmp_path / "channels.csv"
    path.write_text(
        "Url,Note\n"
        "https://www.youtube.com/@one,first\n"
        "https://www.youtube.com/@one/,duplicate\n"
        ",blank\n"
        "www.youtube.com/@two/videos,second\n",
        encoding="utf-8",
    )
    assert sources.load_channel_links(str(path)) == {
        "https://www.youtube.com/@one",
        "https://www.youtube.com/@two",
    }


def test_load_channel_links_from_text(tmp_path):
    path = tmp_path / "channels.txt"
    path.write_text("# channels\nhttps://www.youtube.com/@one\n\nhttps://www.youtube.com/@two # keep\n", encoding="utf-8")
    assert sources.load_channel_links(str(path)) == {
        "https://www.youtube.com/@one",
        "https://www.youtube.com/@two",
    }


def test_load_channel_links_requires_url_column(tmp_path):
    path = tmp_path / "channels.csv"
    path.write_text("Link\nhttps://www.youtube.com/@one\n", encoding="utf-8")
    with pytest.raises(InputError):
        sources.load_channel_links(str(path))


def test_load_channel_links_missing_file(tmp_path):
    with pytest.raises(InputError):
        sources.load_channel_links(str(tmp_path / "nope.txt"))
