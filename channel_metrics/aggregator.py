"""Per-channel metric aggregation over concurrently fetched video pages."""

import asyncio
from typing import Iterator, List, Optional, Tuple

from .downloader import ChannelDownloader
from .errors import ChannelMetricsError, PostProcessError, SourceTimeoutError
from .logger import log_with_timestamp
from .models import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_MAX_CAPTION_REQUESTS,
    DEFAULT_MAX_ITEMS,
    DEFAULT_MAX_PAGE_REQUESTS,
    ChannelMetrics,
    ChannelResult,
    PartialBatchStats,
    VideoItem,
)
from .sources import CaptionSource, ChannelInfoSource, PagedItemSource


def page_windows(max_items: int, batch_size: int) -> Iterator[Tuple[int, int]]:
    """Yield 1-based inclusive ``(start, end)`` windows covering ``1..max_items``."""
    if max_items <= 0:
        raise ValueError("max_items must be positive")
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    for start in range(1, max_items + 1, batch_size):
        yield start, min(start + batch_size - 1, max_items)


class BatchAggregator:
    """Fetches every page window of a channel and folds the partial stats.

    Page requests and caption downloads are gated by semaphores shared by
    every channel using this aggregator. A failed page or caption contributes
    nothing; it never fails the channel.
    """

    def __init__(
        self,
        item_source: PagedItemSource,
        caption_source: CaptionSource,
        max_page_requests: int = DEFAULT_MAX_PAGE_REQUESTS,
        max_caption_requests: int = DEFAULT_MAX_CAPTION_REQUESTS,
        fetch_timeout: Optional[float] = DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        self.item_source = item_source
        self.caption_source = caption_source
        self.fetch_timeout = fetch_timeout
        self._page_gate = asyncio.Semaphore(max_page_requests)
        self._caption_gate = asyncio.Semaphore(max_caption_requests)

    async def aggregate(
        self,
        link: str,
        max_items: int = DEFAULT_MAX_ITEMS,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> PartialBatchStats:
        windows = list(page_windows(max_items, batch_size))
        partials = await asyncio.gather(
            *(self._aggregate_window(link, start, end) for start, end in windows)
        )
        return sum(partials, PartialBatchStats.zero())

    async def _fetch_window(self, link: str, start: int, end: int) -> List[VideoItem]:
        async with self._page_gate:
            return await asyncio.wait_for(
                self.item_source.fetch(link, start, end), timeout=self.fetch_timeout
            )

    async def _aggregate_window(self, link: str, start: int, end: int) -> PartialBatchStats:
        try:
            items = await self._fetch_window(link, start, end)
        except asyncio.TimeoutError:
            log_with_timestamp(f"{link}: videos {start}-{end} timed out after {self.fetch_timeout}s")
            return PartialBatchStats.zero()
        except ChannelMetricsError as exc:
            log_with_timestamp(f"{link}: videos {start}-{end} unavailable: {exc}")
            return PartialBatchStats.zero()
        except Exception as exc:
            log_with_timestamp(f"{link}: videos {start}-{end} failed unexpectedly: {exc!r}")
            return PartialBatchStats.zero()

        if not items:
            return PartialBatchStats.zero()

        caption_stats = await asyncio.gather(
            *(self._caption_stats(item.caption_url) for item in items if item.caption_url)
        )
        return sum(caption_stats, PartialBatchStats.from_items(items))

    async def _caption_stats(self, url: str) -> PartialBatchStats:
        try:
            async with self._caption_gate:
                entries = await asyncio.wait_for(
                    self.caption_source.fetch(url), timeout=self.fetch_timeout
                )
        except (ChannelMetricsError, asyncio.TimeoutError):
            return PartialBatchStats.zero()
        except Exception as exc:
            log_with_timestamp(f"{url}: caption fetch failed unexpectedly: {exc!r}")
            return PartialBatchStats.zero()
        return PartialBatchStats.from_captions(entries)


class ChannelAggregator:
    """Turns one channel URL into a ChannelMetrics record, or a failure."""

    def __init__(
        self,
        info_source: ChannelInfoSource,
        batch_aggregator: BatchAggregator,
        max_items: int = DEFAULT_MAX_ITEMS,
        batch_size: int = DEFAULT_BATCH_SIZE,
        fetch_timeout: Optional[float] = DEFAULT_FETCH_TIMEOUT,
        downloader: Optional[ChannelDownloader] = None,
        output_dir: Optional[str] = None,
    ) -> None:
        if downloader is not None and not output_dir:
            raise ValueError("output_dir is required when a downloader is configured")
        self.info_source = info_source
        self.batch_aggregator = batch_aggregator
        self.max_items = max_items
        self.batch_size = batch_size
        self.fetch_timeout = fetch_timeout
        self.downloader = downloader
        self.output_dir = output_dir

    async def _resolve_name(self, link: str) -> str:
        try:
            return await asyncio.wait_for(self.info_source.resolve(link), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as exc:
            raise SourceTimeoutError(
                f"{link}: channel name not resolved within {self.fetch_timeout}s"
            ) from exc

    async def compute(self, link: str) -> ChannelMetrics:
        channel_name = await self._resolve_name(link)
        log_with_timestamp(f"{link}: start getting metrics ({channel_name})")
        totals = await self.batch_aggregator.aggregate(link, self.max_items, self.batch_size)
        metrics = totals.to_metrics(link, channel_name)
        log_with_timestamp(
            f"{link}: finish getting metrics ({metrics.video_count} videos, "
            f"{totals.sentence_count} caption lines)"
        )
        return metrics

    async def process(self, link: str) -> ChannelResult:
        try:
            metrics = await self.compute(link)
        except (ChannelMetricsError, asyncio.TimeoutError) as exc:
            log_with_timestamp(f"{link}: failed: {exc}")
            return ChannelResult(link=link, error=exc)

        result = ChannelResult(link=link, metrics=metrics)
        if self.downloader is not None:
            try:
                await self.downloader.run(link, metrics.channel_name, self.output_dir)
            except PostProcessError as exc:
                log_with_timestamp(f"{link}: download/post-process failed: {exc}")
                result.post_process_error = exc
        return result
