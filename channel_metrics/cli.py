"""Command-line entry point: load channels, run the orchestrator, report."""

import asyncio
import os
import sys
from typing import List, Optional

from .aggregator import BatchAggregator, ChannelAggregator
from .config import parse_args
from .downloader import YtDlpChannelDownloader
from .errors import ErrorAnalyzer, InputError, PersistenceError
from .logger import log_with_timestamp
from .models import METRICS_FILENAME, RunSummary
from .orchestrator import RetryOrchestrator
from .sources import HttpCaptionSource, YtDlpChannelInfoSource, YtDlpPagedItemSource, load_channel_links
from .storage import CsvMetricsSink, load_processed_links


def print_run_summary(summary: RunSummary, data_path: str) -> None:
    print("\n" + "=" * 70)
    print("Run Summary")
    print("=" * 70)
    print(f"Rounds: {summary.rounds}")
    print(f"Channels processed: {len(summary.processed)}")
    print(f"Metrics file: {data_path}")
    if summary.unresolved:
        print(f"Unresolved channels ({len(summary.unresolved)}):")
        for link in sorted(summary.unresolved):
            print(f"  {link}")
    print("=" * 70)


async def run(args) -> int:
    """Run a full collection with the collaborators described by ``args``."""
    try:
        links = load_channel_links(args.input)
    except InputError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    try:
        os.makedirs(args.output_dir, exist_ok=True)
    except OSError as exc:
        print(f"Error: Failed to create output directory {args.output_dir}: {exc}", file=sys.stderr)
        return 1
    data_path = os.path.join(args.output_dir, METRICS_FILENAME)

    if args.resume:
        already_done = links & load_processed_links(data_path)
        if already_done:
            log_with_timestamp(f"Skipping {len(already_done)} channels already in {data_path}")
            links -= already_done

    error_analyzer = ErrorAnalyzer()
    if args.error_log:
        error_analyzer.set_error_log_path(args.error_log)

    async with HttpCaptionSource(timeout=args.fetch_timeout, proxy=args.proxy) as caption_source:
        batch_aggregator = BatchAggregator(
            YtDlpPagedItemSource(args, language=args.language),
            caption_source,
            max_page_requests=args.max_page_requests,
            max_caption_requests=args.max_caption_requests,
            fetch_timeout=args.fetch_timeout,
        )
        downloader = None
        if args.download:
            downloader = YtDlpChannelDownloader(args, args.post_process_cmd, args.max_items)
        channel_aggregator = ChannelAggregator(
            YtDlpChannelInfoSource(args),
            batch_aggregator,
            max_items=args.max_items,
            batch_size=args.batch_size,
            fetch_timeout=args.fetch_timeout,
            downloader=downloader,
            output_dir=args.output_dir,
        )
        orchestrator = RetryOrchestrator(channel_aggregator, CsvMetricsSink(data_path), error_analyzer)

        try:
            summary = await orchestrator.run(links, max_retry=args.retry, max_concurrent=args.max_concurrent)
        except PersistenceError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    error_analyzer.print_summary()
    print_run_summary(summary, data_path)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
