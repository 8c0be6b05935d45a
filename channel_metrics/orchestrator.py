"""Round-based retry loop over the set of pending channels."""

import asyncio
from collections import Counter
from typing import Iterable, List, Optional

from .aggregator import ChannelAggregator
from .errors import ErrorAnalyzer
from .logger import log_with_timestamp
from .models import DEFAULT_MAX_RETRY, ChannelResult, RunSummary
from .storage import MetricsSink


class RetryOrchestrator:
    """Processes channels round by round until none are left or progress stalls.

    Every round launches one task per selected channel and waits for all of
    them. Successful channels are persisted in the order they finished and
    leave the pending set; failed ones are tried again next round. The run
    stops once ``max_retry`` consecutive passes over the pending channels
    remove nothing.
    """

    def __init__(
        self,
        channel_aggregator: ChannelAggregator,
        sink: MetricsSink,
        error_analyzer: Optional[ErrorAnalyzer] = None,
    ) -> None:
        self.channel_aggregator = channel_aggregator
        self.sink = sink
        self.error_analyzer = error_analyzer if error_analyzer is not None else ErrorAnalyzer()

    async def run(
        self,
        pending: Iterable[str],
        max_retry: int = DEFAULT_MAX_RETRY,
        max_concurrent: Optional[int] = None,
    ) -> RunSummary:
        if max_retry <= 0:
            raise ValueError("max_retry must be positive")
        if max_concurrent is not None and max_concurrent <= 0:
            raise ValueError("max_concurrent must be positive")

        pending = set(pending)
        attempts: Counter = Counter()
        summary = RunSummary()
        stall_count = 0
        # Links not yet tried since the last round that made progress
        untried = set(pending)

        while pending and stall_count < max_retry:
            summary.rounds += 1
            log_with_timestamp(
                f"[round {summary.rounds}] Remaining channel count: {len(pending)}"
            )
            log_with_timestamp(f"[round {summary.rounds}] Remaining channels: {', '.join(sorted(pending))}")

            # Untried links first, then least-attempted
            selected = sorted(
                pending, key=lambda link: (link not in untried, attempts[link], link)
            )
            if max_concurrent is not None:
                selected = selected[:max_concurrent]
            attempts.update(selected)

            results = await self._run_round(selected)

            removed = 0
            for result in results:
                if result.post_process_error is not None:
                    self.error_analyzer.record(result.link, result.post_process_error)

                if not result.succeeded:
                    if result.error is not None:
                        self.error_analyzer.record(result.link, result.error)
                    continue

                self.sink.append(result.metrics)
                pending.discard(result.link)
                summary.processed.append(result.metrics)
                removed += 1

            log_with_timestamp(
                f"[round {summary.rounds}] {removed}/{len(selected)} channels succeeded"
            )
            untried.difference_update(selected)
            if removed:
                stall_count = 0
                untried = set(pending)
            elif not untried:
                stall_count += 1
                untried = set(pending)

        summary.unresolved = pending
        if pending:
            log_with_timestamp(
                f"Failed after retry: {len(pending)} channels unresolved after "
                f"{stall_count} passes without progress"
            )
        else:
            log_with_timestamp(f"Finished: all channels processed in {summary.rounds} rounds")
        return summary

    async def _run_round(self, links: List[str]) -> List[ChannelResult]:
        """Run one task per link and return results in completion order."""
        tasks = [asyncio.ensure_future(self._process(link)) for link in links]
        results: List[ChannelResult] = []
        for next_done in asyncio.as_completed(tasks):
            results.append(await next_done)
        return results

    async def _process(self, link: str) -> ChannelResult:
        try:
            return await self.channel_aggregator.process(link)
        except Exception as exc:
            log_with_timestamp(f"{link}: unexpected error: {exc!r}")
            return ChannelResult(link=link, error=exc)
