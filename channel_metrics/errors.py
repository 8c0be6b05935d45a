"""Error taxonomy and failure analysis for channel metrics collection."""

import asyncio
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


class ChannelMetricsError(Exception):
    """Base class for all failures raised by the pipeline."""


class SourceUnavailableError(ChannelMetricsError):
    """A remote source could not be reached or returned malformed data."""


class SourceTimeoutError(SourceUnavailableError):
    """A remote call or poll did not finish in time."""


class NoDataError(ChannelMetricsError):
    """A channel resolved but yielded no videos."""


class PersistenceError(ChannelMetricsError):
    """Metrics could not be written to durable storage."""


class PostProcessError(ChannelMetricsError):
    """The download/post-process step for a channel failed."""


class InputError(ValueError):
    """Raised when the input channel list cannot be read or parsed."""


@dataclass
class ErrorPattern:
    """Tracks a specific failure category and its occurrences."""
    error_type: str
    count: int = 0
    links: List[str] = field(default_factory=list)
    sample_messages: List[str] = field(default_factory=list)
    first_seen: Optional[float] = None
    last_seen: Optional[float] = None

    def record(self, link: Optional[str], message: str) -> None:
        """Record an occurrence of this failure category."""
        self.count += 1
        timestamp = time.time()

        if self.first_seen is None:
            self.first_seen = timestamp
        self.last_seen = timestamp

        if link and link not in self.links:
            self.links.append(link)

        # Keep only the first 5 sample messages to avoid memory bloat
        if len(self.sample_messages) < 5 and message not in self.sample_messages:
            self.sample_messages.append(message)


def categorize_error(error: BaseException) -> str:
    """Map an exception raised while processing a channel to a category."""
    if isinstance(error, (SourceTimeoutError, asyncio.TimeoutError)):
        return "timeout"
    if isinstance(error, NoDataError):
        return "no_data"
    if isinstance(error, PostProcessError):
        return "post_process"
    if isinstance(error, SourceUnavailableError):
        return "source_unavailable"
    return "unknown"


class ErrorAnalyzer:
    """Collects channel failures across rounds and summarizes them."""

    def __init__(self) -> None:
        self.patterns: Dict[str, ErrorPattern] = {
            "source_unavailable": ErrorPattern("source_unavailable"),
            "timeout": ErrorPattern("timeout"),
            "no_data": ErrorPattern("no_data"),
            "post_process": ErrorPattern("post_process"),
            "unknown": ErrorPattern("unknown"),
        }
        self.total_errors = 0
        self.error_log_path: Optional[str] = None

    def set_error_log_path(self, path: str) -> None:
        """Set the path for the detailed error log file."""
        self.error_log_path = path

    def record(self, link: Optional[str], error: BaseException) -> str:
        """Categorize a failure and record it. Returns the category."""
        self.total_errors += 1
        category = categorize_error(error)
        message = str(error) or error.__class__.__name__

        self.patterns[category].record(link, message)

        if self.error_log_path:
            self._append_to_error_log(link, category, message)

        return category

    def _append_to_error_log(self, link: Optional[str], category: str, message: str) -> None:
        """Append failure details to the error log file."""
        try:
            timestamp = datetime.now().isoformat()
            log_entry = f"[{timestamp}] [{category}] {link or 'unknown'}: {message}\n"

            with open(self.error_log_path, "a", encoding="utf-8") as f:
                f.write(log_entry)
        except OSError as e:
            # Don't fail the run if error logging fails
            print(f"Warning: Failed to write to error log: {e}", file=sys.stderr)

    def get_recommendations(self) -> List[str]:
        """Generate recommendations based on failure patterns."""
        if self.total_errors == 0:
            return ["No errors detected - all channels processed on first attempt!"]

        recommendations = []

        if self.patterns["source_unavailable"].count > 0:
            recommendations.append(
                f"Source unavailable ({self.patterns['source_unavailable'].count} failures): "
                "YouTube may be rate limiting. Lower --max-page-requests, "
                "or use --cookies-from-browser / --proxy."
            )

        if self.patterns["timeout"].count > 0:
            recommendations.append(
                f"Timeouts ({self.patterns['timeout'].count} failures): "
                "Increase --fetch-timeout or reduce --batch-size so each page request is smaller."
            )

        if self.patterns["no_data"].count > 0:
            recommendations.append(
                f"No videos ({self.patterns['no_data'].count} failures): "
                "These channels returned no videos. Check the URLs point at channels with public uploads."
            )

        if self.patterns["post_process"].count > 0:
            recommendations.append(
                f"Download/post-process ({self.patterns['post_process'].count} failures): "
                "Metrics for these channels were kept. Re-run the download separately."
            )

        if self.patterns["unknown"].count > 0:
            recommendations.append(
                f"Unknown errors ({self.patterns['unknown'].count}): "
                "Check the error log for details."
            )

        return recommendations

    def print_summary(self) -> None:
        """Print a formatted summary of failure patterns."""
        if self.total_errors == 0:
            print("\nNo errors detected during run!")
            return

        print("\n" + "=" * 70)
        print("Failure Analysis")
        print("=" * 70)
        print(f"Total failures: {self.total_errors}\n")

        sorted_patterns = sorted(
            self.patterns.items(),
            key=lambda x: x[1].count,
            reverse=True,
        )

        for name, pattern in sorted_patterns:
            if pattern.count > 0:
                print(f"{name.replace('_', ' ').title()}: {pattern.count} occurrences")
                print(f"  Affected channels: {len(pattern.links)}")
                if pattern.sample_messages:
                    print(f"  Sample: {pattern.sample_messages[0][:80]}")
                print()

        print("=" * 70)
        print("Recommendations")
        print("=" * 70)
        for rec in self.get_recommendations():
            print(f"{rec}\n")
        print("=" * 70)

        if self.error_log_path:
            print(f"\nDetailed error log: {self.error_log_path}")
