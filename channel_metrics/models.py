"""Data models, enums, and constants for channel metrics collection."""

import math
import re
from dataclasses import dataclass, field, fields
from typing import Iterable, List, Optional, Set, Tuple

from .errors import NoDataError


# Defaults
DEFAULT_MAX_RETRY = 3
DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_ITEMS = 5000
DEFAULT_LANGUAGE = "vi"
DEFAULT_CAPTION_EXT = "srv1"
DEFAULT_MAX_PAGE_REQUESTS = 8
DEFAULT_MAX_CAPTION_REQUESTS = 16
DEFAULT_FETCH_TIMEOUT = 300.0
DEFAULT_OUTPUT_DIR = "./output"
METRICS_FILENAME = "metrics.csv"

# User-Agent rotation pool to appear as different browsers
USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0',
]

# Environment variable names
ENV_COOKIES_FROM_BROWSER = "CHANNEL_METRICS_COOKIES_FROM_BROWSER"
ENV_PROXY = "CHANNEL_METRICS_PROXY"


def normalize_url(url: str) -> str:
    """Normalize and validate a channel URL."""
    cleaned = url.strip()
    if not cleaned:
        raise ValueError("missing URL")

    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", cleaned):
        cleaned = "https://" + cleaned.lstrip("/")

    cleaned = cleaned.rstrip("/")
    # Strip a trailing tab so "<channel>/videos" can be built uniformly
    trailing_match = re.search(r"/(videos|shorts|streams|live|featured)$", cleaned)
    if trailing_match:
        cleaned = cleaned[: -len(trailing_match.group(0))]
    return cleaned


@dataclass(frozen=True)
class VideoItem:
    """One entry of a channel's video list."""
    video_id: str
    duration: float
    caption_url: Optional[str] = None


@dataclass(frozen=True)
class CaptionEntry:
    """A single timed line of a caption track."""
    text: str
    duration: float


@dataclass(frozen=True)
class ChannelMetrics:
    """Final aggregate record for one channel; one CSV row."""
    link: str
    channel_name: str
    video_count: int
    average_duration: float
    average_sentence_duration: float
    average_sentence_length: float

    def as_row(self) -> List[str]:
        return [str(getattr(self, name)) for name in CSV_FIELDS]


CSV_FIELDS: Tuple[str, ...] = tuple(f.name for f in fields(ChannelMetrics))


def _average(total: float, count: int) -> float:
    if count == 0:
        return math.nan
    return total / count


@dataclass(frozen=True)
class PartialBatchStats:
    """Running totals for a page window, a caption track, or a whole channel.

    The all-zero value is the identity of ``+``, and ``+`` is associative and
    commutative, so partial results can be folded in whatever order they
    arrive. Averages are only computed by :meth:`to_metrics`.
    """
    video_count: int = 0
    total_duration: float = 0.0
    sentence_count: int = 0
    total_sentence_length: int = 0
    total_sentence_duration: float = 0.0

    @classmethod
    def zero(cls) -> "PartialBatchStats":
        return cls()

    @classmethod
    def from_items(cls, items: Iterable[VideoItem]) -> "PartialBatchStats":
        video_count = 0
        total_duration = 0.0
        for item in items:
            video_count += 1
            total_duration += item.duration
        return cls(video_count=video_count, total_duration=total_duration)

    @classmethod
    def from_captions(cls, entries: Iterable[CaptionEntry]) -> "PartialBatchStats":
        sentence_count = 0
        total_length = 0
        total_duration = 0.0
        for entry in entries:
            sentence_count += 1
            total_length += len(entry.text.encode("utf-8"))
            total_duration += entry.duration
        return cls(
            sentence_count=sentence_count,
            total_sentence_length=total_length,
            total_sentence_duration=total_duration,
        )

    def __add__(self, other: "PartialBatchStats") -> "PartialBatchStats":
        if not isinstance(other, PartialBatchStats):
            return NotImplemented
        return PartialBatchStats(
            video_count=self.video_count + other.video_count,
            total_duration=self.total_duration + other.total_duration,
            sentence_count=self.sentence_count + other.sentence_count,
            total_sentence_length=self.total_sentence_length + other.total_sentence_length,
            total_sentence_duration=self.total_sentence_duration + other.total_sentence_duration,
        )

    def __radd__(self, other):
        # Lets the builtin sum() start from 0
        if other == 0:
            return self
        return self.__add__(other)

    def to_metrics(self, link: str, channel_name: str) -> ChannelMetrics:
        """Convert totals to averages; a channel without videos is an error."""
        if self.video_count == 0:
            raise NoDataError(f"{link}: no videos found in the requested range")

        return ChannelMetrics(
            link=link,
            channel_name=channel_name,
            video_count=self.video_count,
            average_duration=_average(self.total_duration, self.video_count),
            average_sentence_duration=_average(self.total_sentence_duration, self.sentence_count),
            average_sentence_length=_average(float(self.total_sentence_length), self.sentence_count),
        )


@dataclass
class ChannelResult:
    """Outcome of processing one channel during a round."""
    link: str
    metrics: Optional[ChannelMetrics] = None
    error: Optional[BaseException] = None
    post_process_error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.metrics is not None


@dataclass
class RunSummary:
    """What a full orchestrator run produced."""
    processed: List[ChannelMetrics] = field(default_factory=list)
    unresolved: Set[str] = field(default_factory=set)
    rounds: int = 0

    @property
    def converged(self) -> bool:
        return not self.unresolved
