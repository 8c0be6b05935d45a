"""YouTube channel metrics collector."""

# Import main components for easier access
from .aggregator import BatchAggregator, ChannelAggregator, page_windows
from .config import apply_environment_defaults, parse_args, positive_int
from .downloader import YtDlpChannelDownloader
from .errors import (
    ChannelMetricsError,
    ErrorAnalyzer,
    InputError,
    NoDataError,
    PersistenceError,
    PostProcessError,
    SourceTimeoutError,
    SourceUnavailableError,
)
from .models import (
    CSV_FIELDS,
    CaptionEntry,
    ChannelMetrics,
    ChannelResult,
    PartialBatchStats,
    RunSummary,
    VideoItem,
    normalize_url,
)
from .orchestrator import RetryOrchestrator
from .polling import poll_until
from .sources import (
    HttpCaptionSource,
    YtDlpChannelInfoSource,
    YtDlpPagedItemSource,
    load_channel_links,
    parse_srv1,
)
from .storage import CsvMetricsSink, load_processed_links

__all__ = [
    # Orchestration
    "RetryOrchestrator",
    "ChannelAggregator",
    "BatchAggregator",
    "page_windows",
    # Models
    "ChannelMetrics",
    "PartialBatchStats",
    "ChannelResult",
    "RunSummary",
    "VideoItem",
    "CaptionEntry",
    "CSV_FIELDS",
    "normalize_url",
    # Collaborators
    "YtDlpChannelInfoSource",
    "YtDlpPagedItemSource",
    "HttpCaptionSource",
    "YtDlpChannelDownloader",
    "CsvMetricsSink",
    "load_channel_links",
    "load_processed_links",
    "parse_srv1",
    "poll_until",
    # Errors
    "ChannelMetricsError",
    "SourceUnavailableError",
    "SourceTimeoutError",
    "NoDataError",
    "PersistenceError",
    "PostProcessError",
    "InputError",
    "ErrorAnalyzer",
    # Configuration
    "parse_args",
    "apply_environment_defaults",
    "positive_int",
]
