"""Configuration and argument parsing for channel metrics collection."""

import argparse
import json
import os
import sys
from typing import Any, Dict, List, Optional

from .models import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_LANGUAGE,
    DEFAULT_MAX_CAPTION_REQUESTS,
    DEFAULT_MAX_ITEMS,
    DEFAULT_MAX_PAGE_REQUESTS,
    DEFAULT_MAX_RETRY,
    DEFAULT_OUTPUT_DIR,
    ENV_COOKIES_FROM_BROWSER,
    ENV_PROXY,
)

VALID_CONFIG_KEYS = {
    "output_dir", "retry", "max_concurrent", "batch_size", "max_items",
    "language", "max_page_requests", "max_caption_requests", "fetch_timeout",
    "download", "post_process_cmd", "cookies_from_browser", "proxy",
    "error_log", "verbose",
}


def positive_int(value: str) -> int:
    """Return *value* parsed as a positive integer for argparse."""

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise argparse.ArgumentTypeError(
            "Expected a positive integer"
        ) from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("Expected a positive integer")

    return parsed


def positive_float(value: str) -> float:
    """Return *value* parsed as a positive float for argparse."""

    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise argparse.ArgumentTypeError("Expected a positive number") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("Expected a positive number")

    return parsed


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a JSON file.

    Returns a dictionary with configuration values that can be used as defaults
    for command-line arguments. If the file doesn't exist or is invalid, returns
    an empty dictionary.
    """
    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as exc:
        print(f"Warning: Failed to parse config file {config_path}: {exc}. Ignoring.", file=sys.stderr)
        return {}
    except OSError as exc:
        print(f"Warning: Failed to read config file {config_path}: {exc}. Ignoring.", file=sys.stderr)
        return {}

    if not isinstance(config, dict):
        print(f"Warning: Config file {config_path} must contain a JSON object. Ignoring.", file=sys.stderr)
        return {}

    # Validate config keys to prevent typos
    invalid_keys = set(config.keys()) - VALID_CONFIG_KEYS
    if invalid_keys:
        print(f"Warning: Unknown config keys ignored: {', '.join(sorted(invalid_keys))}", file=sys.stderr)

    return {k: v for k, v in config.items() if k in VALID_CONFIG_KEYS}


def _find_config_path(argv: List[str]) -> str:
    config_path = "config.json"
    if "--config" in argv:
        config_idx = argv.index("--config")
        if config_idx + 1 < len(argv):
            config_path = argv[config_idx + 1]
    return config_path


def build_parser(config: Dict[str, Any]) -> argparse.ArgumentParser:
    """Build the argument parser, using *config* values as defaults."""
    parser = argparse.ArgumentParser(
        description="Collect video and caption statistics for YouTube channels using yt-dlp."
    )
    parser.add_argument(
        "--config",
        default="config.json",
        help="Path to JSON configuration file (default: config.json)",
    )
    parser.add_argument(
        "-i", "--input",
        required=True,
        help="CSV file with a 'Url' column, or a text file with one channel URL per line",
    )
    parser.add_argument(
        "-o", "--output-dir",
        default=config.get("output_dir", DEFAULT_OUTPUT_DIR),
        help=f"Directory for metrics.csv and downloads (default: {DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument(
        "-r", "--retry",
        type=positive_int,
        default=config.get("retry", DEFAULT_MAX_RETRY),
        help=f"Stop after this many consecutive rounds without progress (default: {DEFAULT_MAX_RETRY})",
    )
    parser.add_argument(
        "--max-concurrent",
        type=positive_int,
        default=config.get("max_concurrent"),
        help="Maximum channels attempted per round (default: all pending channels)",
    )
    parser.add_argument(
        "--batch-size",
        type=positive_int,
        default=config.get("batch_size", DEFAULT_BATCH_SIZE),
        help=f"Videos fetched per page request (default: {DEFAULT_BATCH_SIZE})",
    )
    parser.add_argument(
        "--max-items",
        type=positive_int,
        default=config.get("max_items", DEFAULT_MAX_ITEMS),
        help=f"Maximum videos considered per channel (default: {DEFAULT_MAX_ITEMS})",
    )
    parser.add_argument(
        "--language",
        default=config.get("language", DEFAULT_LANGUAGE),
        help=f"Caption language code (default: {DEFAULT_LANGUAGE})",
    )
    parser.add_argument(
        "--max-page-requests",
        type=positive_int,
        default=config.get("max_page_requests", DEFAULT_MAX_PAGE_REQUESTS),
        help=f"Concurrent page requests across all channels (default: {DEFAULT_MAX_PAGE_REQUESTS})",
    )
    parser.add_argument(
        "--max-caption-requests",
        type=positive_int,
        default=config.get("max_caption_requests", DEFAULT_MAX_CAPTION_REQUESTS),
        help=f"Concurrent caption downloads across all channels (default: {DEFAULT_MAX_CAPTION_REQUESTS})",
    )
    parser.add_argument(
        "--fetch-timeout",
        type=positive_float,
        default=config.get("fetch_timeout", DEFAULT_FETCH_TIMEOUT),
        help=f"Seconds before a single remote call is abandoned (default: {DEFAULT_FETCH_TIMEOUT})",
    )
    parser.add_argument(
        "--download",
        action="store_true",
        default=config.get("download", False),
        help="Also download each processed channel's videos into the output directory",
    )
    parser.add_argument(
        "--post-process-cmd",
        default=config.get("post_process_cmd"),
        help=(
            "Command run once per downloaded file, e.g. 'python Columbia_test.py --videoName {video} "
            "--videoFolder {folder}'. Only used with --download."
        ),
    )
    parser.add_argument("--cookies-from-browser", default=config.get("cookies_from_browser"), help="Use cookies from your browser (chrome, safari, firefox, edge, etc.)")
    parser.add_argument("--proxy", default=config.get("proxy"), help="Use a proxy for all requests (e.g., socks5://127.0.0.1:1080)")
    parser.add_argument("--error-log", default=config.get("error_log"), help="Append one line per channel failure to this file")
    parser.add_argument(
        "--no-resume",
        dest="resume",
        action="store_false",
        help="Process every input channel even if it already appears in metrics.csv",
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=config.get("verbose", False), help="Show yt-dlp output")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments, with config file values as defaults."""
    if argv is None:
        argv = sys.argv[1:]

    config_path = _find_config_path(argv)
    config = load_config_file(config_path)
    if config:
        print(f"Loaded configuration from {config_path}")

    args = build_parser(config).parse_args(argv)
    apply_environment_defaults(args)
    return args


def _normalize_env_str(value: Optional[str]) -> Optional[str]:
    """Normalize environment variable string value."""
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def apply_environment_defaults(args, environ: Optional[Dict[str, str]] = None) -> None:
    """Populate cookie and proxy settings from the environment when missing."""

    if environ is None:
        environ = os.environ

    if not getattr(args, "cookies_from_browser", None):
        args.cookies_from_browser = _normalize_env_str(environ.get(ENV_COOKIES_FROM_BROWSER))

    if not getattr(args, "proxy", None):
        args.proxy = _normalize_env_str(environ.get(ENV_PROXY))
