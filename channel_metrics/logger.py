"""Console logging helpers and the logger object handed to yt-dlp."""

import sys
from datetime import datetime
from typing import List, Optional


def log_with_timestamp(message: str, file=None) -> None:
    """Print a log message with timestamp."""
    if file is None:
        file = sys.stdout
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] {message}", file=file)
    file.flush()  # Force immediate output


class YtDlpLogger:
    """Quiet yt-dlp logger that keeps errors and warnings for one call."""

    IGNORED_FRAGMENTS = (
        "does not have a shorts tab",
        "there are no subtitles for the requested languages",
    )

    def __init__(self, url: Optional[str] = None, verbose: bool = False) -> None:
        self.url = url
        self.verbose = verbose
        self.warnings: List[str] = []
        self.errors: List[str] = []

    def _format_with_context(self, message: str) -> str:
        if self.url:
            return f"[url={self.url}] {message}"
        return message

    def _is_ignored(self, text: str) -> bool:
        lowered = text.lower()
        return any(fragment in lowered for fragment in self.IGNORED_FRAGMENTS)

    @staticmethod
    def _ensure_text(message) -> str:
        if isinstance(message, bytes):
            return message.decode("utf-8", "ignore")
        return str(message)

    def debug(self, message) -> None:  # yt-dlp calls this
        pass

    def info(self, message) -> None:
        if self.verbose:
            log_with_timestamp(self._format_with_context(self._ensure_text(message)))

    def warning(self, message) -> None:
        text = self._ensure_text(message)
        if self._is_ignored(text):
            return
        self.warnings.append(text)
        if self.verbose:
            log_with_timestamp(self._format_with_context(text), file=sys.stderr)

    def error(self, message) -> None:
        text = self._ensure_text(message)
        if self._is_ignored(text):
            return
        self.errors.append(text)
        log_with_timestamp(self._format_with_context(text), file=sys.stderr)

    @property
    def last_error(self) -> Optional[str]:
        return self.errors[-1] if self.errors else None
