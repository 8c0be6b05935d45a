"""Append-only CSV storage for channel metrics."""

import csv
import io
import os
import sys
from typing import Protocol, Set

from .errors import PersistenceError
from .models import CSV_FIELDS, ChannelMetrics


class MetricsSink(Protocol):
    def append(self, metrics: ChannelMetrics) -> None: ...


def _format_csv_line(values) -> bytes:
    buffer = io.StringIO()
    csv.writer(buffer).writerow(values)
    return buffer.getvalue().encode("utf-8")


class CsvMetricsSink:
    """Writes one CSV row per channel, header first when the file is new.

    Each row goes out in a single ``O_APPEND`` write, so rows from concurrent
    writers never interleave.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def _needs_header(self) -> bool:
        try:
            return os.path.getsize(self.path) == 0
        except FileNotFoundError:
            return True
        except OSError as exc:
            raise PersistenceError(f"Failed to inspect {self.path}: {exc}") from exc

    def append(self, metrics: ChannelMetrics) -> None:
        directory = os.path.dirname(self.path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to create directory for {self.path}: {exc}") from exc

        data = b""
        if self._needs_header():
            data += _format_csv_line(CSV_FIELDS)
        data += _format_csv_line(metrics.as_row())

        flags = os.O_WRONLY | os.O_CREAT | os.O_APPEND
        try:
            fd = os.open(self.path, flags, 0o644)
        except OSError as exc:
            raise PersistenceError(f"Failed to open {self.path}: {exc}") from exc

        try:
            os.write(fd, data)
        except OSError as exc:
            raise PersistenceError(f"Failed to append to {self.path}: {exc}") from exc
        finally:
            os.close(fd)


def load_processed_links(path: str) -> Set[str]:
    """Links already present in a metrics CSV; empty if the file is missing."""
    try:
        with open(path, "r", encoding="utf-8", newline="") as handle:
            reader = csv.DictReader(handle)
            if not reader.fieldnames or "link" not in reader.fieldnames:
                return set()
            return {row["link"].strip() for row in reader if (row.get("link") or "").strip()}
    except FileNotFoundError:
        return set()
    except OSError as exc:
        print(
            f"Warning: Failed to read existing metrics {path}: {exc}",
            file=sys.stderr,
        )
        return set()
