#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
collect_channel_metrics.py

Collect video count, average video duration and average caption line
duration/length for a list of YouTube channels using yt-dlp.

Usage:
    python collect_channel_metrics.py --input channels.csv --output-dir ./output
    python collect_channel_metrics.py --input channels.txt --retry 5 --max-concurrent 10
"""

import sys

from channel_metrics.cli import main


if __name__ == "__main__":
    sys.exit(main())
