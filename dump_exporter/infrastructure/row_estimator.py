"""Approximate row counting for progress reporting on large CSV files."""

import math
import os
from pathlib import Path
from typing import Optional

DEFAULT_SAMPLE_COUNT = 1000
DEFAULT_WINDOW_SIZE = 16 * 1024


def _window_mean_line_length(window: bytes) -> Optional[float]:
    """Mean length in bytes, terminator included, of non-blank lines."""
    lengths = [len(line) + 1 for line in window.split(b"\n") if line.strip()]
    if not lengths:
        return None
    return sum(lengths) / len(lengths)


def estimate_rows(
    path: Path,
    sample_count: int = DEFAULT_SAMPLE_COUNT,
    window_size: int = DEFAULT_WINDOW_SIZE,
) -> int:
    """
    Estimates the number of data rows in a file without scanning it.

    Reads `sample_count` windows of `window_size` bytes at evenly spaced
    offsets, averages the mean line length of every window that contains at
    least one non-blank line, and divides the file size by that mean. One row
    is subtracted for the header.

    The result is only meant as a progress denominator. It is approximate:
    windows start and end mid-line, and lines of varying length skew it.

    Args:
        path: The decompressed CSV file.
        sample_count: Number of windows to read.
        window_size: Bytes read per window.

    Returns:
        The estimated row count, or 0 for an empty or blank file.
    """

    file_size = os.path.getsize(path)
    if file_size == 0 or sample_count <= 0:
        return 0

    window_means = []
    with open(path, "rb") as f:
        for i in range(sample_count):
            f.seek(i * file_size // sample_count)
            mean = _window_mean_line_length(f.read(window_size))
            if mean is not None:
                window_means.append(mean)

    if not window_means:
        return 0

    mean_line_length = sum(window_means) / len(window_means)
    return max(math.floor(file_size / mean_line_length) - 1, 0)
