"""SRT timestamp conversion utilities."""

from __future__ import annotations

import re
from typing import Optional, Tuple

TIMESTAMP_PATTERN = re.compile(r"(\d{2,}):(\d{2}):(\d{2}),(\d{3})")
RANGE_PATTERN = re.compile(
    r"^\s*\d{2,}:\d{2}:\d{2},\d{3}\s*-->\s*\d{2,}:\d{2}:\d{2},\d{3}\s*$"
)
RANGE_SEPARATOR = " --> "


def parse_timestamp(text: str) -> int:
    """
    Convert an SRT timestamp (HH:MM:SS,mmm) to milliseconds.

    Malformed input yields 0 instead of raising, so one bad line never
    aborts a whole file.
    """
    if not text:
        return 0

    match = TIMESTAMP_PATTERN.search(text)
    if not match:
        return 0

    h, m, s, ms = (int(part) for part in match.groups())
    return h * 3_600_000 + m * 60_000 + s * 1000 + ms


def format_timestamp(ms: float) -> str:
    """Convert milliseconds to an SRT timestamp, clamping negatives to zero."""
    total = max(0, int(ms))

    hours, rest = divmod(total, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)

    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


def split_range(text: str) -> Optional[Tuple[str, str]]:
    """拆分时间轴行，缺少箭头时返回 None。"""
    if not text or "-->" not in text:
        return None

    start, _, end = text.partition("-->")
    return start.strip(), end.strip()


def parse_range(text: str) -> Tuple[int, int]:
    """
    Parse a "<start> --> <end>" line into (start_ms, end_ms).

    Either side that cannot be parsed becomes 0.
    """
    parts = split_range(text)
    if parts is None:
        return 0, 0
    return parse_timestamp(parts[0]), parse_timestamp(parts[1])


def format_range(start_ms: float, end_ms: float) -> str:
    """Build a timestamp line from two millisecond offsets."""
    return f"{format_timestamp(start_ms)}{RANGE_SEPARATOR}{format_timestamp(end_ms)}"


def is_valid_range(text: str | None) -> bool:
    """Check that a timestamp line is well formed and not reversed."""
    if not text or not RANGE_PATTERN.match(text):
        return False
    start_ms, end_ms = parse_range(text)
    return start_ms < end_ms
