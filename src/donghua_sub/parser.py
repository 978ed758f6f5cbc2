"""SRT file parsing and saving utilities."""

from __future__ import annotations

import re
import logging
from pathlib import Path
from typing import List, Sequence, Optional

from .config import SUPPORTED_EXTENSIONS
from .models import Segment

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = re.compile(r"\n\s*\n")
MAX_FILE_SIZE = 50 * 1024 * 1024


def parse_srt(content: str) -> List[Segment]:
    """
    Parse SRT file content into list of Segment objects.

    Blocks with fewer than three non-empty lines (index, timestamp, text)
    are skipped without raising.

    Args:
        content: Raw SRT file content as string

    Returns:
        List of parsed Segment objects, in file order
    """
    if not content or not content.strip():
        return []

    # 预处理：标准化换行符
    content = content.replace('\r\n', '\n').replace('\r', '\n').strip()

    segments: List[Segment] = []
    skipped = 0

    for block in BLOCK_SEPARATOR.split(content):
        lines = [line.strip() for line in block.split('\n')]
        lines = [line for line in lines if line]

        if len(lines) < 3:
            skipped += 1
            continue

        segments.append(Segment(
            index=lines[0],
            timestamp=lines[1],
            original_text="\n".join(lines[2:]),
        ))

    if skipped:
        logger.debug(f"Skipped {skipped} malformed block(s)")

    if not segments:
        logger.warning("No valid SRT segments found in content")

    return segments


def serialize_srt(segments: Sequence[Segment]) -> str:
    """
    Serialize segments back to SRT text.

    Blocks are separated by exactly one blank line, with no trailing
    separator.
    """
    return "\n\n".join(s.to_srt() for s in segments)


def validate_srt_file(path: Path) -> Optional[str]:
    """
    Validate SRT file before processing.

    Args:
        path: Path to SRT file

    Returns:
        Error message if invalid, None if valid
    """
    if not path.exists():
        return f"File not found: {path}"

    if not path.is_file():
        return f"Not a file: {path}"

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        return f"Invalid file extension: {suffix} (expected .srt)"

    # 检查文件大小
    size = path.stat().st_size
    if size == 0:
        return "File is empty"
    if size > MAX_FILE_SIZE:
        return f"File too large: {size / 1024 / 1024:.1f}MB (max 50MB)"

    return None


def load_srt(path: Path) -> List[Segment]:
    """Read and parse an SRT file (BOM tolerant)."""
    return parse_srt(path.read_text(encoding="utf-8-sig"))


def save_srt(segments: Sequence[Segment], path: Path) -> None:
    """
    Save segments to an SRT file.

    Args:
        segments: Sequence of Segment objects to save
        path: Output file path
    """
    # 确保父目录存在
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_srt(segments), encoding="utf-8")

    logger.info(f"Saved {len(segments)} segments to {path}")
