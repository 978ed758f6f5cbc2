"""Run statistics and partial output support."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .config import PARTIAL_SUFFIX
from .models import Segment
from .parser import save_srt

logger = logging.getLogger(__name__)


@dataclass
class OptimizeStats:
    """优化进度统计。"""

    total: int
    processed: int = 0
    failed: int = 0
    auto_fixed: int = 0
    ignored: int = 0

    @property
    def applied(self) -> int:
        return self.processed - self.failed

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.processed)

    @property
    def is_complete(self) -> bool:
        """检查是否全部完成。"""
        return self.processed >= self.total

    @property
    def completion_rate(self) -> float:
        """完成率 (0-1)。"""
        if self.total == 0:
            return 1.0
        return self.processed / self.total


def get_partial_file(output_path: Path) -> Path:
    """获取未完成结果的保存路径。"""
    return output_path.with_suffix(PARTIAL_SUFFIX)


def save_partial(segments: Sequence[Segment], path: Path) -> bool:
    """
    Save the current, possibly half-processed, segments.

    Returns:
        True if successful
    """
    try:
        save_srt(segments, path)
        return True
    except OSError as e:
        logger.error(f"Failed to save partial result: {e}")
        return False


def delete_partial(path: Path) -> None:
    """删除未完成结果文件。"""
    try:
        if path.exists():
            path.unlink()
            logger.debug(f"Partial file deleted: {path}")
    except OSError as e:
        logger.warning(f"Failed to delete partial file: {e}")
