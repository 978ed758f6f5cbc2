"""Chinese to Sino-Vietnamese terminology for donghua translation."""

from __future__ import annotations

import re
import logging
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


# 修仙/玄幻类常用术语
DEFAULT_TERMS: Dict[str, str] = {
    "修仙": "Tu tiên",
    "穿越": "Xuyên không",
    "系统": "Hệ thống",
    "重生": "Trọng sinh",
    "灵气": "Linh khí",
    "法宝": "Pháp bảo",
    "妖兽": "Yêu thú",
    "秘境": "Bí cảnh",
    "渡劫": "Độ kiếp",
    "天劫": "Thiên kiếp",
    "宗门": "Tông môn",
    "筑基": "Trúc cơ",
}

LINE_PATTERN = re.compile(r'^(.+?)\s*(?:->|=)\s*(.+)$')


class Glossary:
    """术语表，按出现位置匹配原文中的术语。"""

    def __init__(self, terms: Optional[Dict[str, str]] = None):
        self._terms: Dict[str, str] = {}
        for term, translation in (terms or {}).items():
            self.add(term, translation)

    @classmethod
    def with_defaults(cls) -> "Glossary":
        return cls(DEFAULT_TERMS)

    def add(self, term: str, translation: str) -> None:
        """添加术语，后添加的覆盖先前的。"""
        term = term.strip()
        translation = translation.strip()
        if term and translation:
            self._terms[term] = translation

    def get(self, term: str) -> str | None:
        return self._terms.get(term.strip())

    def find_matches(self, text: str) -> Dict[str, str]:
        """Return the terms that occur in ``text``."""
        return {
            term: translation
            for term, translation in self._terms.items()
            if term in text
        }

    def format_hints(self, text: str) -> List[str]:
        """Matched terms as "term -> translation" prompt lines."""
        return [f"{term} -> {trans}" for term, trans in self.find_matches(text).items()]

    def __len__(self) -> int:
        return len(self._terms)

    def __bool__(self) -> bool:
        return len(self._terms) > 0


def load_glossary(path: Path, include_defaults: bool = True) -> Glossary:
    """
    Load glossary from a text file.

    Supported formats:
        术语 = Bản dịch
        术语 -> Bản dịch
        # Comment lines

    Entries in the file override the built-in terms.

    Args:
        path: Path to glossary file
        include_defaults: Start from DEFAULT_TERMS

    Returns:
        Glossary instance
    """
    glossary = Glossary.with_defaults() if include_defaults else Glossary()

    if not path.exists():
        logger.warning(f"Glossary file not found: {path}")
        return glossary

    try:
        content = path.read_text(encoding='utf-8-sig')
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Error loading glossary: {e}")
        return glossary

    for line_num, line in enumerate(content.splitlines(), 1):
        line = line.strip()

        # 跳过空行和注释
        if not line or line.startswith('#'):
            continue

        match = LINE_PATTERN.match(line)
        if match:
            glossary.add(*match.groups())
        else:
            logger.debug(f"Skipping invalid line {line_num}: {line}")

    logger.info(f"Loaded {len(glossary)} terms from glossary")
    return glossary
