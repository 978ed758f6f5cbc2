"""Text processing utilities."""

from __future__ import annotations

import re


CHINESE_CHAR = re.compile(r'[\u4e00-\u9fa5]')

# 模型有时会用 markdown 包裹 JSON
CODE_FENCE_START = re.compile(r'^```(?:json)?\s*')
CODE_FENCE_END = re.compile(r'\s*```$')


def contains_chinese(text: str | None) -> bool:
    """Whether the text still contains CJK ideographs."""
    return bool(text) and CHINESE_CHAR.search(text) is not None


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` block, if any."""
    clean = text.strip()
    clean = CODE_FENCE_START.sub('', clean)
    clean = CODE_FENCE_END.sub('', clean)
    return clean


def clean_translated_text(text: str) -> str:
    """
    Clean and normalize subtitle text returned by the model.

    Removes list markers and markdown emphasis, and collapses spaces while
    keeping line breaks.

    Args:
        text: Raw model text

    Returns:
        Cleaned text
    """
    if not text or not isinstance(text, str):
        return ""

    lines = []
    for line in text.strip().split('\n'):
        # 1. 移除开头的列表标记 (如 "1.", "2)", "-", "*", "•")
        line = re.sub(r'^\s*(\d+[\.:\)]\s+|[-*•]\s+)', '', line)
        # 2. 移除 markdown 格式标记
        line = re.sub(r'\*\*|__', '', line)
        # 3. 标准化空格
        line = re.sub(r'[ \t]+', ' ', line).strip()
        if line:
            lines.append(line)

    return '\n'.join(lines)


def validate_translation(original: str, translated: str) -> tuple[bool, str]:
    """
    Validate a Vietnamese translation of Chinese text.

    Args:
        original: Original text
        translated: Translated text

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not translated or not translated.strip():
        return False, "Empty translation"

    if translated.strip() == original.strip():
        return False, "Translation is identical to original"

    if contains_chinese(translated):
        return False, "Translation still contains Chinese"

    return True, ""


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate text to maximum length with suffix.

    Args:
        text: Text to truncate
        max_length: Maximum length including suffix
        suffix: Suffix to append if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix
