"""LLM tasks: title analysis, translation and CPS rewriting."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .config import TARGET_CPS
from .glossary import Glossary
from .llm_client import APIErrorType, LLMError, LLMProvider
from .models import Segment
from .rewriter import CancellationToken, RewriteRequest, RewriteResult, RunOutcome
from .text_utils import (
    clean_translated_text,
    contains_chinese,
    strip_code_fence,
    truncate_text,
    validate_translation,
)

logger = logging.getLogger(__name__)


@dataclass
class TitleAnalysis:
    """标题分析结果，作为翻译的背景信息。"""
    original_title: str
    translated_title: str
    main_genres: List[str] = field(default_factory=list)
    summary: str = ""
    tone: str = ""
    recommended_style: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any], fallback_title: str = "") -> "TitleAnalysis":
        genres = data.get("mainGenres") or []
        if isinstance(genres, str):
            genres = [g.strip() for g in genres.split(",") if g.strip()]
        return cls(
            original_title=str(data.get("originalTitle") or fallback_title),
            translated_title=str(data.get("translatedTitle") or fallback_title),
            main_genres=[str(g) for g in genres],
            summary=str(data.get("summary") or ""),
            tone=str(data.get("tone") or ""),
            recommended_style=str(data.get("recommendedStyle") or ""),
        )

    def to_prompt_section(self) -> str:
        lines = [f"Title: {self.original_title} ({self.translated_title})"]
        if self.main_genres:
            lines.append(f"Genres: {', '.join(self.main_genres)}")
        if self.tone:
            lines.append(f"Tone: {self.tone}")
        if self.recommended_style:
            lines.append(f"Recommended style: {self.recommended_style}")
        return "\n".join(lines)


@dataclass
class TranslationRunResult:
    """How a translation run ended."""
    outcome: RunOutcome
    translated: int = 0
    failed: int = 0
    pending: int = 0
    tokens: int = 0
    error: str = ""


def _load_json(text: str) -> Any:
    """Decode a model response, raising LLMError when it is not JSON."""
    if not text:
        raise LLMError("Empty response from model", APIErrorType.INVALID_RESPONSE)
    try:
        return json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        logger.debug(f"Raw response: {truncate_text(text, 200)}")
        raise LLMError(f"JSON parse failed: {e}", APIErrorType.INVALID_RESPONSE) from e


def _extract_items(data: Any, key: str) -> List[Dict[str, Any]]:
    """Accept either a bare list or an object wrapping one."""
    if isinstance(data, dict):
        items = data.get(key)
        if items is None:
            items = next((v for v in data.values() if isinstance(v, list)), None)
        data = items
    if not isinstance(data, list):
        raise LLMError(f"'{key}' is not a list", APIErrorType.INVALID_RESPONSE)
    return [item for item in data if isinstance(item, dict)]


# ---------------------------------------------------------------------------
# Title analysis
# ---------------------------------------------------------------------------

def _build_title_prompt(title: str) -> str:
    return f"""You are an expert on Chinese animation (donghua). Analyze the title "{title}".

Return JSON:
{{
  "originalTitle": "original title",
  "translatedTitle": "natural Vietnamese title, keep the spirit and any clickbait style",
  "mainGenres": ["genre 1", "genre 2"],
  "summary": "short Vietnamese summary of the likely story",
  "tone": "Hài hước / Nghiêm túc / Nửa hài nửa nghiêm / Dark fantasy",
  "recommendedStyle": "Vietnamese translation style, e.g. modern and concise or classical and formal"
}}

Preferred genres: Tu tiên, Xuyên không, Dị giới, Huyền huyễn, Quỷ dị, Hệ thống,
Trọng sinh, Ngự thú, Thần thoại, Tiên hiệp, Đô thị huyền huyễn."""


async def analyze_title(title: str, provider: LLMProvider) -> tuple[TitleAnalysis, int]:
    """
    Ask the model for background on a show title.

    Returns:
        (TitleAnalysis, tokens used)

    Raises:
        ValueError: If the title is blank
        LLMError: If the call fails or the response is not a JSON object
    """
    title = title.strip()
    if not title:
        raise ValueError("Title is empty")

    logger.info(f"Analyzing title with {provider.name}/{provider.model}...")
    response = await provider.complete(_build_title_prompt(title), json_mode=True)

    data = _load_json(response.text)
    if not isinstance(data, dict):
        raise LLMError("Title analysis is not a JSON object", APIErrorType.INVALID_RESPONSE)

    analysis = TitleAnalysis.from_dict(data, fallback_title=title)
    logger.info(f"Title analyzed: {analysis.translated_title}")
    return analysis, response.tokens


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------

def needs_translation(segment: Segment) -> bool:
    return not segment.translated_text and contains_chinese(segment.original_text)


def mark_resumed(segments: Sequence[Segment]) -> int:
    """
    Treat segments without Chinese text as already translated.

    Lets a partially translated file be loaded and continued.

    Returns:
        Number of segments considered done
    """
    done = 0
    for segment in segments:
        if not contains_chinese(segment.original_text):
            if not segment.translated_text:
                segment.translated_text = segment.original_text
            done += 1
    return done


def _build_translation_prompt(
    chunk: Sequence[Segment],
    analysis: TitleAnalysis,
    glossary: Glossary,
) -> str:
    items = [{"id": s.index, "text": s.original_text} for s in chunk]

    chunk_text = " ".join(s.original_text for s in chunk)
    hints = glossary.format_hints(chunk_text)
    glossary_section = ""
    if hints:
        glossary_list = "\n".join(f"  - {h}" for h in hints)
        glossary_section = f"\n## Glossary (must use):\n{glossary_list}\n"

    return f"""You are a professional translator of Chinese animation subtitles into Vietnamese.

## Background:
{analysis.to_prompt_section()}
{glossary_section}
## Rules:
1. Translate faithfully but naturally, as Vietnamese people speak.
2. Do not change ids, do not merge or split items.
3. Use proper Sino-Vietnamese terms for cultivation and fantasy vocabulary.
4. Keep line breaks inside an item where they help reading.

## Translate:
{json.dumps(items, ensure_ascii=False)}

Output JSON only: {{"translations": [{{"id": "index", "text": "bản dịch"}}]}}"""


def _apply_translations(chunk: Sequence[Segment], items: List[Dict[str, Any]]) -> tuple[int, int]:
    """按 id 写回译文，返回 (成功数, 失败数)。"""
    by_id = {str(item.get("id", "")).strip(): item for item in items}
    translated = failed = 0

    for segment in chunk:
        item = by_id.get(segment.index)
        if item is None:
            logger.warning(f"Translation missing for #{segment.index}")
            failed += 1
            continue

        text = clean_translated_text(str(item.get("text") or item.get("translated") or ""))
        is_valid, error = validate_translation(segment.original_text, text)
        if not is_valid:
            logger.warning(f"Translation rejected for #{segment.index}: {error}")
            failed += 1
            continue

        segment.translated_text = text
        translated += 1

    return translated, failed


async def translate_segments(
    segments: Sequence[Segment],
    analysis: TitleAnalysis,
    provider: LLMProvider,
    glossary: Optional[Glossary] = None,
    chunk_size: int = 8,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> TranslationRunResult:
    """
    Translate every segment that still needs it, chunk by chunk.

    Chunks run sequentially and are applied as they return. A failed call
    stops the run; earlier chunks stay translated and rejected items stay
    untranslated so a later run can pick them up.

    Args:
        segments: Live segment list, updated in place
        analysis: Title background for the prompt
        provider: LLM backend
        glossary: Terms to enforce
        chunk_size: Segments per request
        cancel_token: Optional stop flag, checked between chunks
        on_progress: Called with (segments handled, tokens used) per chunk

    Returns:
        TranslationRunResult
    """
    glossary = glossary if glossary is not None else Glossary.with_defaults()
    pending = [s for s in segments if needs_translation(s)]
    result = TranslationRunResult(RunOutcome.COMPLETED, pending=len(pending))

    if not pending:
        logger.info("Nothing to translate")
        return result

    logger.info(f"Translating {len(pending)} segments in chunks of {chunk_size}...")

    for start in range(0, len(pending), chunk_size):
        if cancel_token is not None and cancel_token.cancelled:
            result.outcome = RunOutcome.CANCELLED
            return result

        chunk = pending[start:start + chunk_size]
        prompt = _build_translation_prompt(chunk, analysis, glossary)

        try:
            response = await provider.complete(prompt, json_mode=True)
            items = _extract_items(_load_json(response.text), "translations")
        except LLMError as e:
            logger.error(f"Translation chunk at #{chunk[0].index} failed: {e}")
            result.outcome = RunOutcome.FAILED
            result.error = str(e)
            return result

        translated, failed = _apply_translations(chunk, items)
        result.translated += translated
        result.failed += failed
        result.tokens += response.tokens

        if on_progress:
            on_progress(start + len(chunk), response.tokens)

    return result


# ---------------------------------------------------------------------------
# CPS rewriting
# ---------------------------------------------------------------------------

def build_rewrite_prompt(
    requests: Sequence[RewriteRequest],
    target_cps: float = TARGET_CPS,
    analysis: Optional[TitleAnalysis] = None,
) -> str:
    """Prompt asking for shorter lines that read at ``target_cps`` or slower."""
    background = f"\n## Background:\n{analysis.to_prompt_section()}\n" if analysis else ""
    payload = json.dumps([r.to_dict() for r in requests], ensure_ascii=False)

    return f"""You are a Vietnamese subtitle editor. Each target line is displayed too fast to read.
{background}
## Rules:
1. Rewrite "currentText" in shorter, natural Vietnamese so that characters per second
   (characters / displayed seconds) is at most {target_cps:g}. Keep the meaning.
2. You may move the end time later, but never past the start of the next context line.
   Never change the start time.
3. Use the context lines only for continuity; do not rewrite them.
4. Return exactly one result per targetId.

## Targets:
{payload}

Output JSON only:
{{"results": [{{"id": "targetId", "afterText": "câu đã rút gọn", "afterTimestamp": "HH:MM:SS,mmm --> HH:MM:SS,mmm"}}]}}"""


def parse_rewrite_response(text: str) -> List[RewriteResult]:
    """
    Decode the oracle response into RewriteResult objects.

    Raises:
        LLMError: If the response is not JSON or has no result list
    """
    results: List[RewriteResult] = []
    for item in _extract_items(_load_json(text), "results"):
        item_id = item.get("id", item.get("targetId"))
        if item_id is None:
            continue
        results.append(RewriteResult(
            id=str(item_id).strip(),
            after_text=clean_translated_text(str(item.get("afterText") or item.get("text") or "")),
            after_timestamp=str(item.get("afterTimestamp") or "").strip(),
        ))
    return results


class LLMRewriteOracle:
    """Rewrite oracle backed by an LLM provider."""

    def __init__(
        self,
        provider: LLMProvider,
        target_cps: float = TARGET_CPS,
        analysis: Optional[TitleAnalysis] = None,
        max_retries: int = 2,
        base_delay: float = 2.0,
    ):
        self.provider = provider
        self.target_cps = target_cps
        self.analysis = analysis
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.tokens_used = 0
        self.requests_made = 0

    async def __call__(self, requests: List[RewriteRequest]) -> List[RewriteResult]:
        prompt = build_rewrite_prompt(requests, self.target_cps, self.analysis)
        response = await self.provider.complete(
            prompt,
            json_mode=True,
            max_retries=self.max_retries,
            base_delay=self.base_delay,
        )
        self.requests_made += 1
        self.tokens_used += response.tokens
        return parse_rewrite_response(response.text)
