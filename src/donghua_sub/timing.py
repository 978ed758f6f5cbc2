"""Timing adjustments: local CPS fixes and playback speed rescaling."""

from __future__ import annotations

import math
import time
import logging
from typing import List, Optional, Sequence

from .config import AI_CPS_THRESHOLD, IGNORE_CPS_THRESHOLD, SAFE_GAP_MS, TARGET_CPS
from .models import ReadabilitySuggestion, Segment, SuggestionStatus, Tier
from .readability import classify_cps, compute_cps, make_suggestion
from .timecode import format_range, parse_timestamp, split_range

logger = logging.getLogger(__name__)


def propose_end_ms(
    segments: Sequence[Segment],
    position: int,
    target_cps: float = TARGET_CPS,
    safe_gap_ms: int = SAFE_GAP_MS,
) -> Optional[int]:
    """
    Compute a later end time that brings the segment toward ``target_cps``.

    The end is capped at ``next.start - safe_gap_ms``. Returns None when the
    result would not extend the segment.

    Args:
        segments: Current segment sequence
        position: Position of the segment in ``segments``
        target_cps: Desired reading speed
        safe_gap_ms: Gap to keep before the next segment

    Returns:
        New end time in milliseconds, or None if nothing to extend
    """
    segment = segments[position]
    start_ms, end_ms = segment.start_ms, segment.end_ms

    required_ms = math.ceil(len(segment.text) * 1000 / target_cps)
    ideal_end = start_ms + required_ms

    if position + 1 < len(segments):
        max_allowed = segments[position + 1].start_ms - safe_gap_ms
        ideal_end = min(ideal_end, max_allowed)

    # 只延长，不缩短
    if ideal_end <= end_ms:
        return None
    return ideal_end


def apply_local_fixes(
    segments: List[Segment],
    target_cps: float = TARGET_CPS,
    safe_gap_ms: int = SAFE_GAP_MS,
    ignore_threshold: float = IGNORE_CPS_THRESHOLD,
    ai_threshold: float = AI_CPS_THRESHOLD,
    apply: bool = True,
) -> List[ReadabilitySuggestion]:
    """
    Extend the end time of every local-tier segment, in order.

    Start times and text are never touched. Each segment is classified
    against its current state, so earlier fixes in the same pass are seen
    by later ones.

    Args:
        segments: Segment sequence, mutated in place when ``apply`` is True
        target_cps: Desired reading speed
        safe_gap_ms: Gap to keep before the next segment
        ignore_threshold: CPS below which a segment is left alone
        ai_threshold: CPS above which a segment is left for AI rewriting
        apply: When False, only report what would change

    Returns:
        One suggestion per extended segment
    """
    fixes: List[ReadabilitySuggestion] = []

    for position, segment in enumerate(segments):
        cps = compute_cps(segment)
        if classify_cps(cps, ignore_threshold, ai_threshold) is not Tier.LOCAL:
            continue

        new_end = propose_end_ms(segments, position, target_cps, safe_gap_ms)
        if new_end is None:
            continue

        suggestion = make_suggestion(segment, Tier.LOCAL, cps)
        suggestion.after_timestamp = format_range(segment.start_ms, new_end)

        if apply:
            segment.timestamp = suggestion.after_timestamp
            suggestion.status = SuggestionStatus.APPLIED
            suggestion.applied_at = time.time()

        fixes.append(suggestion)

    if apply and fixes:
        logger.info(f"Extended timing of {len(fixes)} segment(s)")

    return fixes


def preview_local_fixes(segments: Sequence[Segment], **kwargs) -> List[ReadabilitySuggestion]:
    """不修改字幕，只返回本地修复建议。"""
    return apply_local_fixes(list(segments), apply=False, **kwargs)


def adjust_speed(segments: Sequence[Segment], speed: float) -> List[Segment]:
    """
    Rescale all timestamps for a video played at ``speed``.

    new_time = old_time / speed. Segments without a parsable range line are
    copied unchanged.

    Raises:
        ValueError: If speed is not positive
    """
    if speed <= 0:
        raise ValueError(f"Speed must be positive, got {speed}")

    if speed == 1:
        return [s.copy() for s in segments]

    adjusted: List[Segment] = []
    for segment in segments:
        parts = split_range(segment.timestamp)
        if parts is None:
            adjusted.append(segment.copy())
            continue

        start_ms = parse_timestamp(parts[0]) / speed
        end_ms = parse_timestamp(parts[1]) / speed
        adjusted.append(segment.copy(timestamp=format_range(start_ms, end_ms)))

    logger.info(f"Rescaled {len(adjusted)} segments for speed x{speed}")
    return adjusted
