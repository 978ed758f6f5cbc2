"""Reading-speed (CPS) analysis for subtitle segments."""

from __future__ import annotations

import logging
from typing import List, Sequence

from .config import AI_CPS_THRESHOLD, IGNORE_CPS_THRESHOLD, INVALID_DURATION_CPS
from .models import ReadabilityReport, ReadabilitySuggestion, Segment, Tier

logger = logging.getLogger(__name__)


def compute_cps(segment: Segment) -> float:
    """
    Characters per second of the segment's effective text.

    Zero or negative durations return INVALID_DURATION_CPS so the segment
    is always treated as critical.
    """
    duration = segment.duration_ms / 1000.0
    if duration <= 0:
        return INVALID_DURATION_CPS
    return len(segment.text) / duration


def classify_cps(
    cps: float,
    ignore_threshold: float = IGNORE_CPS_THRESHOLD,
    ai_threshold: float = AI_CPS_THRESHOLD,
) -> Tier:
    """Map a CPS value to its tier: below ignore, up to ai inclusive, above ai."""
    if cps < ignore_threshold:
        return Tier.IGNORE
    if cps <= ai_threshold:
        return Tier.LOCAL
    return Tier.AI


def make_suggestion(segment: Segment, tier: Tier, cps: float) -> ReadabilitySuggestion:
    """Snapshot a segment's current state into a pending suggestion."""
    return ReadabilitySuggestion(
        segment_index=segment.index,
        tier=tier,
        cps=cps,
        char_count=len(segment.text),
        duration_seconds=segment.duration_ms / 1000.0,
        before_timestamp=segment.timestamp,
        before_text=segment.text,
        after_timestamp=segment.timestamp,
        after_text=segment.text,
    )


def analyze_readability(
    segments: Sequence[Segment],
    ignore_threshold: float = IGNORE_CPS_THRESHOLD,
    ai_threshold: float = AI_CPS_THRESHOLD,
) -> ReadabilityReport:
    """
    Classify every segment by reading speed.

    Never mutates ``segments``; running it twice on the same input returns
    equal reports.

    Args:
        segments: Current segment sequence
        ignore_threshold: CPS below which a segment is fine
        ai_threshold: CPS above which a segment needs rewriting

    Returns:
        ReadabilityReport with counts and per-tier suggestions
    """
    local: List[ReadabilitySuggestion] = []
    ai_required: List[ReadabilitySuggestion] = []
    ignored = 0

    for segment in segments:
        cps = compute_cps(segment)
        tier = classify_cps(cps, ignore_threshold, ai_threshold)

        if tier is Tier.IGNORE:
            ignored += 1
        elif tier is Tier.LOCAL:
            local.append(make_suggestion(segment, tier, cps))
        else:
            ai_required.append(make_suggestion(segment, tier, cps))

    logger.debug(
        f"Readability: {len(segments)} segments, {ignored} ok, "
        f"{len(local)} local, {len(ai_required)} AI"
    )

    return ReadabilityReport(
        total_segments=len(segments),
        ignored_count=ignored,
        local_fix_count=len(local),
        ai_required_count=len(ai_required),
        local_suggestions=local,
        ai_required_suggestions=ai_required,
    )
