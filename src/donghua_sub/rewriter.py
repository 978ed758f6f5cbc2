"""Batched AI rewriting of segments that read too fast."""

from __future__ import annotations

import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .models import ReadabilitySuggestion, Segment, SuggestionStatus
from .progress import OptimizeStats
from .timecode import format_range, is_valid_range, parse_range

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative stop flag, checked between batches."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class RunOutcome(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ContextLine:
    """A neighbouring segment sent for narrative continuity."""
    id: str
    text: str
    timestamp: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "text": self.text, "timestamp": self.timestamp}


@dataclass
class RewriteRequest:
    """One segment to shorten, as sent to the oracle."""
    target_id: str
    current_text: str
    current_cps: float
    timestamp: str
    context: List[ContextLine] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targetId": self.target_id,
            "currentText": self.current_text,
            "currentCps": round(self.current_cps, 1),
            "timestamp": self.timestamp,
            "context": [c.to_dict() for c in self.context],
        }


@dataclass
class RewriteResult:
    """Oracle output for one segment, matched back by id."""
    id: str
    after_text: str
    after_timestamp: str = ""


RewriteOracle = Callable[[List[RewriteRequest]], Awaitable[List[RewriteResult]]]


@dataclass
class RewriteRunResult:
    """How an AI run ended and how far it got."""
    outcome: RunOutcome
    stats: OptimizeStats
    error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome is RunOutcome.COMPLETED


def build_context(segments: Sequence[Segment], position: int, window: int = 2) -> List[ContextLine]:
    """Collect up to ``window`` segments before and after ``position``."""
    if window <= 0:
        return []

    before = segments[max(0, position - window):position]
    after = segments[position + 1:position + 1 + window]
    return [
        ContextLine(id=s.index, text=s.text, timestamp=s.timestamp)
        for s in list(before) + list(after)
    ]


def build_requests(
    batch: Sequence[ReadabilitySuggestion],
    segments: Sequence[Segment],
    positions: Dict[str, int],
    window: int = 2,
) -> List[RewriteRequest]:
    """Build oracle requests from the current state of each target segment."""
    requests: List[RewriteRequest] = []
    for suggestion in batch:
        position = positions[suggestion.segment_index]
        segment = segments[position]
        requests.append(RewriteRequest(
            target_id=segment.index,
            current_text=segment.text,
            current_cps=suggestion.cps,
            timestamp=segment.timestamp,
            context=build_context(segments, position, window),
        ))
    return requests


def _mark_error(suggestion: ReadabilitySuggestion, message: str) -> None:
    suggestion.status = SuggestionStatus.ERROR
    suggestion.error = message


def _apply_results(
    batch: Sequence[ReadabilitySuggestion],
    results: Sequence[RewriteResult],
    segments: List[Segment],
    positions: Dict[str, int],
) -> int:
    """
    Write oracle results into the matching segments.

    Results whose id is not part of the batch are ignored.

    Returns:
        Number of batch members with no usable result
    """
    by_id = {str(r.id).strip(): r for r in results}
    now = time.time()
    missing = 0

    for suggestion in batch:
        result = by_id.get(suggestion.segment_index)
        if result is None or not result.after_text or not result.after_text.strip():
            _mark_error(suggestion, "Missing from response")
            missing += 1
            continue

        segment = segments[positions[suggestion.segment_index]]
        segment.translated_text = result.after_text.strip()

        # 时间轴无效时保留原时间
        if is_valid_range(result.after_timestamp):
            segment.timestamp = format_range(*parse_range(result.after_timestamp))
        elif result.after_timestamp:
            logger.debug(f"Ignoring invalid timestamp for #{segment.index}: {result.after_timestamp}")

        suggestion.after_text = segment.text
        suggestion.after_timestamp = segment.timestamp
        suggestion.status = SuggestionStatus.APPLIED
        suggestion.applied_at = now

    return missing


async def run_ai_rewrite(
    suggestions: Sequence[ReadabilitySuggestion],
    segments: List[Segment],
    oracle: RewriteOracle,
    batch_size: int = 5,
    context_window: int = 2,
    cancel_token: Optional[CancellationToken] = None,
    on_batch_done: Optional[Callable[[OptimizeStats], None]] = None,
) -> RewriteRunResult:
    """
    Rewrite AI-tier segments batch by batch.

    Batches run strictly one after another. Results are applied to
    ``segments`` as soon as each batch returns, so the list can be saved at
    any time. A failing batch marks its members as errors and stops the run;
    earlier batches stay applied. Cancellation is checked before each batch
    and never interrupts a call in flight.

    Args:
        suggestions: AI-tier suggestions in segment order
        segments: The live segment list, mutated in place
        oracle: Async callable that rewrites a batch
        batch_size: Suggestions per oracle call
        context_window: Neighbours sent on each side of a target
        cancel_token: Optional stop flag
        on_batch_done: Called with running stats after every batch

    Returns:
        RewriteRunResult with outcome, counts and error message
    """
    if batch_size < 1:
        raise ValueError(f"Batch size must be positive, got {batch_size}")

    stats = OptimizeStats(total=len(suggestions))
    positions = {s.index: i for i, s in enumerate(segments)}

    for start in range(0, len(suggestions), batch_size):
        if cancel_token is not None and cancel_token.cancelled:
            logger.info(f"Cancelled after {stats.processed}/{stats.total} segments")
            return RewriteRunResult(RunOutcome.CANCELLED, stats)

        batch = list(suggestions[start:start + batch_size])

        # 找不到对应字幕的建议直接标记失败
        runnable: List[ReadabilitySuggestion] = []
        for suggestion in batch:
            if suggestion.segment_index in positions:
                suggestion.status = SuggestionStatus.PROCESSING
                runnable.append(suggestion)
            else:
                _mark_error(suggestion, "Segment not found")
                stats.failed += 1

        if runnable:
            requests = build_requests(runnable, segments, positions, context_window)
            try:
                results = await oracle(requests)
            except Exception as e:
                message = str(e) or e.__class__.__name__
                logger.error(f"Batch {start // batch_size + 1} failed: {message}")
                for suggestion in runnable:
                    _mark_error(suggestion, message)
                stats.processed += len(batch)
                stats.failed += len(runnable)
                if on_batch_done:
                    on_batch_done(stats)
                return RewriteRunResult(RunOutcome.FAILED, stats, error=message)

            stats.failed += _apply_results(runnable, results, segments, positions)

        stats.processed += len(batch)
        if on_batch_done:
            on_batch_done(stats)

    logger.info(f"AI rewrite finished: {stats.applied}/{stats.total} applied")
    return RewriteRunResult(RunOutcome.COMPLETED, stats)
