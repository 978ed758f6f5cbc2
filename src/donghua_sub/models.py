"""Data models for subtitle segments and readability suggestions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .timecode import format_range, parse_range, split_range


@dataclass
class Segment:
    """Represents a single subtitle cue in SRT format."""

    index: str
    timestamp: str
    original_text: str
    translated_text: Optional[str] = None

    @property
    def text(self) -> str:
        """Effective text: the translation when present, else the original."""
        return self.translated_text or self.original_text

    @property
    def has_valid_range(self) -> bool:
        """时间轴行是否包含 '-->'。"""
        return split_range(self.timestamp) is not None

    @property
    def start_ms(self) -> int:
        return parse_range(self.timestamp)[0]

    @property
    def end_ms(self) -> int:
        return parse_range(self.timestamp)[1]

    @property
    def duration_ms(self) -> int:
        start_ms, end_ms = parse_range(self.timestamp)
        return end_ms - start_ms

    def set_timing(self, start_ms: float, end_ms: float) -> None:
        """Rewrite the timestamp line from millisecond offsets."""
        self.timestamp = format_range(start_ms, end_ms)

    def to_srt(self) -> str:
        """Convert segment to an SRT block (without separator)."""
        return f"{self.index}\n{self.timestamp}\n{self.text}"

    def copy(self, **changes) -> "Segment":
        """Create a copy with optional field changes."""
        return Segment(
            index=changes.get('index', self.index),
            timestamp=changes.get('timestamp', self.timestamp),
            original_text=changes.get('original_text', self.original_text),
            translated_text=changes.get('translated_text', self.translated_text),
        )


class Tier(Enum):
    """Readability tier of a segment."""
    IGNORE = "ignore"
    LOCAL = "local"
    AI = "ai"


class SuggestionStatus(Enum):
    """Lifecycle: pending -> processing -> applied | error."""
    PENDING = "pending"
    PROCESSING = "processing"
    APPLIED = "applied"
    ERROR = "error"


@dataclass
class ReadabilitySuggestion:
    """A segment that reads too fast, with its before/after state."""

    segment_index: str
    tier: Tier
    cps: float
    char_count: int
    duration_seconds: float
    before_timestamp: str
    before_text: str
    after_timestamp: str = ""
    after_text: str = ""
    status: SuggestionStatus = SuggestionStatus.PENDING
    error: str = ""
    applied_at: Optional[float] = field(default=None, compare=False)

    @property
    def is_finished(self) -> bool:
        return self.status in (SuggestionStatus.APPLIED, SuggestionStatus.ERROR)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for display, using camelCase keys."""
        data: Dict[str, Any] = {
            "segmentIndex": self.segment_index,
            "tier": self.tier.value,
            "cps": round(self.cps, 2),
            "charCount": self.char_count,
            "durationSeconds": self.duration_seconds,
            "beforeTimestamp": self.before_timestamp,
            "afterTimestamp": self.after_timestamp,
            "beforeText": self.before_text,
            "afterText": self.after_text,
            "status": self.status.value,
        }
        if self.error:
            data["error"] = self.error
        if self.applied_at is not None:
            data["appliedAt"] = self.applied_at
        return data


@dataclass
class ReadabilityReport:
    """Result of one readability analysis pass."""

    total_segments: int
    ignored_count: int
    local_fix_count: int
    ai_required_count: int
    local_suggestions: List[ReadabilitySuggestion] = field(default_factory=list)
    ai_required_suggestions: List[ReadabilitySuggestion] = field(default_factory=list)

    @property
    def needs_attention(self) -> bool:
        return self.local_fix_count > 0 or self.ai_required_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalSegments": self.total_segments,
            "ignoredCount": self.ignored_count,
            "localFixCount": self.local_fix_count,
            "aiRequiredCount": self.ai_required_count,
            "aiRequiredSuggestions": [s.to_dict() for s in self.ai_required_suggestions],
        }
