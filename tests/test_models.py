"""Tests for data models."""

import pytest
from donghua_sub.models import (
    ReadabilityReport,
    ReadabilitySuggestion,
    Segment,
    SuggestionStatus,
    Tier,
)


class TestSegment:

    def test_creation(self):
        segment = Segment("1", "00:00:01,000 --> 00:00:03,500", "你好")
        assert segment.index == "1"
        assert segment.original_text == "你好"
        assert segment.translated_text is None

    def test_text_prefers_translation(self):
        segment = Segment("1", "00:00:01,000 --> 00:00:03,500", "你好", translated_text="Xin chào")
        assert segment.text == "Xin chào"

    def test_empty_translation_falls_back(self):
        segment = Segment("1", "00:00:01,000 --> 00:00:03,500", "你好", translated_text="")
        assert segment.text == "你好"

    def test_timing_properties(self):
        segment = Segment("1", "01:30:45,500 --> 01:30:50,000", "Test")
        assert segment.start_ms == 5445500
        assert segment.end_ms == 5450000
        assert segment.duration_ms == 4500

    def test_malformed_timestamp(self):
        segment = Segment("1", "not a timestamp", "Test")
        assert not segment.has_valid_range
        assert segment.start_ms == 0
        assert segment.duration_ms == 0

    def test_set_timing(self):
        segment = Segment("1", "00:00:01,000 --> 00:00:03,500", "Test")
        segment.set_timing(1000, 4250)
        assert segment.timestamp == "00:00:01,000 --> 00:00:04,250"
        assert segment.end_ms == 4250

    def test_to_srt(self):
        segment = Segment("7", "00:00:01,000 --> 00:00:03,500", "Dòng 1\nDòng 2")
        assert segment.to_srt() == "7\n00:00:01,000 --> 00:00:03,500\nDòng 1\nDòng 2"

    def test_copy(self):
        segment = Segment("1", "00:00:01,000 --> 00:00:03,500", "你好")
        copied = segment.copy(translated_text="Xin chào")

        # Original unchanged
        assert segment.translated_text is None

        assert copied.translated_text == "Xin chào"
        assert copied.timestamp == segment.timestamp
        assert copied is not segment


class TestSuggestion:

    def _suggestion(self, **changes):
        data = dict(
            segment_index="3",
            tier=Tier.AI,
            cps=52.5,
            char_count=52,
            duration_seconds=1.0,
            before_timestamp="00:00:01,000 --> 00:00:02,000",
            before_text="x" * 52,
        )
        data.update(changes)
        return ReadabilitySuggestion(**data)

    def test_defaults(self):
        suggestion = self._suggestion()
        assert suggestion.status is SuggestionStatus.PENDING
        assert not suggestion.is_finished

    def test_to_dict(self):
        data = self._suggestion().to_dict()
        assert data["segmentIndex"] == "3"
        assert data["tier"] == "ai"
        assert data["cps"] == 52.5
        assert data["status"] == "pending"
        assert "error" not in data
        assert "appliedAt" not in data

    def test_to_dict_with_error(self):
        suggestion = self._suggestion(status=SuggestionStatus.ERROR, error="boom")
        assert suggestion.is_finished
        assert suggestion.to_dict()["error"] == "boom"

    def test_applied_at_not_compared(self):
        assert self._suggestion(applied_at=1.0) == self._suggestion(applied_at=2.0)


class TestReadabilityReport:

    def test_to_dict_contract(self):
        report = ReadabilityReport(
            total_segments=10,
            ignored_count=7,
            local_fix_count=2,
            ai_required_count=1,
        )
        data = report.to_dict()
        assert data == {
            "totalSegments": 10,
            "ignoredCount": 7,
            "localFixCount": 2,
            "aiRequiredCount": 1,
            "aiRequiredSuggestions": [],
        }
        assert report.needs_attention

    def test_nothing_to_do(self):
        report = ReadabilityReport(3, 3, 0, 0)
        assert not report.needs_attention
