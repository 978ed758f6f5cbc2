"""Tests for LLM-backed translation and rewriting."""

import asyncio
import json

import pytest
from donghua_sub.glossary import Glossary
from donghua_sub.llm_client import APIErrorType, LLMError, LLMProvider, LLMResponse
from donghua_sub.models import Segment
from donghua_sub.rewriter import ContextLine, RewriteRequest, RunOutcome, CancellationToken
from donghua_sub.translator import (
    LLMRewriteOracle,
    TitleAnalysis,
    analyze_title,
    build_rewrite_prompt,
    mark_resumed,
    needs_translation,
    parse_rewrite_response,
    translate_segments,
)


class ScriptedProvider(LLMProvider):
    """Returns or raises the scripted outcomes in order and records prompts."""

    name = "fake"

    def __init__(self, outcomes):
        super().__init__("fake-model")
        self.outcomes = list(outcomes)
        self.prompts = []

    async def _generate(self, prompt, json_mode, temperature):
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return LLMResponse(outcome, tokens=5)


def translations(*pairs):
    return json.dumps({"translations": [{"id": i, "text": t} for i, t in pairs]}, ensure_ascii=False)


ANALYSIS = TitleAnalysis(
    original_title="凡人修仙传",
    translated_title="Phàm Nhân Tu Tiên",
    main_genres=["Tu Tiên"],
    tone="Nghiêm túc",
    recommended_style="cổ phong",
)


class TestTitleAnalysis:

    def test_analyze_title(self):
        provider = ScriptedProvider([json.dumps({
            "originalTitle": "凡人修仙传",
            "translatedTitle": "Phàm Nhân Tu Tiên",
            "mainGenres": ["Tu Tiên", "Tiên Hiệp"],
            "summary": "Hàn Lập tu luyện.",
            "tone": "Nghiêm túc",
            "recommendedStyle": "cổ phong",
        }, ensure_ascii=False)])

        analysis, tokens = asyncio.run(analyze_title("凡人修仙传", provider))

        assert analysis.translated_title == "Phàm Nhân Tu Tiên"
        assert analysis.main_genres == ["Tu Tiên", "Tiên Hiệp"]
        assert tokens == 5
        assert "凡人修仙传" in provider.prompts[0]

    def test_missing_fields_fall_back(self):
        provider = ScriptedProvider(['{"mainGenres": "Tu Tiên, Hệ Thống"}'])
        analysis, _ = asyncio.run(analyze_title("斗破苍穹", provider))
        assert analysis.original_title == "斗破苍穹"
        assert analysis.translated_title == "斗破苍穹"
        assert analysis.main_genres == ["Tu Tiên", "Hệ Thống"]

    def test_blank_title(self):
        with pytest.raises(ValueError):
            asyncio.run(analyze_title("   ", ScriptedProvider([])))

    def test_not_an_object(self):
        with pytest.raises(LLMError) as exc_info:
            asyncio.run(analyze_title("x", ScriptedProvider(["[1, 2]"])))
        assert exc_info.value.error_type is APIErrorType.INVALID_RESPONSE

    def test_prompt_section(self):
        section = ANALYSIS.to_prompt_section()
        assert "Phàm Nhân Tu Tiên" in section
        assert "Tone: Nghiêm túc" in section


class TestResume:

    def test_mark_resumed(self):
        segments = [
            Segment("1", "00:00:01,000 --> 00:00:02,000", "Xin chào"),
            Segment("2", "00:00:03,000 --> 00:00:04,000", "你好"),
        ]
        assert mark_resumed(segments) == 1
        assert segments[0].translated_text == "Xin chào"
        assert segments[1].translated_text is None
        assert not needs_translation(segments[0])
        assert needs_translation(segments[1])


class TestTranslateSegments:

    def _segments(self):
        return [
            Segment("1", "00:00:01,000 --> 00:00:02,000", "你好"),
            Segment("2", "00:00:03,000 --> 00:00:04,000", "修仙之路"),
            Segment("3", "00:00:05,000 --> 00:00:06,000", "Đã dịch", translated_text="Đã dịch"),
            Segment("4", "00:00:07,000 --> 00:00:08,000", "再见"),
        ]

    def test_translates_pending_by_id(self):
        segments = self._segments()
        provider = ScriptedProvider([
            translations(("2", "Con đường tu tiên"), ("1", "Xin chào")),
            translations(("4", "Tạm biệt")),
        ])
        progress = []

        result = asyncio.run(translate_segments(
            segments, ANALYSIS, provider, chunk_size=2,
            on_progress=lambda done, tokens: progress.append(done),
        ))

        assert result.outcome is RunOutcome.COMPLETED
        assert result.translated == 3
        assert result.tokens == 10
        assert [s.text for s in segments] == ["Xin chào", "Con đường tu tiên", "Đã dịch", "Tạm biệt"]
        assert progress == [2, 3]

    def test_prompt_contains_glossary_and_background(self):
        segments = self._segments()
        provider = ScriptedProvider([translations(("1", "a"), ("2", "b"), ("4", "c"))])

        asyncio.run(translate_segments(segments, ANALYSIS, provider, Glossary.with_defaults()))

        prompt = provider.prompts[0]
        assert "修仙 -> Tu tiên" in prompt
        assert "Phàm Nhân Tu Tiên" in prompt
        assert '"id": "3"' not in prompt

    def test_rejects_untranslated(self):
        segments = self._segments()[:2]
        provider = ScriptedProvider([translations(("1", "Xin chào"), ("2", "修仙之路"))])

        result = asyncio.run(translate_segments(segments, ANALYSIS, provider))
        assert result.translated == 1
        assert result.failed == 1
        assert segments[1].translated_text is None

    def test_failure_keeps_earlier_chunks(self):
        segments = self._segments()
        provider = ScriptedProvider([
            translations(("1", "Xin chào")),
            LLMError("bad request", APIErrorType.BAD_REQUEST),
        ])

        result = asyncio.run(translate_segments(segments, ANALYSIS, provider, chunk_size=1))

        assert result.outcome is RunOutcome.FAILED
        assert result.error == "bad request"
        assert segments[0].translated_text == "Xin chào"
        assert segments[1].translated_text is None

    def test_invalid_json_fails(self):
        segments = self._segments()
        provider = ScriptedProvider(["not json"])
        result = asyncio.run(translate_segments(segments, ANALYSIS, provider))
        assert result.outcome is RunOutcome.FAILED
        assert "JSON" in result.error

    def test_cancelled(self):
        token = CancellationToken()
        token.cancel()
        provider = ScriptedProvider([])
        result = asyncio.run(translate_segments(self._segments(), ANALYSIS, provider, cancel_token=token))
        assert result.outcome is RunOutcome.CANCELLED
        assert provider.prompts == []

    def test_nothing_to_translate(self):
        segments = [Segment("1", "00:00:01,000 --> 00:00:02,000", "Xin chào")]
        result = asyncio.run(translate_segments(segments, ANALYSIS, ScriptedProvider([])))
        assert result.outcome is RunOutcome.COMPLETED
        assert result.pending == 0


class TestRewriteResponse:

    def test_object_with_results(self):
        text = json.dumps({"results": [
            {"id": "12", "afterText": "Ngắn gọn", "afterTimestamp": "00:00:01,000 --> 00:00:02,500"},
        ]}, ensure_ascii=False)
        results = parse_rewrite_response(text)
        assert len(results) == 1
        assert results[0].id == "12"
        assert results[0].after_text == "Ngắn gọn"
        assert results[0].after_timestamp == "00:00:01,000 --> 00:00:02,500"

    def test_bare_list_in_code_fence(self):
        text = '```json\n[{"id": 3, "afterText": "A"}, {"afterText": "no id"}, "junk"]\n```'
        results = parse_rewrite_response(text)
        assert [(r.id, r.after_text, r.after_timestamp) for r in results] == [("3", "A", "")]

    def test_invalid_json(self):
        with pytest.raises(LLMError) as exc_info:
            parse_rewrite_response("Sorry, I cannot help")
        assert exc_info.value.error_type is APIErrorType.INVALID_RESPONSE

    def test_empty_response(self):
        with pytest.raises(LLMError):
            parse_rewrite_response("")

    def test_no_list(self):
        with pytest.raises(LLMError):
            parse_rewrite_response('{"results": "none"}')


class TestLLMRewriteOracle:

    def _requests(self):
        return [RewriteRequest(
            target_id="5",
            current_text="Một câu rất dài không thể đọc kịp",
            current_cps=45.2,
            timestamp="00:00:10,000 --> 00:00:10,700",
            context=[ContextLine("6", "Câu sau", "00:00:11,000 --> 00:00:12,000")],
        )]

    def test_prompt(self):
        prompt = build_rewrite_prompt(self._requests(), target_cps=20)
        assert '"targetId": "5"' in prompt
        assert '"currentCps": 45.2' in prompt
        assert "at most 20" in prompt
        assert "Câu sau" in prompt

    def test_call(self):
        provider = ScriptedProvider([
            '{"results": [{"id": "5", "afterText": "Câu ngắn", "afterTimestamp": "00:00:10,000 --> 00:00:10,950"}]}'
        ])
        oracle = LLMRewriteOracle(provider, analysis=ANALYSIS)

        results = asyncio.run(oracle(self._requests()))

        assert results[0].after_text == "Câu ngắn"
        assert oracle.tokens_used == 5
        assert oracle.requests_made == 1
        assert "Phàm Nhân Tu Tiên" in provider.prompts[0]

    def test_terminal_error_propagates(self):
        provider = ScriptedProvider([LLMError("bad key", APIErrorType.AUTH)])
        oracle = LLMRewriteOracle(provider, base_delay=0)
        with pytest.raises(LLMError):
            asyncio.run(oracle(self._requests()))
