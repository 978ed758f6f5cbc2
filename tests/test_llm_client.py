"""Tests for LLM client utilities."""

import asyncio
import json

import httpx
import pytest
from google.api_core import exceptions as google_exceptions
from openai import APIConnectionError, AuthenticationError, InternalServerError, RateLimitError

from donghua_sub.llm_client import (
    APIErrorType,
    GeminiProvider,
    LLMError,
    LLMProvider,
    LLMResponse,
    OpenAIProvider,
    check_api_health,
    classify_error,
    create_provider,
    resolve_model_id,
    with_retry,
)

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def status_error(cls, code):
    return cls("error", response=httpx.Response(code, request=REQUEST), body=None)


class ScriptedProvider(LLMProvider):
    """Returns or raises the scripted outcomes in order."""

    name = "fake"

    def __init__(self, outcomes):
        super().__init__("fake-model")
        self.outcomes = list(outcomes)
        self.calls = 0

    async def _generate(self, prompt, json_mode, temperature):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return LLMResponse(outcome, tokens=10)


class TestClassifyError:

    def test_openai_errors(self):
        assert classify_error(status_error(RateLimitError, 429)) == (APIErrorType.RATE_LIMIT, True)
        assert classify_error(APIConnectionError(request=REQUEST)) == (APIErrorType.CONNECTION, True)
        assert classify_error(status_error(AuthenticationError, 401)) == (APIErrorType.AUTH, False)
        assert classify_error(status_error(InternalServerError, 500)) == (APIErrorType.SERVER, True)

    def test_gemini_errors(self):
        assert classify_error(google_exceptions.ResourceExhausted("quota")) == (APIErrorType.RATE_LIMIT, True)
        assert classify_error(google_exceptions.Unauthenticated("no")) == (APIErrorType.AUTH, False)
        assert classify_error(google_exceptions.PermissionDenied("no")) == (APIErrorType.AUTH, False)
        assert classify_error(google_exceptions.ServiceUnavailable("down")) == (APIErrorType.SERVER, True)

    def test_gemini_invalid_key(self):
        error = google_exceptions.InvalidArgument("API key not valid. Please pass a valid API key.")
        assert classify_error(error) == (APIErrorType.AUTH, False)
        assert classify_error(google_exceptions.InvalidArgument("bad schema")) == (APIErrorType.BAD_REQUEST, False)

    def test_json_error(self):
        try:
            json.loads("{not json")
        except json.JSONDecodeError as e:
            assert classify_error(e) == (APIErrorType.INVALID_RESPONSE, False)

    def test_timeout(self):
        assert classify_error(asyncio.TimeoutError()) == (APIErrorType.CONNECTION, True)

    def test_text_fallback(self):
        assert classify_error(RuntimeError("HTTP 429: quota exceeded")) == (APIErrorType.RATE_LIMIT, True)
        assert classify_error(ValueError("something else")) == (APIErrorType.UNKNOWN, False)

    def test_llm_error_keeps_type(self):
        assert classify_error(LLMError("x", APIErrorType.AUTH)) == (APIErrorType.AUTH, False)
        assert classify_error(LLMError("x", APIErrorType.SERVER)) == (APIErrorType.SERVER, True)


class TestWithRetry:

    def test_success_after_retryable_errors(self):
        provider = ScriptedProvider([
            google_exceptions.ServiceUnavailable("down"),
            google_exceptions.ResourceExhausted("quota"),
            "ok",
        ])
        response = asyncio.run(provider.complete("hi", max_retries=2, base_delay=0))
        assert response.text == "ok"
        assert response.tokens == 10
        assert provider.calls == 3

    def test_retries_exhausted(self):
        provider = ScriptedProvider([google_exceptions.ResourceExhausted("quota")] * 3)
        with pytest.raises(LLMError) as exc_info:
            asyncio.run(provider.complete("hi", max_retries=2, base_delay=0))
        assert exc_info.value.error_type is APIErrorType.RATE_LIMIT
        assert provider.calls == 3

    def test_non_retryable_fails_fast(self):
        provider = ScriptedProvider([google_exceptions.Unauthenticated("bad key"), "unused"])
        with pytest.raises(LLMError) as exc_info:
            asyncio.run(provider.complete("hi", max_retries=3, base_delay=0))
        assert exc_info.value.error_type is APIErrorType.AUTH
        assert "invalid" in exc_info.value.user_message
        assert provider.calls == 1

    def test_llm_error_passthrough(self):
        original = LLMError("unparseable", APIErrorType.INVALID_RESPONSE)

        async def call():
            raise original

        with pytest.raises(LLMError) as exc_info:
            asyncio.run(with_retry(call, max_retries=2, base_delay=0))
        assert exc_info.value is original

    def test_zero_retries(self):
        calls = []

        async def call():
            calls.append(1)
            raise ConnectionError("reset")

        with pytest.raises(LLMError):
            asyncio.run(with_retry(call, max_retries=0, base_delay=0))
        assert len(calls) == 1


class TestProviders:

    def test_resolve_model_id(self):
        assert resolve_model_id("Gemini 3 Pro") == "gemini-3-pro-preview"
        assert resolve_model_id("gemini-3-flash-preview") == "gemini-3-flash-preview"
        assert resolve_model_id("Gemini") == "gemini-3-flash-preview"
        assert resolve_model_id("custom-model") == "custom-model"

    def test_missing_key(self):
        with pytest.raises(LLMError) as exc_info:
            create_provider("gemini-3-flash-preview", None)
        assert exc_info.value.error_type is APIErrorType.AUTH

    def test_gemini_key_rejected_for_openai(self):
        with pytest.raises(LLMError) as exc_info:
            create_provider("gpt-4o-mini", "AIzaSyFakeKey")
        assert exc_info.value.error_type is APIErrorType.AUTH

    def test_selects_openai(self):
        provider = create_provider("gpt-4o-mini", "sk-test")
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o-mini"

    def test_selects_gemini(self):
        provider = create_provider("Gemini 3 Pro", "AIzaSyFakeKey")
        assert isinstance(provider, GeminiProvider)
        assert provider.model == "gemini-3-pro-preview"


class TestHealthCheck:

    def test_healthy(self):
        assert asyncio.run(check_api_health(ScriptedProvider(["pong"])))

    def test_unhealthy(self):
        provider = ScriptedProvider([google_exceptions.Unauthenticated("bad key")])
        assert not asyncio.run(check_api_health(provider))
