"""LLM API client utilities."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, TypeVar

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from openai import (
    AsyncOpenAI,
    APIConnectionError,
    RateLimitError,
    AuthenticationError,
    PermissionDeniedError,
    BadRequestError,
    APIStatusError,
)

from .config import is_openai_model

logger = logging.getLogger(__name__)

T = TypeVar("T")


class APIErrorType(Enum):
    """API 错误类型分类。"""
    RATE_LIMIT = "rate_limit"              # 429 / quota - 可重试
    CONNECTION = "connection"              # 网络或超时 - 可重试
    AUTH = "auth"                          # 401/403 - 不可重试
    BAD_REQUEST = "bad_request"            # 400 - 不可重试
    SERVER = "server"                      # 500+ - 可重试
    INVALID_RESPONSE = "invalid_response"  # JSON 无法解析 - 不可重试
    UNKNOWN = "unknown"


USER_MESSAGES: Dict[APIErrorType, str] = {
    APIErrorType.RATE_LIMIT: "API quota exhausted (429). Wait a minute, then resume from the partial file.",
    APIErrorType.CONNECTION: "Network error or timeout while contacting the API.",
    APIErrorType.AUTH: "API key is invalid or expired.",
    APIErrorType.BAD_REQUEST: "The API rejected the request.",
    APIErrorType.SERVER: "The API server returned an error.",
    APIErrorType.INVALID_RESPONSE: "The model returned a response that could not be parsed.",
    APIErrorType.UNKNOWN: "Unexpected error while calling the API.",
}


class LLMError(Exception):
    """Terminal failure of an LLM call, after retries."""

    def __init__(self, message: str, error_type: APIErrorType = APIErrorType.UNKNOWN):
        super().__init__(message)
        self.error_type = error_type

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.error_type]


def classify_error(error: Exception) -> tuple[APIErrorType, bool]:
    """
    分类 API 错误并判断是否可重试。

    Returns:
        (错误类型, 是否可重试)
    """
    if isinstance(error, LLMError):
        retryable = error.error_type in (
            APIErrorType.RATE_LIMIT, APIErrorType.CONNECTION, APIErrorType.SERVER
        )
        return error.error_type, retryable

    # OpenAI
    if isinstance(error, RateLimitError):
        return APIErrorType.RATE_LIMIT, True
    elif isinstance(error, APIConnectionError):
        return APIErrorType.CONNECTION, True
    elif isinstance(error, (AuthenticationError, PermissionDeniedError)):
        return APIErrorType.AUTH, False
    elif isinstance(error, BadRequestError):
        return APIErrorType.BAD_REQUEST, False
    elif isinstance(error, APIStatusError):
        # 5xx 错误可重试
        if error.status_code >= 500:
            return APIErrorType.SERVER, True
        return APIErrorType.UNKNOWN, False

    # Gemini
    if isinstance(error, (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests)):
        return APIErrorType.RATE_LIMIT, True
    elif isinstance(error, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)):
        return APIErrorType.AUTH, False
    elif isinstance(error, google_exceptions.InvalidArgument):
        # Gemini 对无效 key 返回 400
        if "api key" in str(error).lower():
            return APIErrorType.AUTH, False
        return APIErrorType.BAD_REQUEST, False
    elif isinstance(error, google_exceptions.BadRequest):
        return APIErrorType.BAD_REQUEST, False
    elif isinstance(error, google_exceptions.ServerError):
        return APIErrorType.SERVER, True

    if isinstance(error, json.JSONDecodeError):
        return APIErrorType.INVALID_RESPONSE, False
    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return APIErrorType.CONNECTION, True

    # SDK 之外的错误只能按文本判断
    text = str(error).lower()
    if "429" in text or "quota" in text or "resource_exhausted" in text:
        return APIErrorType.RATE_LIMIT, True
    return APIErrorType.UNKNOWN, False


async def with_retry(
    call: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    base_delay: float = 2.0,
) -> T:
    """
    Await ``call`` and retry retryable failures with exponential backoff.

    Args:
        call: Zero-argument coroutine factory, invoked once per attempt
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry, doubled each time

    Returns:
        Whatever ``call`` returns

    Raises:
        LLMError: On a non-retryable error or once retries are exhausted
    """
    attempt = 0
    while True:
        try:
            return await call()
        except Exception as e:
            error_type, retryable = classify_error(e)

            if not retryable:
                logger.error(f"Non-retryable error ({error_type.value}): {e}")
                if isinstance(e, LLMError):
                    raise
                raise LLMError(str(e), error_type) from e

            if attempt >= max_retries:
                logger.error(f"All {max_retries} retries failed. Last error: {e}")
                raise LLMError(str(e), error_type) from e

            # 计算退避时间
            delay = base_delay * 2 ** attempt
            if error_type == APIErrorType.RATE_LIMIT:
                # Rate limit 使用更长的退避时间
                delay = min(delay * 2, 60)

            attempt += 1
            logger.warning(
                f"Retryable error ({error_type.value}): {e}. "
                f"Retry {attempt}/{max_retries} in {delay}s..."
            )
            await asyncio.sleep(delay)


@dataclass
class LLMResponse:
    """Raw model output and the tokens it consumed."""
    text: str
    tokens: int = 0


class LLMProvider(ABC):
    """A hosted model backend."""

    name = "base"

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    async def _generate(self, prompt: str, json_mode: bool, temperature: float) -> LLMResponse:
        """Single request, no retries."""

    async def complete(
        self,
        prompt: str,
        json_mode: bool = True,
        temperature: float = 0.3,
        max_retries: int = 2,
        base_delay: float = 2.0,
    ) -> LLMResponse:
        """
        Send a prompt with retry logic.

        Raises:
            LLMError: When the call fails terminally
        """
        return await with_retry(
            lambda: self._generate(prompt, json_mode, temperature),
            max_retries=max_retries,
            base_delay=base_delay,
        )


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions backend."""

    name = "openai"

    def __init__(self, model: str, api_key: str, timeout: float = 60.0):
        super().__init__(model)
        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout)

    async def _generate(self, prompt: str, json_mode: bool, temperature: float) -> LLMResponse:
        params: Dict = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**params)
        content = response.choices[0].message.content
        tokens = response.usage.total_tokens if response.usage else 0
        return LLMResponse(content.strip() if content else "", tokens)


def resolve_model_id(model_name: str) -> str:
    """把界面上的模型名映射到实际的 Gemini 模型 ID。"""
    name = model_name.lower()
    if "gemini" in name:
        if "pro" in name:
            return "gemini-3-pro-preview"
        return "gemini-3-flash-preview"
    return model_name


class GeminiProvider(LLMProvider):
    """Google Gemini backend."""

    name = "gemini"

    def __init__(self, model: str, api_key: str):
        super().__init__(resolve_model_id(model))
        genai.configure(api_key=api_key)
        self._model = genai.GenerativeModel(self.model)

    async def _generate(self, prompt: str, json_mode: bool, temperature: float) -> LLMResponse:
        generation_config: Dict = {"temperature": temperature}
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        response = await self._model.generate_content_async(
            prompt, generation_config=generation_config
        )
        try:
            text = response.text
        except ValueError as e:
            # 被安全策略拦截时没有文本
            raise LLMError(f"Empty response: {e}", APIErrorType.INVALID_RESPONSE) from e

        usage = getattr(response, "usage_metadata", None)
        tokens = getattr(usage, "total_token_count", 0) if usage else 0
        return LLMResponse(text.strip() if text else "", tokens or 0)


def create_provider(
    model_name: str,
    api_key: Optional[str],
    timeout: float = 60.0,
) -> LLMProvider:
    """
    Create the backend for ``model_name``.

    Models whose name contains "gpt" go to OpenAI, everything else to Gemini.

    Raises:
        LLMError: If the key is missing or belongs to the wrong backend
    """
    if not api_key:
        raise LLMError(f"No API key for model {model_name}", APIErrorType.AUTH)

    if is_openai_model(model_name):
        if api_key.startswith("AIza"):
            raise LLMError(
                "A Gemini API key cannot be used with OpenAI models",
                APIErrorType.AUTH,
            )
        return OpenAIProvider(model_name, api_key, timeout=timeout)

    return GeminiProvider(model_name, api_key)


async def check_api_health(provider: LLMProvider) -> bool:
    """Send a tiny request to verify the key and model."""
    try:
        await provider.complete("ping", json_mode=False, max_retries=0)
        return True
    except LLMError as e:
        logger.error(f"Health check failed for {provider.name}/{provider.model}: {e}")
        return False
