"""Configuration and constants."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables once
load_dotenv()


# Readability thresholds (characters per second)
IGNORE_CPS_THRESHOLD = 20.0
# 早期版本使用 30，现统一为 40
AI_CPS_THRESHOLD = 40.0
TARGET_CPS = 20.0
# 零时长或倒序时间轴视为严重问题
INVALID_DURATION_CPS = 999.0

# Minimum visible gap kept before the next segment
SAFE_GAP_MS = 50

DEFAULT_MODEL = "gemini-3-flash-preview"
DEFAULT_GLOSSARY_FILENAME = "glossary.txt"

# Supported file extensions
SUPPORTED_EXTENSIONS = {".srt"}

# Partial output suffix
PARTIAL_SUFFIX = ".partial.srt"


def is_openai_model(model_name: str) -> bool:
    """OpenAI 模型名都包含 'gpt'。"""
    return "gpt" in model_name.lower()


def resolve_api_key(model_name: str, api_key: Optional[str] = None) -> Optional[str]:
    """Pick the API key for the backend that serves ``model_name``."""
    if api_key:
        return api_key
    if is_openai_model(model_name):
        return os.environ.get("OPENAI_API_KEY")
    return os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")


@dataclass
class OptimizerConfig:
    """Configuration for the subtitle optimizer."""

    # API settings
    api_key: Optional[str] = None
    model_name: str = DEFAULT_MODEL

    # Readability settings
    ignore_threshold: float = IGNORE_CPS_THRESHOLD
    ai_threshold: float = AI_CPS_THRESHOLD
    target_cps: float = TARGET_CPS
    safe_gap_ms: int = SAFE_GAP_MS

    # Processing settings
    batch_size: int = 5
    context_window: int = 2
    chunk_size: int = 8
    max_retries: int = 2
    retry_base_delay: float = 2.0

    # Timing settings
    speed: float = 1.0

    def __post_init__(self):
        """Load API key from environment if not provided."""
        self.api_key = resolve_api_key(self.model_name, self.api_key)

    @classmethod
    def from_args(cls, args) -> "OptimizerConfig":
        """Create config from argparse namespace."""
        return cls(
            api_key=getattr(args, 'api_key', None),
            model_name=getattr(args, 'model_name', DEFAULT_MODEL),
            ai_threshold=getattr(args, 'ai_threshold', AI_CPS_THRESHOLD),
            batch_size=getattr(args, 'batch_size', 5),
            context_window=getattr(args, 'context_window', 2),
            chunk_size=getattr(args, 'chunk_size', 8),
            speed=getattr(args, 'speed', 1.0),
        )

    def validate(self, require_api_key: bool = True) -> Optional[str]:
        """
        Validate configuration.

        Args:
            require_api_key: Whether an LLM backend will be used

        Returns:
            Error message if invalid, None if valid
        """
        if require_api_key and not self.api_key:
            if is_openai_model(self.model_name):
                return "API key is required. Set OPENAI_API_KEY or use --api-key"
            return "API key is required. Set GEMINI_API_KEY or use --api-key"

        if not 0 < self.ignore_threshold <= self.ai_threshold:
            return (
                f"CPS thresholds must satisfy 0 < ignore <= ai, "
                f"got {self.ignore_threshold} / {self.ai_threshold}"
            )

        if self.target_cps <= 0:
            return f"Target CPS must be positive, got {self.target_cps}"

        if self.safe_gap_ms < 0:
            return f"Safe gap must not be negative, got {self.safe_gap_ms}"

        if self.batch_size < 1 or self.batch_size > 20:
            return f"Batch size must be 1-20, got {self.batch_size}"

        if self.context_window < 0 or self.context_window > 10:
            return f"Context window must be 0-10, got {self.context_window}"

        if self.chunk_size < 1 or self.chunk_size > 50:
            return f"Chunk size must be 1-50, got {self.chunk_size}"

        if self.speed <= 0:
            return f"Speed must be positive, got {self.speed}"

        return None
