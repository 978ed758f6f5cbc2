"""
Donghua Sub - Chinese to Vietnamese subtitle translator and readability optimizer.

Features:
- Lenient SRT parsing and strict serialization
- Reading-speed (CPS) analysis in three tiers
- Collision-free local timing fixes
- Batched AI rewriting with cancellation and partial results
- Gemini or OpenAI backends with retry and backoff
- Title analysis, glossary and resumable translation
"""

__version__ = "1.0.0"

from .models import Segment, ReadabilitySuggestion, ReadabilityReport, SuggestionStatus, Tier
from .timecode import parse_timestamp, format_timestamp, parse_range, format_range
from .parser import parse_srt, serialize_srt, load_srt, save_srt, validate_srt_file
from .readability import analyze_readability, compute_cps, classify_cps
from .timing import apply_local_fixes, preview_local_fixes, adjust_speed
from .rewriter import (
    CancellationToken,
    RewriteRequest,
    RewriteResult,
    RewriteRunResult,
    RunOutcome,
    run_ai_rewrite,
)
from .llm_client import LLMError, LLMProvider, create_provider, with_retry
from .translator import LLMRewriteOracle, TitleAnalysis, analyze_title, translate_segments
from .glossary import Glossary, load_glossary
from .config import OptimizerConfig
from .progress import OptimizeStats

__all__ = [
    # Models
    "Segment",
    "ReadabilitySuggestion",
    "ReadabilityReport",
    "SuggestionStatus",
    "Tier",
    "OptimizeStats",
    "OptimizerConfig",
    "Glossary",
    "TitleAnalysis",
    # Timestamps
    "parse_timestamp",
    "format_timestamp",
    "parse_range",
    "format_range",
    # Parsing
    "parse_srt",
    "serialize_srt",
    "load_srt",
    "save_srt",
    "validate_srt_file",
    # Readability
    "analyze_readability",
    "compute_cps",
    "classify_cps",
    "apply_local_fixes",
    "preview_local_fixes",
    "adjust_speed",
    # AI rewriting
    "CancellationToken",
    "RewriteRequest",
    "RewriteResult",
    "RewriteRunResult",
    "RunOutcome",
    "run_ai_rewrite",
    "LLMRewriteOracle",
    # LLM
    "LLMError",
    "LLMProvider",
    "create_provider",
    "with_retry",
    "analyze_title",
    "translate_segments",
    # Glossary
    "load_glossary",
]
