"""Command-line interface for the donghua subtitle optimizer."""

from __future__ import annotations

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from .config import OptimizerConfig, DEFAULT_GLOSSARY_FILENAME, DEFAULT_MODEL, AI_CPS_THRESHOLD
from .models import ReadabilityReport, Segment
from .parser import load_srt, save_srt, validate_srt_file
from .glossary import Glossary, load_glossary
from .llm_client import LLMError, LLMProvider, check_api_health, create_provider
from .progress import OptimizeStats, get_partial_file, save_partial, delete_partial
from .readability import analyze_readability
from .rewriter import CancellationToken, RunOutcome, run_ai_rewrite
from .timing import adjust_speed, apply_local_fixes, preview_local_fixes
from .translator import LLMRewriteOracle, analyze_title, mark_resumed, translate_segments

OUTPUT_PREFIX = "optimized_"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Chinese to Vietnamese subtitle translator and readability optimizer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s video.srt                          # Fix reading speed (local + AI)
  %(prog)s video.srt --analyze-only           # Report CPS problems only
  %(prog)s video.srt --no-ai                  # Timing fixes only, no API calls
  %(prog)s video.srt --speed 1.25             # Rescale timing for a sped-up video
  %(prog)s video.srt --translate --title "凡人修仙传"
        """
    )

    # Positional arguments
    parser.add_argument("input_path", help="Input SRT file path")
    parser.add_argument("output_path", nargs='?', default=None, help="Output SRT file path")

    # Workflow
    parser.add_argument("--analyze-only", action="store_true", help="Only report readability")
    parser.add_argument("--no-ai", action="store_true", help="Skip AI rewriting")
    parser.add_argument("--speed", type=float, default=1.0, help="Playback speed factor")
    parser.add_argument("--translate", action="store_true", help="Translate Chinese segments first")
    parser.add_argument("--title", help="Show title, analyzed before translating")
    parser.add_argument("-g", "--glossary", dest="glossary_path", help="Glossary file path")

    # API options
    parser.add_argument("--api-key", help="API key (or set GEMINI_API_KEY / OPENAI_API_KEY)")
    parser.add_argument("--model", dest="model_name", default=DEFAULT_MODEL)
    parser.add_argument("--check-api", action="store_true", help="Verify the API key and exit")

    # Tuning
    parser.add_argument("--ai-threshold", type=float, default=AI_CPS_THRESHOLD,
                        help="CPS above which AI rewriting is required")
    parser.add_argument("--batch-size", type=int, default=5, help="Segments per AI rewrite call")
    parser.add_argument("--context-window", type=int, default=2,
                        help="Neighbouring segments sent on each side")
    parser.add_argument("--chunk-size", type=int, default=8, help="Segments per translation call")

    # Misc
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    return parser.parse_args(argv)


def _install_cancel_handler(token: CancellationToken) -> None:
    """Ctrl+C 时等待当前批次完成后停止。"""
    logger = logging.getLogger(__name__)

    def _on_interrupt() -> None:
        if not token.cancelled:
            logger.warning("Interrupted: stopping after the current batch...")
        token.cancel()

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, _on_interrupt)
    except (NotImplementedError, RuntimeError):
        # Windows 不支持，退回默认 KeyboardInterrupt
        pass


def log_report(report: ReadabilityReport) -> None:
    logger = logging.getLogger(__name__)
    logger.info(
        f"Readability: {report.total_segments} segments | "
        f"{report.ignored_count} ok | {report.local_fix_count} local fix | "
        f"{report.ai_required_count} need AI"
    )


def _load_glossary(args: argparse.Namespace) -> Glossary:
    logger = logging.getLogger(__name__)
    if args.glossary_path:
        return load_glossary(Path(args.glossary_path).expanduser().resolve())
    if Path(DEFAULT_GLOSSARY_FILENAME).exists():
        logger.info(f"Auto-detected '{DEFAULT_GLOSSARY_FILENAME}'")
        return load_glossary(Path(DEFAULT_GLOSSARY_FILENAME))
    return Glossary.with_defaults()


def _stop(segments: List[Segment], partial_path: Path, outcome: RunOutcome, error: str = "") -> int:
    """保存未完成结果并返回退出码。"""
    logger = logging.getLogger(__name__)
    if save_partial(segments, partial_path):
        logger.info(f"Progress so far saved to {partial_path}")

    if outcome is RunOutcome.CANCELLED:
        logger.warning("Stopped by user")
        return EXIT_CANCELLED

    logger.error(f"Run failed: {error}")
    return EXIT_ERROR


async def run_translation(
    segments: List[Segment],
    provider: LLMProvider,
    args: argparse.Namespace,
    config: OptimizerConfig,
    token: CancellationToken,
    partial_path: Path,
) -> Optional[int]:
    """
    Analyze the title and translate pending segments.

    Returns:
        Exit code if the workflow must stop, None to continue
    """
    logger = logging.getLogger(__name__)

    if not args.title:
        logger.error("--title is required with --translate")
        return EXIT_ERROR

    done = mark_resumed(segments)
    if 0 < done < len(segments):
        logger.info(f"Resuming: {done}/{len(segments)} segments already translated")

    analysis, _ = await analyze_title(args.title, provider)
    glossary = _load_glossary(args)

    pending = sum(1 for s in segments if not s.translated_text)
    with tqdm(total=pending, desc="Translating", unit="seg") as bar:
        def on_progress(handled: int, tokens: int) -> None:
            bar.update(handled - bar.n)

        result = await translate_segments(
            segments, analysis, provider, glossary,
            chunk_size=config.chunk_size,
            cancel_token=token,
            on_progress=on_progress,
        )

    if result.outcome is not RunOutcome.COMPLETED:
        return _stop(segments, partial_path, result.outcome, result.error)

    logger.info(f"Translated {result.translated} segments ({result.failed} rejected, {result.tokens} tokens)")
    return None


async def main_async(args: argparse.Namespace) -> int:
    """Main async workflow."""
    logger = logging.getLogger(__name__)
    config = OptimizerConfig.from_args(args)

    # 验证配置
    error = config.validate(require_api_key=False)
    if error:
        logger.error(error)
        return EXIT_ERROR

    provider: Optional[LLMProvider] = None

    def get_provider() -> LLMProvider:
        nonlocal provider
        if provider is None:
            provider = create_provider(config.model_name, config.api_key)
        return provider

    if args.check_api:
        ok = await check_api_health(get_provider())
        logger.info(f"API check for {config.model_name}: {'OK' if ok else 'FAILED'}")
        return EXIT_OK if ok else EXIT_ERROR

    # 验证输入文件
    in_path = Path(args.input_path).expanduser().resolve()
    error = validate_srt_file(in_path)
    if error:
        logger.error(error)
        return EXIT_ERROR

    logger.info(f"Reading: {in_path}")
    segments = load_srt(in_path)
    if not segments:
        logger.error("No valid subtitle segments found")
        return EXIT_ERROR
    logger.info(f"Parsed {len(segments)} subtitle segments")

    if config.speed != 1:
        segments = adjust_speed(segments, config.speed)

    if args.output_path:
        out_path = Path(args.output_path)
    else:
        out_path = in_path.with_name(f"{OUTPUT_PREFIX}{in_path.name}")
    partial_path = get_partial_file(out_path)

    token = CancellationToken()
    _install_cancel_handler(token)

    if args.translate:
        exit_code = await run_translation(segments, get_provider(), args, config, token, partial_path)
        if exit_code is not None:
            return exit_code

    report = analyze_readability(segments, config.ignore_threshold, config.ai_threshold)
    log_report(report)

    if args.analyze_only:
        preview = preview_local_fixes(
            segments,
            target_cps=config.target_cps,
            safe_gap_ms=config.safe_gap_ms,
            ignore_threshold=config.ignore_threshold,
            ai_threshold=config.ai_threshold,
        )
        for s in preview:
            logger.info(f"  local #{s.segment_index}: {s.cps:.1f} CPS  {s.before_timestamp} => {s.after_timestamp}")
        for s in report.ai_required_suggestions:
            logger.info(f"  AI    #{s.segment_index}: {s.cps:.1f} CPS  {s.before_text!r}")
        return EXIT_OK

    fixes = apply_local_fixes(
        segments,
        target_cps=config.target_cps,
        safe_gap_ms=config.safe_gap_ms,
        ignore_threshold=config.ignore_threshold,
        ai_threshold=config.ai_threshold,
    )

    # 本地修复后重新分析
    report = analyze_readability(segments, config.ignore_threshold, config.ai_threshold)
    suggestions = report.ai_required_suggestions

    if suggestions and not args.no_ai:
        oracle = LLMRewriteOracle(
            get_provider(),
            target_cps=config.target_cps,
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
        )

        with tqdm(total=len(suggestions), desc="Rewriting", unit="seg") as bar:
            def on_batch_done(stats: OptimizeStats) -> None:
                bar.update(stats.processed - bar.n)
                bar.set_postfix(failed=stats.failed)

            result = await run_ai_rewrite(
                suggestions, segments, oracle,
                batch_size=config.batch_size,
                context_window=config.context_window,
                cancel_token=token,
                on_batch_done=on_batch_done,
            )

        stats = result.stats
        logger.info(
            f"AI rewrite: {stats.applied} applied, {stats.failed} failed, "
            f"{stats.remaining} not processed ({oracle.tokens_used} tokens)"
        )
        if not result.succeeded:
            return _stop(segments, partial_path, result.outcome, result.error)
    elif suggestions:
        logger.info(f"{len(suggestions)} segments still read too fast (AI disabled)")

    save_srt(segments, out_path)
    delete_partial(partial_path)

    final = analyze_readability(segments, config.ignore_threshold, config.ai_threshold)
    logger.info(
        f"Done! {len(fixes)} timing fixes, "
        f"{final.local_fix_count + final.ai_required_count} segments still above "
        f"{config.ignore_threshold:g} CPS. Saved to {out_path}"
    )
    return EXIT_OK


def main() -> None:
    """CLI entry point."""
    args = parse_arguments()
    setup_logging(args.verbose)

    try:
        exit_code = asyncio.run(main_async(args))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        sys.exit(EXIT_CANCELLED)
    except LLMError as e:
        logging.error(f"{e.user_message} ({e})")
        sys.exit(EXIT_ERROR)
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
