"""Command line entry point.

Usage:
    textflow filter "some text" [--chunk-size 50] [--stream] [--rules-only]
    textflow filter --file input.txt --max-concurrent 4
    textflow sentiment "I love this product"
    textflow serve --port 8000
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from textflow.config import Settings
from textflow.errors import WorkflowAborted
from textflow.generator import AnthropicGenerator, Generator
from textflow.models import ChunkOutcome
from textflow.pipeline import analyze_sentiment, filter_chunked, filter_text
from textflow.stage import RunContext


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="textflow",
        description="Detect/transform and sentiment text workflows with rule-based fallbacks",
    )
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    p_filter = sub.add_parser("filter", help="Mask block-listed words")
    _add_input_args(p_filter)
    p_filter.add_argument("--chunk-size", type=_positive_int, default=None,
                          help="Process the text in chunks of about N characters")
    p_filter.add_argument("--max-concurrent", type=_positive_int, default=None,
                          help="Chunks processed at once (default: TEXTFLOW_MAX_CONCURRENT)")
    p_filter.add_argument("--stream", action="store_true",
                          help="Stream generator replies and echo them as they arrive")
    p_filter.add_argument("--rules-only", action="store_true",
                          help="Use the rule-based stages, no generator calls")

    p_sentiment = sub.add_parser("sentiment", help="Analyze sentiment and write a report")
    _add_input_args(p_sentiment)
    p_sentiment.add_argument("--stream", action="store_true",
                             help="Stream generator replies and echo them as they arrive")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=_positive_int, default=8000)

    return parser


def _add_input_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("text", nargs="?", help="Input text")
    parser.add_argument("--file", type=Path, help="Read input text from a file")


def _read_input(args: argparse.Namespace) -> str:
    if args.file is not None:
        return args.file.read_text(encoding="utf-8")
    if args.text is not None:
        return args.text
    return sys.stdin.read()


def _make_generator(settings: Settings) -> Generator | None:
    if not os.environ.get("ANTHROPIC_API_KEY"):
        print("ANTHROPIC_API_KEY not set; using rule-based fallbacks only")
        return None
    return AnthropicGenerator(
        model=settings.model,
        max_tokens=settings.max_tokens,
        max_retries=settings.max_retries,
    )


def _echo_fragment(fragment: str) -> None:
    print(fragment, end="", flush=True)


def _print_chunk(outcome: ChunkOutcome) -> None:
    detection = outcome.detection
    transform = outcome.transform
    flag = "FLAGGED" if detection.flagged else "clean"
    print(f"  Chunk {outcome.record.index + 1}: {flag} -> {transform.transformed_text!r}")
    if detection.flagged:
        print(f"    Matches: {', '.join(detection.matches)}")
    print(f"    Confidence: {transform.confidence:.2f} ({transform.reasoning})")


def _print_aborted(e: WorkflowAborted) -> None:
    print(f"\nWorkflow aborted at stage '{e.stage_id}': {e.cause}")
    for event in e.run.events:
        print(f"  completed: {event.stage_id}")


async def _run_filter(args: argparse.Namespace, settings: Settings) -> int:
    text = _read_input(args)
    generator = None if args.rules_only else _make_generator(settings)
    on_fragment = _echo_fragment if args.stream else None
    context = RunContext(call_timeout=settings.call_timeout, on_fragment=on_fragment)

    try:
        if args.chunk_size is not None:
            print(f"Filtering {len(text):,} characters in chunks of ~{args.chunk_size}...")
            result = await filter_chunked(
                text,
                generator=generator,
                settings=settings,
                chunk_size=args.chunk_size,
                max_concurrent=args.max_concurrent,
                streaming=args.stream,
                rules_only=args.rules_only,
                on_chunk=_print_chunk,
                context=context,
            )
            print(f"\nFiltered text: {result.filtered_text}")
            print(f"  Chunks: {result.chunk_count}")
            print(f"  Words changed: {result.units_changed}")
            print(f"  Average confidence: {result.average_confidence:.2f}")
            return 0

        print(f"Filtering {len(text):,} characters...")
        run = await filter_text(
            text,
            generator=generator,
            settings=settings,
            context=context,
            streaming=args.stream,
            rules_only=args.rules_only,
        )
    except WorkflowAborted as e:
        _print_aborted(e)
        return 1

    for event in run.events:
        print(f"\n  [{event.sequence}] {event.stage_id} ({run.stage_timings[event.stage_id]}s)")
        print(f"    Confidence: {event.payload.confidence:.2f}")
        print(f"    Reasoning: {event.payload.reasoning}")
    print(f"\nFiltered text: {run.output.transformed_text}")
    print(f"  Words changed: {run.output.units_changed}")
    return 0


async def _run_sentiment(args: argparse.Namespace, settings: Settings) -> int:
    text = _read_input(args)
    generator = _make_generator(settings)
    context = RunContext(
        call_timeout=settings.call_timeout,
        on_fragment=_echo_fragment if args.stream else None,
    )

    print(f"Analyzing sentiment of {len(text):,} characters...")
    try:
        run = await analyze_sentiment(
            text, generator=generator, settings=settings, context=context, streaming=args.stream
        )
    except WorkflowAborted as e:
        _print_aborted(e)
        return 1

    analysis = run.payload("analysis")
    report = run.output
    print(f"\n  Sentiment: {analysis.sentiment.value} (score {analysis.sentiment_score:.2f})")
    print(f"  Confidence: {analysis.confidence:.2f}")
    print("\n" + "=" * 60)
    print(report.report)
    print("=" * 60)
    for name, value in report.metrics.items():
        print(f"  {name}: {value}")
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Error: {e}")
        return 2

    if args.command == "serve":
        import uvicorn

        from textflow import server

        server.configure(_make_generator(settings), settings)
        print(f"Starting textflow API on http://{args.host}:{args.port}")
        uvicorn.run(server.app, host=args.host, port=args.port, log_level="info")
        return 0

    if args.command == "filter":
        return asyncio.run(_run_filter(args, settings))
    return asyncio.run(_run_sentiment(args, settings))


if __name__ == "__main__":
    sys.exit(main())
