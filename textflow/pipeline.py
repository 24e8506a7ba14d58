"""Workflow orchestration: build the stage chains and run them over text.

Whole-input runs go through one detect -> transform chain. Chunked runs feed
each chunk from a TextChunker through its own freshly built chain and
reassemble the results in chunk order, whether chunks ran one at a time or
concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from textflow.chunker import TextChunker
from textflow.config import FilterConfig, SentimentLexicon, Settings
from textflow.filtering import DetectStage, RuleDetectStage, RuleTransformStage, TransformStage
from textflow.generator import Generator
from textflow.graph import WorkflowGraph
from textflow.models import ChunkedRun, ChunkOutcome, ChunkRecord
from textflow.runner import WorkflowRun, WorkflowRunner
from textflow.sentiment import SentimentAnalysisStage, SentimentReportStage
from textflow.stage import RunContext

log = logging.getLogger(__name__)


def build_filter_workflow(
    generator: Generator | None = None,
    config: FilterConfig | None = None,
    streaming: bool = False,
    rules_only: bool = False,
) -> WorkflowGraph:
    """Detect -> transform chain. Without a generator the rule-based stages are used."""
    config = config or FilterConfig()
    if generator is None or rules_only:
        return WorkflowGraph.build(RuleDetectStage(config), RuleTransformStage(config))
    return WorkflowGraph.build(
        DetectStage(generator, config, streaming=streaming),
        TransformStage(generator, config, streaming=streaming),
    )


def build_sentiment_workflow(
    generator: Generator | None = None,
    lexicon: SentimentLexicon | None = None,
    streaming: bool = False,
) -> WorkflowGraph:
    """Analysis -> report chain. Without a generator both stages fall back."""
    return WorkflowGraph.build(
        SentimentAnalysisStage(generator, lexicon, streaming=streaming),
        SentimentReportStage(generator, streaming=streaming),
    )


async def filter_text(
    text: str,
    generator: Generator | None = None,
    settings: Settings | None = None,
    context: RunContext | None = None,
    streaming: bool = False,
    rules_only: bool = False,
) -> WorkflowRun:
    """Run detect -> transform once over the whole text.

    Raises:
        WorkflowAborted: a stage's fallback failed.
    """
    settings = settings or Settings()
    if context is None:
        context = RunContext(call_timeout=settings.call_timeout)

    graph = build_filter_workflow(generator, settings.filter, streaming, rules_only)
    log.info("Filtering %d chars with %s", len(text), graph.describe())
    run = await WorkflowRunner(graph).run(text, context)
    log.info("Filter run finished: %s", run.stage_timings)
    return run


async def filter_chunked(
    text: str,
    generator: Generator | None = None,
    settings: Settings | None = None,
    chunk_size: int | None = None,
    max_concurrent: int | None = None,
    streaming: bool = False,
    rules_only: bool = False,
    on_fragment: Callable[[str], None] | None = None,
    on_chunk: Callable[[ChunkOutcome], None] | None = None,
    context: RunContext | None = None,
) -> ChunkedRun:
    """Run detect -> transform over each chunk of ``text``.

    Args:
        text: Full input text.
        generator: Text generator; None selects the rule-based stages.
        settings: Timeouts, filter config and defaults for the two knobs below.
        chunk_size: Target chunk size in characters.
        max_concurrent: Chunks processed at once. 1 runs them in order.
        streaming: Ask the generator for streamed replies.
        rules_only: Use the rule-based stages even with a generator.
        on_fragment: Receives streamed reply fragments as they arrive. Only
            used when no ``context`` is given.
        on_chunk: Receives each chunk outcome as it completes. With
            concurrency, completion order can differ from chunk order.
        context: Parent context. Each chunk runs in a child of it, so
            ``context.cancel()`` cancels the in-flight call of every running
            chunk; those stages fall back and the run still completes.

    Returns:
        ChunkedRun with chunk outcomes in chunk order.

    Raises:
        WorkflowAborted: a stage's fallback failed on some chunk.
        ValueError: chunk_size or max_concurrent is less than 1.
    """
    settings = settings or Settings()
    if chunk_size is None:
        chunk_size = settings.chunk_size
    if max_concurrent is None:
        max_concurrent = settings.max_concurrent
    if max_concurrent < 1:
        raise ValueError(f"max_concurrent must be positive, got {max_concurrent}")
    if context is None:
        context = RunContext(call_timeout=settings.call_timeout, on_fragment=on_fragment)

    async def _process(record: ChunkRecord) -> ChunkOutcome:
        # Fresh stages and context per chunk; nothing is shared between chunks.
        graph = build_filter_workflow(generator, settings.filter, streaming, rules_only)
        run = await WorkflowRunner(graph).run(record.text, context.child())
        outcome = ChunkOutcome(
            record=record,
            detection=run.payload("detect"),
            transform=run.output,
            events=run.events,
        )
        if on_chunk is not None:
            on_chunk(outcome)
        return outcome

    pipeline_start = time.time()
    chunker = TextChunker(text, chunk_size)

    if max_concurrent == 1:
        outcomes = []
        async for record in chunker:
            outcomes.append(await _process(record))
    else:
        semaphore = asyncio.Semaphore(max_concurrent)

        async def _bounded(record: ChunkRecord) -> ChunkOutcome:
            async with semaphore:
                return await _process(record)

        tasks = [_bounded(record) for record in chunker.records()]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        outcomes = list(results)

    chunked = ChunkedRun(original_text=text, chunks=tuple(outcomes))
    log.info(
        "Chunked run finished: %d chunks, %d units changed in %.1fs",
        chunked.chunk_count, chunked.units_changed, time.time() - pipeline_start,
    )
    return chunked


async def analyze_sentiment(
    text: str,
    generator: Generator | None = None,
    settings: Settings | None = None,
    lexicon: SentimentLexicon | None = None,
    context: RunContext | None = None,
    streaming: bool = False,
) -> WorkflowRun:
    """Run analysis -> report over the whole text.

    Raises:
        WorkflowAborted: a stage's fallback failed.
    """
    settings = settings or Settings()
    if context is None:
        context = RunContext(call_timeout=settings.call_timeout)

    graph = build_sentiment_workflow(generator, lexicon, streaming)
    log.info("Analyzing sentiment of %d chars with %s", len(text), graph.describe())
    run = await WorkflowRunner(graph).run(text, context)
    log.info("Sentiment run finished: %s", run.stage_timings)
    return run
