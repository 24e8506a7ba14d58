"""FastAPI backend exposing the filter and sentiment workflows.

Usage:
    textflow serve --port 8000
"""

from __future__ import annotations

from fastapi import FastAPI, HTTPException

from textflow.api_models import (
    ChunkSummary,
    EventSummary,
    FilterRequest,
    FilterResponse,
    HealthStatus,
    SentimentRequest,
    SentimentResponse,
)
from textflow.config import Settings
from textflow.errors import WorkflowAborted
from textflow.generator import Generator
from textflow.models import WorkflowEvent
from textflow.pipeline import analyze_sentiment, filter_chunked, filter_text

# Module-level state (set during startup)
_generator: Generator | None = None
_settings: Settings = Settings()

app = FastAPI(title="textflow")


def configure(generator: Generator | None, settings: Settings | None = None) -> None:
    """Set the generator and settings the endpoints use."""
    global _generator, _settings
    _generator = generator
    _settings = settings or Settings()


def _event_summary(event: WorkflowEvent) -> EventSummary:
    return EventSummary(
        sequence=event.sequence,
        stage_id=event.stage_id,
        confidence=event.payload.confidence,
        reasoning=event.payload.reasoning,
        payload=event.payload.model_dump(mode="json"),
    )


def _aborted(e: WorkflowAborted) -> HTTPException:
    return HTTPException(
        status_code=500,
        detail=f"Workflow aborted at stage '{e.stage_id}': {e.cause}",
    )


# --- API Endpoints ---


@app.get("/api/health")
def health() -> HealthStatus:
    return HealthStatus(status="ok", generator=_generator is not None)


@app.post("/api/filter")
async def filter_endpoint(req: FilterRequest) -> FilterResponse:
    """Mask block-listed words, optionally chunk by chunk."""
    try:
        if req.chunk_size is not None:
            result = await filter_chunked(
                req.text,
                generator=_generator,
                settings=_settings,
                chunk_size=req.chunk_size,
                streaming=req.stream,
                rules_only=req.rules_only,
            )
        else:
            run = await filter_text(
                req.text,
                generator=_generator,
                settings=_settings,
                streaming=req.stream,
                rules_only=req.rules_only,
            )
    except WorkflowAborted as e:
        raise _aborted(e) from e

    if req.chunk_size is not None:
        matches = [m for c in result.chunks for m in c.detection.matches]
        return FilterResponse(
            original_text=req.text,
            filtered_text=result.filtered_text,
            flagged=bool(matches),
            matches=matches,
            units_changed=result.units_changed,
            confidence=result.average_confidence,
            chunks=[
                ChunkSummary(
                    index=c.record.index,
                    text=c.record.text,
                    flagged=c.detection.flagged,
                    matches=c.detection.matches,
                    transformed_text=c.transform.transformed_text,
                    units_changed=c.transform.units_changed,
                    confidence=c.transform.confidence,
                )
                for c in result.chunks
            ],
        )

    detection = run.payload("detect")
    return FilterResponse(
        original_text=req.text,
        filtered_text=run.output.transformed_text,
        flagged=detection.flagged,
        matches=detection.matches,
        units_changed=run.output.units_changed,
        confidence=run.output.confidence,
        events=[_event_summary(e) for e in run.events],
    )


@app.post("/api/sentiment")
async def sentiment_endpoint(req: SentimentRequest) -> SentimentResponse:
    """Analyze sentiment and generate a report."""
    try:
        run = await analyze_sentiment(
            req.text, generator=_generator, settings=_settings, streaming=req.stream
        )
    except WorkflowAborted as e:
        raise _aborted(e) from e

    analysis = run.payload("analysis")
    report = run.output
    return SentimentResponse(
        original_text=req.text,
        sentiment=analysis.sentiment.value,
        sentiment_score=analysis.sentiment_score,
        confidence=analysis.confidence,
        positive_indicators=analysis.positive_indicators,
        negative_indicators=analysis.negative_indicators,
        report=report.report,
        metrics=report.metrics,
        events=[_event_summary(e) for e in run.events],
    )
