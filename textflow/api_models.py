"""Request and response models for the HTTP API.

Presentation-layer shapes, separate from the workflow messages in
textflow/models.py.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# --- GET /api/health ---


class HealthStatus(BaseModel):
    status: str
    generator: bool


# --- shared ---


class EventSummary(BaseModel):
    sequence: int
    stage_id: str
    confidence: float
    reasoning: str
    payload: dict[str, Any]


# --- POST /api/filter ---


class FilterRequest(BaseModel):
    text: str
    chunk_size: int | None = Field(default=None, ge=1)
    stream: bool = False
    rules_only: bool = False


class ChunkSummary(BaseModel):
    index: int
    text: str
    flagged: bool
    matches: list[str]
    transformed_text: str
    units_changed: int
    confidence: float


class FilterResponse(BaseModel):
    original_text: str
    filtered_text: str
    flagged: bool
    matches: list[str]
    units_changed: int
    confidence: float
    events: list[EventSummary] = []
    chunks: list[ChunkSummary] = []


# --- POST /api/sentiment ---


class SentimentRequest(BaseModel):
    text: str
    stream: bool = False


class SentimentResponse(BaseModel):
    original_text: str
    sentiment: str
    sentiment_score: float
    confidence: float
    positive_indicators: list[str]
    negative_indicators: list[str]
    report: str
    metrics: dict[str, int]
    events: list[EventSummary]
