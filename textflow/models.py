from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    field_validator,
    model_validator,
)

from textflow.schemas import clamp


class StageMessage(BaseModel):
    """Immutable payload passed from one stage to the next."""

    model_config = ConfigDict(frozen=True)

    @field_validator("confidence", mode="after", check_fields=False)
    @classmethod
    def _clamp_confidence(cls, v: float) -> float:
        return clamp(v, 0.0, 1.0)


# --- Filtering (detect -> transform) ---


class DetectionResult(StageMessage):
    original_text: str
    matches: list[str] = []
    flagged: bool = False
    confidence: float = 1.0
    reasoning: str = ""

    @model_validator(mode="before")
    @classmethod
    def _flagged_follows_matches(cls, data: Any) -> Any:
        # flagged is always derived from matches, whatever the caller passed.
        if isinstance(data, dict):
            data = {**data, "flagged": bool(data.get("matches"))}
        return data


class TransformResult(StageMessage):
    original_text: str
    transformed_text: str
    units_changed: int = Field(default=0, ge=0)
    confidence: float = 1.0
    reasoning: str = ""


# --- Sentiment (analysis -> report) ---


class SentimentType(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"

    @classmethod
    def from_label(cls, label: str) -> SentimentType:
        """Map a free-form label to a sentiment; anything unknown is neutral."""
        try:
            return cls(label.strip().lower())
        except ValueError:
            return cls.NEUTRAL


class SentimentAnalysisResult(StageMessage):
    original_text: str
    sentiment_score: float = 0.0
    sentiment: SentimentType = SentimentType.NEUTRAL
    confidence: float = 1.0
    reasoning: str = ""
    positive_indicators: list[str] = []
    negative_indicators: list[str] = []

    @field_validator("sentiment_score", mode="after")
    @classmethod
    def _clamp_score(cls, v: float) -> float:
        return clamp(v, -1.0, 1.0)


class SentimentReportResult(StageMessage):
    original_text: str
    sentiment_score: float = 0.0
    sentiment: SentimentType = SentimentType.NEUTRAL
    report: str = ""
    metrics: dict[str, int] = {}
    confidence: float = 1.0
    reasoning: str = ""


# --- Workflow bookkeeping ---


class WorkflowEvent(BaseModel):
    """One completed stage. Events are appended to a run and never modified."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    payload: SerializeAsAny[StageMessage]
    sequence: int


class ChunkRecord(BaseModel):
    """A whitespace-aligned slice of the input and its position."""

    model_config = ConfigDict(frozen=True)

    index: int
    text: str


class ChunkOutcome(BaseModel):
    """Detection and transform results for one chunk."""

    model_config = ConfigDict(frozen=True)

    record: ChunkRecord
    detection: DetectionResult
    transform: TransformResult
    events: tuple[WorkflowEvent, ...] = ()


class ChunkedRun(BaseModel):
    """Aggregate of a chunked filtering run, chunks in original order."""

    model_config = ConfigDict(frozen=True)

    original_text: str
    chunks: tuple[ChunkOutcome, ...] = ()

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def filtered_text(self) -> str:
        return " ".join(c.transform.transformed_text for c in self.chunks)

    @property
    def units_changed(self) -> int:
        return sum(c.transform.units_changed for c in self.chunks)

    @property
    def average_confidence(self) -> float:
        # Unweighted mean over chunks, regardless of chunk size.
        if not self.chunks:
            return 0.0
        return sum(c.transform.confidence for c in self.chunks) / len(self.chunks)
