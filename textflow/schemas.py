"""Response schemas for the JSON objects stages ask the generator for.

Each stage's prompt requests a JSON object with stage-specific keys. The
schemas here are the single definition of those keys, their defaults, and
their post-validation rules. The rules are attached to fields as
``Annotated`` metadata and applied generically by ``textflow.extractor``:

* ``Clamp(lo, hi)``      numeric value forced into [lo, hi] (either bound optional)
* ``FallbackText(msg)``  blank or missing string replaced by ``msg``
* ``Required()``         missing or blank value makes the whole object unusable

All schema fields MUST have defaults so partial replies still deserialize.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class Clamp:
    lo: float | None = None
    hi: float | None = None

    def apply(self, value: float) -> float:
        return clamp(value, self.lo, self.hi)


@dataclass(frozen=True)
class FallbackText:
    message: str


@dataclass(frozen=True)
class Required:
    pass


def clamp(value: float, lo: float | None = None, hi: float | None = None) -> float:
    """Clamp ``value`` into [lo, hi]; a missing bound is open."""
    if lo is not None and value < lo:
        return type(value)(lo)
    if hi is not None and value > hi:
        return type(value)(hi)
    return value


UNIT_INTERVAL = Clamp(0.0, 1.0)
SIGNED_UNIT_INTERVAL = Clamp(-1.0, 1.0)
NON_NEGATIVE = Clamp(0, None)

# Reasoning defaults when the generator leaves the field blank.
DEFAULT_DETECTION_REASONING = "AI analysis completed"
DEFAULT_TRANSFORM_REASONING = "AI filtering completed"
DEFAULT_ANALYSIS_REASONING = "AI sentiment analysis completed"
DEFAULT_REPORT_REASONING = "AI report generation completed"
REPORT_GENERATION_FAILED = "Report generation failed"


class ResponseSchema(BaseModel):
    """Base class for generator response schemas.

    Unknown keys are ignored; field names are matched case-insensitively
    against both the attribute name and its alias by the extractor.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class DetectionResponse(ResponseSchema):
    flagged: bool = False
    matches: list[str] = []
    confidence: Annotated[float, UNIT_INTERVAL] = 0.0
    reasoning: Annotated[str, FallbackText(DEFAULT_DETECTION_REASONING)] = ""


class TransformResponse(ResponseSchema):
    transformed_text: Annotated[str, Required()] = Field(default="", alias="transformedText")
    units_changed: Annotated[int, NON_NEGATIVE] = Field(default=0, alias="unitsChanged")
    confidence: Annotated[float, UNIT_INTERVAL] = 0.0
    reasoning: Annotated[str, FallbackText(DEFAULT_TRANSFORM_REASONING)] = ""


class SentimentAnalysisResponse(ResponseSchema):
    sentiment: str = ""
    sentiment_score: Annotated[float, SIGNED_UNIT_INTERVAL] = Field(
        default=0.0, alias="sentimentScore"
    )
    confidence: Annotated[float, UNIT_INTERVAL] = 0.0
    positive_indicators: list[str] = Field(default=[], alias="positiveIndicators")
    negative_indicators: list[str] = Field(default=[], alias="negativeIndicators")
    reasoning: Annotated[str, FallbackText(DEFAULT_ANALYSIS_REASONING)] = ""


class SentimentReportMetrics(ResponseSchema):
    positive_words: Annotated[int, NON_NEGATIVE] = Field(default=0, alias="PositiveWords")
    negative_words: Annotated[int, NON_NEGATIVE] = Field(default=0, alias="NegativeWords")
    total_words: Annotated[int, NON_NEGATIVE] = Field(default=0, alias="TotalWords")
    sentiment_score_scaled: int = Field(default=0, alias="SentimentScoreScaled")

    def as_dict(self) -> dict[str, int]:
        return self.model_dump(by_alias=True)


class SentimentReportResponse(ResponseSchema):
    report: Annotated[str, FallbackText(REPORT_GENERATION_FAILED)] = ""
    metrics: SentimentReportMetrics = Field(default_factory=SentimentReportMetrics)
    confidence: Annotated[float, UNIT_INTERVAL] = 0.0
    reasoning: Annotated[str, FallbackText(DEFAULT_REPORT_REASONING)] = ""


def json_keys(schema: type[ResponseSchema]) -> list[str]:
    """The JSON key for each schema field, in declaration order."""
    return [f.alias or name for name, f in schema.model_fields.items()]
