"""Analysis -> report stages for sentiment workflows."""

from __future__ import annotations

import json

from textflow.config import SentimentLexicon
from textflow.generator import Generator
from textflow.models import SentimentAnalysisResult, SentimentReportResult, SentimentType
from textflow.resilience import FALLBACK_CONFIDENCE, ResilientStage, fallback_reasoning
from textflow.rules import score_sentiment
from textflow.schemas import (
    SentimentAnalysisResponse,
    SentimentReportMetrics,
    SentimentReportResponse,
    json_keys,
)

EMPTY_INPUT_REASONING = "Empty input - neutral sentiment"
EMPTY_REPORT = "No text to report on."

ANALYSIS_PROMPT = """\
Analyze the sentiment of the following text. Determine if it is positive, negative, or neutral, and provide a sentiment score.

<text>
{{text}}
</text>

Respond with a single JSON object (no markdown, no code fences) with these keys:
{{keys}}

- "sentiment": "positive", "negative" or "neutral"
- "sentimentScore": -1.0 (very negative) to 1.0 (very positive), 0.0 is neutral
- "confidence": a number from 0.0 to 1.0
- "positiveIndicators": words or phrases that signal positive sentiment
- "negativeIndicators": words or phrases that signal negative sentiment
- "reasoning": a brief explanation of your analysis

Consider context, tone, and emotional cues."""

REPORT_PROMPT = """\
Generate a sentiment analysis report based on the following analysis results.

Original text: "{{text}}"
Detected sentiment: {{sentiment}}
Sentiment score: {{score}}
Confidence: {{confidence}}
Positive indicators: {{positive}}
Negative indicators: {{negative}}
Analysis reasoning: {{reasoning}}

Respond with a single JSON object (no markdown, no code fences) with these keys:
{{keys}}

- "report": a well-formatted, professional report with actionable insights
- "metrics": an object with integer keys {{metric_keys}}, where SentimentScoreScaled is the score times 100
- "confidence": a number from 0.0 to 1.0
- "reasoning": a brief explanation of how the report was produced"""


def report_metrics(analysis: SentimentAnalysisResult) -> dict[str, int]:
    """Metrics derived from an analysis result alone."""
    return SentimentReportMetrics(
        positive_words=len(analysis.positive_indicators),
        negative_words=len(analysis.negative_indicators),
        total_words=len(analysis.original_text.split()),
        sentiment_score_scaled=round(analysis.sentiment_score * 100),
    ).as_dict()


def render_report(analysis: SentimentAnalysisResult) -> str:
    lines = [
        "Sentiment Analysis Report",
        f"Sentiment: {analysis.sentiment.value} (score {analysis.sentiment_score:.2f})",
        f"Confidence: {analysis.confidence:.1%}",
        f"Positive indicators: {', '.join(analysis.positive_indicators) or 'none'}",
        f"Negative indicators: {', '.join(analysis.negative_indicators) or 'none'}",
        f"Reasoning: {analysis.reasoning}",
    ]
    return "\n".join(lines)


class SentimentAnalysisStage(ResilientStage):
    stage_id = "analysis"
    input_type = str
    output_type = SentimentAnalysisResult
    response_schema = SentimentAnalysisResponse

    def __init__(
        self,
        generator: Generator | None = None,
        lexicon: SentimentLexicon | None = None,
        streaming: bool = False,
    ) -> None:
        super().__init__(generator, streaming=streaming)
        self.lexicon = lexicon or SentimentLexicon()

    def input_text(self, message: str) -> str:
        return message or ""

    def neutral(self, message: str) -> SentimentAnalysisResult:
        return SentimentAnalysisResult(
            original_text=message or "", confidence=1.0, reasoning=EMPTY_INPUT_REASONING
        )

    def build_prompt(self, message: str) -> str:
        return (
            ANALYSIS_PROMPT
            .replace("{{keys}}", json.dumps(json_keys(self.response_schema)))
            .replace("{{text}}", message)
        )

    def to_result(
        self, message: str, response: SentimentAnalysisResponse
    ) -> SentimentAnalysisResult:
        return SentimentAnalysisResult(
            original_text=message,
            sentiment_score=response.sentiment_score,
            sentiment=SentimentType.from_label(response.sentiment),
            confidence=response.confidence,
            reasoning=response.reasoning,
            positive_indicators=response.positive_indicators,
            negative_indicators=response.negative_indicators,
        )

    def fallback(self, message: str) -> SentimentAnalysisResult:
        score, sentiment, positive, negative = score_sentiment(message, self.lexicon)
        return SentimentAnalysisResult(
            original_text=message,
            sentiment_score=score,
            sentiment=sentiment,
            confidence=FALLBACK_CONFIDENCE,
            reasoning=fallback_reasoning("sentiment analysis"),
            positive_indicators=positive,
            negative_indicators=negative,
        )


class SentimentReportStage(ResilientStage):
    stage_id = "report"
    input_type = SentimentAnalysisResult
    output_type = SentimentReportResult
    response_schema = SentimentReportResponse

    def input_text(self, message: SentimentAnalysisResult) -> str:
        return message.original_text

    def neutral(self, message: SentimentAnalysisResult) -> SentimentReportResult:
        return SentimentReportResult(
            original_text=message.original_text,
            sentiment_score=message.sentiment_score,
            sentiment=message.sentiment,
            report=EMPTY_REPORT,
            metrics=report_metrics(message),
            confidence=1.0,
            reasoning=EMPTY_INPUT_REASONING,
        )

    def build_prompt(self, message: SentimentAnalysisResult) -> str:
        return (
            REPORT_PROMPT
            .replace("{{keys}}", json.dumps(json_keys(self.response_schema)))
            .replace("{{metric_keys}}", ", ".join(json_keys(SentimentReportMetrics)))
            .replace("{{sentiment}}", message.sentiment.value)
            .replace("{{score}}", f"{message.sentiment_score:.2f}")
            .replace("{{confidence}}", f"{message.confidence:.1%}")
            .replace("{{positive}}", ", ".join(message.positive_indicators))
            .replace("{{negative}}", ", ".join(message.negative_indicators))
            .replace("{{reasoning}}", message.reasoning)
            .replace("{{text}}", message.original_text)
        )

    def to_result(
        self, message: SentimentAnalysisResult, response: SentimentReportResponse
    ) -> SentimentReportResult:
        return SentimentReportResult(
            original_text=message.original_text,
            sentiment_score=message.sentiment_score,
            sentiment=message.sentiment,
            # Some models escape newlines inside the JSON string twice.
            report=response.report.replace("\\n", "\n"),
            metrics=response.metrics.as_dict(),
            confidence=response.confidence,
            reasoning=response.reasoning,
        )

    def fallback(self, message: SentimentAnalysisResult) -> SentimentReportResult:
        return SentimentReportResult(
            original_text=message.original_text,
            sentiment_score=message.sentiment_score,
            sentiment=message.sentiment,
            report=render_report(message),
            metrics=report_metrics(message),
            confidence=FALLBACK_CONFIDENCE,
            reasoning=fallback_reasoning("report generation"),
        )
