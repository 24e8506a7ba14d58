"""Detect -> transform stages for block-list text filtering.

``DetectStage`` and ``TransformStage`` are generator-backed with rule-based
fallbacks. ``RuleDetectStage`` and ``RuleTransformStage`` run the same rules
directly, for workflows without a generator.
"""

from __future__ import annotations

import json
import logging

from textflow.config import FilterConfig
from textflow.generator import Generator
from textflow.models import DetectionResult, TransformResult
from textflow.resilience import FALLBACK_CONFIDENCE, ResilientStage, fallback_reasoning
from textflow.rules import detect_matches, mask_text
from textflow.schemas import DetectionResponse, TransformResponse, json_keys
from textflow.stage import RunContext, Stage

log = logging.getLogger(__name__)

EMPTY_INPUT_REASONING = "Empty input - no profanity detected"
UNCHANGED_REASONING = "No profanity detected - text unchanged"

DETECTION_PROMPT = """\
Analyze the following text for profanity and inappropriate language. Consider words that are commonly considered offensive, vulgar, or inappropriate in professional settings.

<text>
{{text}}
</text>

Respond with a single JSON object with these keys:
{{keys}}

- "flagged": true if any inappropriate word is present
- "matches": the inappropriate words exactly as they appear in the text, in order
- "confidence": a number from 0.0 to 1.0
- "reasoning": a brief explanation of your analysis

Only include words that are clearly profane or inappropriate. Be conservative in your assessment."""

TRANSFORM_PROMPT = """\
Filter the following text by replacing inappropriate words with the character "{{replacement}}", one per letter. Preserve the original structure, punctuation, and spacing.

<text>
{{text}}
</text>

Words already detected: {{matches}}

Respond with a single JSON object with these keys:
{{keys}}

- "transformedText": the filtered text
- "unitsChanged": the number of words replaced
- "confidence": a number from 0.0 to 1.0
- "reasoning": a brief explanation of your filtering decisions"""


def _unchanged(detection: DetectionResult) -> TransformResult:
    return TransformResult(
        original_text=detection.original_text,
        transformed_text=detection.original_text,
        units_changed=0,
        confidence=detection.confidence,
        reasoning=UNCHANGED_REASONING,
    )


class DetectStage(ResilientStage):
    stage_id = "detect"
    input_type = str
    output_type = DetectionResult
    response_schema = DetectionResponse

    def __init__(
        self,
        generator: Generator | None = None,
        config: FilterConfig | None = None,
        streaming: bool = False,
    ) -> None:
        super().__init__(generator, streaming=streaming)
        self.config = config or FilterConfig()

    def input_text(self, message: str) -> str:
        return message or ""

    def neutral(self, message: str) -> DetectionResult:
        return DetectionResult(
            original_text=message or "", confidence=1.0, reasoning=EMPTY_INPUT_REASONING
        )

    def build_prompt(self, message: str) -> str:
        return (
            DETECTION_PROMPT
            .replace("{{keys}}", json.dumps(json_keys(self.response_schema)))
            .replace("{{text}}", message)
        )

    def to_result(self, message: str, response: DetectionResponse) -> DetectionResult:
        if response.flagged != bool(response.matches):
            log.debug(
                "Detection reply says flagged=%s with %d matches; using matches",
                response.flagged, len(response.matches),
            )
        return DetectionResult(
            original_text=message,
            matches=response.matches,
            confidence=response.confidence,
            reasoning=response.reasoning,
        )

    def fallback(self, message: str) -> DetectionResult:
        return DetectionResult(
            original_text=message,
            matches=detect_matches(message, self.config),
            confidence=FALLBACK_CONFIDENCE,
            reasoning=fallback_reasoning("detection"),
        )


class TransformStage(ResilientStage):
    stage_id = "transform"
    input_type = DetectionResult
    output_type = TransformResult
    response_schema = TransformResponse

    def __init__(
        self,
        generator: Generator | None = None,
        config: FilterConfig | None = None,
        streaming: bool = False,
    ) -> None:
        super().__init__(generator, streaming=streaming)
        self.config = config or FilterConfig()

    def input_text(self, message: DetectionResult) -> str:
        return message.original_text

    def neutral(self, message: DetectionResult) -> TransformResult:
        return _unchanged(message).model_copy(update={"confidence": 1.0})

    def passthrough(self, message: DetectionResult) -> TransformResult | None:
        if not message.flagged:
            return _unchanged(message)
        return None

    def build_prompt(self, message: DetectionResult) -> str:
        return (
            TRANSFORM_PROMPT
            .replace("{{keys}}", json.dumps(json_keys(self.response_schema)))
            .replace("{{replacement}}", self.config.replacement_char)
            .replace("{{matches}}", ", ".join(message.matches))
            .replace("{{text}}", message.original_text)
        )

    def to_result(self, message: DetectionResult, response: TransformResponse) -> TransformResult:
        return TransformResult(
            original_text=message.original_text,
            transformed_text=response.transformed_text,
            units_changed=response.units_changed,
            confidence=response.confidence,
            reasoning=response.reasoning,
        )

    def fallback(self, message: DetectionResult) -> TransformResult:
        text, count = mask_text(message.original_text, self.config, extra_words=message.matches)
        return TransformResult(
            original_text=message.original_text,
            transformed_text=text,
            units_changed=count,
            confidence=FALLBACK_CONFIDENCE,
            reasoning=fallback_reasoning("filtering"),
        )


class RuleDetectStage(Stage):
    """Block-list detection without a generator."""

    stage_id = "detect"
    input_type = str
    output_type = DetectionResult

    def __init__(self, config: FilterConfig | None = None) -> None:
        self.config = config or FilterConfig()

    async def handle(self, message: str, context: RunContext) -> DetectionResult:
        text = message or ""
        if not text.strip():
            return DetectionResult(original_text=text, reasoning=EMPTY_INPUT_REASONING)
        matches = detect_matches(text, self.config)
        return DetectionResult(
            original_text=text,
            matches=matches,
            reasoning=f"Rule-based detection found {len(matches)} block-listed word(s)",
        )


class RuleTransformStage(Stage):
    """Block-list masking without a generator."""

    stage_id = "transform"
    input_type = DetectionResult
    output_type = TransformResult

    def __init__(self, config: FilterConfig | None = None) -> None:
        self.config = config or FilterConfig()

    async def handle(self, message: DetectionResult, context: RunContext) -> TransformResult:
        if not message.flagged:
            return _unchanged(message)
        text, count = mask_text(message.original_text, self.config, extra_words=message.matches)
        return TransformResult(
            original_text=message.original_text,
            transformed_text=text,
            units_changed=count,
            confidence=message.confidence,
            reasoning=f"Rule-based filtering replaced {count} word(s)",
        )
