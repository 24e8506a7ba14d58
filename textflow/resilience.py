"""Primary/fallback wrapper for generator-backed stages.

The primary path builds a prompt, calls the generator through the run
context, and extracts the reply into the stage's response schema. When that
fails with one of the recoverable error kinds, the deterministic fallback
runs instead. Callers can only tell the two apart by the result's confidence
and reasoning.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Any, ClassVar

from textflow.errors import (
    RECOVERABLE_ERRORS,
    InputError,
    StageFailure,
    TransportError,
)
from textflow.extractor import parse_structured_response
from textflow.generator import Generator
from textflow.models import StageMessage
from textflow.schemas import ResponseSchema
from textflow.stage import RunContext, Stage

log = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.8
FALLBACK_MARKER = "used rule-based fallback"


def fallback_reasoning(task: str) -> str:
    """Reasoning text for a fallback result, e.g. 'AI detection failed, used rule-based fallback'."""
    return f"AI {task} failed, {FALLBACK_MARKER}"


class ResilientStage(Stage):
    """A stage with a generator-backed primary path and a rule-based fallback.

    Subclasses set ``response_schema`` and implement ``input_text``,
    ``neutral``, ``build_prompt``, ``to_result`` and ``fallback``. A subclass
    may also override ``passthrough`` to skip the generator for inputs that
    need no work.

    Args:
        generator: The text generator. With None the primary path always
            fails with TransportError and every call falls back.
        streaming: Use ``Generator.stream`` instead of ``generate``.
    """

    response_schema: ClassVar[type[ResponseSchema]]

    def __init__(self, generator: Generator | None = None, streaming: bool = False) -> None:
        self.generator = generator
        self.streaming = streaming

    async def handle(self, message: Any, context: RunContext) -> StageMessage:
        try:
            self.check_input(message)
        except InputError:
            log.debug("Stage %s: blank input, returning neutral result", self.id)
            return self.neutral(message)

        skipped = self.passthrough(message)
        if skipped is not None:
            return skipped

        try:
            return await self.primary(message, context)
        except RECOVERABLE_ERRORS as e:
            log.warning(
                "Stage %s primary path failed (%s: %s), using fallback",
                self.id, type(e).__name__, e,
            )

        try:
            return self.fallback(message)
        except Exception as e:
            raise StageFailure(self.id, e) from e

    def check_input(self, message: Any) -> None:
        """Raise InputError when there is nothing to process."""
        if not self.input_text(message).strip():
            raise InputError("Input text is empty", {"stage_id": self.id})

    def passthrough(self, message: Any) -> StageMessage | None:
        return None

    async def primary(self, message: Any, context: RunContext) -> StageMessage:
        if self.generator is None:
            raise TransportError("No generator configured", {"stage_id": self.id})
        prompt = self.build_prompt(message)
        reply = await context.call(self.generator, prompt, streaming=self.streaming)
        response = parse_structured_response(reply, self.response_schema)
        return self.to_result(message, response)

    @abstractmethod
    def input_text(self, message: Any) -> str:
        """The text this stage works on."""

    @abstractmethod
    def neutral(self, message: Any) -> StageMessage:
        """Confidence-1.0 no-op result for blank input."""

    @abstractmethod
    def build_prompt(self, message: Any) -> str: ...

    @abstractmethod
    def to_result(self, message: Any, response: ResponseSchema) -> StageMessage: ...

    @abstractmethod
    def fallback(self, message: Any) -> StageMessage:
        """Deterministic result from known inputs only. Must not call the generator."""
