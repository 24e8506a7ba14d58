"""Tests for primary/fallback behavior of generator-backed stages."""

import asyncio

import pytest

from conftest import HangingGenerator, ScriptedGenerator, detection_reply, transform_reply
from textflow.errors import StageFailure, TransportError
from textflow.filtering import DetectStage, TransformStage
from textflow.models import DetectionResult
from textflow.resilience import FALLBACK_CONFIDENCE, FALLBACK_MARKER
from textflow.stage import RunContext

TEXT = "This is a damn stupid message"


def _flagged(text=TEXT, matches=("damn", "stupid"), confidence=0.95):
    return DetectionResult(original_text=text, matches=list(matches), confidence=confidence)


def _is_fallback(result):
    return result.confidence <= FALLBACK_CONFIDENCE and FALLBACK_MARKER in result.reasoning


class TestDetectStage:

    @pytest.mark.asyncio
    async def test_primary_reply_is_used(self, config):
        generator = ScriptedGenerator([detection_reply(["damn"], confidence=0.7)])
        result = await DetectStage(generator, config).handle(TEXT, RunContext())
        assert result.matches == ["damn"]
        assert result.flagged is True
        assert result.confidence == 0.7
        assert TEXT in generator.prompts[0]

    @pytest.mark.asyncio
    async def test_flagged_follows_matches_from_reply(self, config):
        reply = '{"flagged": true, "matches": [], "confidence": 0.6}'
        result = await DetectStage(ScriptedGenerator([reply]), config).handle(TEXT, RunContext())
        assert result.flagged is False

    @pytest.mark.asyncio
    async def test_non_json_reply_falls_back(self, config):
        generator = ScriptedGenerator(["I think this text is rude."])
        result = await DetectStage(generator, config).handle(TEXT, RunContext())
        assert _is_fallback(result)
        assert result.reasoning == "AI detection failed, used rule-based fallback"
        assert result.matches == ["damn", "stupid"]

    @pytest.mark.asyncio
    async def test_transport_error_falls_back(self, config):
        generator = ScriptedGenerator([TransportError("connection refused")])
        result = await DetectStage(generator, config).handle(TEXT, RunContext())
        assert _is_fallback(result)

    @pytest.mark.asyncio
    async def test_no_generator_falls_back(self, config):
        result = await DetectStage(None, config).handle(TEXT, RunContext())
        assert _is_fallback(result)
        assert result.matches == ["damn", "stupid"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   \n"])
    async def test_blank_input_is_neutral(self, config, text):
        generator = ScriptedGenerator([])
        result = await DetectStage(generator, config).handle(text, RunContext())
        assert result.flagged is False
        assert result.matches == []
        assert result.confidence == 1.0
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_programming_errors_are_not_masked(self, config):
        generator = ScriptedGenerator([KeyError("bug")])
        with pytest.raises(KeyError):
            await DetectStage(generator, config).handle(TEXT, RunContext())

    @pytest.mark.asyncio
    async def test_failing_fallback_raises_stage_failure(self, config):
        class BrokenDetect(DetectStage):
            def fallback(self, message):
                raise RuntimeError("word list missing")

        with pytest.raises(StageFailure) as exc_info:
            await BrokenDetect(None, config).handle(TEXT, RunContext())
        assert exc_info.value.stage_id == "detect"


class TestTransformStage:

    @pytest.mark.asyncio
    async def test_primary_reply_is_used(self, config):
        generator = ScriptedGenerator([transform_reply("This is a **** ****** message", 2)])
        result = await TransformStage(generator, config).handle(_flagged(), RunContext())
        assert result.transformed_text == "This is a **** ****** message"
        assert result.units_changed == 2
        assert result.confidence == 0.9
        assert result.original_text == TEXT

    @pytest.mark.asyncio
    async def test_unflagged_input_is_identity_without_generator_call(self, config):
        generator = ScriptedGenerator([])
        detection = DetectionResult(original_text="All good here", confidence=0.9)
        result = await TransformStage(generator, config).handle(detection, RunContext())
        assert result.transformed_text == "All good here"
        assert result.units_changed == 0
        assert result.confidence == 0.9
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_missing_transformed_text_falls_back(self, config):
        generator = ScriptedGenerator(['{"unitsChanged": 2, "confidence": 1.0}'])
        result = await TransformStage(generator, config).handle(_flagged(), RunContext())
        assert _is_fallback(result)
        assert result.reasoning == "AI filtering failed, used rule-based fallback"
        assert result.transformed_text == "This is a **** ****** message"
        assert result.units_changed == 2

    @pytest.mark.asyncio
    async def test_fallback_masks_words_detected_outside_block_list(self, config):
        detection = _flagged(text="what the heck", matches=["heck"])
        result = await TransformStage(None, config).handle(detection, RunContext())
        assert result.transformed_text == "what the ****"
        assert result.units_changed == 1


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_in_flight_call_falls_back(self, config):
        generator = HangingGenerator()
        context = RunContext()
        task = asyncio.create_task(DetectStage(generator, config).handle(TEXT, context))
        await generator.started.wait()

        context.cancel()
        result = await task

        assert _is_fallback(result)
        assert context.cancelled

    @pytest.mark.asyncio
    async def test_calls_after_cancel_fail_fast(self, config):
        generator = HangingGenerator()
        context = RunContext()
        context.cancel()

        result = await DetectStage(generator, config).handle(TEXT, context)

        assert _is_fallback(result)
        assert generator.calls == 0

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, config):
        generator = HangingGenerator()
        result = await DetectStage(generator, config).handle(TEXT, RunContext(call_timeout=0.05))
        assert _is_fallback(result)

    @pytest.mark.asyncio
    async def test_cancelling_the_caller_propagates(self, config):
        generator = HangingGenerator()
        task = asyncio.create_task(DetectStage(generator, config).handle(TEXT, RunContext()))
        await generator.started.wait()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_cancel_during_streaming_falls_back(self, config):
        generator = HangingGenerator()
        context = RunContext()
        stage = DetectStage(generator, config, streaming=True)
        task = asyncio.create_task(stage.handle(TEXT, context))
        await generator.started.wait()

        context.cancel()

        assert _is_fallback(await task)

    def test_cancel_reaches_children(self):
        parent = RunContext(call_timeout=2.0)
        child = parent.child()
        assert child.call_timeout == 2.0

        parent.cancel()

        assert child.cancelled
        assert parent.child().cancelled


class TestStreaming:

    @pytest.mark.asyncio
    async def test_streamed_reply_equals_single_shot(self, config):
        reply = detection_reply(["damn", "stupid"], confidence=0.85)
        single = await DetectStage(ScriptedGenerator([reply]), config).handle(TEXT, RunContext())

        fragments = []
        context = RunContext(on_fragment=fragments.append)
        streamed = await DetectStage(
            ScriptedGenerator([reply], fragment_size=3), config, streaming=True
        ).handle(TEXT, context)

        assert streamed == single
        assert len(fragments) > 1
        assert "".join(fragments) == reply

    @pytest.mark.asyncio
    async def test_error_mid_stream_falls_back(self, config):
        class BrokenStream:
            async def generate(self, prompt):
                return ""

            async def stream(self, prompt):
                yield '{"flagged": '
                raise TransportError("stream dropped")

        stage = DetectStage(BrokenStream(), config, streaming=True)
        assert _is_fallback(await stage.handle(TEXT, RunContext()))
