"""Tests for the Anthropic generator adapter, using a fake client."""

from types import SimpleNamespace

import anthropic
import httpx
import pytest

from textflow.errors import TransportError
from textflow.generator import AnthropicGenerator, Generator, collect_stream

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _rate_limit_error():
    return anthropic.RateLimitError(
        "rate limited", response=httpx.Response(429, request=_REQUEST), body=None
    )


def _message(*texts):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=t) for t in texts])


class FakeStream:
    def __init__(self, fragments):
        self.text_stream = self._iterate(fragments)

    async def _iterate(self, fragments):
        for fragment in fragments:
            yield fragment

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeMessages:
    def __init__(self, outcomes, fragments=()):
        self.outcomes = list(outcomes)
        self.fragments = list(fragments)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def stream(self, **kwargs):
        self.requests.append(kwargs)
        return FakeStream(self.fragments)


def _generator(messages, **kwargs):
    return AnthropicGenerator(client=SimpleNamespace(messages=messages), backoff_base=0, **kwargs)


class TestAnthropicGenerator:

    def test_satisfies_protocol(self):
        assert isinstance(_generator(FakeMessages([])), Generator)

    @pytest.mark.asyncio
    async def test_generate_joins_text_blocks(self):
        messages = FakeMessages([_message('{"a": ', "1}")])
        reply = await _generator(messages, model="claude-test", max_tokens=99).generate("hi")

        assert reply == '{"a": 1}'
        request = messages.requests[0]
        assert request["model"] == "claude-test"
        assert request["max_tokens"] == 99
        assert request["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self):
        messages = FakeMessages([_rate_limit_error(), _message("ok")])
        assert await _generator(messages).generate("hi") == "ok"
        assert len(messages.requests) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted_raises_transport_error(self):
        messages = FakeMessages([_rate_limit_error()] * 3)
        with pytest.raises(TransportError, match="rate limited"):
            await _generator(messages, max_retries=3).generate("hi")
        assert len(messages.requests) == 3

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_error(self):
        messages = FakeMessages([anthropic.APIConnectionError(request=_REQUEST)])
        with pytest.raises(TransportError):
            await _generator(messages).generate("hi")
        assert len(messages.requests) == 1

    @pytest.mark.asyncio
    async def test_stream_yields_fragments(self):
        messages = FakeMessages([], fragments=["{", '"a": 1', "}"])
        fragments = [f async for f in _generator(messages).stream("hi")]
        assert fragments == ["{", '"a": 1', "}"]


@pytest.mark.asyncio
async def test_collect_stream_keeps_arrival_order():
    async def fragments():
        for part in ["one ", "two ", "three"]:
            yield part

    seen = []
    assert await collect_stream(fragments(), seen.append) == "one two three"
    assert seen == ["one ", "two ", "three"]
