"""Shared fixtures and fake generators."""

import asyncio
import json

import pytest

from textflow.config import FilterConfig
from textflow.errors import TransportError


class ScriptedGenerator:
    """Returns scripted replies in order, or computes them from the prompt.

    ``replies`` is either a list (exceptions in it are raised) or a callable
    taking the prompt. ``stream`` yields the same reply in small fragments.
    """

    def __init__(self, replies, fragment_size=5):
        self.replies = replies if callable(replies) else list(replies)
        self.fragment_size = fragment_size
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if callable(self.replies):
            reply = self.replies(prompt)
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            raise TransportError("No scripted reply left")
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def stream(self, prompt):
        reply = await self.generate(prompt)
        for i in range(0, len(reply), self.fragment_size):
            yield reply[i:i + self.fragment_size]


class HangingGenerator:
    """Never replies. ``started`` is set once a call is in flight."""

    def __init__(self):
        self.started = asyncio.Event()
        self.calls = 0

    async def generate(self, prompt):
        self.calls += 1
        self.started.set()
        await asyncio.sleep(3600)
        return ""

    async def stream(self, prompt):
        self.calls += 1
        self.started.set()
        await asyncio.sleep(3600)
        yield ""


def detection_reply(matches, confidence=0.95, reasoning="Found inappropriate words"):
    return json.dumps({
        "flagged": bool(matches),
        "matches": matches,
        "confidence": confidence,
        "reasoning": reasoning,
    })


def transform_reply(text, count, confidence=0.9, reasoning="Masked words"):
    return json.dumps({
        "transformedText": text,
        "unitsChanged": count,
        "confidence": confidence,
        "reasoning": reasoning,
    })


@pytest.fixture
def config():
    return FilterConfig(block_list={"damn", "stupid"})
