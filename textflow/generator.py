"""The external text generator capability and its Anthropic adapter.

Stages only depend on the ``Generator`` protocol: a single-shot ``generate``
and an incremental ``stream`` whose fragments concatenate to the single-shot
reply. Failures surface as TransportError.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Protocol, runtime_checkable

import anthropic
from anthropic import AsyncAnthropic

from textflow.config import DEFAULT_MODEL
from textflow.errors import TransportError

log = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a careful text analysis assistant. "
    "When asked for JSON, reply with a single JSON object and nothing else."
)


@runtime_checkable
class Generator(Protocol):
    async def generate(self, prompt: str) -> str: ...

    def stream(self, prompt: str) -> AsyncIterator[str]: ...


async def collect_stream(
    fragments: AsyncIterator[str],
    on_fragment: Callable[[str], None] | None = None,
) -> str:
    """Buffer streamed fragments in arrival order and return their concatenation."""
    parts: list[str] = []
    async for fragment in fragments:
        parts.append(fragment)
        if on_fragment is not None:
            on_fragment(fragment)
    return "".join(parts)


def _extract_text_from_response(response) -> str:
    """Concatenate the text blocks of a Messages API response."""
    return "".join(block.text for block in response.content if block.type == "text")


class AnthropicGenerator:
    """Generator backed by the Anthropic Messages API.

    Rate-limit errors are retried with exponential backoff (15s, 30s, 60s by
    default); every other API error, and the last rate-limit error, becomes a
    TransportError.
    """

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1024,
        max_retries: int = 3,
        backoff_base: float = 15.0,
        system: str = SYSTEM_PROMPT,
    ) -> None:
        self.client = client or AsyncAnthropic()
        self.model = model
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.system = system

    def _request(self, prompt: str) -> dict:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": self.system,
            "messages": [{"role": "user", "content": prompt}],
        }

    async def generate(self, prompt: str) -> str:
        for attempt in range(self.max_retries):
            try:
                response = await self.client.messages.create(**self._request(prompt))
                return _extract_text_from_response(response)
            except anthropic.RateLimitError as e:
                if attempt == self.max_retries - 1:
                    raise TransportError(
                        "Generator rate limited", {"attempts": self.max_retries}
                    ) from e
                wait = 2 ** attempt * self.backoff_base
                log.warning(
                    "Rate limited, retrying in %ss (attempt %d/%d)",
                    wait, attempt + 1, self.max_retries,
                )
                await asyncio.sleep(wait)
            except anthropic.APIError as e:
                raise TransportError(f"Generator call failed: {e}") from e
        raise TransportError("Generator call failed", {"attempts": self.max_retries})

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        try:
            async with self.client.messages.stream(**self._request(prompt)) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.APIError as e:
            raise TransportError(f"Generator stream failed: {e}") from e
