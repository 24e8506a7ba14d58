"""Streaming text source: split input into whitespace-aligned chunks.

Chunks are flushed as soon as the accumulated length (each token's length
plus one separator) reaches the target size. The check happens after a token
is added, so a chunk can overshoot the target by up to one token. That
boundary behavior is kept as is.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterator

from textflow.models import ChunkRecord

DEFAULT_CHUNK_SIZE = 50


def iter_chunks(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[str]:
    """Yield chunks of ``text`` lazily, in order."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    pending: list[str] = []
    length = 0
    for token in text.split():
        pending.append(token)
        length += len(token) + 1
        if length >= chunk_size:
            yield " ".join(pending)
            pending = []
            length = 0

    if pending:
        yield " ".join(pending)


class TextChunker:
    """Single-pass chunk source over one text.

    Iterating a chunker consumes it: once exhausted (by ``for``, ``records()``
    or ``async for``) it yields nothing more. Build a new chunker to start over.

    Args:
        text: Full input text.
        chunk_size: Target chunk size in characters.
        delay: Seconds to sleep between chunks during async iteration only.
            Cosmetic; has no effect on chunk boundaries.
    """

    def __init__(self, text: str, chunk_size: int = DEFAULT_CHUNK_SIZE, delay: float = 0.0) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size
        self.delay = delay
        self._chunks = iter_chunks(text, chunk_size)
        self._index = 0

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        chunk = next(self._chunks)
        self._index += 1
        return chunk

    def records(self) -> Iterator[ChunkRecord]:
        """Yield the remaining chunks with their sequence index."""
        for chunk in self:
            yield ChunkRecord(index=self._index - 1, text=chunk)

    async def __aiter__(self) -> AsyncIterator[ChunkRecord]:
        first = True
        for record in self.records():
            if not first and self.delay > 0:
                await asyncio.sleep(self.delay)
            first = False
            yield record
