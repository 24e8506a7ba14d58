"""Tests for the streaming text chunker."""

import pytest

from textflow.chunker import TextChunker, iter_chunks

TEXT = (
    "The quick brown fox jumps over the lazy dog while the farmer watches "
    "from the porch and wonders whether rain will come before the harvest"
)


def _accumulated(chunk):
    return sum(len(token) + 1 for token in chunk.split())


class TestIterChunks:

    def test_flush_happens_after_threshold_is_reached(self):
        # ab(3) + cd(3) = 6, + efg(4) = 10 >= 10 after the third word
        chunks = list(iter_chunks("ab cd efg h i j", chunk_size=10))
        assert chunks == ["ab cd efg", "h i j"]

    def test_rejoined_chunks_reproduce_tokens(self):
        for size in (1, 5, 10, 37, 500):
            chunks = list(iter_chunks(TEXT, size))
            assert " ".join(chunks).split() == TEXT.split()

    def test_every_chunk_but_last_reaches_size(self):
        for size in (5, 10, 20, 50):
            chunks = list(iter_chunks(TEXT, size))
            assert all(_accumulated(c) >= size for c in chunks[:-1])

    def test_overshoot_by_long_token_is_kept(self):
        chunks = list(iter_chunks("a supercalifragilistic b", chunk_size=5))
        assert chunks == ["a supercalifragilistic", "b"]

    def test_irregular_whitespace_collapses_to_single_spaces(self):
        chunks = list(iter_chunks("one\n\ttwo   three", chunk_size=100))
        assert chunks == ["one two three"]

    @pytest.mark.parametrize("text", ["", "   ", "\n"])
    def test_blank_text_yields_nothing(self, text):
        assert list(iter_chunks(text, 10)) == []

    def test_invalid_size_raises(self):
        with pytest.raises(ValueError):
            list(iter_chunks("text", 0))


class TestTextChunker:

    def test_single_pass(self):
        chunker = TextChunker(TEXT, chunk_size=20)
        first = list(chunker)
        assert first
        assert list(chunker) == []

    def test_records_are_indexed_in_order(self):
        records = list(TextChunker("ab cd efg h i j", chunk_size=10).records())
        assert [(r.index, r.text) for r in records] == [(0, "ab cd efg"), (1, "h i j")]

    def test_records_continue_after_partial_consumption(self):
        chunker = TextChunker("ab cd efg h i j", chunk_size=10)
        assert next(chunker) == "ab cd efg"
        records = list(chunker.records())
        assert [(r.index, r.text) for r in records] == [(1, "h i j")]

    def test_invalid_size_raises_on_construction(self):
        with pytest.raises(ValueError):
            TextChunker("text", chunk_size=-1)

    @pytest.mark.asyncio
    async def test_async_iteration(self):
        chunker = TextChunker(TEXT, chunk_size=30, delay=0.001)
        records = [r async for r in chunker]
        assert [r.index for r in records] == list(range(len(records)))
        assert " ".join(r.text for r in records) == " ".join(TEXT.split())
        assert [r async for r in chunker] == []
