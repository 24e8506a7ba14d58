"""Deterministic rule-based logic.

Used directly by the non-AI workflow and as the fallback path of the
generator-backed stages. Everything here is a pure function of its arguments.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from textflow.config import FilterConfig, SentimentLexicon
from textflow.models import SentimentType

_WHITESPACE_RUN = re.compile(r"(\s+)")


def comparison_key(token: str) -> str:
    """The letters of ``token``, punctuation and digits removed."""
    return "".join(ch for ch in token if ch.isalpha())


def detect_matches(text: str, config: FilterConfig) -> list[str]:
    """Tokens of ``text`` whose comparison key is block-listed, in order."""
    matches: list[str] = []
    for token in text.split():
        key = comparison_key(token)
        if len(key) >= config.min_word_length and config.is_blocked(key):
            matches.append(token)
    return matches


def mask_token(token: str, replacement_char: str) -> str:
    """Replace every letter of ``token``, keeping punctuation and digits."""
    return "".join(replacement_char if ch.isalpha() else ch for ch in token)


def mask_text(
    text: str, config: FilterConfig, extra_words: Iterable[str] = ()
) -> tuple[str, int]:
    """Mask block-listed tokens in ``text``.

    A token is masked when its comparison key matches the block-list or one of
    ``extra_words`` (case-insensitive). Whitespace between tokens is kept.

    Returns:
        (masked text, number of tokens masked)
    """
    extra = {comparison_key(w).lower() for w in extra_words}
    parts = _WHITESPACE_RUN.split(text)
    masked = 0
    for i, part in enumerate(parts):
        if not part or part.isspace():
            continue
        key = comparison_key(part)
        if key and (config.is_blocked(key) or key.lower() in extra):
            parts[i] = mask_token(part, config.replacement_char)
            masked += 1
    return "".join(parts), masked


def score_sentiment(
    text: str, lexicon: SentimentLexicon
) -> tuple[float, SentimentType, list[str], list[str]]:
    """Lexicon count: score = (pos - neg) / (pos + neg), zero when neither occurs.

    Returns:
        (score, sentiment, positive words, negative words)
    """
    positive: list[str] = []
    negative: list[str] = []
    for token in text.split():
        key = comparison_key(token).lower()
        if key in lexicon.positive:
            positive.append(key)
        elif key in lexicon.negative:
            negative.append(key)

    total = len(positive) + len(negative)
    score = (len(positive) - len(negative)) / total if total else 0.0
    if score > 0:
        sentiment = SentimentType.POSITIVE
    elif score < 0:
        sentiment = SentimentType.NEGATIVE
    else:
        sentiment = SentimentType.NEUTRAL
    return score, sentiment, positive, negative
