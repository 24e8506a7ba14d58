"""Runtime configuration.

Settings come from the environment (a ``.env`` file is loaded by the entry
points with python-dotenv). Word lists and thresholds used by the rule-based
logic are plain value objects injected into stage constructors, so stages
stay pure and can be tested with any list.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MODEL = "claude-sonnet-4-20250514"

DEFAULT_BLOCK_LIST: tuple[str, ...] = (
    "damn", "hell", "crap", "stupid", "idiot", "moron",
    "jerk", "loser", "hate", "kill", "die", "suck",
)

DEFAULT_POSITIVE_WORDS: tuple[str, ...] = (
    "love", "great", "fantastic", "excellent", "good", "happy", "thrilled",
    "overjoyed", "best", "wonderful", "amazing", "exceeded", "pleased",
    "delighted", "enjoy", "awesome", "perfect", "glad",
)

DEFAULT_NEGATIVE_WORDS: tuple[str, ...] = (
    "worst", "bad", "terrible", "awful", "disappointed", "frustrated",
    "hate", "angry", "problematic", "concerned", "poor", "horrible",
    "sad", "broken", "useless", "annoyed", "upset", "fail",
)


class FilterConfig(BaseModel):
    """Block-list settings for detection and masking."""

    model_config = ConfigDict(frozen=True)

    block_list: frozenset[str] = frozenset(DEFAULT_BLOCK_LIST)
    min_word_length: int = Field(default=3, ge=1)
    replacement_char: str = Field(default="*", min_length=1, max_length=1)

    @field_validator("block_list", mode="before")
    @classmethod
    def _lowercase(cls, v):
        return frozenset(str(w).strip().lower() for w in v if str(w).strip())

    def is_blocked(self, key: str) -> bool:
        return key.lower() in self.block_list


class SentimentLexicon(BaseModel):
    """Word lists for the rule-based sentiment fallback."""

    model_config = ConfigDict(frozen=True)

    positive: frozenset[str] = frozenset(DEFAULT_POSITIVE_WORDS)
    negative: frozenset[str] = frozenset(DEFAULT_NEGATIVE_WORDS)

    @field_validator("positive", "negative", mode="before")
    @classmethod
    def _lowercase(cls, v):
        return frozenset(str(w).strip().lower() for w in v if str(w).strip())


class Settings(BaseModel):
    """Process-level settings for the generator, chunking and concurrency."""

    model_config = ConfigDict(frozen=True)

    model: str = DEFAULT_MODEL
    max_tokens: int = Field(default=1024, ge=1)
    call_timeout: float | None = Field(default=60.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    chunk_size: int = Field(default=50, ge=1)
    max_concurrent: int = Field(default=1, ge=1)
    filter: FilterConfig = Field(default_factory=FilterConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``TEXTFLOW_*`` environment variables.

        Raises:
            ValueError: a variable holds a value of the wrong type or range.
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        if env.get("TEXTFLOW_MODEL"):
            values["model"] = env["TEXTFLOW_MODEL"]
        for var, key, cast in (
            ("TEXTFLOW_MAX_TOKENS", "max_tokens", int),
            ("TEXTFLOW_MAX_RETRIES", "max_retries", int),
            ("TEXTFLOW_CHUNK_SIZE", "chunk_size", int),
            ("TEXTFLOW_MAX_CONCURRENT", "max_concurrent", int),
            ("TEXTFLOW_CALL_TIMEOUT", "call_timeout", float),
        ):
            raw = env.get(var)
            if raw is None or raw.strip() == "":
                continue
            try:
                values[key] = cast(raw)
            except ValueError:
                raise ValueError(f"{var} must be a number, got {raw!r}") from None

        # 0 disables the per-call timeout
        if values.get("call_timeout") == 0:
            values["call_timeout"] = None

        block_list = env.get("TEXTFLOW_BLOCK_LIST")
        if block_list:
            values["filter"] = FilterConfig(block_list=block_list.split(","))

        try:
            return cls(**values)
        except ValueError as e:
            raise ValueError(f"Invalid TEXTFLOW_* setting: {e}") from e
