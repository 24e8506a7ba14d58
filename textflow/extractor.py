"""Structured output extraction: recover one JSON object from a generator reply.

Generators are asked for a bare JSON object but routinely wrap it in prose or
markdown fences, use different key casing, leave trailing commas, or return
values out of range. This module turns such a reply into a validated
response schema (see ``textflow.schemas``) or raises ExtractionError, which
sends the calling stage to its fallback path.
"""

from __future__ import annotations

import json
import logging
import math
import re
from functools import lru_cache
from typing import Any, TypeVar, get_args, get_origin

from pydantic import TypeAdapter, ValidationError
from pydantic.fields import FieldInfo

from textflow.errors import ExtractionError
from textflow.schemas import Clamp, FallbackText, Required, ResponseSchema

log = logging.getLogger(__name__)

S = TypeVar("S", bound=ResponseSchema)

_JSON_SPAN = re.compile(r"\{[\s\S]*\}")
_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
_CLOSER_AHEAD = re.compile(r"\s*[}\]]")

_MISSING = object()


def extract_json_text(text: str) -> str:
    """Locate the JSON object text inside a reply.

    Tried in order: the whole trimmed reply when it is brace-delimited, the
    first greedy ``{...}`` span, then a fenced code block.
    """
    if not text or not text.strip():
        raise ExtractionError("Response text is empty")

    trimmed = text.strip()
    if trimmed.startswith("{") and trimmed.endswith("}"):
        return trimmed

    match = _JSON_SPAN.search(trimmed)
    if match:
        return match.group()

    match = _FENCED_JSON.search(trimmed)
    if match:
        return match.group(1)

    raise ExtractionError(
        "Could not extract JSON from response",
        {"preview": trimmed[:80]},
    )


def strip_trailing_commas(json_text: str) -> str:
    """Drop commas that directly precede ``}`` or ``]``, leaving strings intact."""
    out: list[str] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(json_text):
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "," and _CLOSER_AHEAD.match(json_text, i + 1):
            continue
        out.append(ch)
    return "".join(out)


def _decode_object(json_text: str) -> dict[str, Any]:
    cleaned = strip_trailing_commas(json_text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # The greedy span may run past the object into trailing prose that
        # happens to contain a brace; take the first complete value instead.
        try:
            data, _ = json.JSONDecoder().raw_decode(cleaned)
        except json.JSONDecodeError as e:
            raise ExtractionError(f"Failed to parse structured response: {e}") from e

    if not isinstance(data, dict):
        raise ExtractionError(
            "Structured response is not a JSON object",
            {"type": type(data).__name__},
        )
    return data


def parse_structured_response(text: str, schema: type[S]) -> S:
    """Parse a generator reply into ``schema``.

    Raises:
        ExtractionError: no JSON object could be recovered, or a Required
            field is missing.
    """
    data = _decode_object(extract_json_text(text))
    return build_schema(schema, data)


def build_schema(schema: type[S], data: dict[str, Any]) -> S:
    """Build ``schema`` from a decoded JSON object.

    Keys match case-insensitively. Missing or unparseable values fall back to
    the field default; Clamp and FallbackText rules are then applied.
    """
    lookup: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(key, str):
            lookup.setdefault(_key(key), value)

    values: dict[str, Any] = {}
    for name, field in schema.model_fields.items():
        raw = _MISSING
        for candidate in _field_keys(name, field):
            if candidate in lookup:
                raw = lookup[candidate]
                break

        if raw is _MISSING or raw is None:
            value = field.get_default(call_default_factory=True)
        else:
            value = _coerce(schema, name, field, raw)

        values[name] = _post_validate(schema, name, field, value)

    return schema.model_validate(values)


def _key(name: str) -> str:
    return name.replace("_", "").lower()


def _field_keys(name: str, field: FieldInfo) -> list[str]:
    keys = [_key(name)]
    if field.alias:
        keys.append(_key(field.alias))
    return keys


@lru_cache(maxsize=None)
def _adapter(annotation: Any) -> TypeAdapter:
    return TypeAdapter(annotation)


def _coerce(schema: type[ResponseSchema], name: str, field: FieldInfo, raw: Any) -> Any:
    annotation = field.annotation

    if isinstance(annotation, type) and issubclass(annotation, ResponseSchema):
        if isinstance(raw, dict):
            return build_schema(annotation, raw)
        log.debug("%s.%s: expected an object, got %r; using default", schema.__name__, name, raw)
        return field.get_default(call_default_factory=True)

    if get_origin(annotation) is list and get_args(annotation) == (str,) and isinstance(raw, list):
        return [str(item) for item in raw if item is not None]

    try:
        value = _adapter(annotation).validate_python(raw)
    except ValidationError:
        log.debug("%s.%s: unparseable value %r; using default", schema.__name__, name, raw)
        return field.get_default(call_default_factory=True)

    if isinstance(value, float) and not math.isfinite(value):
        log.debug("%s.%s: non-finite value %r; using default", schema.__name__, name, raw)
        return field.get_default(call_default_factory=True)
    return value


def _post_validate(
    schema: type[ResponseSchema], name: str, field: FieldInfo, value: Any
) -> Any:
    for rule in field.metadata:
        if isinstance(rule, Required):
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ExtractionError(
                    f"Required field '{field.alias or name}' is missing or blank",
                    {"schema": schema.__name__},
                )
        elif isinstance(rule, Clamp):
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                clamped = rule.apply(value)
                if clamped != value:
                    log.debug("%s.%s: clamped %r to %r", schema.__name__, name, value, clamped)
                value = clamped
        elif isinstance(rule, FallbackText):
            if not isinstance(value, str) or not value.strip():
                value = rule.message
    return value
