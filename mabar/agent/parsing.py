"""Strict decoding of JSON-shaped LLM output.

Model text is untrusted: it is decoded, then validated against a pydantic
schema. Anything that fails either step raises ``LLMOutputError`` and the
caller substitutes a deterministic fallback.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

M = TypeVar("M", bound=BaseModel)


class LLMOutputError(ValueError):
    """LLM response was not a JSON object matching the expected schema."""

    def __init__(self, reason: str, raw: str = "") -> None:
        super().__init__(reason)
        self.raw = raw


def strip_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block if present."""
    clean = text.strip()
    if "```" in clean:
        parts = clean.split("```")
        if len(parts) >= 3:
            clean = parts[1]
            if clean.lower().startswith("json"):
                clean = clean[4:]
    return clean.strip()


def extract_json(text: str) -> dict[str, Any]:
    """Return the JSON object in ``text``.

    Tries the fence-stripped text first, then the outermost ``{...}`` span
    (models like to wrap JSON in a sentence).
    """
    if not text or not text.strip():
        raise LLMOutputError("empty response", raw=text or "")

    clean = strip_fences(text)
    candidates = [clean]
    start, end = clean.find("{"), clean.rfind("}")
    if start != -1 and end > start:
        candidates.append(clean[start : end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
        raise LLMOutputError(f"expected JSON object, got {type(data).__name__}", raw=text)

    raise LLMOutputError("no JSON object found", raw=text)


def decode(text: str, model_cls: type[M]) -> M:
    """Extract and validate; raises ``LLMOutputError`` on any failure."""
    data = extract_json(text)
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise LLMOutputError(
            f"{model_cls.__name__} validation failed: {e.error_count()} error(s)", raw=text
        ) from e
