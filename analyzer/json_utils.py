"""Helpers for pulling JSON out of free-text model responses."""

import json
import re
from typing import Any

from errors import StructuredOutputError


# ```json ... ``` or bare ``` ... ``` fences
_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?[ \t]*\n?(.*?)```", re.DOTALL)

_BRACKETS = {
    "object": ("{", "}"),
    "array": ("[", "]"),
}


def _fenced_blocks(text: str) -> list[str]:
    """Return the bodies of all fenced blocks that look like JSON."""
    blocks = []
    for match in _FENCE_PATTERN.finditer(text):
        body = match.group(1).strip()
        if body.startswith(("{", "[")):
            blocks.append(body)
    return blocks


def _bracket_span(text: str, json_type: str) -> str | None:
    """Return the substring from the first opening to the last closing bracket."""
    opening, closing = _BRACKETS[json_type]
    start = text.find(opening)
    end = text.rfind(closing) + 1
    if start == -1 or end <= start:
        return None
    return text[start:end]


def _matches_type(value: Any, json_type: str) -> bool:
    if json_type == "array":
        return isinstance(value, list)
    return isinstance(value, dict)


def extract_json_block(text: str | None, json_type: str = "object") -> dict | list:
    """Extract exactly one structured block from a model response.

    The block may be wrapped in markdown fences or surrounded by prose.

    Args:
        text: Raw response text.
        json_type: Expected top-level type, "object" or "array".

    Returns:
        The parsed JSON value.

    Raises:
        StructuredOutputError: If no block, more than one block, or a block of
            the wrong type is found, or the block is not valid JSON.
    """
    if json_type not in _BRACKETS:
        raise ValueError(f"Unknown json_type: {json_type}")

    if not text or not text.strip():
        raise StructuredOutputError("Empty response from model", response_text=text)

    fenced = _fenced_blocks(text)
    if len(fenced) > 1:
        raise StructuredOutputError(
            f"Expected exactly one structured block, found {len(fenced)}",
            response_text=text,
        )

    candidate = fenced[0] if fenced else _bracket_span(text, json_type)
    if candidate is None:
        raise StructuredOutputError(
            f"No JSON {json_type} found in response",
            response_text=text,
        )

    try:
        value = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise StructuredOutputError(
            f"Malformed JSON in response: {e}",
            response_text=text,
        ) from e

    if not _matches_type(value, json_type):
        raise StructuredOutputError(
            f"Expected a JSON {json_type}, got {type(value).__name__}",
            response_text=text,
        )

    return value
