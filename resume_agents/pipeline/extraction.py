"""Structured output extraction

Models wrap JSON in markdown fences or prose no matter how firmly they
are told not to. These helpers never raise; callers decide what a None
result means for their pipeline.
"""

import json
import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

# One leading fence (optional language tag) and one trailing fence
_FENCE_RE = re.compile(r"^```[ \t]*([A-Za-z0-9_+-]*)[ \t]*\n?(.*?)\n?[ \t]*```$", re.DOTALL)
_QUOTE_PAIRS = {'"': '"', "'": "'", "“": "”"}


def strip_code_fence(text: str, json_only: bool = False) -> str:
    """
    Remove a single surrounding markdown code fence and retrim.

    Args:
        text: Raw model output
        json_only: Only strip fences that are untagged or tagged ``json``

    Returns:
        The fenced content, or the trimmed input when there is no fence
    """
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    if not match:
        return stripped

    language = match.group(1).lower()
    if json_only and language not in ("", "json"):
        return stripped
    return match.group(2).strip()


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (ValueError, TypeError):
        return None


def extract_json(raw_text: Optional[str]) -> Optional[Any]:
    """
    Parse model output as JSON.

    Tries the text as-is, then with one markdown fence stripped.

    Returns:
        Parsed JSON value, or None if neither attempt parses
    """
    if not raw_text or not raw_text.strip():
        return None

    parsed = _loads(raw_text)
    if parsed is not None:
        return parsed

    unfenced = strip_code_fence(raw_text, json_only=True)
    parsed = _loads(unfenced)
    if parsed is None:
        logger.debug(f"Could not parse JSON from: {raw_text[:200]}")
    return parsed


def extract_json_lenient(raw_text: Optional[str]) -> Optional[Any]:
    """
    Last-chance JSON parse used once retries are exhausted.

    Falls back to slicing the outermost JSON array or object out of
    surrounding preamble text.
    """
    parsed = extract_json(raw_text)
    if parsed is not None or not raw_text:
        return parsed

    text = strip_code_fence(raw_text)
    spans = []
    for opener, closer in (("[", "]"), ("{", "}")):
        start_idx = text.find(opener)
        end_idx = text.rfind(closer)
        if start_idx != -1 and end_idx > start_idx:
            spans.append((start_idx, end_idx))

    # Outermost structure first
    for start_idx, end_idx in sorted(spans):
        parsed = _loads(text[start_idx:end_idx + 1])
        if parsed is not None:
            logger.info("Extracted JSON from response (removed preamble)")
            return parsed

    return None


# bool before number: bool is an int subclass
_JSON_TYPE_NAMES = (
    (bool, "boolean"),
    (dict, "object"),
    (list, "array"),
    (str, "string"),
    ((int, float), "number"),
)


def json_type_name(value: Any) -> str:
    """JSON name of a parsed value's type, for critiques"""
    for types, name in _JSON_TYPE_NAMES:
        if isinstance(value, types):
            return name
    return "null"


def strip_wrapping_quotes(text: str) -> str:
    """Remove one pair of quotes wrapping the whole text"""
    text = text.strip()
    if len(text) >= 2 and _QUOTE_PAIRS.get(text[0]) == text[-1]:
        return text[1:-1].strip()
    return text


def extract_text(raw_text: Optional[str]) -> Optional[str]:
    """
    Clean plain-text model output.

    Returns:
        The text with one code fence removed and whitespace trimmed,
        or None when nothing is left
    """
    if raw_text is None:
        return None
    text = strip_code_fence(raw_text)
    return text or None
