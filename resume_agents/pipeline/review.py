"""Reviewer verdict parsing

Reviewer agents answer "APPROVED" or "CRITIQUE: <issues>", sometimes
followed by a corrected output on the next line. Models decorate the
verdict with markdown, so leading punctuation is ignored.
"""

import re
from typing import Optional, Tuple

from .models import ValidationResult

APPROVED = "APPROVED"
CRITIQUE_PREFIX = "CRITIQUE:"

_LEADING_NOISE_RE = re.compile(r"^[^A-Za-z0-9]+")


def _normalize(text: str) -> str:
    return _LEADING_NOISE_RE.sub("", (text or "").strip())


def parse_review_verdict(text: str) -> ValidationResult:
    """
    Turn a reviewer reply into a verdict.

    Args:
        text: Raw reviewer reply

    Returns:
        An approval, or a rejection whose critique is the reviewer's
        feedback with the CRITIQUE: prefix removed
    """
    normalized = _normalize(text)
    if normalized.upper().startswith(APPROVED):
        return ValidationResult.approve()

    feedback = normalized
    if feedback.upper().startswith(CRITIQUE_PREFIX):
        feedback = _normalize(feedback[len(CRITIQUE_PREFIX):])
    if not feedback:
        feedback = "the reviewer rejected the output without details"

    return ValidationResult.reject([feedback], critique=f"{CRITIQUE_PREFIX} {feedback}")


def split_correction(text: str) -> Tuple[str, Optional[str]]:
    """
    Separate a critique line from a corrected output on the following lines.

    Returns:
        (critique line, correction or None)
    """
    first, _, rest = (text or "").strip().partition("\n")
    rest = rest.strip()
    return first.strip(), rest or None
