"""Prompt building helpers shared by the task pipelines

Each task owns its system prompts; this module only renders the
per-call user message parts that every task formats the same way.
"""

import json
from typing import Any, Iterable, Optional

from .models import IterationContext


def format_bullets(items: Iterable[Any]) -> str:
    """Render items as a '-' list, one per line"""
    return "\n".join(f"- {item}" for item in items)


def format_json(value: Any) -> str:
    """Pretty JSON for embedding data in a prompt"""
    return json.dumps(value, indent=2, ensure_ascii=False)


def job_description_block(job_description: Optional[str]) -> str:
    text = (job_description or "").strip()
    return f"JOB DESCRIPTION:\n{text or '(none provided)'}"


def retry_section(ctx: IterationContext) -> str:
    """
    Feedback block appended to the generator prompt on a retry.

    Empty on the first attempt.
    """
    if not ctx.is_retry:
        return ""

    parts = [
        "",
        f"PREVIOUS ATTEMPT (attempt {ctx.iteration}) WAS REJECTED.",
        "FEEDBACK:",
        ctx.critique or "CRITIQUE: the previous output was rejected.",
    ]
    if ctx.previous_output:
        parts.extend(["", "PREVIOUS OUTPUT:", ctx.previous_output.strip()])
    parts.extend(["", "Fix every issue listed above and return the corrected output only."])
    return "\n".join(parts)


def join_sections(*sections: Optional[str]) -> str:
    """Join non-empty prompt sections with blank lines"""
    return "\n\n".join(s.strip("\n") for s in sections if s and s.strip())
