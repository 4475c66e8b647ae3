"""
Job title pipeline

analyst -> writer -> title format check -> reviewer (only if the format passes) -> retry
"""

import logging
import re
import threading
from typing import List, Optional, Sequence

from ..agent.base import Agent, ModelBackend
from ..config import Config
from .extraction import extract_text, strip_wrapping_quotes
from .models import ExhaustionPolicy, IterationContext, PipelineConfig, ValidationResult
from .orchestrator import AgentCall, CritiqueReviseTask, resolve_runtime, run_task
from .progress import ProgressSink
from .prompts import format_bullets, job_description_block, join_sections, retry_section
from .review import parse_review_verdict, split_correction

logger = logging.getLogger(__name__)

MIN_TITLE_WORDS = 2
MAX_TITLE_WORDS = 6

ANALYST_PROMPT = (
    "You are analyzing a job description to extract the core role title.\n"
    "Identify the primary role, the seniority level (Senior, Lead, Staff, Principal) and the "
    "key domain or specialty (AI, Platform, Backend, Frontend).\n"
    "Respond with a brief analysis (2-3 sentences) of what the ideal job title should convey."
)

WRITER_PROMPT = (
    "You are a professional resume writer creating a job title.\n"
    "RULES:\n"
    "1. Output ONLY the job title, nothing else.\n"
    "2. NO markdown formatting.\n"
    "3. Keep it concise, 2-5 words, in Title Case.\n"
    "4. Match the seniority and domain from the analysis.\n"
    "GOOD: Senior AI Platform Engineer\n"
    "BAD: **Senior AI Platform Engineer**\n"
    "BAD: Senior AI Platform Engineer - a role focused on..."
)

REVIEWER_PROMPT = (
    "You are reviewing a generated job title for quality.\n"
    "Check that it is concise, in Title Case, has no explanations or extra text, and sounds "
    "like a real job title for this role.\n"
    'If the title passes respond "APPROVED". Otherwise respond "CRITIQUE: <specific issue>" '
    "and give the corrected title on the next line."
)

ANALYST = "analyst"
WRITER = "writer"
REVIEWER = "reviewer"

_MARKDOWN_RE = re.compile(r"[*_`~#]")
_UNWRAP_PATTERNS = (
    re.compile(r"\*\*(.+?)\*\*"),
    re.compile(r"\*(.+?)\*"),
    re.compile(r"__(.+?)__"),
    re.compile(r"_(.+?)_"),
    re.compile(r"~~(.+?)~~"),
    re.compile(r"`(.+?)`"),
)


def strip_markdown(title: str) -> str:
    """Remove emphasis and code markers, keeping the wrapped text"""
    for pattern in _UNWRAP_PATTERNS:
        title = pattern.sub(r"\1", title)
    return title.lstrip("# ").strip()


def title_violations(title: str) -> List[str]:
    """Deterministic format rules for a job title"""
    violations = []
    if "\n" in title:
        violations.append("the title must be a single line")
    if _MARKDOWN_RE.search(title):
        violations.append("the title must not contain markdown")
    words = title.split()
    if not MIN_TITLE_WORDS <= len(words) <= MAX_TITLE_WORDS:
        violations.append(
            f"the title has {len(words)} words; use {MIN_TITLE_WORDS}-{MAX_TITLE_WORDS}"
        )
    if title and title[-1] in ".,;:!?-":
        violations.append("the title must not end with punctuation")
    return violations


def create_job_title_roles() -> tuple:
    return (
        Agent(name=WRITER, system_prompt=WRITER_PROMPT),
        Agent(name=ANALYST, system_prompt=ANALYST_PROMPT),
        Agent(name=REVIEWER, system_prompt=REVIEWER_PROMPT),
    )


class JobTitleTask(CritiqueReviseTask):
    """Single-line job title, format-checked before review"""

    name = "job_title"
    policy = ExhaustionPolicy.BEST_EFFORT

    def __init__(
        self,
        job_description: str,
        summary: Optional[str] = None,
        recent_positions: Sequence[str] = (),
        max_iterations: int = 2,
    ):
        super().__init__(
            PipelineConfig(roles=create_job_title_roles(), max_iterations=max_iterations)
        )
        self.job_description = job_description
        self.summary = summary
        self.recent_positions = tuple(recent_positions)

    def prepare(self, call: AgentCall) -> Optional[str]:
        recent = format_bullets(self.recent_positions[:2]) or "Not provided"
        prompt = join_sections(
            job_description_block(self.job_description),
            f"RESUME SUMMARY:\n{self.summary or 'Not provided'}",
            f"RECENT EXPERIENCE:\n{recent}",
        )
        return call(self.pipeline.role(ANALYST), prompt).strip()

    def build_prompt(self, ctx: IterationContext) -> str:
        return join_sections(
            f"ANALYSIS:\n{ctx.brief}" if ctx.brief else None,
            retry_section(ctx),
            "Generate the job title now:",
        )

    def extract(self, raw_text: str) -> Optional[str]:
        text = extract_text(raw_text)
        if text is None:
            return None
        return strip_wrapping_quotes(text) or None

    def validate(self, parsed: str, ctx: IterationContext, call: AgentCall) -> ValidationResult:
        violations = title_violations(parsed)
        if violations:
            return ValidationResult.reject(violations)

        reply = call(self.pipeline.role(REVIEWER), f'GENERATED JOB TITLE:\n"{parsed}"')
        verdict = parse_review_verdict(reply)
        if verdict.approved:
            return verdict

        critique, correction = split_correction(verdict.critique)
        if correction:
            critique = f"{critique}\nSuggested title: {correction}"
        return verdict.model_copy(update={"critique": critique})

    def finalize(self, parsed: str) -> str:
        return strip_markdown(parsed)

    def original_output(self) -> str:
        return ""

    def start_message(self) -> str:
        return "Analyzing job requirements..."

    def complete_message(self, attempts: int) -> str:
        return "Job title generated"


def generate_job_title(
    job_description: str,
    summary: Optional[str] = None,
    recent_positions: Sequence[str] = (),
    on_progress: Optional[ProgressSink] = None,
    *,
    backend: Optional[ModelBackend] = None,
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """
    Generate a resume headline job title for a job description.

    Args:
        job_description: Target job description
        summary: Optional professional summary for context
        recent_positions: Recent "Position at Organization" lines, newest first
        on_progress: Optional progress sink

    Returns:
        The title with any markdown removed

    Raises:
        BackendFailure: Backend call failed
        PipelineCancelled: Run was cancelled
    """
    backend, config = resolve_runtime(backend, config)
    settings = config.get_pipeline("job_title")
    task = JobTitleTask(
        job_description,
        summary=summary,
        recent_positions=recent_positions,
        max_iterations=settings.max_iterations,
    )

    outcome = run_task(task, backend, settings, on_progress, cancel_event)
    return outcome.output
