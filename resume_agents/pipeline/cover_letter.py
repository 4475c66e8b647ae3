"""
Cover letter pipeline

writer -> format checks (placeholders, salutations) -> reviewer -> retry

The letter may only use the candidate facts it is given. The word count
target is advisory and reported as a warning.
"""

import logging
import re
import threading
from typing import List, Optional

from pydantic import BaseModel, Field

from ..agent.base import Agent, ModelBackend
from ..config import Config
from .extraction import extract_text, strip_wrapping_quotes
from .models import ExhaustionPolicy, IterationContext, PipelineConfig, ValidationResult
from .orchestrator import AgentCall, CritiqueReviseTask, resolve_runtime, run_task
from .progress import ProgressSink
from .prompts import join_sections, retry_section
from .review import parse_review_verdict
from .summary import CandidateFacts

logger = logging.getLogger(__name__)

MIN_WORDS = 250
MAX_WORDS = 350

WRITER_PROMPT = (
    "You are a Professional Cover Letter Writer. Write a professional, concise cover letter "
    "tailored to the job description.\n"
    "STRATEGY:\n"
    "1. Hook: open by showing enthusiasm and alignment.\n"
    "2. Relevance: highlight 2-3 ACTUAL achievements that solve the employer's needs.\n"
    "3. Mirroring: naturally use terminology and phrases from the job description.\n"
    "4. Call to action: end with a confident next step.\n"
    "CRITICAL RULES:\n"
    "1. ONLY use facts provided in the candidate data.\n"
    "2. NEVER fabricate skills, experiences or certifications.\n"
    "3. NO placeholders like [Company Name]; infer or omit.\n"
    "4. NO salutations or signatures.\n"
    f"5. Length: {MIN_WORDS}-{MAX_WORDS} words.\n"
    "OUTPUT: the letter body only."
)

REVIEWER_PROMPT = (
    "You are a Master Resume Reviewer and Fact-Checker. Review the drafted cover letter for "
    "factual accuracy and alignment with the job description.\n"
    "CRITERIA:\n"
    "1. No fabrication: every claim is backed by the candidate data.\n"
    "2. Impact: achievements are framed in a results-oriented way.\n"
    "3. Flow: the tone is professional and engaging.\n"
    'If the letter passes respond "APPROVED". Otherwise respond "CRITIQUE:" followed by '
    "specific refinement instructions."
)

WRITER = "writer"
REVIEWER = "reviewer"

_PLACEHOLDER_RE = re.compile(r"\[[^\]\n]{2,40}\]")
_SALUTATION_RE = re.compile(r"^\s*(dear|to whom it may concern|hello|hi)\b", re.IGNORECASE)
_SIGN_OFF_RE = re.compile(
    r"^\s*(sincerely|best regards|kind regards|regards|yours truly|respectfully|best),?\s*$",
    re.IGNORECASE | re.MULTILINE,
)


class CoverLetterResult(BaseModel):
    """Generated cover letter plus non-fatal findings"""
    text: str
    word_count: int = 0
    warnings: List[str] = Field(default_factory=list)
    approved: bool = False


def count_words(text: str) -> int:
    return len(text.split())


def check_cover_letter(text: str) -> List[str]:
    """Hard format rules; the word count is not one of them"""
    violations = []
    placeholders = _PLACEHOLDER_RE.findall(text)
    if placeholders:
        violations.append(f"Contains placeholders: {', '.join(placeholders)}")
    if _SALUTATION_RE.match(text):
        violations.append("Starts with a salutation; write the body only")
    if _SIGN_OFF_RE.search(text):
        violations.append("Contains a sign-off or signature; end with the call to action")
    return violations


def candidate_context(
    facts: CandidateFacts, summary: Optional[str] = None, name: Optional[str] = None
) -> str:
    """Candidate facts in the form both writer and reviewer see them"""
    experience = "\n".join(
        f"{w.position} at {w.organization}: {'; '.join(w.achievements)}"
        for w in facts.work_experience
    )
    return join_sections(
        f"CANDIDATE: {name}" if name else None,
        f"SUMMARY: {summary}" if summary else None,
        f"EXPERIENCE:\n{experience or '(none)'}",
        f"SKILLS: {', '.join(facts.skills) or '(none)'}",
    )


def create_cover_letter_roles() -> tuple:
    return (
        Agent(name=WRITER, system_prompt=WRITER_PROMPT),
        Agent(name=REVIEWER, system_prompt=REVIEWER_PROMPT),
    )


class CoverLetterTask(CritiqueReviseTask):
    """Fact-checked cover letter"""

    name = "cover_letter"
    policy = ExhaustionPolicy.BEST_EFFORT

    def __init__(
        self,
        facts: CandidateFacts,
        job_description: str,
        summary: Optional[str] = None,
        name: Optional[str] = None,
        max_iterations: int = 2,
    ):
        super().__init__(
            PipelineConfig(roles=create_cover_letter_roles(), max_iterations=max_iterations)
        )
        self.context = candidate_context(facts, summary, name)
        self.job_description = job_description

    def _data_block(self) -> str:
        return join_sections(self.context, f"JD:\n{self.job_description.strip()}")

    def build_prompt(self, ctx: IterationContext) -> str:
        return join_sections(
            f"Create a cover letter based on this data:\n{self._data_block()}",
            retry_section(ctx),
        )

    def extract(self, raw_text: str) -> Optional[str]:
        text = extract_text(raw_text)
        if text is None:
            return None
        return strip_wrapping_quotes(text) or None

    def validate(self, parsed: str, ctx: IterationContext, call: AgentCall) -> ValidationResult:
        violations = check_cover_letter(parsed)
        if violations:
            return ValidationResult.reject(violations)

        words = count_words(parsed)
        warnings = []
        if not MIN_WORDS <= words <= MAX_WORDS:
            logger.warning(f"Cover letter has {words} words")
            warnings.append(f"{words} words; target is {MIN_WORDS}-{MAX_WORDS}")

        prompt = join_sections(
            f"ORIGINAL DATA:\n{self._data_block()}",
            f"DRAFT LETTER:\n{parsed}",
        )
        verdict = parse_review_verdict(call(self.pipeline.role(REVIEWER), prompt))
        return verdict.model_copy(update={"warnings": warnings})

    def usable(self, parsed: str) -> bool:
        return not check_cover_letter(parsed)

    def original_output(self) -> str:
        return ""

    def start_message(self) -> str:
        return "Drafting tailored cover letter..."

    def complete_message(self, attempts: int) -> str:
        return "Cover letter written and fact-checked"


def generate_cover_letter(
    facts: CandidateFacts,
    job_description: str,
    on_progress: Optional[ProgressSink] = None,
    *,
    summary: Optional[str] = None,
    name: Optional[str] = None,
    backend: Optional[ModelBackend] = None,
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> CoverLetterResult:
    """
    Write a cover letter from the candidate's facts.

    Args:
        facts: Candidate skills and work history
        job_description: Target job description
        on_progress: Optional progress sink
        summary: Optional professional summary to draw on
        name: Optional candidate name

    Returns:
        CoverLetterResult; an empty text when no draft met the format rules

    Raises:
        ValueError: job_description is empty
        BackendFailure: Backend call failed
        PipelineCancelled: Run was cancelled
    """
    if not job_description or not job_description.strip():
        raise ValueError("Job description is empty")

    backend, config = resolve_runtime(backend, config)
    settings = config.get_pipeline("cover_letter")
    task = CoverLetterTask(
        facts, job_description, summary, name, max_iterations=settings.max_iterations
    )

    outcome = run_task(task, backend, settings, on_progress, cancel_event)
    text = outcome.output or ""
    return CoverLetterResult(
        text=text,
        word_count=count_words(text),
        warnings=outcome.warnings,
        approved=outcome.approved,
    )
