"""
Professional summary pipeline

analyst (brief) -> writer -> [fabrication audit + reviewer] -> retry

The writer never receives skills beyond the candidate's declared list;
the fabrication detector's findings are passed to the reviewer as an
audit fact and returned as warnings.
"""

import json
import logging
import threading
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

from ..agent.base import Agent, ModelBackend
from ..config import Config
from .extraction import extract_text, strip_wrapping_quotes
from .fabrication import detect_fabrications
from .models import ExhaustionPolicy, IterationContext, PipelineConfig, ValidationResult
from .orchestrator import AgentCall, CritiqueReviseTask, resolve_runtime, run_task
from .progress import ProgressSink
from .prompts import job_description_block, join_sections, retry_section
from .review import parse_review_verdict

logger = logging.getLogger(__name__)

ANALYST_PROMPT = (
    "You are a Resume Strategy Analyst. From the candidate's work history, identify three "
    "semantic pillars (broad areas of strength, e.g. cloud infrastructure, identity and access, "
    "ML workflows) and, for each pillar, a cluster of specific technologies taken ONLY from the "
    "ALLOWED SKILLS list.\n"
    "Bias the pillars toward what the job description asks for.\n"
    "OUTPUT: a short brief with the target role, the three pillars with supporting achievements, "
    "and the technology clusters."
)

WRITER_PROMPT = (
    "You are a professional resume writer. Write a 4-sentence professional summary in the third "
    "person.\n"
    "Sentence 1: seniority and role, years of experience, core domain.\n"
    "Sentence 2: specializing in the three pillars from the brief.\n"
    "Sentence 3: proven track record in three areas of depth or methodology.\n"
    "Sentence 4: expert-level use of the technology clusters, linked to business impact.\n"
    "RULES:\n"
    "- Exactly 4 sentences.\n"
    "- Mention ONLY technologies from the ALLOWED SKILLS list. Never invent a technology.\n"
    "OUTPUT: the summary text only, no quotes, no headings."
)

REVIEWER_PROMPT = (
    "You are a Resume Quality Auditor. Check the summary against these criteria:\n"
    "1. Exactly 4 sentences?\n"
    "2. Sentence 1: role or seniority, years, domain?\n"
    "3. Sentence 2: the specialization pillars?\n"
    "4. Sentence 3: track record in depth or methodology?\n"
    "5. Sentence 4: technology clusters tied to business impact?\n"
    "6. No technologies outside the allowed list? Use the SKILL AUDIT provided.\n"
    'If everything passes respond "APPROVED". Otherwise respond "CRITIQUE: <specific issues>".'
)

ANALYST = "analyst"
WRITER = "writer"
REVIEWER = "reviewer"


class WorkExperience(BaseModel):
    """One position in the candidate's history"""
    position: str = ""
    organization: str = ""
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    description: str = ""
    achievements: List[str] = Field(default_factory=list)
    tech_stack: List[str] = Field(default_factory=list)


class CandidateFacts(BaseModel):
    """The only facts a summary may draw on"""
    skills: List[str] = Field(default_factory=list)
    work_experience: List[WorkExperience] = Field(default_factory=list)


class SummaryResult(BaseModel):
    """Generated summary plus non-fatal audit findings"""
    text: str
    warnings: List[str] = Field(default_factory=list)
    unlisted_mentions: List[str] = Field(default_factory=list)
    approved: bool = False


def experience_label(facts: CandidateFacts, current_year: Optional[int] = None) -> str:
    """
    Years of experience from the earliest start year.

    Returns:
        "N+ years", or "extensive experience" when no start year is known
    """
    start_years = [w.start_year for w in facts.work_experience if w.start_year]
    if not start_years:
        return "extensive experience"
    years = (current_year or date.today().year) - min(start_years)
    if years <= 0:
        return "extensive experience"
    return f"{years}+ years"


def create_summary_roles() -> tuple:
    return (
        Agent(name=WRITER, system_prompt=WRITER_PROMPT),
        Agent(name=ANALYST, system_prompt=ANALYST_PROMPT),
        Agent(name=REVIEWER, system_prompt=REVIEWER_PROMPT),
    )


class SummaryTask(CritiqueReviseTask):
    """Summary generation with a fabrication audit before review"""

    name = "summary"
    policy = ExhaustionPolicy.BEST_EFFORT

    def __init__(
        self,
        facts: CandidateFacts,
        job_description: str,
        max_iterations: int = 2,
        current_year: Optional[int] = None,
    ):
        super().__init__(
            PipelineConfig(roles=create_summary_roles(), max_iterations=max_iterations)
        )
        self.facts = facts
        self.job_description = job_description
        self.experience = experience_label(facts, current_year)

    def _allowed_skills_block(self) -> str:
        skills = ", ".join(self.facts.skills) if self.facts.skills else "(none)"
        return f"ALLOWED SKILLS:\n{skills}"

    def prepare(self, call: AgentCall) -> Optional[str]:
        history = [w.model_dump() for w in self.facts.work_experience]
        prompt = join_sections(
            job_description_block(self.job_description),
            f"CANDIDATE WORK HISTORY:\n{json.dumps(history, ensure_ascii=False)}",
            self._allowed_skills_block(),
        )
        return call(self.pipeline.role(ANALYST), prompt).strip()

    def build_prompt(self, ctx: IterationContext) -> str:
        return join_sections(
            f"ANALYSIS BRIEF:\n{ctx.brief}" if ctx.brief else None,
            self._allowed_skills_block(),
            f"CANDIDATE EXPERIENCE: {self.experience}",
            retry_section(ctx),
        )

    def extract(self, raw_text: str) -> Optional[str]:
        text = extract_text(raw_text)
        if text is None:
            return None
        return strip_wrapping_quotes(text) or None

    def validate(self, parsed: str, ctx: IterationContext, call: AgentCall) -> ValidationResult:
        unlisted = detect_fabrications(parsed, self.facts.skills)
        if unlisted:
            logger.warning(f"Summary mentions technologies not in the skill list: {unlisted}")
            audit = "SKILL AUDIT: mentions not found in the allowed list: " + ", ".join(unlisted)
        else:
            audit = "SKILL AUDIT: every technology mention is in the allowed list."

        prompt = join_sections(
            f"SUMMARY TO REVIEW:\n{parsed}",
            self._allowed_skills_block(),
            audit,
        )
        verdict = parse_review_verdict(call(self.pipeline.role(REVIEWER), prompt))
        warnings = [f"unlisted technology: {m}" for m in unlisted]
        return verdict.model_copy(update={"warnings": warnings})

    def original_output(self) -> str:
        return ""

    def start_message(self) -> str:
        return "Identifying job-relevant pillars and skills..."

    def complete_message(self, attempts: int) -> str:
        return "Summary generated and verified"


def generate_summary(
    facts: CandidateFacts,
    job_description: str,
    on_progress: Optional[ProgressSink] = None,
    *,
    backend: Optional[ModelBackend] = None,
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SummaryResult:
    """
    Generate a professional summary that only mentions declared skills.

    Args:
        facts: Candidate skills and work history
        job_description: Target job description
        on_progress: Optional progress sink

    Returns:
        SummaryResult; unapproved results still carry the last draft

    Raises:
        BackendFailure: Backend call failed
        PipelineCancelled: Run was cancelled
    """
    backend, config = resolve_runtime(backend, config)
    settings = config.get_pipeline("summary")
    task = SummaryTask(facts, job_description, max_iterations=settings.max_iterations)

    outcome = run_task(task, backend, settings, on_progress, cancel_event)
    text = outcome.output or ""
    return SummaryResult(
        text=text,
        warnings=outcome.warnings,
        unlisted_mentions=detect_fabrications(text, facts.skills) if text else [],
        approved=outcome.approved,
    )
