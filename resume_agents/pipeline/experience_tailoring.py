"""
Work experience tailoring pipeline

analyst (alignment brief) -> writer ({"description", "achievements"})
    -> structural checks -> fact checker -> relevance evaluator -> retry

The tech stack of the position is reordered afterwards by the flat list
sorter. Drafts that break the structural checks are never returned; when
no usable draft exists the original content is kept.
"""

import logging
import threading
from typing import List, Optional

from pydantic import BaseModel, Field

from ..agent.base import Agent, ModelBackend
from ..config import Config
from ..errors import ParseFailure, PipelineCancelled
from .extraction import extract_json, json_type_name
from .models import ExhaustionPolicy, IterationContext, PipelineConfig, ValidationResult
from .orchestrator import (
    CANCELLED_STAGE,
    COMPLETE_STAGE,
    FAILED_STAGE,
    AgentCall,
    CritiqueReviseTask,
    resolve_runtime,
    run_task,
)
from .progress import ProgressEmitter, ProgressSink, relay_to
from .prompts import format_json, job_description_block, join_sections, retry_section
from .review import parse_review_verdict
from .summary import WorkExperience
from .tech_stack import sort_flat_list

logger = logging.getLogger(__name__)

MIN_ACHIEVEMENT_LENGTH = 10
MIN_DESCRIPTION_LENGTH = 50

ANALYST_PROMPT = (
    "You are a Job-Experience Alignment Analyst. Analyze the job description and work "
    "experience to determine alignment potential.\n"
    "ANALYSIS DIMENSIONS:\n"
    "1. Core requirements: key skills, technologies and responsibilities in the JD.\n"
    "2. Experience strengths: what aspects of this experience align well.\n"
    "3. Alignment potential: realistic degree of match (High/Medium/Low).\n"
    "4. Transferable skills: skills from the experience that apply to the JD.\n"
    "5. Honest gaps: areas where the experience genuinely does not match.\n"
    "OUTPUT: a structured analysis with an alignment score and specific recommendations "
    "for emphasis."
)

WRITER_PROMPT = (
    "You are a Professional Resume Writer specializing in truthful optimization. Rewrite one "
    "work experience so that the JD-relevant aspects stand out.\n"
    "DESCRIPTION RULES:\n"
    "1. Only use facts from the original description. Never add technologies, skills or "
    "responsibilities.\n"
    "2. Frame responsibilities with JD terminology when it is accurate.\n"
    "3. One sentence maximum. If the original description is empty, return an empty string.\n"
    "ACHIEVEMENT RULES:\n"
    "1. Keep every metric, outcome and scope unchanged.\n"
    "2. Emphasize JD-relevant impact; weave in JD keywords only where the achievement "
    "genuinely demonstrates them.\n"
    "3. Return exactly as many achievements as the input, in the same order, without labels "
    "or numbering.\n"
    "OUTPUT: valid JSON only, no markdown, in this exact format:\n"
    '{"description": "...", "achievements": ["...", "..."]}'
)

FACT_CHECKER_PROMPT = (
    "You are a Resume Fact-Checking Auditor. Verify that the rewritten experience keeps its "
    "factual accuracy.\n"
    "VALIDATION CRITERIA:\n"
    "1. No fabrication: every claim exists in the original content.\n"
    "2. Accurate metrics: numbers and quantified results are unchanged.\n"
    "3. Honest framing: terminology changes do not misrepresent the actual work.\n"
    "4. Technology accuracy: technology mentions are factually correct.\n"
    "5. Scope honesty: the role and responsibilities are not exaggerated.\n"
    'If factually accurate respond "APPROVED". Otherwise respond '
    '"CRITIQUE: <specific factual inaccuracies>" with corrections.'
)

RELEVANCE_EVALUATOR_PROMPT = (
    "You are a JD-Resume Alignment Evaluator. Evaluate whether the rewritten experience "
    "highlights its relevance to the job description.\n"
    "CRITERIA:\n"
    "1. Uses JD-relevant terminology appropriately.\n"
    "2. Highlights outcomes relevant to the target role.\n"
    "3. Clearly shows transferable experience.\n"
    "4. Does not overstate alignment when it is limited.\n"
    "5. Keeps a professional resume tone.\n"
    'If well aligned respond "APPROVED". Otherwise respond "CRITIQUE: <specific suggestions>".'
)

ANALYST = "analyst"
WRITER = "writer"
FACT_CHECKER = "fact_checker"
RELEVANCE_EVALUATOR = "relevance_evaluator"


class ExperienceDraft(BaseModel):
    """Rewritten description and achievements for one position"""
    description: str = ""
    achievements: List[str] = Field(default_factory=list)


class TailoredExperience(BaseModel):
    """Tailored content for one position plus non-fatal findings"""
    description: str = ""
    achievements: List[str] = Field(default_factory=list)
    tech_stack: List[str] = Field(default_factory=list)
    approved: bool = False
    warnings: List[str] = Field(default_factory=list)


def check_tailored_experience(original: WorkExperience, draft: ExperienceDraft) -> List[str]:
    """
    Structural checks for a rewritten experience.

    Returns:
        Violation messages; empty when the draft is structurally sound
    """
    violations = []

    expected, got = len(original.achievements), len(draft.achievements)
    if expected != got:
        violations.append(f"Count mismatch: expected {expected} achievements, got {got}")
    for i, achievement in enumerate(draft.achievements):
        if len(achievement.strip()) < MIN_ACHIEVEMENT_LENGTH:
            violations.append(f'Achievement [{i}] is too short or empty: "{achievement}"')

    description = draft.description.strip()
    if not original.description.strip():
        if description:
            violations.append("Description was added although the original had none")
    elif not description:
        violations.append("Rewritten description is empty")
    elif len(description) < MIN_DESCRIPTION_LENGTH:
        violations.append(
            f"Rewritten description is too short ({len(description)} chars, "
            f"min {MIN_DESCRIPTION_LENGTH})"
        )
    elif description == original.description.strip():
        violations.append("Rewritten description is identical to the original; no changes were made")

    return violations


def create_tailoring_roles() -> tuple:
    return (
        Agent(name=WRITER, system_prompt=WRITER_PROMPT),
        Agent(name=ANALYST, system_prompt=ANALYST_PROMPT),
        Agent(name=FACT_CHECKER, system_prompt=FACT_CHECKER_PROMPT),
        Agent(name=RELEVANCE_EVALUATOR, system_prompt=RELEVANCE_EVALUATOR_PROMPT),
    )


class ExperienceTailoringTask(CritiqueReviseTask):
    """Description and achievement rewrite, fact-checked and relevance-checked"""

    name = "experience_tailoring"
    policy = ExhaustionPolicy.BEST_EFFORT

    def __init__(self, experience: WorkExperience, job_description: str, max_iterations: int = 2):
        super().__init__(
            PipelineConfig(roles=create_tailoring_roles(), max_iterations=max_iterations)
        )
        self.experience = experience
        self.job_description = job_description

    def _original_block(self) -> str:
        original = {
            "description": self.experience.description,
            "achievements": self.experience.achievements,
        }
        return f"ORIGINAL EXPERIENCE:\n{format_json(original)}"

    def _role_line(self) -> str:
        return f"POSITION: {self.experience.position} at {self.experience.organization}"

    def prepare(self, call: AgentCall) -> Optional[str]:
        prompt = join_sections(
            job_description_block(self.job_description),
            self._role_line(),
            self._original_block(),
        )
        return call(self.pipeline.role(ANALYST), prompt).strip()

    def build_prompt(self, ctx: IterationContext) -> str:
        return join_sections(
            f"ANALYSIS:\n{ctx.brief}" if ctx.brief else None,
            job_description_block(self.job_description),
            self._role_line(),
            self._original_block(),
            f"Return exactly {len(self.experience.achievements)} achievements.",
            retry_section(ctx),
        )

    def extract(self, raw_text: str) -> ExperienceDraft:
        parsed = extract_json(raw_text)
        if parsed is None:
            raise ParseFailure(raw_text, "output was not valid JSON")
        if not isinstance(parsed, dict):
            raise ParseFailure(raw_text, f"expected a JSON object, got {json_type_name(parsed)}")

        description = parsed.get("description") or ""
        achievements = parsed.get("achievements", [])
        if not isinstance(description, str):
            raise ParseFailure(raw_text, '"description" must be a string')
        if not isinstance(achievements, list) or not all(isinstance(a, str) for a in achievements):
            raise ParseFailure(raw_text, '"achievements" must be a JSON array of strings')

        return ExperienceDraft(
            description=description.strip(),
            achievements=[a.strip() for a in achievements],
        )

    def parse_critique(self, reason: str) -> str:
        return (
            f"CRITIQUE: {reason}. Return only "
            '{"description": "...", "achievements": [...]} as JSON.'
        )

    def validate(
        self, parsed: ExperienceDraft, ctx: IterationContext, call: AgentCall
    ) -> ValidationResult:
        violations = check_tailored_experience(self.experience, parsed)
        if violations:
            return ValidationResult.reject(violations)

        rewritten = format_json(parsed.model_dump())
        verdict = parse_review_verdict(
            call(
                self.pipeline.role(FACT_CHECKER),
                join_sections(self._original_block(), f"REWRITTEN EXPERIENCE:\n{rewritten}"),
            )
        )
        if not verdict.approved:
            return verdict

        return parse_review_verdict(
            call(
                self.pipeline.role(RELEVANCE_EVALUATOR),
                join_sections(
                    job_description_block(self.job_description),
                    f"REWRITTEN EXPERIENCE:\n{rewritten}",
                ),
            )
        )

    def usable(self, parsed: ExperienceDraft) -> bool:
        return not check_tailored_experience(self.experience, parsed)

    def original_output(self) -> ExperienceDraft:
        return ExperienceDraft(
            description=self.experience.description,
            achievements=list(self.experience.achievements),
        )

    def start_message(self) -> str:
        return f"Analyzing alignment for {self.experience.position}..."

    def complete_message(self, attempts: int) -> str:
        return "Experience rewritten and fact-checked"


def tailor_experience(
    experience: WorkExperience,
    job_description: str,
    on_progress: Optional[ProgressSink] = None,
    *,
    backend: Optional[ModelBackend] = None,
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> TailoredExperience:
    """
    Rewrite one position's description and achievements for a job description.

    Args:
        experience: Position to tailor; left unmodified
        job_description: Target job description
        on_progress: Optional progress sink

    Returns:
        TailoredExperience; the original content when no structurally valid
        rewrite was produced

    Raises:
        BackendFailure: Backend call failed
        PipelineCancelled: Run was cancelled
    """
    backend, config = resolve_runtime(backend, config)
    settings = config.get_pipeline("experience_tailoring")
    emitter = ProgressEmitter(on_progress)
    nested = relay_to(emitter)

    try:
        if experience.description.strip() or experience.achievements:
            task = ExperienceTailoringTask(
                experience, job_description, max_iterations=settings.max_iterations
            )
            outcome = run_task(task, backend, settings, nested, cancel_event)
            draft, approved, warnings = outcome.output, outcome.approved, outcome.warnings
        else:
            logger.info(f"Nothing to rewrite for {experience.position}")
            draft, approved, warnings = ExperienceDraft(), True, []

        tech_stack = sort_flat_list(
            experience.tech_stack,
            job_description,
            nested,
            backend=backend,
            config=config,
            cancel_event=cancel_event,
        )
    except PipelineCancelled:
        emitter.finish(CANCELLED_STAGE, "Experience tailoring cancelled")
        raise
    except Exception as e:
        emitter.finish(FAILED_STAGE, f"Experience tailoring failed: {e}")
        raise

    emitter.finish(COMPLETE_STAGE, f"Tailored {experience.position} at {experience.organization}")
    return TailoredExperience(
        description=draft.description,
        achievements=draft.achievements,
        tech_stack=tech_stack,
        approved=approved,
        warnings=warnings,
    )
