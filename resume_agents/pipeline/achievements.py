"""
Achievement ranking pipeline

analyst -> sorter ({"rankedIndices": [...]}) -> index permutation check
        -> reviewer (only if the indices are valid) -> retry

Keeps the original order when no valid ranking is produced.
"""

import logging
import threading
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from ..agent.base import Agent, ModelBackend
from ..config import Config
from .extraction import extract_json, extract_json_lenient
from .models import ExhaustionPolicy, IterationContext, PipelineConfig, ValidationResult
from .orchestrator import (
    AgentCall,
    CritiqueReviseTask,
    finish_immediately,
    resolve_runtime,
    run_task,
)
from .permutation import check_permutation
from .progress import ProgressSink
from .prompts import format_json, job_description_block, join_sections, retry_section
from .review import parse_review_verdict

logger = logging.getLogger(__name__)

RANKED_INDICES_KEY = "rankedIndices"

ANALYST_PROMPT = (
    "You are analyzing a job description to identify what makes achievements relevant.\n"
    "Extract the key responsibilities and skills, the impact metrics that matter (revenue, "
    "efficiency, scale, user growth), the technologies and domains mentioned, and the "
    "seniority expected.\n"
    "Respond with a brief analysis (3-4 sentences) of which achievements would be most "
    "relevant for this role."
)

SORTER_PROMPT = (
    "You are sorting professional achievements by relevance to a job description.\n"
    "RULES:\n"
    "1. Output ONLY valid JSON: no markdown, no explanations, no code blocks.\n"
    '2. Use this exact format: {"rankedIndices": [2, 0, 1]}\n'
    "3. rankedIndices must contain every original index exactly once.\n"
    "4. Most relevant achievements first. Favor quantified impact, relevant technologies "
    "and ownership."
)

REVIEWER_PROMPT = (
    "You are reviewing an achievement ranking for quality.\n"
    "Check that the most relevant achievements come first given the analysis and that the "
    "ranking follows the job requirements. The index list itself has already been verified.\n"
    'If the ranking is sound respond "APPROVED". Otherwise respond "CRITIQUE: <specific issue>".'
)

ANALYST = "analyst"
SORTER = "sorter"
REVIEWER = "reviewer"


class AchievementsSortResult(BaseModel):
    """Ranking as indices into the input plus the reordered achievements"""
    ranked_indices: List[int] = Field(default_factory=list)
    achievements: List[str] = Field(default_factory=list)


def create_achievements_roles() -> tuple:
    return (
        Agent(name=SORTER, system_prompt=SORTER_PROMPT),
        Agent(name=ANALYST, system_prompt=ANALYST_PROMPT),
        Agent(name=REVIEWER, system_prompt=REVIEWER_PROMPT),
    )


class AchievementsSortTask(CritiqueReviseTask):
    """Index-permutation ranking that falls back to the original order"""

    name = "achievements_sorting"
    policy = ExhaustionPolicy.SOFT

    def __init__(
        self,
        achievements: Sequence[str],
        position: str,
        organization: str,
        job_description: str,
        max_iterations: int = 2,
    ):
        super().__init__(
            PipelineConfig(roles=create_achievements_roles(), max_iterations=max_iterations)
        )
        self.achievements = tuple(achievements)
        self.position = position
        self.organization = organization
        self.job_description = job_description

    def _indexed(self) -> str:
        return "\n".join(f"[{i}] {a}" for i, a in enumerate(self.achievements))

    def _role_line(self) -> str:
        return f"TARGET ROLE: {self.position} at {self.organization}"

    def prepare(self, call: AgentCall) -> Optional[str]:
        prompt = join_sections(job_description_block(self.job_description), self._role_line())
        return call(self.pipeline.role(ANALYST), prompt).strip()

    def build_prompt(self, ctx: IterationContext) -> str:
        return join_sections(
            f"ANALYSIS:\n{ctx.brief}" if ctx.brief else None,
            self._role_line(),
            f"ACHIEVEMENTS:\n{self._indexed()}",
            f"Valid indices: 0 to {len(self.achievements) - 1}",
            retry_section(ctx),
        )

    def _indices(self, parsed) -> Optional[list]:
        """Accept {"rankedIndices": [...]} or a bare array"""
        if isinstance(parsed, dict):
            parsed = parsed.get(RANKED_INDICES_KEY)
        return parsed if isinstance(parsed, list) else None

    def extract(self, raw_text: str) -> Optional[list]:
        return self._indices(extract_json(raw_text))

    def parse_critique(self, reason: str) -> str:
        return f'CRITIQUE: {reason}. Return only {{"{RANKED_INDICES_KEY}": [...]}} as JSON.'

    def _check(self, indices: list) -> List[str]:
        return check_permutation(range(len(self.achievements)), indices, RANKED_INDICES_KEY)

    def validate(self, parsed: list, ctx: IterationContext, call: AgentCall) -> ValidationResult:
        violations = self._check(parsed)
        if violations:
            return ValidationResult.reject(violations)

        prompt = join_sections(
            f"RANKING:\n{format_json({RANKED_INDICES_KEY: parsed})}",
            f"ANALYSIS:\n{ctx.brief}" if ctx.brief else None,
            f"ACHIEVEMENTS:\n{self._indexed()}",
        )
        return parse_review_verdict(call(self.pipeline.role(REVIEWER), prompt))

    def fallback_parse(self, raw_text: str) -> Optional[list]:
        indices = self._indices(extract_json_lenient(raw_text))
        if indices is not None and not self._check(indices):
            return indices
        return None

    def finalize(self, parsed: list) -> AchievementsSortResult:
        return AchievementsSortResult(
            ranked_indices=list(parsed),
            achievements=[self.achievements[i] for i in parsed],
        )

    def original_output(self) -> AchievementsSortResult:
        return self.finalize(list(range(len(self.achievements))))

    def start_message(self) -> str:
        return "Analyzing job requirements..."

    def complete_message(self, attempts: int) -> str:
        return "Achievements sorted"


def sort_achievements(
    achievements: Sequence[str],
    position: str,
    organization: str,
    job_description: str,
    on_progress: Optional[ProgressSink] = None,
    *,
    backend: Optional[ModelBackend] = None,
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AchievementsSortResult:
    """
    Rank one position's achievements by relevance to a job description.

    Args:
        achievements: Achievement lines in their current order
        position: Job title of the position
        organization: Employer name
        job_description: Target job description
        on_progress: Optional progress sink

    Returns:
        AchievementsSortResult; original order when no valid ranking exists

    Raises:
        BackendFailure: Backend call failed
        PipelineCancelled: Run was cancelled
    """
    achievements = list(achievements)
    if len(achievements) < 2:
        finish_immediately(on_progress, "Nothing to sort")
        return AchievementsSortResult(
            ranked_indices=list(range(len(achievements))), achievements=achievements
        )

    backend, config = resolve_runtime(backend, config)
    settings = config.get_pipeline("achievements_sorting")
    task = AchievementsSortTask(
        achievements,
        position,
        organization,
        job_description,
        max_iterations=settings.max_iterations,
    )

    outcome = run_task(task, backend, settings, on_progress, cancel_event)
    return outcome.output
