"""
Skill group sorting pipeline

brain (relevance analysis) -> scribe (strict JSON) -> permutation check -> retry

The result must contain every original group and every original skill
under its original group, only reordered. Technologies the model thinks
are missing are returned separately as suggestions.
"""

import logging
import threading
from typing import Dict, List, Mapping, Optional, Sequence, Union

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
from .permutation import (
    GROUP_ORDER_KEY,
    MISSING_SKILLS_KEY,
    SKILL_ORDER_KEY,
    SortSnapshot,
    validate_group_permutation,
)
from .progress import ProgressSink
from .prompts import format_json, job_description_block, join_sections, retry_section

logger = logging.getLogger(__name__)

BRAIN_PROMPT = (
    "You are a Skill Sorting Expert (The Brain). Analyze the job description and decide the "
    "most relevant order for the candidate's resume skills.\n"
    "RULES:\n"
    "1. Order the skill groups by relevance to the job description.\n"
    "2. Order the skills inside each group by relevance.\n"
    "3. List technologies the job description asks for that are not in the current skills.\n"
    "4. Never drop, rename or move a skill to another group.\n"
    "OUTPUT: a short markdown report. No JSON yet."
)

SCRIBE_PROMPT = (
    "You are a Data Architect (The Scribe). Convert the analysis and the original data into "
    "STRICT JSON.\n"
    "RULES:\n"
    "1. Follow the order from the analysis.\n"
    "2. Include EVERY original group and EVERY original skill exactly once, under its original "
    "group, spelled exactly as given.\n"
    "3. Put suggested new technologies ONLY in missingSkills, never in skillOrder.\n"
    "4. Output valid JSON only. No preamble, no markdown code blocks.\n"
    "TARGET FORMAT:\n"
    '{"groupOrder": ["Group 1", "Group 2"], '
    '"skillOrder": {"Group 1": ["skillA", "skillB"], "Group 2": ["skillC"]}, '
    '"missingSkills": ["skillX"]}'
)

BRAIN = "brain"
SCRIBE = "scribe"


class SkillGroup(BaseModel):
    """A titled group of skills as it appears on the resume"""
    title: str
    skills: List[str] = Field(default_factory=list)


class SkillsSortResult(BaseModel):
    """Reordered skills plus suggestions that are not part of the ordering"""
    group_order: List[str] = Field(default_factory=list)
    skill_order: Dict[str, List[str]] = Field(default_factory=dict)
    missing_skills: List[str] = Field(default_factory=list)


SkillGroupsInput = Union[Mapping[str, Sequence[str]], Sequence[SkillGroup]]


def normalize_groups(groups: SkillGroupsInput) -> Dict[str, List[str]]:
    """
    Accept a mapping or a list of SkillGroup and return an ordered mapping.

    Raises:
        ValueError: If two groups share a title
    """
    if isinstance(groups, Mapping):
        return {title: list(skills) for title, skills in groups.items()}

    normalized: Dict[str, List[str]] = {}
    for group in groups:
        if group.title in normalized:
            raise ValueError(f"Duplicate skill group title: {group.title!r}")
        normalized[group.title] = list(group.skills)
    return normalized


def create_skills_roles() -> tuple:
    return (
        Agent(name=SCRIBE, system_prompt=SCRIBE_PROMPT),
        Agent(name=BRAIN, system_prompt=BRAIN_PROMPT),
    )


class SkillsSortTask(CritiqueReviseTask):
    """Grouped permutation sort; fails loudly when no valid ordering is produced"""

    name = "skills_sorting"
    policy = ExhaustionPolicy.STRICT

    def __init__(self, snapshot: SortSnapshot, job_description: str, max_iterations: int = 2):
        super().__init__(PipelineConfig(roles=create_skills_roles(), max_iterations=max_iterations))
        self.snapshot = snapshot
        self.job_description = job_description

    def _skills_json(self) -> str:
        data = [{"title": name, "skills": list(items)} for name, items in self.snapshot.groups]
        return format_json(data)

    def prepare(self, call: AgentCall) -> Optional[str]:
        prompt = join_sections(
            job_description_block(self.job_description),
            f"CURRENT SKILLS:\n{self._skills_json()}",
        )
        return call(self.pipeline.role(BRAIN), prompt).strip()

    def build_prompt(self, ctx: IterationContext) -> str:
        return join_sections(
            f"ORIGINAL DATA:\n{self._skills_json()}",
            f"OPTIMIZATION ANALYSIS:\n{ctx.brief}" if ctx.brief else None,
            retry_section(ctx),
        )

    def extract(self, raw_text: str) -> Optional[dict]:
        parsed = extract_json(raw_text)
        return parsed if isinstance(parsed, dict) else None

    def parse_critique(self, reason: str) -> str:
        return (
            f"CRITIQUE: {reason}. Return a single JSON object with "
            f"{GROUP_ORDER_KEY} and {SKILL_ORDER_KEY}, and nothing else."
        )

    def validate(self, parsed: dict, ctx: IterationContext, call: AgentCall) -> ValidationResult:
        return validate_group_permutation(self.snapshot, parsed)

    def fallback_parse(self, raw_text: str) -> Optional[dict]:
        parsed = extract_json_lenient(raw_text)
        if validate_group_permutation(self.snapshot, parsed).approved:
            return parsed
        return None

    def finalize(self, parsed: dict) -> SkillsSortResult:
        existing = {
            skill.casefold() for _, items in self.snapshot.groups for skill in items
        }
        suggestions: List[str] = []
        for skill in parsed.get(MISSING_SKILLS_KEY) or []:
            skill = skill.strip()
            if skill and skill.casefold() not in existing and skill not in suggestions:
                suggestions.append(skill)

        return SkillsSortResult(
            group_order=list(parsed[GROUP_ORDER_KEY]),
            skill_order={name: list(parsed[SKILL_ORDER_KEY][name]) for name in parsed[GROUP_ORDER_KEY]},
            missing_skills=suggestions,
        )

    def start_message(self) -> str:
        return "Analyzing skill relevance..."

    def complete_message(self, attempts: int) -> str:
        return "Skills sorted"


def sort_skill_groups(
    groups: SkillGroupsInput,
    job_description: str,
    on_progress: Optional[ProgressSink] = None,
    *,
    backend: Optional[ModelBackend] = None,
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SkillsSortResult:
    """
    Reorder skill groups and the skills inside them by job relevance.

    Args:
        groups: Mapping of group title to skills, or a list of SkillGroup
        job_description: Target job description
        on_progress: Optional progress sink

    Returns:
        SkillsSortResult whose ordering is a permutation of the input

    Raises:
        ValueError: Duplicate group titles
        ValidationExhausted: No attempt produced a valid permutation
        BackendFailure: Backend call failed
        PipelineCancelled: Run was cancelled
    """
    normalized = normalize_groups(groups)
    if not normalized:
        finish_immediately(on_progress, "No skills to sort")
        return SkillsSortResult()

    backend, config = resolve_runtime(backend, config)
    settings = config.get_pipeline("skills_sorting")
    task = SkillsSortTask(
        SortSnapshot.of_groups(normalized),
        job_description,
        max_iterations=settings.max_iterations,
    )

    outcome = run_task(task, backend, settings, on_progress, cancel_event)
    return outcome.output
