"""Critique-Revise Pipelines

Every task runs through the same bounded loop:

1. Prepare (optional): an analysis agent writes a brief
2. Generate: the generator agent drafts the output
3. Extract: fault-tolerant parsing (JSON or plain text)
4. Validate: deterministic checks, then a reviewer agent for some tasks
5. Critique: a rejection is fed back into the next generation attempt

At most max_iterations + 1 drafts are generated. When none is approved
the task's exhaustion policy decides between a fallback, the original
input, the best attempt, or ValidationExhausted.
"""

from .achievements import AchievementsSortResult, sort_achievements
from .cover_letter import CoverLetterResult, generate_cover_letter
from .experience_tailoring import TailoredExperience, tailor_experience
from .generation import GenerationResult, run_generation_pipeline
from .jd_refinement import refine_text
from .job_title import generate_job_title
from .models import (
    ExhaustionPolicy,
    GenerationAttempt,
    IterationContext,
    OutcomeStatus,
    PipelineConfig,
    RunOutcome,
    ValidationResult,
)
from .orchestrator import CritiqueReviseOrchestrator, CritiqueReviseTask
from .progress import ProgressEmitter, ProgressEvent
from .skills_extraction import extract_skills
from .skills_sorting import SkillGroup, SkillsSortResult, sort_skill_groups
from .summary import CandidateFacts, SummaryResult, WorkExperience, generate_summary
from .tech_stack import sort_flat_list

__all__ = [
    "CritiqueReviseOrchestrator",
    "CritiqueReviseTask",
    "ExhaustionPolicy",
    "GenerationAttempt",
    "IterationContext",
    "OutcomeStatus",
    "PipelineConfig",
    "RunOutcome",
    "ValidationResult",
    "ProgressEmitter",
    "ProgressEvent",
    "CandidateFacts",
    "WorkExperience",
    "SummaryResult",
    "generate_summary",
    "SkillGroup",
    "SkillsSortResult",
    "sort_skill_groups",
    "sort_flat_list",
    "refine_text",
    "AchievementsSortResult",
    "sort_achievements",
    "generate_job_title",
    "TailoredExperience",
    "tailor_experience",
    "CoverLetterResult",
    "generate_cover_letter",
    "extract_skills",
    "GenerationResult",
    "run_generation_pipeline",
]
