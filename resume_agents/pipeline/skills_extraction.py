"""
Job description skill extraction

extractor (brief: comma-separated list) -> verifier (final comma-separated list)

Runs as a single verifier pass by default. When the verifier reply is
unusable the extractor's list is returned.
"""

import logging
import re
import threading
from typing import List, Optional

from ..agent.base import Agent, ModelBackend
from ..config import Config
from ..errors import ParseFailure
from .extraction import extract_text
from .models import ExhaustionPolicy, IterationContext, PipelineConfig, ValidationResult
from .orchestrator import AgentCall, CritiqueReviseTask, resolve_runtime, run_task
from .progress import ProgressSink
from .prompts import job_description_block, join_sections, retry_section

logger = logging.getLogger(__name__)

MAX_SKILLS = 25

EXTRACTOR_PROMPT = (
    "You are a Technical Skill Extractor. Identify the technical skills, technologies and "
    "keywords mentioned in the job description.\n"
    "RULES:\n"
    "1. Extract HARD skills (languages, frameworks, tools, platforms).\n"
    '2. Use professional branding (e.g. "Next.js", "TypeScript").\n'
    "3. Output ONLY a comma-separated list.\n"
    "4. Limit to the top 15-20 terms.\n"
    "5. No introductory text or explanations."
)

VERIFIER_PROMPT = (
    "You are a Technical Skill Verifier. Review a list of extracted skills against a job "
    "description.\n"
    "RULES:\n"
    '1. Remove terms that are NOT technical skills (e.g. "years", "experience", "excellent").\n'
    "2. Use standard naming conventions.\n"
    "3. Add any CRITICAL technical skills from the job description that are missing.\n"
    "4. Output ONLY the final comma-separated list."
)

EXTRACTOR = "extractor"
VERIFIER = "verifier"

_ITEM_SPLIT_RE = re.compile(r"[,\n]+")
_BULLET_RE = re.compile(r"^(?:[-*•]|\d+[.)])\s*")
_LABEL_RE = re.compile(r"^[A-Za-z ]{2,30}:\s*")


def parse_skill_list(text: Optional[str]) -> List[str]:
    """
    Split a comma- or line-separated list into unique skill names.

    Bullets, numbering, a leading "Skills:" style label and trailing
    periods are removed. Duplicates are dropped case-insensitively,
    keeping the first spelling.
    """
    if not text:
        return []

    text = _LABEL_RE.sub("", text.strip(), count=1)
    skills: List[str] = []
    seen = set()
    for item in _ITEM_SPLIT_RE.split(text):
        name = _BULLET_RE.sub("", item.strip()).strip(" \t\"'`").rstrip(".")
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        skills.append(name)
    return skills


def create_skills_extraction_roles() -> tuple:
    return (
        Agent(name=VERIFIER, system_prompt=VERIFIER_PROMPT),
        Agent(name=EXTRACTOR, system_prompt=EXTRACTOR_PROMPT),
    )


class SkillsExtractionTask(CritiqueReviseTask):
    """Extract then verify the technical skills a job description asks for"""

    name = "skills_extraction"
    policy = ExhaustionPolicy.BEST_EFFORT

    def __init__(self, job_description: str, max_iterations: int = 0):
        super().__init__(
            PipelineConfig(
                roles=create_skills_extraction_roles(), max_iterations=max_iterations
            )
        )
        self.job_description = job_description
        self.extracted: List[str] = []

    def prepare(self, call: AgentCall) -> Optional[str]:
        reply = call(self.pipeline.role(EXTRACTOR), job_description_block(self.job_description))
        self.extracted = parse_skill_list(extract_text(reply))
        logger.info(f"Extractor found {len(self.extracted)} skill(s)")
        return ", ".join(self.extracted)

    def build_prompt(self, ctx: IterationContext) -> str:
        return join_sections(
            job_description_block(self.job_description),
            f"EXTRACTED SKILLS: {ctx.brief or '(none)'}",
            "Provide the verified list:",
            retry_section(ctx),
        )

    def extract(self, raw_text: str) -> List[str]:
        skills = parse_skill_list(extract_text(raw_text))
        if not skills:
            raise ParseFailure(raw_text, "expected a comma-separated list of skills")
        return skills

    def validate(self, parsed: List[str], ctx: IterationContext, call: AgentCall) -> ValidationResult:
        if len(parsed) > MAX_SKILLS:
            return ValidationResult.reject(
                [f"too many skills ({len(parsed)}); keep the {MAX_SKILLS} most important"]
            )
        return ValidationResult.approve()

    def original_output(self) -> List[str]:
        return list(self.extracted)

    def start_message(self) -> str:
        return "Extracting key skills from the job description..."

    def complete_message(self, attempts: int) -> str:
        return "Skills extracted and verified"


def extract_skills(
    job_description: str,
    on_progress: Optional[ProgressSink] = None,
    *,
    backend: Optional[ModelBackend] = None,
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[str]:
    """
    List the technical skills a job description asks for.

    Returns:
        Unique skill names in the verifier's order

    Raises:
        ValueError: job_description is empty
        BackendFailure: Backend call failed
        PipelineCancelled: Run was cancelled
    """
    if not job_description or not job_description.strip():
        raise ValueError("Job description is empty")

    backend, config = resolve_runtime(backend, config)
    settings = config.get_pipeline("skills_extraction")
    task = SkillsExtractionTask(job_description, max_iterations=settings.max_iterations)

    outcome = run_task(task, backend, settings, on_progress, cancel_event)
    if not outcome.approved:
        for warning in outcome.warnings:
            logger.warning(f"Skill extraction: {warning}")
    return list(outcome.output)
