"""
Flat technology list sorting pipeline

optimizer (relevance analysis) -> scribe (JSON array) -> permutation check -> retry

When no attempt is valid the list comes back in its original order.
"""

import logging
import threading
from typing import List, Optional, Sequence

from ..agent.base import Agent, ModelBackend
from ..config import Config
from ..errors import ParseFailure
from .extraction import extract_json, extract_json_lenient, json_type_name
from .models import ExhaustionPolicy, IterationContext, PipelineConfig, ValidationResult
from .orchestrator import (
    AgentCall,
    CritiqueReviseTask,
    finish_immediately,
    resolve_runtime,
    run_task,
)
from .permutation import SortSnapshot, validate_flat_permutation
from .progress import ProgressSink
from .prompts import format_bullets, format_json, job_description_block, join_sections, retry_section

logger = logging.getLogger(__name__)

OPTIMIZER_PROMPT = (
    "You are a Tech Stack Optimization Expert (The Brain). Decide the most relevant order for "
    "a list of technologies given a job description.\n"
    "RULES:\n"
    "1. Technologies named in the job description come first.\n"
    "2. Technologies closely related to the job requirements come next.\n"
    "3. Never drop or rename a technology.\n"
    "OUTPUT: a short markdown report listing the technologies in order, each with a brief reason."
)

SCRIBE_PROMPT = (
    "You are a Data Architect (The Scribe). Convert the tech stack analysis into a STRICT JSON "
    "array of strings.\n"
    "RULES:\n"
    "1. Use EXACTLY the original technologies, each once, spelled exactly as given.\n"
    "2. Output a valid JSON array of strings only. No preamble, no markdown code blocks.\n"
    'TARGET FORMAT:\n["tech1", "tech2", "tech3"]'
)

OPTIMIZER = "optimizer"
SCRIBE = "scribe"


def create_tech_stack_roles() -> tuple:
    return (
        Agent(name=SCRIBE, system_prompt=SCRIBE_PROMPT),
        Agent(name=OPTIMIZER, system_prompt=OPTIMIZER_PROMPT),
    )


class TechStackSortTask(CritiqueReviseTask):
    """Flat permutation sort that never loses the caller's data"""

    name = "tech_stack_sorting"
    policy = ExhaustionPolicy.SOFT

    def __init__(self, snapshot: SortSnapshot, job_description: str, max_iterations: int = 2):
        super().__init__(
            PipelineConfig(roles=create_tech_stack_roles(), max_iterations=max_iterations)
        )
        self.snapshot = snapshot
        self.job_description = job_description

    def prepare(self, call: AgentCall) -> Optional[str]:
        prompt = join_sections(
            job_description_block(self.job_description),
            f"TECHNOLOGIES:\n{format_bullets(self.snapshot.items)}",
        )
        return call(self.pipeline.role(OPTIMIZER), prompt).strip()

    def build_prompt(self, ctx: IterationContext) -> str:
        return join_sections(
            f"ORIGINAL TECHNOLOGIES:\n{format_json(list(self.snapshot.items))}",
            f"OPTIMIZATION ANALYSIS:\n{ctx.brief}" if ctx.brief else None,
            retry_section(ctx),
        )

    def extract(self, raw_text: str) -> list:
        parsed = extract_json(raw_text)
        if parsed is None:
            raise ParseFailure(raw_text, "output was not valid JSON")
        if not isinstance(parsed, list):
            raise ParseFailure(
                raw_text, f"expected a JSON array, got {json_type_name(parsed)}"
            )
        return parsed

    def parse_critique(self, reason: str) -> str:
        return f"CRITIQUE: {reason}. Return a single JSON array of strings and nothing else."

    def validate(self, parsed: list, ctx: IterationContext, call: AgentCall) -> ValidationResult:
        return validate_flat_permutation(self.snapshot, parsed)

    def fallback_parse(self, raw_text: str) -> Optional[list]:
        parsed = extract_json_lenient(raw_text)
        if isinstance(parsed, list) and validate_flat_permutation(self.snapshot, parsed).approved:
            return parsed
        return None

    def original_output(self) -> List[str]:
        return list(self.snapshot.items)

    def start_message(self) -> str:
        return "Analyzing tech stack relevance..."

    def complete_message(self, attempts: int) -> str:
        return "Tech stack sorted"


def sort_flat_list(
    items: Sequence[str],
    job_description: str,
    on_progress: Optional[ProgressSink] = None,
    *,
    backend: Optional[ModelBackend] = None,
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[str]:
    """
    Reorder a flat technology list by job relevance.

    Args:
        items: Technologies in their current order
        job_description: Target job description
        on_progress: Optional progress sink

    Returns:
        A permutation of items; the original order when no valid ordering
        was produced

    Raises:
        BackendFailure: Backend call failed
        PipelineCancelled: Run was cancelled
    """
    items = list(items)
    if not items:
        finish_immediately(on_progress, "No technologies to sort")
        return []

    backend, config = resolve_runtime(backend, config)
    settings = config.get_pipeline("tech_stack_sorting")
    task = TechStackSortTask(
        SortSnapshot.of_items(items), job_description, max_iterations=settings.max_iterations
    )

    outcome = run_task(task, backend, settings, on_progress, cancel_event)
    return list(outcome.output)
