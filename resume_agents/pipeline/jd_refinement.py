"""
Job description refinement pipeline

refiner -> section grammar check -> reviewer (only if the grammar passes) -> retry
"""

import logging
import threading
from typing import Optional

from ..agent.base import Agent, ModelBackend
from ..config import Config
from .extraction import extract_text
from .models import ExhaustionPolicy, IterationContext, PipelineConfig, ValidationResult
from .orchestrator import AgentCall, CritiqueReviseTask, resolve_runtime, run_task
from .progress import ProgressSink
from .prompts import join_sections, retry_section
from .review import parse_review_verdict
from .section_grammar import validate_section_grammar

logger = logging.getLogger(__name__)

REFINER_PROMPT = (
    "You are a Professional Job Description Refiner. Extract and reformat a raw job "
    "description into a strict, clean format.\n"
    "RULES:\n"
    "- Use ONLY `#` for section titles and `-` for list items. No bold, no italics, no "
    "sub-headers, no numbered lists.\n"
    "- Produce exactly these sections, in this order:\n"
    "  # position-title\n"
    "  (the job title, one line)\n\n"
    "  # core-responsibilities\n"
    "  (short list, at most 5 items, no repetition)\n\n"
    "  # desired-qualifications\n"
    "  (short list, at most 5 items, no repetition)\n\n"
    "  # required-skills\n"
    "  (technology and tool names only, e.g. Next.js, Linux, GCP, CI/CD; no sentences)\n"
    "Return ONLY the refined job description."
)

REVIEWER_PROMPT = (
    "You are a Job Description Quality Critic. Review the job description against these "
    "criteria:\n"
    "1. Only `#` and `-` markdown used?\n"
    "2. Exactly 4 sections: position-title, core-responsibilities, desired-qualifications, "
    "required-skills?\n"
    "3. core-responsibilities and desired-qualifications have at most 5 items each?\n"
    "4. required-skills lists technology names only?\n"
    "5. Content is faithful to the original job description, with nothing invented?\n"
    'If everything passes start with "APPROVED". Otherwise list critiques starting with "CRITIQUE:".'
)

REFINER = "refiner"
REVIEWER = "reviewer"


def create_jd_roles() -> tuple:
    return (
        Agent(name=REFINER, system_prompt=REFINER_PROMPT),
        Agent(name=REVIEWER, system_prompt=REVIEWER_PROMPT),
    )


class JDRefinementTask(CritiqueReviseTask):
    """Reformat free text into the four-section grammar"""

    name = "jd_refinement"
    policy = ExhaustionPolicy.BEST_EFFORT

    def __init__(self, raw_text: str, max_iterations: int = 2):
        super().__init__(PipelineConfig(roles=create_jd_roles(), max_iterations=max_iterations))
        self.raw_text = raw_text

    def build_prompt(self, ctx: IterationContext) -> str:
        return join_sections(
            f"RAW JOB DESCRIPTION:\n{self.raw_text.strip()}",
            retry_section(ctx),
        )

    def extract(self, raw_text: str) -> Optional[str]:
        return extract_text(raw_text)

    def validate(self, parsed: str, ctx: IterationContext, call: AgentCall) -> ValidationResult:
        grammar = validate_section_grammar(parsed)
        if not grammar.approved:
            return grammar

        prompt = join_sections(
            f"ORIGINAL JOB DESCRIPTION:\n{self.raw_text.strip()}",
            f"REFINED JOB DESCRIPTION:\n{parsed}",
        )
        return parse_review_verdict(call(self.pipeline.role(REVIEWER), prompt))

    def original_output(self) -> str:
        return self.raw_text.strip()

    def start_message(self) -> str:
        return "Refining job description..."

    def complete_message(self, attempts: int) -> str:
        return "Job description refined"


def refine_text(
    raw_text: str,
    on_progress: Optional[ProgressSink] = None,
    *,
    backend: Optional[ModelBackend] = None,
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """
    Reformat a raw job description into the fixed section grammar.

    Args:
        raw_text: Job description as pasted by the user
        on_progress: Optional progress sink

    Returns:
        The refined text; the best attempt when none was approved

    Raises:
        ValueError: raw_text is empty
        BackendFailure: Backend call failed
        PipelineCancelled: Run was cancelled
    """
    if not raw_text or not raw_text.strip():
        raise ValueError("Job description text is empty")

    backend, config = resolve_runtime(backend, config)
    settings = config.get_pipeline("jd_refinement")
    task = JDRefinementTask(raw_text, max_iterations=settings.max_iterations)

    outcome = run_task(task, backend, settings, on_progress, cancel_event)
    if not outcome.approved:
        logger.warning(f"Job description refinement not approved: {outcome.warnings[:3]}")
    return outcome.output
