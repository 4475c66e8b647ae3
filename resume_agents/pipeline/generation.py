"""
Full resume generation pipeline

refine job description -> summary (against the refined text)
    -> tailor every work experience (description, achievements, tech stack)

Steps run sequentially and report through one outer progress stream;
the inner pipelines run with no-op sinks.
"""

import logging
import threading
from typing import List, Optional

from pydantic import BaseModel, Field

from ..agent.base import ModelBackend
from ..config import Config
from ..errors import PipelineCancelled
from .experience_tailoring import tailor_experience
from .jd_refinement import refine_text
from .orchestrator import CANCELLED_STAGE, COMPLETE_STAGE, FAILED_STAGE, resolve_runtime
from .progress import ProgressEmitter, ProgressSink
from .summary import CandidateFacts, SummaryResult, WorkExperience, generate_summary

logger = logging.getLogger(__name__)

PIPELINE_STAGE = "pipeline"


class GenerationResult(BaseModel):
    """Everything the generation pipeline produced"""
    refined_job_description: str
    summary: SummaryResult
    work_experience: List[WorkExperience] = Field(default_factory=list)


def run_generation_pipeline(
    facts: CandidateFacts,
    job_description: str,
    on_progress: Optional[ProgressSink] = None,
    *,
    backend: Optional[ModelBackend] = None,
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> GenerationResult:
    """
    Tailor a resume to a job description in one pass.

    Args:
        facts: Candidate skills and work history
        job_description: Raw target job description
        on_progress: Optional progress sink for the whole run

    Returns:
        GenerationResult with the refined JD, summary and tailored experience

    Raises:
        ValueError: job_description is empty
        BackendFailure: Backend call failed
        PipelineCancelled: Run was cancelled
    """
    backend, config = resolve_runtime(backend, config)
    emitter = ProgressEmitter(on_progress)
    total = 2 + len(facts.work_experience)
    step = 0

    def advance(message: str) -> None:
        nonlocal step
        step += 1
        logger.info(f"Generation step {step}/{total}: {message}")
        emitter.emit(PIPELINE_STAGE, f"[{step}/{total}] {message}")

    runtime = {"backend": backend, "config": config, "cancel_event": cancel_event}

    try:
        advance("Refining job description")
        refined = refine_text(job_description, **runtime)

        advance("Writing professional summary")
        summary = generate_summary(facts, refined, **runtime)

        work_experience = []
        count = len(facts.work_experience)
        for i, experience in enumerate(facts.work_experience, 1):
            advance(
                f"Tailoring experience {i} of {count}: "
                f"{experience.position} at {experience.organization}"
            )
            tailored = tailor_experience(experience, refined, **runtime)
            for warning in tailored.warnings:
                logger.warning(f"{experience.position} at {experience.organization}: {warning}")
            work_experience.append(
                experience.model_copy(
                    update={
                        "description": tailored.description,
                        "achievements": tailored.achievements,
                        "tech_stack": tailored.tech_stack,
                    }
                )
            )

    except PipelineCancelled:
        emitter.finish(CANCELLED_STAGE, "Generation cancelled")
        raise
    except Exception as e:
        emitter.finish(FAILED_STAGE, f"Generation failed: {e}")
        raise

    emitter.finish(COMPLETE_STAGE, "Resume content generated")
    return GenerationResult(
        refined_job_description=refined,
        summary=summary,
        work_experience=work_experience,
    )
