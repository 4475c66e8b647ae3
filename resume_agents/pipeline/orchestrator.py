"""
Critique-revise orchestrator

Drives a model backend through bounded rounds of
generate -> extract -> validate -> critique -> regenerate and applies the
task's exhaustion policy once every attempt is rejected.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Tuple

from ..agent.base import Agent, ModelBackend, call_agent, stream_agent
from ..agent.factory import BackendFactory
from ..config import Config, PipelineSettings, get_config
from ..errors import ParseFailure, PipelineCancelled, ValidationExhausted
from .models import (
    ExhaustionPolicy,
    GenerationAttempt,
    IterationContext,
    OutcomeStatus,
    PipelineConfig,
    RunOutcome,
    ValidationResult,
)
from .progress import ProgressEmitter, ProgressSink

logger = logging.getLogger(__name__)

# (agent, user message) -> completion text
AgentCall = Callable[[Agent, str], str]

VALIDATOR_STAGE = "validator"
COMPLETE_STAGE = "complete"
FALLBACK_STAGE = "fallback"
CANCELLED_STAGE = "cancelled"
FAILED_STAGE = "failed"


class CritiqueReviseTask(ABC):
    """
    One task's contribution to the critique-revise loop.

    Subclasses supply prompts, parsing and validation; the orchestrator
    owns sequencing, retry bounds, progress and exhaustion handling.
    """

    name: str = "task"
    policy: ExhaustionPolicy = ExhaustionPolicy.BEST_EFFORT

    def __init__(self, pipeline: PipelineConfig):
        self.pipeline = pipeline

    @property
    def generator(self) -> Agent:
        return self.pipeline.roles[0]

    def prepare(self, call: AgentCall) -> Optional[str]:
        """Optional analysis step run once before the loop; returns the brief"""
        return None

    @abstractmethod
    def build_prompt(self, ctx: IterationContext) -> str:
        """Render the generator prompt for this iteration"""

    @abstractmethod
    def extract(self, raw_text: str) -> Optional[Any]:
        """
        Parse generator output.

        Returns None (or raises ParseFailure) when the output is unusable.
        """

    @abstractmethod
    def validate(self, parsed: Any, ctx: IterationContext, call: AgentCall) -> ValidationResult:
        """Deterministic checks, optionally followed by a reviewer agent call"""

    def finalize(self, parsed: Any) -> Any:
        """Convert an accepted parse into the task's output value"""
        return parsed

    def fallback_parse(self, raw_text: str) -> Optional[Any]:
        """Lenient parse of the final output; None unless it satisfies the task invariant"""
        return None

    def original_output(self) -> Any:
        """Output used when a SOFT or BEST_EFFORT task has nothing better"""
        return None

    def usable(self, parsed: Any) -> bool:
        """Whether a rejected parse may still be returned by BEST_EFFORT exhaustion"""
        return True

    def parse_critique(self, reason: str) -> str:
        return f"CRITIQUE: {reason}. Return only the requested output format, with no extra text."

    def start_message(self) -> str:
        return f"Starting {self.name}"

    def complete_message(self, attempts: int) -> str:
        return f"{self.name} approved after {attempts} attempt(s)"


def _first_line(text: Optional[str]) -> str:
    return (text or "").strip().split("\n", 1)[0][:200]


class CritiqueReviseOrchestrator:
    """
    Runs a CritiqueReviseTask against a model backend.

    Runs are sequential with at most one backend call in flight, and hold
    no state across calls to run(). BackendFailure is never retried here;
    transport retries belong to the backend adapter.
    """

    def __init__(self, backend: ModelBackend, stream: bool = False):
        self.backend = backend
        self.stream = stream

    def run(
        self,
        task: CritiqueReviseTask,
        on_progress: Optional[ProgressSink] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunOutcome:
        """
        Execute the loop for one task.

        Args:
            task: Task to run
            on_progress: Optional progress sink, called synchronously
            cancel_event: Optional event checked at stage boundaries

        Returns:
            RunOutcome with status approved, exhausted or cancelled

        Raises:
            ValidationExhausted: STRICT task with no acceptable output
            BackendFailure: Backend call failed
        """
        emitter = ProgressEmitter(on_progress)
        try:
            return self._run(task, emitter, cancel_event)
        except Exception as e:
            if not emitter.finished:
                emitter.finish(FAILED_STAGE, f"{task.name} failed: {e}")
            logger.error(f"{task.name} failed: {e}")
            raise

    def _run(
        self,
        task: CritiqueReviseTask,
        emitter: ProgressEmitter,
        cancel_event: Optional[threading.Event],
    ) -> RunOutcome:
        max_iterations = task.pipeline.max_iterations
        total = max_iterations + 1
        call = self._agent_call(emitter)

        logger.info(f"Starting {task.name} (up to {total} attempts)")
        emitter.emit("start", task.start_message())

        ctx = IterationContext()
        if _is_set(cancel_event):
            return self._cancel(task, ctx, emitter)

        brief = task.prepare(call)
        if brief:
            ctx = ctx.model_copy(update={"brief": brief})

        while ctx.iteration <= max_iterations:
            if _is_set(cancel_event):
                return self._cancel(task, ctx, emitter)

            attempt_no = ctx.iteration + 1
            logger.info(f"{task.name}: attempt {attempt_no}/{total}")
            raw_text = self._generate(
                task.generator,
                task.build_prompt(ctx),
                emitter,
                f"Generating (attempt {attempt_no}/{total})",
            )

            if _is_set(cancel_event):
                return self._cancel(task, ctx, emitter)

            parsed, verdict = self._judge(task, raw_text, ctx, call, emitter)
            attempt = GenerationAttempt(
                iteration=ctx.iteration, raw_text=raw_text, parsed=parsed, verdict=verdict
            )

            if verdict.approved:
                ctx = ctx.record(attempt)
                logger.info(f"{task.name}: approved on attempt {attempt_no}")
                output = task.finalize(parsed)
                emitter.finish(COMPLETE_STAGE, task.complete_message(attempt_no))
                return RunOutcome(
                    status=OutcomeStatus.APPROVED,
                    output=output,
                    attempts=ctx.attempts,
                    warnings=verdict.warnings,
                )

            logger.warning(
                f"{task.name}: attempt {attempt_no} rejected: {_first_line(verdict.critique)}"
            )
            emitter.emit(VALIDATOR_STAGE, f"Attempt {attempt_no} rejected: {_first_line(verdict.critique)}")
            ctx = ctx.advance(attempt)

        return self._exhaust(task, ctx, emitter)

    def _agent_call(self, emitter: ProgressEmitter) -> AgentCall:
        """Agent call used by prepare and reviewer steps"""

        def call(agent: Agent, text: str) -> str:
            emitter.emit(agent.name, f"Running {agent.name}")
            return call_agent(self.backend, agent, text)

        return call

    def _generate(self, agent: Agent, prompt: str, emitter: ProgressEmitter, message: str) -> str:
        emitter.emit(agent.name, message)
        if not self.stream:
            return call_agent(self.backend, agent, prompt)
        return stream_agent(
            self.backend,
            agent,
            prompt,
            on_delta=lambda delta: emitter.emit(agent.name, delta),
        )

    def _judge(
        self,
        task: CritiqueReviseTask,
        raw_text: str,
        ctx: IterationContext,
        call: AgentCall,
        emitter: ProgressEmitter,
    ) -> Tuple[Optional[Any], ValidationResult]:
        reason = "could not parse model output"
        try:
            parsed = task.extract(raw_text)
        except ParseFailure as e:
            parsed = None
            reason = e.reason

        # Unparseable output goes straight back as a critique, no validator or reviewer
        if parsed is None:
            logger.debug(f"{task.name}: parse failure on: {raw_text[:200]}")
            return None, ValidationResult.reject([reason], critique=task.parse_critique(reason))

        emitter.emit(VALIDATOR_STAGE, "Validating output")
        return parsed, task.validate(parsed, ctx, call)

    def _cancel(
        self, task: CritiqueReviseTask, ctx: IterationContext, emitter: ProgressEmitter
    ) -> RunOutcome:
        logger.info(f"{task.name}: cancelled after {len(ctx.attempts)} attempt(s)")
        emitter.finish(CANCELLED_STAGE, f"{task.name} cancelled")
        return RunOutcome(status=OutcomeStatus.CANCELLED, attempts=ctx.attempts)

    def _exhaust(
        self, task: CritiqueReviseTask, ctx: IterationContext, emitter: ProgressEmitter
    ) -> RunOutcome:
        attempts = ctx.attempts
        last = ctx.last_attempt
        logger.warning(f"{task.name}: no approved output after {len(attempts)} attempt(s)")

        if task.policy == ExhaustionPolicy.BEST_EFFORT:
            chosen = next(
                (a for a in reversed(attempts) if a.parsed is not None and task.usable(a.parsed)),
                None,
            )
            if chosen is None:
                output = task.original_output()
                warnings = [f"no usable output after {len(attempts)} attempt(s)"]
            else:
                output = task.finalize(chosen.parsed)
                warnings = list(chosen.verdict.warnings) + [
                    f"not approved after {len(attempts)} attempt(s): {v}"
                    for v in chosen.verdict.violations
                ]
            emitter.finish(FALLBACK_STAGE, f"{task.name} returned its best attempt")
            return RunOutcome(
                status=OutcomeStatus.EXHAUSTED, output=output, attempts=attempts, warnings=warnings
            )

        fallback = task.fallback_parse(last.raw_text) if last is not None else None
        if fallback is not None:
            logger.info(f"{task.name}: fallback parse of the final output accepted")
            emitter.finish(FALLBACK_STAGE, f"{task.name} recovered the final output")
            return RunOutcome(
                status=OutcomeStatus.EXHAUSTED, output=task.finalize(fallback), attempts=attempts
            )

        if task.policy == ExhaustionPolicy.STRICT:
            emitter.finish(FAILED_STAGE, f"{task.name} failed validation")
            raise ValidationExhausted(task.name, attempts)

        logger.warning(f"{task.name}: returning the original input unchanged")
        emitter.finish(FALLBACK_STAGE, f"{task.name} kept the original order")
        return RunOutcome(
            status=OutcomeStatus.EXHAUSTED,
            output=task.original_output(),
            attempts=attempts,
            warnings=[f"kept original input after {len(attempts)} rejected attempt(s)"],
        )


def _is_set(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def resolve_runtime(
    backend: Optional[ModelBackend], config: Optional[Config]
) -> Tuple[ModelBackend, Config]:
    """Fill in the configured backend and config when the caller passed none"""
    if config is None:
        config = get_config()
    if backend is None:
        backend = BackendFactory.create_available(config)
    return backend, config


def run_task(
    task: CritiqueReviseTask,
    backend: ModelBackend,
    settings: PipelineSettings,
    on_progress: Optional[ProgressSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> RunOutcome:
    """
    Run a task and turn a cancelled outcome into PipelineCancelled.

    Raises:
        PipelineCancelled: If cancel_event was set at a stage boundary
    """
    orchestrator = CritiqueReviseOrchestrator(backend, stream=settings.stream)
    outcome = orchestrator.run(task, on_progress=on_progress, cancel_event=cancel_event)
    if outcome.status == OutcomeStatus.CANCELLED:
        raise PipelineCancelled(task.name, outcome.attempts)
    return outcome


def finish_immediately(on_progress: Optional[ProgressSink], message: str) -> None:
    """Emit the single terminal event for a run with nothing to do"""
    ProgressEmitter(on_progress).finish(COMPLETE_STAGE, message)
