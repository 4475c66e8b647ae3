"""Value records shared by the critique-revise pipelines

Everything here is created fresh per pipeline run and never mutated;
the loop advances by building a new IterationContext.
"""

from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..agent.base import Agent


class ExhaustionPolicy(str, Enum):
    """What a pipeline does once every attempt has been rejected"""
    STRICT = "strict"  # fallback parse must satisfy the invariant, else fail
    SOFT = "soft"  # fallback parse, else return the input unchanged
    BEST_EFFORT = "best_effort"  # return the last attempt with warnings


class OutcomeStatus(str, Enum):
    """Terminal state of a run"""
    APPROVED = "approved"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class PipelineConfig(BaseModel):
    """Roles and loop bound for one pipeline. Role 0 is the generator."""

    model_config = ConfigDict(frozen=True)

    roles: Tuple[Agent, ...]
    max_iterations: int = Field(default=2, ge=0)

    def role(self, name: str) -> Agent:
        """Look up a role by name"""
        for agent in self.roles:
            if agent.name == name:
                return agent
        available = ", ".join(agent.name for agent in self.roles)
        raise KeyError(f"Role '{name}' not found. Available roles: {available}")


class ValidationResult(BaseModel):
    """Verdict for one generation attempt"""

    model_config = ConfigDict(frozen=True)

    approved: bool
    critique: Optional[str] = None
    violations: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def approve(cls, warnings: Optional[Sequence[str]] = None) -> "ValidationResult":
        return cls(approved=True, warnings=list(warnings or []))

    @classmethod
    def reject(
        cls,
        violations: Sequence[str],
        critique: Optional[str] = None,
        warnings: Optional[Sequence[str]] = None,
    ) -> "ValidationResult":
        """Build a rejection; the critique defaults to a bullet list of violations"""
        violations = list(violations)
        if critique is None:
            critique = "CRITIQUE:\n" + "\n".join(f"- {v}" for v in violations)
        return cls(
            approved=False,
            critique=critique,
            violations=violations,
            warnings=list(warnings or []),
        )


class GenerationAttempt(BaseModel):
    """One pass of the loop: what the generator said and how it was judged"""

    model_config = ConfigDict(frozen=True)

    iteration: int
    raw_text: str
    parsed: Optional[Any] = None
    verdict: ValidationResult


class IterationContext(BaseModel):
    """Immutable per-run loop state threaded through the orchestrator"""

    model_config = ConfigDict(frozen=True)

    iteration: int = 0
    brief: Optional[str] = None  # output of the analysis step, if any
    critique: Optional[str] = None
    previous_output: Optional[str] = None
    attempts: Tuple[GenerationAttempt, ...] = ()

    @property
    def is_retry(self) -> bool:
        return self.iteration > 0

    @property
    def last_attempt(self) -> Optional[GenerationAttempt]:
        return self.attempts[-1] if self.attempts else None

    def record(self, attempt: GenerationAttempt) -> "IterationContext":
        """Append an attempt without moving to the next iteration"""
        return self.model_copy(update={"attempts": self.attempts + (attempt,)})

    def advance(self, attempt: GenerationAttempt) -> "IterationContext":
        """Move to the next iteration carrying the attempt's critique forward"""
        return self.model_copy(
            update={
                "iteration": self.iteration + 1,
                "critique": attempt.verdict.critique,
                "previous_output": attempt.raw_text,
                "attempts": self.attempts + (attempt,),
            }
        )


class RunOutcome(BaseModel):
    """Result of one orchestrator run"""

    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    output: Optional[Any] = None
    attempts: Tuple[GenerationAttempt, ...] = ()
    warnings: List[str] = Field(default_factory=list)

    @property
    def approved(self) -> bool:
        return self.status == OutcomeStatus.APPROVED

    @property
    def generation_count(self) -> int:
        return len(self.attempts)
