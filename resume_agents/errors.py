"""Error taxonomy for the critique-revise pipelines"""

from typing import Any, List, Optional, Sequence


class PipelineError(Exception):
    """Base class for errors surfaced by a pipeline run"""


class ValidationExhausted(PipelineError):
    """
    Raised by strict pipelines when no attempt passed validation.

    Carries the full attempt history so the failure can be reproduced:
    every raw output together with the critique it received.
    """

    def __init__(self, task: str, attempts: Sequence[Any]):
        self.task = task
        self.attempts = list(attempts)
        super().__init__(self._format_message())

    @property
    def critiques(self) -> List[str]:
        """Critique text of every attempt, in order"""
        return [attempt.verdict.critique or "" for attempt in self.attempts]

    def _format_message(self) -> str:
        lines = [
            f"{self.task}: no valid result after {len(self.attempts)} attempt(s)"
        ]
        for attempt in self.attempts:
            critique = (attempt.verdict.critique or "").replace("\n", " ")
            lines.append(f"  attempt {attempt.iteration + 1}: {critique[:300]}")
        return "\n".join(lines)


class ParseFailure(PipelineError):
    """
    Model output could not be turned into structured data.

    Recovered inside the loop as an implicit critique; never leaves a run.
    """

    def __init__(self, raw_text: str, reason: Optional[str] = None):
        self.raw_text = raw_text
        self.reason = reason or "could not parse model output"
        super().__init__(self.reason)


class BackendFailure(PipelineError):
    """The model backend failed (network, auth, malformed stream). Not retried here."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        prefix = f"{provider}: " if provider else ""
        super().__init__(f"{prefix}{message}")


class PipelineCancelled(PipelineError):
    """The caller cancelled the run at a stage boundary"""

    def __init__(self, task: str, attempts: Sequence[Any] = ()):
        self.task = task
        self.attempts = list(attempts)
        super().__init__(f"{task}: cancelled after {len(self.attempts)} attempt(s)")
