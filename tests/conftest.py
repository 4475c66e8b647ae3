"""Shared fixtures: a scripted model backend and a progress recorder"""

from typing import List, Sequence, Tuple, Union

import pytest

from resume_agents.agent.base import ModelBackend
from resume_agents.config import Config
from resume_agents.pipeline.progress import ProgressEvent


class FakeBackend(ModelBackend):
    """
    Returns queued responses in order and records every call.

    A queued Exception instance is raised instead of returned.
    """

    provider = "fake"

    def __init__(self, responses: Sequence[Union[str, Exception]] = ()):
        self.responses = list(responses)
        self.calls: List[Tuple[str, str]] = []

    def queue(self, *responses: Union[str, Exception]) -> "FakeBackend":
        self.responses.extend(responses)
        return self

    def invoke(self, system_prompt: str, text: str) -> str:
        self.calls.append((system_prompt, text))
        if not self.responses:
            raise AssertionError(f"Unexpected backend call #{len(self.calls)}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def calls_for(self, system_prompt: str) -> List[str]:
        """User messages sent with the given system prompt"""
        return [text for prompt, text in self.calls if prompt == system_prompt]


class ProgressRecorder:
    """Progress sink that keeps every event"""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def done_events(self) -> List[ProgressEvent]:
        return [e for e in self.events if e.done]

    def assert_single_final_done(self) -> None:
        assert len(self.done_events) == 1
        assert self.events[-1].done


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def progress():
    return ProgressRecorder()
