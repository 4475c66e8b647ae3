"""Model backend contract and agent value records"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generator, Optional

from pydantic import BaseModel, ConfigDict

from ..errors import BackendFailure

logger = logging.getLogger(__name__)

# Stream chunk types
TEXT_CHUNK = "text"
END_CHUNK = "end"


class Agent(BaseModel):
    """
    A fixed role bound to the model backend.

    Immutable for the lifetime of a pipeline; agents carry no state
    between calls. Invoke through call_agent / stream_agent.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    system_prompt: str


class ModelBackend(ABC):
    """Abstract base class for all model backends"""

    provider: str = "unknown"

    @abstractmethod
    def invoke(self, system_prompt: str, text: str) -> str:
        """
        Run one completion.

        Args:
            system_prompt: System instruction for the role
            text: User message

        Returns:
            Completion text

        Raises:
            BackendFailure: On network, auth or API errors
        """
        pass

    def invoke_stream(
        self, system_prompt: str, text: str
    ) -> Generator[Dict[str, Any], None, None]:
        """
        Stream one completion.

        Backends without native streaming yield the whole completion as a
        single text chunk.

        Yields:
            {"type": "text", "content": str} for each delta, then
            {"type": "end"} once the completion is finished
        """
        yield {"type": TEXT_CHUNK, "content": self.invoke(system_prompt, text)}
        yield {"type": END_CHUNK}


def call_agent(backend: ModelBackend, agent: Agent, text: str) -> str:
    """
    Invoke an agent once and return the completion text.

    Args:
        backend: Model backend to call
        agent: Role to invoke
        text: User message

    Returns:
        Raw completion text
    """
    logger.debug(f"Invoking {agent.name} with {len(text)} chars")
    result = backend.invoke(agent.system_prompt, text)
    logger.debug(f"{agent.name} raw response: {(result or '')[:500]}")
    return result or ""


def stream_agent(
    backend: ModelBackend,
    agent: Agent,
    text: str,
    on_delta: Optional[Callable[[str], None]] = None,
) -> str:
    """
    Invoke an agent through the streaming contract.

    Args:
        backend: Model backend to call
        agent: Role to invoke
        text: User message
        on_delta: Optional callback receiving each text delta

    Returns:
        The assembled completion text

    Raises:
        BackendFailure: If the stream ends without an end-of-stream marker
    """
    collected = []
    for chunk in backend.invoke_stream(agent.system_prompt, text):
        chunk_type = chunk.get("type")
        if chunk_type == END_CHUNK:
            result = "".join(collected)
            logger.debug(f"{agent.name} streamed {len(result)} chars")
            return result
        if chunk_type == TEXT_CHUNK:
            content = chunk.get("content") or ""
            collected.append(content)
            if on_delta and content:
                on_delta(content)

    raise BackendFailure(
        f"stream for {agent.name} ended without end-of-stream marker",
        provider=backend.provider,
    )
