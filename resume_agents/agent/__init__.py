"""Model backends and agent value records"""

from .base import Agent, ModelBackend, call_agent, stream_agent
from .claude_backend import ClaudeBackend
from .factory import BackendFactory
from .openai_backend import OpenAIBackend

__all__ = [
    "Agent",
    "ModelBackend",
    "call_agent",
    "stream_agent",
    "OpenAIBackend",
    "ClaudeBackend",
    "BackendFactory",
]
