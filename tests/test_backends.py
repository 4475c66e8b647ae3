from contextlib import contextmanager
from types import SimpleNamespace

import pytest
from anthropic import AnthropicError
from openai import OpenAIError

from resume_agents.agent.base import END_CHUNK, TEXT_CHUNK, Agent, ModelBackend, call_agent, stream_agent
from resume_agents.agent.claude_backend import ClaudeBackend
from resume_agents.agent.factory import BackendFactory
from resume_agents.agent.openai_backend import OpenAIBackend
from resume_agents.config import Config
from resume_agents.errors import BackendFailure
from resume_agents.pipeline.orchestrator import resolve_runtime

AGENT = Agent(name="writer", system_prompt="You write.")


class FakeOpenAIClient:
    """Mimics client.chat.completions.create for plain and streamed calls"""

    def __init__(self, content="hello", deltas=(), error=None):
        self.content = content
        self.deltas = deltas
        self.error = error
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **params):
        self.requests.append(params)
        if self.error:
            raise self.error
        if params.get("stream"):
            return iter(
                SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=d))])
                for d in self.deltas
            )
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeAnthropicClient:
    """Mimics client.messages.create and client.messages.stream"""

    def __init__(self, blocks=("hello",), deltas=(), error=None):
        self.blocks = blocks
        self.deltas = deltas
        self.error = error
        self.requests = []
        self.messages = SimpleNamespace(create=self._create, stream=self._stream)

    def _create(self, **params):
        self.requests.append(params)
        if self.error:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(text=b) for b in self.blocks])

    @contextmanager
    def _stream(self, **params):
        self.requests.append(params)
        if self.error:
            raise self.error
        yield SimpleNamespace(text_stream=iter(self.deltas))


def test_openai_invoke_sends_system_and_user_messages(config):
    client = FakeOpenAIClient(content="done")
    backend = OpenAIBackend(config=config, client=client)

    assert backend.invoke("system", "user text") == "done"
    request = client.requests[0]
    assert request["model"] == "gpt-4o-mini"
    assert request["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "user text"},
    ]


def test_openai_errors_become_backend_failures(config):
    backend = OpenAIBackend(config=config, client=FakeOpenAIClient(error=OpenAIError("rate limited")))

    with pytest.raises(BackendFailure, match="openai: rate limited"):
        backend.invoke("system", "text")


def test_openai_stream_ends_with_marker(config):
    backend = OpenAIBackend(config=config, client=FakeOpenAIClient(deltas=["Hel", None, "lo"]))

    chunks = list(backend.invoke_stream("system", "text"))

    assert chunks == [
        {"type": TEXT_CHUNK, "content": "Hel"},
        {"type": TEXT_CHUNK, "content": "lo"},
        {"type": END_CHUNK},
    ]


def test_claude_invoke_joins_text_blocks(config):
    client = FakeAnthropicClient(blocks=("Hello, ", "world"))
    backend = ClaudeBackend(config=config, client=client)

    assert backend.invoke("system", "text") == "Hello, world"
    assert client.requests[0]["system"] == "system"
    assert client.requests[0]["messages"] == [{"role": "user", "content": "text"}]


def test_claude_errors_become_backend_failures(config):
    backend = ClaudeBackend(config=config, client=FakeAnthropicClient(error=AnthropicError("overloaded")))

    with pytest.raises(BackendFailure) as exc_info:
        list(backend.invoke_stream("system", "text"))
    assert exc_info.value.provider == "claude"


def test_stream_agent_collects_deltas(config):
    backend = ClaudeBackend(config=config, client=FakeAnthropicClient(deltas=["a", "b", "c"]))
    deltas = []

    assert stream_agent(backend, AGENT, "text", on_delta=deltas.append) == "abc"
    assert deltas == ["a", "b", "c"]


class TruncatedBackend(ModelBackend):
    provider = "truncated"

    def invoke(self, system_prompt, text):
        return "unused"

    def invoke_stream(self, system_prompt, text):
        yield {"type": TEXT_CHUNK, "content": "partial"}


def test_stream_without_end_marker_fails():
    with pytest.raises(BackendFailure, match="end-of-stream"):
        stream_agent(TruncatedBackend(), AGENT, "text")


def test_default_stream_wraps_invoke():
    backend = TruncatedBackend()
    assert list(ModelBackend.invoke_stream(backend, "s", "t")) == [
        {"type": TEXT_CHUNK, "content": "unused"},
        {"type": END_CHUNK},
    ]
    assert call_agent(backend, AGENT, "text") == "unused"


def test_factory_maps_providers(config, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")

    assert isinstance(BackendFactory.create("openai", config), OpenAIBackend)
    assert BackendFactory.create("gpt-4o", config).model == "gpt-4o"
    assert isinstance(BackendFactory.create("claude", config), ClaudeBackend)
    assert BackendFactory.create("claude-opus-4", config).model == "claude-opus-4"
    assert isinstance(BackendFactory.create_primary(config), OpenAIBackend)
    assert isinstance(BackendFactory.create_fallback(config), ClaudeBackend)


def test_factory_rejects_unknown_provider(config):
    with pytest.raises(ValueError, match="Unsupported provider"):
        BackendFactory.create("llama", config)


def test_missing_api_key_is_reported(config, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
        ClaudeBackend(config=config)


def test_missing_primary_key_uses_fallback(config, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")

    assert isinstance(BackendFactory.create_available(config), ClaudeBackend)


def test_missing_keys_without_fallback_raise(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    config = Config(model={"primary": "openai", "fallback": None})

    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        BackendFactory.create_available(config)


def test_resolve_runtime_prefers_primary(config, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    backend, resolved = resolve_runtime(None, config)

    assert isinstance(backend, OpenAIBackend)
    assert resolved is config
