"""OpenAI backend for OpenAI and OpenAI-compatible endpoints"""

import logging
from typing import Any, Dict, Generator, List, Optional

from openai import OpenAI, OpenAIError

from ..config import get_config
from ..errors import BackendFailure
from .base import END_CHUNK, TEXT_CHUNK, ModelBackend

logger = logging.getLogger(__name__)


class OpenAIBackend(ModelBackend):
    """Backend using the OpenAI chat completions API (also LM Studio, vLLM, etc.)"""

    provider = "openai"

    def __init__(
        self,
        config=None,
        model: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        """
        Initialize OpenAI backend.

        Args:
            config: Optional configuration object
            model: Model identifier, defaults to config.model.openai.model
            client: Pre-built OpenAI client (mainly for tests)
        """
        if config is None:
            config = get_config()

        self.config = config
        self.settings = config.model.openai
        self.model = model or self.settings.model

        if client is None:
            api_key = config.get_api_key("openai")
            if not api_key:
                if not self.settings.base_url:
                    raise ValueError(
                        "OPENAI_API_KEY not found in environment variables"
                    )
                # Local OpenAI-compatible servers still need a non-empty key
                api_key = "not-needed"

            client = OpenAI(
                api_key=api_key,
                base_url=self.settings.base_url,
                timeout=self.settings.timeout,
                max_retries=self.settings.max_retries,
            )

        self.client = client

        logger.info(f"Initialized OpenAIBackend with model: {self.model}")

    def _build_params(self, system_prompt: str, text: str) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": text},
        ]
        return {
            "model": self.model,
            "messages": messages,
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }

    def invoke(self, system_prompt: str, text: str) -> str:
        """Call the chat completions API"""
        try:
            response = self.client.chat.completions.create(
                **self._build_params(system_prompt, text)
            )
        except OpenAIError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise BackendFailure(str(e), provider=self.provider) from e

        if not response.choices:
            raise BackendFailure("response contained no choices", provider=self.provider)

        return response.choices[0].message.content or ""

    def invoke_stream(
        self, system_prompt: str, text: str
    ) -> Generator[Dict[str, Any], None, None]:
        """Stream the chat completion as text deltas"""
        params = self._build_params(system_prompt, text)
        params["stream"] = True

        try:
            stream = self.client.chat.completions.create(**params)

            collected_chars = 0
            for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    collected_chars += len(content)
                    yield {"type": TEXT_CHUNK, "content": content}

        except OpenAIError as e:
            logger.error(f"OpenAI streaming request failed: {e}")
            raise BackendFailure(str(e), provider=self.provider) from e

        logger.debug(f"OpenAI stream complete: {collected_chars} chars")
        yield {"type": END_CHUNK}
