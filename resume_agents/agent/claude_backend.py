"""Claude backend implementation"""

import logging
from typing import Any, Dict, Generator, Optional

from anthropic import Anthropic, AnthropicError

from ..config import get_config
from ..errors import BackendFailure
from .base import END_CHUNK, TEXT_CHUNK, ModelBackend

logger = logging.getLogger(__name__)


class ClaudeBackend(ModelBackend):
    """Backend using the Anthropic messages API"""

    provider = "claude"

    def __init__(
        self,
        config=None,
        model: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        """
        Initialize Claude backend.

        Args:
            config: Optional configuration object
            model: Claude model identifier, defaults to config.model.claude.model
            client: Pre-built Anthropic client (mainly for tests)
        """
        if config is None:
            config = get_config()

        self.config = config
        self.settings = config.model.claude
        self.model = model or self.settings.model

        if client is None:
            api_key = config.get_api_key("claude")
            if not api_key:
                raise ValueError(
                    "ANTHROPIC_API_KEY not found in environment variables"
                )

            client = Anthropic(
                api_key=api_key,
                timeout=self.settings.timeout,
                max_retries=self.settings.max_retries,
            )

        self.client = client

        logger.info(f"Initialized ClaudeBackend with model: {self.model}")

    def _build_params(self, system_prompt: str, text: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "system": system_prompt,
            "messages": [{"role": "user", "content": text}],
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
        }

    def invoke(self, system_prompt: str, text: str) -> str:
        """Call Claude API"""
        try:
            response = self.client.messages.create(
                **self._build_params(system_prompt, text)
            )
        except AnthropicError as e:
            logger.error(f"Claude request failed: {e}")
            raise BackendFailure(str(e), provider=self.provider) from e

        return "".join(
            block.text for block in response.content if hasattr(block, "text")
        )

    def invoke_stream(
        self, system_prompt: str, text: str
    ) -> Generator[Dict[str, Any], None, None]:
        """Stream Claude's reply as text deltas"""
        try:
            with self.client.messages.stream(
                **self._build_params(system_prompt, text)
            ) as stream:
                for delta in stream.text_stream:
                    if delta:
                        yield {"type": TEXT_CHUNK, "content": delta}
        except AnthropicError as e:
            logger.error(f"Claude streaming request failed: {e}")
            raise BackendFailure(str(e), provider=self.provider) from e

        yield {"type": END_CHUNK}
