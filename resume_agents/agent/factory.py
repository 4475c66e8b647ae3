"""Backend factory for creating provider-specific model backends"""

import logging
from typing import Optional

from .base import ModelBackend
from .claude_backend import ClaudeBackend
from .openai_backend import OpenAIBackend
from ..config import get_config, Config

logger = logging.getLogger(__name__)


class BackendFactory:
    """Factory for creating the appropriate backend based on provider selection"""

    @staticmethod
    def create(
        provider: str,
        config: Optional[Config] = None,
    ) -> ModelBackend:
        """
        Create a backend instance for the specified provider.

        Args:
            provider: Provider or model identifier (e.g., "openai", "gpt-4o", "claude")
            config: Optional configuration object

        Returns:
            Backend instance

        Raises:
            ValueError: If provider is not supported
        """
        if config is None:
            config = get_config()

        provider_lower = provider.lower()

        # OpenAI and OpenAI-compatible endpoints
        if "gpt" in provider_lower or "openai" in provider_lower:
            logger.info(f"Creating OpenAIBackend for: {provider}")
            return OpenAIBackend(
                config=config,
                model=provider if provider_lower.startswith("gpt") else None,
            )

        # Claude
        elif "claude" in provider_lower or "anthropic" in provider_lower:
            logger.info(f"Creating ClaudeBackend for: {provider}")
            return ClaudeBackend(
                config=config,
                model=provider if provider_lower.startswith("claude-") else None,
            )

        else:
            raise ValueError(
                f"Unsupported provider: {provider}. "
                f"Supported: openai (gpt-*, OpenAI-compatible), claude"
            )

    @staticmethod
    def create_primary(config: Optional[Config] = None) -> ModelBackend:
        """Create backend using the primary provider from config"""
        if config is None:
            config = get_config()

        logger.info(f"Creating primary backend: {config.model.primary}")
        return BackendFactory.create(config.model.primary, config)

    @staticmethod
    def create_fallback(config: Optional[Config] = None) -> ModelBackend:
        """
        Create backend using the fallback provider from config.

        Raises:
            ValueError: If no fallback provider is configured
        """
        if config is None:
            config = get_config()

        if not config.model.fallback:
            raise ValueError("No fallback provider configured")

        logger.info(f"Creating fallback backend: {config.model.fallback}")
        return BackendFactory.create(config.model.fallback, config)

    @staticmethod
    def create_available(config: Optional[Config] = None) -> ModelBackend:
        """
        Create the primary backend, or the fallback when the primary cannot be built.

        A primary provider without credentials raises ValueError on construction;
        in that case the configured fallback provider is used instead.

        Raises:
            ValueError: If neither provider can be created
        """
        if config is None:
            config = get_config()

        try:
            return BackendFactory.create_primary(config)
        except ValueError as e:
            if not config.model.fallback:
                raise
            logger.warning(f"Primary backend unavailable ({e}); using fallback")
            return BackendFactory.create_fallback(config)
