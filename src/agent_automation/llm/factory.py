"""Factory for creating LLM providers from model selectors."""

from __future__ import annotations

import logging

from agent_automation.config import AppSettings
from agent_automation.errors import ConfigurationError
from agent_automation.llm.openai_provider import OpenAIProvider
from agent_automation.llm.provider import LLMProvider

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = frozenset({"openai"})


def parse_model_selector(selector: str) -> tuple[str, str]:
    """Split ``provider/model`` into its parts.

    A bare model name is treated as an OpenAI model.

    Raises:
        ConfigurationError: If the selector is empty or names an unknown provider.
    """
    value = selector.strip()
    if not value:
        raise ConfigurationError("Model selector must not be empty")

    provider, sep, model = value.partition("/")
    if not sep:
        provider, model = "openai", value
    provider = provider.strip().lower()
    model = model.strip()

    if provider not in SUPPORTED_PROVIDERS:
        raise ConfigurationError(f"Unsupported model provider: {provider!r} (in {selector!r})")
    if not model:
        raise ConfigurationError(f"Model selector {selector!r} does not name a model")
    return provider, model


class LLMFactory:
    """Factory for creating LLM provider instances."""

    @staticmethod
    def create(selector: str, settings: AppSettings) -> LLMProvider:
        """Create an LLM provider for a model selector.

        Args:
            selector: Model selector such as ``openai/gpt-4o-mini``.
            settings: Application settings providing credentials.

        Returns:
            Configured LLM provider instance.
        """
        provider, model = parse_model_selector(selector)
        logger.info("Creating LLM provider", extra={"provider": provider, "model": model})

        return OpenAIProvider(
            model=model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        )
