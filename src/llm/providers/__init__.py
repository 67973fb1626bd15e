"""LLM provider implementations."""

import logging
from typing import Optional

from ..base import BaseLLM
from ...models.llm_models import ModelDescriptor, ModelProvider
from .anthropic_provider import AnthropicProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider
from .openrouter_provider import OpenRouterProvider

logger = logging.getLogger(__name__)


def create_provider(descriptor: ModelDescriptor, config) -> Optional[BaseLLM]:
    """
    Build the adapter for a descriptor's provider.

    CRITICAL: Missing API keys skip the model instead of failing startup

    Args:
        descriptor: Model descriptor
        config: OrchestratorConfig holding credentials and endpoints

    Returns:
        Provider adapter, or None if the provider is not configured
    """
    provider = descriptor.provider

    if provider == ModelProvider.OLLAMA:
        if not descriptor.api_endpoint:
            descriptor = descriptor.model_copy(
                update={"api_endpoint": config.ollama_host}
            )
        return OllamaProvider(descriptor)

    if provider == ModelProvider.OPENAI:
        if not config.openai_api_key:
            logger.warning(f"OpenAI API key not configured, skipping {descriptor.model_id}")
            return None
        return OpenAIProvider(descriptor, api_key=config.openai_api_key)

    if provider == ModelProvider.ANTHROPIC:
        if not config.anthropic_api_key:
            logger.warning(f"Anthropic API key not configured, skipping {descriptor.model_id}")
            return None
        return AnthropicProvider(descriptor, api_key=config.anthropic_api_key)

    if provider == ModelProvider.OPENROUTER:
        if not config.openrouter_api_key:
            logger.warning(f"OpenRouter API key not configured, skipping {descriptor.model_id}")
            return None
        return OpenRouterProvider(descriptor, api_key=config.openrouter_api_key)

    logger.warning(f"Unknown provider: {provider}")
    return None


__all__ = [
    "AnthropicProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "create_provider",
]
