"""OpenRouter provider for multi-model access via unified API."""

import logging
from typing import Dict, Any, List, Optional

import httpx

from ..base import BaseLLM, translate_http_error
from ..exceptions import PermanentProviderError
from ...models.llm_models import ModelDescriptor

logger = logging.getLogger(__name__)

DEFAULT_OPENROUTER_ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"


class OpenRouterProvider(BaseLLM):
    """
    OpenRouter provider for accessing multiple models through unified API.

    PATTERN: OpenAI-compatible API with model name translation
    GOTCHA: Model ids require provider prefix (e.g., "anthropic/claude-3-opus")
    """

    def __init__(
        self,
        descriptor: ModelDescriptor,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        """
        Initialize OpenRouter provider.

        Args:
            descriptor: Model descriptor
            api_key: OpenRouter API key
            client: Pre-built HTTP client (tests inject one)
            timeout: HTTP timeout in seconds
        """
        super().__init__(descriptor)
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "X-Title": "LLM Orchestrator",
            },
        )
        self.endpoint = descriptor.api_endpoint or DEFAULT_OPENROUTER_ENDPOINT

    async def agenerate(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
        **kwargs: Any,
    ) -> str:
        """
        Generate response using OpenRouter API.

        Args:
            messages: Chat messages in OpenAI format
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0-2)
            **kwargs: Additional parameters

        Returns:
            Generated response text

        Raises:
            TransientProviderError: Rate limits, 5xx, connection errors
            PermanentProviderError: Other 4xx or malformed payloads
        """
        await self.validate_request(messages, max_tokens)

        payload = {
            "model": self.descriptor.model_id,
            "messages": messages,
            "temperature": temperature,
        }

        if max_tokens:
            payload["max_tokens"] = max_tokens

        payload.update(kwargs)

        try:
            response = await self.client.post(self.endpoint, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            error = translate_http_error(e, "OpenRouter")
            self.logger.warning(f"OpenRouter request failed: {error}")
            raise error

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise PermanentProviderError(f"Malformed OpenRouter response: {e}")

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
