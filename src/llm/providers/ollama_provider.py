"""Ollama provider for self-hosted model integration."""

import logging
from typing import Dict, Any, List, Optional

import httpx

from ..base import BaseLLM, translate_http_error
from ..exceptions import PermanentProviderError
from ..tokens import estimate_tokens
from ...models.llm_models import ModelDescriptor

logger = logging.getLogger(__name__)


class OllamaProvider(BaseLLM):
    """
    Ollama provider for self-hosted model access.

    PATTERN: HTTP-based API communication with async httpx
    GOTCHA: Models must be pulled before use with ollama pull
    """

    def __init__(
        self,
        descriptor: ModelDescriptor,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 300.0,
    ):
        """
        Initialize Ollama provider.

        Args:
            descriptor: Model descriptor
            client: Pre-built HTTP client (tests inject one)
            timeout: HTTP timeout; large models load slowly
        """
        super().__init__(descriptor)
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.base_url = descriptor.api_endpoint or "http://localhost:11434"

    async def agenerate(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
        **kwargs: Any,
    ) -> str:
        """
        Generate response using Ollama's /api/chat endpoint.

        Args:
            messages: Chat messages
            max_tokens: Maximum tokens
            temperature: Sampling temperature
            **kwargs: Additional model options

        Returns:
            Generated response text

        Raises:
            TransientProviderError: Timeouts, connection errors, 5xx
            PermanentProviderError: Model missing or other 4xx
        """
        await self.validate_request(messages, max_tokens)

        payload = {
            "model": self.descriptor.model_id,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                **kwargs,
            },
        }

        if max_tokens:
            payload["options"]["num_predict"] = max_tokens

        try:
            response = await self.client.post(
                f"{self.base_url}/api/chat",
                json=payload,
            )
            if response.status_code == 404:
                raise PermanentProviderError(
                    f"Model {self.descriptor.model_id} not available. "
                    f"Run: ollama pull {self.descriptor.model_id}",
                    status_code=404,
                )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            error = translate_http_error(e, "Ollama")
            self.logger.warning(f"Ollama request failed: {error}")
            raise error

        try:
            return data["message"]["content"]
        except (KeyError, TypeError) as e:
            raise PermanentProviderError(f"Malformed Ollama response: {e}")

    def get_num_tokens(self, text: str) -> int:
        """
        Estimate token count for Ollama models.

        GOTCHA: Ollama exposes no tokenizer, this is an approximation

        Args:
            text: Text to count tokens for

        Returns:
            Estimated token count
        """
        return estimate_tokens(text)

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
