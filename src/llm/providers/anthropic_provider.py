"""Anthropic provider using the Messages HTTP API."""

import logging
from typing import Dict, Any, List, Optional, Tuple

import httpx

from ..base import BaseLLM, translate_http_error
from ..exceptions import PermanentProviderError
from ...models.llm_models import ModelDescriptor

logger = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_ENDPOINT = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"


class AnthropicProvider(BaseLLM):
    """
    Anthropic provider for Claude models.

    PATTERN: Plain httpx calls against the Messages API
    GOTCHA: System prompts travel in a top-level field, not as messages
    GOTCHA: max_tokens is mandatory
    """

    def __init__(
        self,
        descriptor: ModelDescriptor,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 120.0,
    ):
        """
        Initialize Anthropic provider.

        Args:
            descriptor: Model descriptor
            api_key: Anthropic API key
            client: Pre-built HTTP client (tests inject one)
            timeout: HTTP timeout in seconds
        """
        super().__init__(descriptor)
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_API_VERSION,
            },
        )
        self.endpoint = descriptor.api_endpoint or DEFAULT_ANTHROPIC_ENDPOINT

    @staticmethod
    def split_system(
        messages: List[Dict[str, str]],
    ) -> Tuple[str, List[Dict[str, str]]]:
        """Separate system messages from the conversation."""
        system_parts = [
            m.get("content", "") for m in messages if m.get("role") == "system"
        ]
        conversation = [
            {"role": m["role"], "content": m.get("content", "")}
            for m in messages
            if m.get("role") in ("user", "assistant")
        ]
        return "\n\n".join(p for p in system_parts if p), conversation

    async def agenerate(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
        **kwargs: Any,
    ) -> str:
        """
        Generate response using the Messages API.

        Args:
            messages: Chat messages in OpenAI format
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (clamped to 0-1)
            **kwargs: Additional parameters

        Returns:
            Generated response text

        Raises:
            TransientProviderError: Rate limits, overload, 5xx, connection errors
            PermanentProviderError: Other 4xx or malformed payloads
        """
        await self.validate_request(messages, max_tokens)

        system, conversation = self.split_system(messages)
        payload: Dict[str, Any] = {
            "model": self.descriptor.model_id,
            "messages": conversation,
            "max_tokens": max_tokens or self.descriptor.max_output_tokens,
            "temperature": min(temperature, 1.0),
        }
        if system:
            payload["system"] = system

        payload.update(kwargs)

        try:
            response = await self.client.post(self.endpoint, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            error = translate_http_error(e, "Anthropic")
            self.logger.warning(f"Anthropic request failed: {error}")
            raise error

        try:
            return "".join(
                block.get("text", "")
                for block in data["content"]
                if block.get("type") == "text"
            )
        except (KeyError, TypeError) as e:
            raise PermanentProviderError(f"Malformed Anthropic response: {e}")

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
