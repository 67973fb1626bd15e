"""Base LLM provider abstraction."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional

import httpx

from ..models.llm_models import ModelDescriptor
from .exceptions import (
    PermanentProviderError,
    ProviderError,
    RateLimitError,
    TransientProviderError,
)
from .tokens import count_tokens

logger = logging.getLogger(__name__)

# Status codes worth retrying on the same model
TRANSIENT_STATUS_CODES = {408, 409, 425, 429, 500, 502, 503, 504, 529}


def classify_status(status_code: int, message: str) -> ProviderError:
    """
    Map an HTTP status code to the provider error taxonomy.

    Args:
        status_code: HTTP status returned by the provider
        message: Error message

    Returns:
        RateLimitError for 429, TransientProviderError for other
        retryable codes, PermanentProviderError otherwise
    """
    if status_code == 429:
        return RateLimitError(message, status_code=status_code)
    if status_code in TRANSIENT_STATUS_CODES or status_code >= 500:
        return TransientProviderError(message, status_code=status_code)
    return PermanentProviderError(message, status_code=status_code)


def translate_http_error(error: Exception, provider_name: str) -> ProviderError:
    """
    Translate an httpx exception into the provider error taxonomy.

    Args:
        error: Exception raised by httpx
        provider_name: Provider name for the message

    Returns:
        Provider error to raise
    """
    if isinstance(error, ProviderError):
        return error
    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(
            error.response.status_code,
            f"{provider_name} API error: {error.response.text or error}",
        )
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return TransientProviderError(f"{provider_name} connection error: {error}")
    return PermanentProviderError(f"{provider_name} unexpected error: {error}")


class BaseLLM(ABC):
    """
    Abstract base class for all LLM providers.

    Adapters form a closed set selected by the descriptor's provider field;
    each one exposes the same generate capability and raises only
    TransientProviderError or PermanentProviderError.
    """

    def __init__(self, descriptor: ModelDescriptor):
        """
        Initialize LLM provider.

        Args:
            descriptor: Catalogue entry of the model this adapter serves
        """
        self.descriptor = descriptor
        self.logger = logging.getLogger(f"{__name__}.{descriptor.model_id}")

    @property
    def model_id(self) -> str:
        return self.descriptor.model_id

    @abstractmethod
    async def agenerate(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
        **kwargs: Any,
    ) -> str:
        """
        Generate a response asynchronously.

        CRITICAL: This is the only suspension point of a request attempt
        CRITICAL: Never retry here, the fallback engine owns retries

        Args:
            messages: Chat messages in OpenAI format
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0-2)
            **kwargs: Additional provider-specific parameters

        Returns:
            Generated text response

        Raises:
            TransientProviderError: Rate limits, 5xx, connection errors
            PermanentProviderError: Validation errors, other 4xx
        """
        pass

    def get_num_tokens(self, text: str) -> int:
        """
        Count tokens in text.

        Args:
            text: Text to count tokens for

        Returns:
            Number of tokens
        """
        return count_tokens(text)

    async def validate_request(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
    ) -> None:
        """
        Validate request before sending to API.

        Args:
            messages: Chat messages
            max_tokens: Maximum tokens

        Raises:
            PermanentProviderError: When the request cannot fit the context window
        """
        total_tokens = sum(
            self.get_num_tokens(msg.get("content", ""))
            for msg in messages
        )

        if max_tokens:
            total_tokens += max_tokens

        if total_tokens > self.descriptor.context_window:
            raise PermanentProviderError(
                f"Request exceeds context window: {total_tokens} > "
                f"{self.descriptor.context_window}"
            )

        self.logger.debug(f"Request validated: {total_tokens} tokens")

    def calculate_cost(
        self,
        input_tokens: int,
        output_tokens: int,
    ) -> float:
        """
        Calculate cost for request.

        Args:
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens

        Returns:
            Total cost in USD
        """
        input_cost = (input_tokens / 1000) * self.descriptor.cost_per_1k_input
        output_cost = (output_tokens / 1000) * self.descriptor.cost_per_1k_output
        return input_cost + output_cost

    async def close(self) -> None:
        """Release client resources."""
        pass
