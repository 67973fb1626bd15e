"""OpenAI provider for GPT model access."""

import logging
from typing import Dict, Any, List, Optional

import openai
import tiktoken
from openai import AsyncOpenAI

from ..base import BaseLLM, classify_status
from ..exceptions import PermanentProviderError, RateLimitError, TransientProviderError
from ...models.llm_models import ModelDescriptor

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLM):
    """
    OpenAI provider for GPT model access.

    PATTERN: Official OpenAI SDK with async client
    GOTCHA: SDK retries are disabled, the fallback engine owns retries
    """

    def __init__(
        self,
        descriptor: ModelDescriptor,
        api_key: str,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            descriptor: Model descriptor
            api_key: OpenAI API key
            client: Pre-built client (tests inject one)
        """
        super().__init__(descriptor)
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=descriptor.api_endpoint,
            max_retries=0,
        )

        try:
            self.tokenizer = tiktoken.encoding_for_model(descriptor.model_id)
        except Exception:
            # Newer or unknown models: defer to the shared counter
            self.tokenizer = None

    async def agenerate(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
        **kwargs: Any,
    ) -> str:
        """
        Generate response using OpenAI API.

        Args:
            messages: Chat messages in OpenAI format
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0-2)
            **kwargs: Additional parameters

        Returns:
            Generated response text

        Raises:
            TransientProviderError: Rate limits, 5xx, connection errors
            PermanentProviderError: Other API errors
        """
        await self.validate_request(messages, max_tokens)

        try:
            response = await self.client.chat.completions.create(
                model=self.descriptor.model_id,
                messages=messages,
                max_tokens=max_tokens or self.descriptor.max_output_tokens,
                temperature=temperature,
                **kwargs,
            )
            return response.choices[0].message.content or ""

        except openai.RateLimitError as e:
            self.logger.warning(f"Rate limited: {e}")
            raise RateLimitError(f"OpenAI rate limit: {e}", status_code=429)
        except (openai.APITimeoutError, openai.APIConnectionError) as e:
            self.logger.warning(f"OpenAI connection error: {e}")
            raise TransientProviderError(f"OpenAI connection error: {e}")
        except openai.APIStatusError as e:
            self.logger.error(f"OpenAI API error: {e}")
            raise classify_status(e.status_code, f"OpenAI API error: {e}")
        except openai.OpenAIError as e:
            self.logger.error(f"OpenAI client error: {e}")
            raise PermanentProviderError(f"OpenAI client error: {e}")

    def get_num_tokens(self, text: str) -> int:
        """
        Count tokens using the model's own tokenizer when known.

        Args:
            text: Text to count tokens for

        Returns:
            Token count
        """
        if self.tokenizer is not None:
            return len(self.tokenizer.encode(text))
        return super().get_num_tokens(text)

    async def close(self) -> None:
        """Close OpenAI client."""
        await self.client.close()
