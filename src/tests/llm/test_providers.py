"""Tests for provider adapters and error classification."""

import json

import httpx
import openai
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from src.llm.base import classify_status, translate_http_error
from src.llm.exceptions import (
    PermanentProviderError,
    RateLimitError,
    TransientProviderError,
)
from src.llm.providers import (
    AnthropicProvider,
    OllamaProvider,
    OpenAIProvider,
    create_provider,
)
from src.models.llm_models import DeploymentMode, ModelDescriptor, ModelProvider

MESSAGES = [
    {"role": "system", "content": "Be brief."},
    {"role": "user", "content": "Say hi"},
]


def make_descriptor(provider: ModelProvider, model_id: str = "m", **kwargs) -> ModelDescriptor:
    fields = {"context_window": 8192, "cost_per_1k_input": 0.001, "cost_per_1k_output": 0.002}
    fields.update(kwargs)
    return ModelDescriptor(model_id=model_id, provider=provider, **fields)


class TestErrorClassification:
    """Test mapping of HTTP failures to the error taxonomy."""

    @pytest.mark.parametrize("status", [408, 500, 502, 503, 504, 529, 599])
    def test_transient_statuses(self, status):
        """Test retryable status codes."""
        error = classify_status(status, "boom")

        assert isinstance(error, TransientProviderError)
        assert error.status_code == status

    def test_rate_limit(self):
        """Test 429 is a rate limit, which is transient."""
        error = classify_status(429, "slow down")

        assert isinstance(error, RateLimitError)
        assert isinstance(error, TransientProviderError)

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_permanent_statuses(self, status):
        """Test non-retryable client errors."""
        assert isinstance(classify_status(status, "nope"), PermanentProviderError)

    def test_translate_connection_error(self):
        """Test transport failures are transient."""
        error = translate_http_error(httpx.ConnectError("refused"), "Test")

        assert isinstance(error, TransientProviderError)

    def test_translate_status_error(self):
        """Test HTTP status errors use the status code."""
        request = httpx.Request("POST", "http://test")
        response = httpx.Response(401, request=request, text="bad key")
        error = httpx.HTTPStatusError("401", request=request, response=response)

        translated = translate_http_error(error, "Test")

        assert isinstance(translated, PermanentProviderError)
        assert "bad key" in str(translated)


class TestBaseLLM:
    """Test shared adapter behavior."""

    def setup_method(self):
        """Set up test fixtures."""
        self.provider = OllamaProvider(
            make_descriptor(ModelProvider.OLLAMA, context_window=100),
            client=Mock(),
        )

    @pytest.mark.asyncio
    async def test_validate_request_overflow(self):
        """Test oversize requests fail permanently before any call."""
        messages = [{"role": "user", "content": "word " * 200}]

        with pytest.raises(PermanentProviderError):
            await self.provider.validate_request(messages)

    @pytest.mark.asyncio
    async def test_validate_request_counts_max_tokens(self):
        """Test the requested output counts against the window."""
        messages = [{"role": "user", "content": "short"}]

        await self.provider.validate_request(messages)
        with pytest.raises(PermanentProviderError):
            await self.provider.validate_request(messages, max_tokens=200)

    def test_calculate_cost(self):
        """Test cost from per-1k pricing."""
        assert self.provider.calculate_cost(2000, 1000) == pytest.approx(0.004)


class TestOllamaProvider:
    """Test suite for OllamaProvider."""

    def _provider(self, handler) -> OllamaProvider:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return OllamaProvider(
            make_descriptor(ModelProvider.OLLAMA, "qwen2.5-coder:14b", api_endpoint="http://ollama:11434"),
            client=client,
        )

    @pytest.mark.asyncio
    async def test_generate(self):
        """Test a successful chat call."""
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "hi"}})

        provider = self._provider(handler)
        content = await provider.agenerate(MESSAGES, max_tokens=20, temperature=0.1)

        assert content == "hi"
        assert seen["url"] == "http://ollama:11434/api/chat"
        assert seen["payload"]["options"]["num_predict"] == 20
        assert seen["payload"]["stream"] is False
        await provider.close()

    @pytest.mark.asyncio
    async def test_missing_model_is_permanent(self):
        """Test 404 means the model was never pulled."""
        provider = self._provider(lambda request: httpx.Response(404, json={"error": "not found"}))

        with pytest.raises(PermanentProviderError):
            await provider.agenerate(MESSAGES)

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        """Test 5xx responses are retryable."""
        provider = self._provider(lambda request: httpx.Response(503, text="loading"))

        with pytest.raises(TransientProviderError):
            await provider.agenerate(MESSAGES)

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        """Test unexpected payloads are permanent errors."""
        provider = self._provider(lambda request: httpx.Response(200, json={"done": True}))

        with pytest.raises(PermanentProviderError):
            await provider.agenerate(MESSAGES)


class TestAnthropicProvider:
    """Test suite for AnthropicProvider."""

    @pytest.mark.asyncio
    async def test_system_prompt_and_content_blocks(self):
        """Test system prompts move to the top-level field."""
        seen = {}

        def handler(request):
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={
                "content": [
                    {"type": "text", "text": "Hello"},
                    {"type": "text", "text": " there"},
                ],
            })

        provider = AnthropicProvider(
            make_descriptor(ModelProvider.ANTHROPIC, "claude-3-5-haiku-latest"),
            api_key="test-key",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        content = await provider.agenerate(MESSAGES, temperature=1.5)

        assert content == "Hello there"
        assert seen["payload"]["system"] == "Be brief."
        assert seen["payload"]["messages"] == [{"role": "user", "content": "Say hi"}]
        assert seen["payload"]["temperature"] == 1.0
        assert seen["payload"]["max_tokens"] == 4096

    @pytest.mark.asyncio
    async def test_overloaded_is_transient(self):
        """Test Anthropic's overload status is retryable."""
        provider = AnthropicProvider(
            make_descriptor(ModelProvider.ANTHROPIC),
            api_key="test-key",
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(529, text="overloaded"))
            ),
        )

        with pytest.raises(TransientProviderError):
            await provider.agenerate(MESSAGES)


class TestOpenAIProvider:
    """Test suite for OpenAIProvider."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = Mock()
        self.client.chat.completions.create = AsyncMock()
        self.provider = OpenAIProvider(
            make_descriptor(ModelProvider.OPENAI, "gpt-4o-mini"),
            api_key="test-key",
            client=self.client,
        )

    @pytest.mark.asyncio
    async def test_generate(self):
        """Test content is read from the first choice."""
        self.client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Hello"))]
        )

        assert await self.provider.agenerate(MESSAGES) == "Hello"

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        """Test SDK rate limit errors are translated."""
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        self.client.chat.completions.create.side_effect = openai.RateLimitError(
            "rate limited",
            response=httpx.Response(429, request=request),
            body=None,
        )

        with pytest.raises(RateLimitError):
            await self.provider.agenerate(MESSAGES)

    @pytest.mark.asyncio
    async def test_bad_request_is_permanent(self):
        """Test 4xx SDK errors are permanent."""
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        self.client.chat.completions.create.side_effect = openai.BadRequestError(
            "bad request",
            response=httpx.Response(400, request=request),
            body=None,
        )

        with pytest.raises(PermanentProviderError):
            await self.provider.agenerate(MESSAGES)


class TestCreateProvider:
    """Test adapter construction from descriptors."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = SimpleNamespace(
            ollama_host="http://ollama:11434",
            openai_api_key=None,
            anthropic_api_key="test-key",
            openrouter_api_key=None,
        )

    def test_ollama_always_available(self):
        """Test self-hosted models need no credentials."""
        descriptor = make_descriptor(ModelProvider.OLLAMA, deployment=DeploymentMode.SELF_HOSTED)

        provider = create_provider(descriptor, self.config)

        assert isinstance(provider, OllamaProvider)
        assert provider.base_url == "http://ollama:11434"

    def test_missing_key_skips_model(self):
        """Test hosted models without a key get no adapter."""
        assert create_provider(make_descriptor(ModelProvider.OPENAI), self.config) is None
        assert create_provider(make_descriptor(ModelProvider.OPENROUTER), self.config) is None

    def test_configured_provider(self):
        """Test hosted models with a key get their adapter."""
        provider = create_provider(make_descriptor(ModelProvider.ANTHROPIC), self.config)

        assert isinstance(provider, AnthropicProvider)
