"""Tests for shared state under concurrent requests."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest
from unittest.mock import AsyncMock, Mock
from src.llm.base import BaseLLM
from src.llm.exceptions import PermanentProviderError
from src.llm.fallback import FallbackEngine
from src.llm.performance import MetricsStore, PerformanceMonitor
from src.llm.registry import ModelRegistry
from src.models.llm_models import (
    LLMResponse,
    ModelDescriptor,
    ModelProvider,
    TaskConstraints,
    TaskRequest,
    TaskType,
)
from src.models.routing_models import RoutingDecision
from src.services.cost_tracking_service import CostTracker

WORKERS = 8


class SlowProvider(BaseLLM):
    """Mock provider that yields to the event loop before answering."""

    def __init__(self, model_id: str, error=None):
        """Initialize slow provider."""
        super().__init__(
            ModelDescriptor(
                model_id=model_id,
                provider=ModelProvider.OPENAI,
                context_window=8192,
                cost_per_1k_input=0.001,
                cost_per_1k_output=0.002,
            )
        )
        self.error = error

    async def agenerate(self, messages, max_tokens=None, temperature=0.7, **kwargs):
        """Mock generation."""
        await asyncio.sleep(0.01)
        if self.error is not None:
            raise self.error
        return f"Response from {self.model_id}"

    def get_num_tokens(self, text: str) -> int:
        """Mock token counting."""
        return len(text.split())


class TestThreadedUpdates:
    """Test lock-guarded stores under a thread pool."""

    def test_metrics_store_counts_every_sample(self):
        """Test concurrent success and failure records are all kept."""
        monitor = PerformanceMonitor(store=MetricsStore())
        total = 400

        def record(i: int) -> None:
            if i % 4 == 0:
                monitor.record_failure("gpt-4o-mini", "debugging", "RateLimitError", permanent=False)
            else:
                monitor.record_success("gpt-4o-mini", "debugging", latency_ms=100.0)

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            list(pool.map(record, range(total)))

        aggregate = monitor.get_record("gpt-4o-mini", "debugging")
        assert aggregate.sample_count == total
        assert aggregate.success_rate == pytest.approx(0.75)

    def test_cost_tracker_sums_exactly(self):
        """Test concurrent spend adds up with no lost updates."""
        tracker = CostTracker(daily_budget=1000.0)
        total = 400
        response = LLMResponse(
            content="ok",
            model_used="gpt-4o-mini",
            provider=ModelProvider.OPENAI,
            input_tokens=10,
            output_tokens=5,
            total_cost=0.25,
        )

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            list(pool.map(lambda _: tracker.track_request(response, TaskType.TESTING), range(total)))

        assert tracker.daily_cost == 100.0
        assert tracker.total_requests == total
        assert tracker.model_metrics["gpt-4o-mini"].total_requests == total
        assert tracker.task_type_requests["testing"] == total


class TestConcurrentRequests:
    """Test requests sharing one engine keep independent executions."""

    def setup_method(self):
        """Set up test fixtures."""
        self.count = 6
        self.providers = {"flaky": SlowProvider("flaky", error=PermanentProviderError("bad request"))}
        for i in range(self.count):
            self.providers[f"backup-{i}"] = SlowProvider(f"backup-{i}")

        self.registry = ModelRegistry(
            models=[p.descriptor for p in self.providers.values()],
            default_model_id="flaky",
        )
        decision_service = Mock()
        decision_service.decide.side_effect = lambda request: RoutingDecision(
            selected_model_id="flaky", reason="scored",
        )
        self.monitor = PerformanceMonitor(store=MetricsStore())
        self.tracker = CostTracker()
        self.engine = FallbackEngine(
            decision_service=decision_service,
            registry=self.registry,
            providers=self.providers,
            performance_monitor=self.monitor,
            cost_tracker=self.tracker,
            sleep=AsyncMock(),
        )

    @pytest.mark.asyncio
    async def test_attempts_belong_to_their_request(self):
        """Test interleaved requests never see each other's attempts."""
        requests = [
            TaskRequest(
                task_type=TaskType.GENERAL,
                constraints=TaskConstraints(fallback_models=[f"backup-{i}"]),
            )
            for i in range(self.count)
        ]
        messages = [{"role": "user", "content": "Hello"}]

        responses = await asyncio.gather(
            *(self.engine.handle_request(r, messages) for r in requests)
        )

        for i, response in enumerate(responses):
            assert response.model_used == f"backup-{i}"
            assert response.fallback_used is True
            assert [a.model_id for a in response.attempts] == ["flaky", f"backup-{i}"]
            assert response.attempts[0].executions == 1
            assert response.attempts[1].succeeded is True

        assert self.monitor.get_record("flaky", "general").sample_count == self.count
        assert self.tracker.total_requests == self.count
