"""Tests for performance monitoring."""

from datetime import datetime, timedelta

import pytest
from unittest.mock import Mock
from src.llm.performance import NEUTRAL_SCORE, MetricsStore, PerformanceMonitor
from src.models.llm_models import (
    ModelDescriptor,
    ModelProvider,
    TaskComplexity,
    TaskType,
    TimeSensitivity,
)
from src.models.routing_models import PerformanceSample, TaskRequirements


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestMetricsStore:
    """Test suite for MetricsStore."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = MetricsStore(window=timedelta(days=7))

    def test_no_data(self):
        """Test aggregate returns None without samples."""
        assert self.store.aggregate("m", "general") is None

    def test_aggregate(self):
        """Test success rate, latency and error rate aggregation."""
        self.store.record("m", TaskType.GENERAL, PerformanceSample(success=True, latency_ms=100))
        self.store.record("m", TaskType.GENERAL, PerformanceSample(success=True, latency_ms=300))
        self.store.record("m", TaskType.GENERAL, PerformanceSample(success=False, error_type="RateLimitError"))
        self.store.record(
            "m",
            TaskType.GENERAL,
            PerformanceSample(success=False, error_type="PermanentProviderError", permanent_error=True),
        )

        record = self.store.aggregate("m", "general")

        assert record.sample_count == 4
        assert record.success_rate == 0.5
        assert record.average_latency_ms == 200
        assert record.error_rate == 0.25
        assert record.quality_rating == NEUTRAL_SCORE

    def test_keyed_by_task_type(self):
        """Test samples for different task types are separate."""
        self.store.record("m", "planning", PerformanceSample(success=True, latency_ms=50))

        assert self.store.aggregate("m", "planning") is not None
        assert self.store.aggregate("m", "debugging") is None

    def test_samples_outside_window_ignored(self):
        """Test old samples fall out of the window."""
        old = datetime.now() - timedelta(days=8)
        self.store.record("m", "general", PerformanceSample(success=False, timestamp=old))
        self.store.record("m", "general", PerformanceSample(success=True, latency_ms=10))

        record = self.store.aggregate("m", "general")

        assert record.sample_count == 1
        assert record.success_rate == 1.0

    def test_quality_ratings(self):
        """Test quality ratings are averaged and clamped."""
        self.store.record("m", "general", PerformanceSample(success=True, latency_ms=10))
        self.store.record_quality("m", "general", 1.0)
        self.store.record_quality("m", "general", 0.0)
        self.store.record_quality("m", "general", 5.0)

        record = self.store.aggregate("m", "general")

        assert record.quality_rating == pytest.approx(2 / 3)


class TestPerformanceMonitor:
    """Test suite for PerformanceMonitor."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.store = MetricsStore()
        self.monitor = PerformanceMonitor(store=self.store, refresh_interval=60, clock=self.clock)
        self.model = ModelDescriptor(model_id="m", provider=ModelProvider.OPENAI, context_window=8192)
        self.requirements = TaskRequirements(
            task_type=TaskType.CODE_GENERATION,
            complexity=TaskComplexity.MEDIUM,
        )

    def test_neutral_without_data(self):
        """Test unknown pairs get the neutral score."""
        assert self.monitor.get_score(self.model, self.requirements) == NEUTRAL_SCORE

    def test_good_track_record_scores_high(self):
        """Test a fast, reliable model scores near 1."""
        for _ in range(5):
            self.monitor.record_success("m", "code_generation", latency_ms=500)
        self.monitor.record_quality("m", "code_generation", 1.0)

        score = self.monitor.get_score(self.model, self.requirements)

        assert score == pytest.approx(1.0)

    def test_failures_lower_score(self):
        """Test failures reduce the score."""
        self.monitor.record_success("m", "code_generation", latency_ms=500)
        healthy = self.monitor.get_score(self.model, self.requirements)

        self.monitor.invalidate()
        for _ in range(3):
            self.monitor.record_failure("m", "code_generation", "PermanentProviderError", permanent=True)
        degraded = self.monitor.get_score(self.model, self.requirements)

        assert degraded < healthy

    def test_score_in_unit_interval(self):
        """Test the score stays within [0, 1]."""
        for _ in range(10):
            self.monitor.record_failure("m", "code_generation", "PermanentProviderError", permanent=True)

        score = self.monitor.get_score(self.model, self.requirements)

        assert 0.0 <= score <= 1.0

    def test_cached_until_refresh_interval(self):
        """Test scores are cached and refreshed lazily."""
        first = self.monitor.get_score(self.model, self.requirements)
        self.monitor.record_failure("m", "code_generation", "PermanentProviderError", permanent=True)

        assert self.monitor.get_score(self.model, self.requirements) == first

        self.clock.now += 61
        assert self.monitor.get_score(self.model, self.requirements) < first

    def test_stale_score_served_on_refresh_failure(self):
        """Test a failing refresh returns the last known score."""
        self.monitor.record_success("m", "code_generation", latency_ms=500)
        known = self.monitor.get_score(self.model, self.requirements)

        self.monitor.store = Mock()
        self.monitor.store.aggregate.side_effect = RuntimeError("store unavailable")
        self.clock.now += 61

        assert self.monitor.get_score(self.model, self.requirements) == known

    def test_latency_score_depends_on_time_sensitivity(self):
        """Test the same latency scores lower for urgent requests."""
        relaxed = PerformanceMonitor.latency_score(5000, TimeSensitivity.LOW)
        urgent = PerformanceMonitor.latency_score(5000, TimeSensitivity.CRITICAL)

        assert relaxed == 1.0
        assert urgent == pytest.approx(0.2)

    def test_task_type_weights_override(self):
        """Test per task type weights are merged and normalized."""
        monitor = PerformanceMonitor(
            weights_by_task_type={"debugging": {"success": 1.0, "latency": 0.0, "quality": 0.0, "reliability": 0.0}},
        )

        weights = monitor.get_weights(TaskType.DEBUGGING)

        assert weights["success"] == pytest.approx(1.0)
        assert sum(monitor.get_weights("general").values()) == pytest.approx(1.0)

    def test_get_record(self):
        """Test raw records are exposed."""
        self.monitor.record_success("m", "code_generation", latency_ms=250)

        record = self.monitor.get_record("m", "code_generation")

        assert record.sample_count == 1
        assert record.average_latency_ms == 250
