"""Performance monitoring: rolling per-model, per-task-type metrics and scores."""

import logging
import threading
import time
from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Deque, Dict, Optional, Tuple

from ..models.llm_models import ModelDescriptor, TimeSensitivity, enum_value
from ..models.routing_models import (
    PerformanceRecord,
    PerformanceSample,
    TaskRequirements,
)

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5

# Latency (ms) at or below which a model earns a full latency score
EXPECTED_LATENCY_MS = {
    TimeSensitivity.LOW.value: 30000.0,
    TimeSensitivity.NORMAL.value: 10000.0,
    TimeSensitivity.HIGH.value: 3000.0,
    TimeSensitivity.CRITICAL.value: 1000.0,
}

DEFAULT_SCORE_WEIGHTS = {
    "success": 0.4,
    "latency": 0.3,
    "quality": 0.2,
    "reliability": 0.1,
}

MetricsKey = Tuple[str, str]


class MetricsStore:
    """
    Shared store of execution samples keyed by (model id, task type).

    PATTERN: One store injected into every monitor and handler
    CRITICAL: All mutation goes through the lock; safe across threads and tasks
    GOTCHA: Samples older than the window are dropped on write
    """

    def __init__(self, window: timedelta = timedelta(days=7)):
        """
        Initialize metrics store.

        Args:
            window: Trailing window kept for aggregation
        """
        self.window = window
        self._lock = threading.Lock()
        self._samples: Dict[MetricsKey, Deque[PerformanceSample]] = defaultdict(deque)
        self._quality: Dict[MetricsKey, Deque[Tuple[datetime, float]]] = defaultdict(deque)

    def record(self, model_id: str, task_type: str, sample: PerformanceSample) -> None:
        key = (model_id, enum_value(task_type))
        with self._lock:
            samples = self._samples[key]
            samples.append(sample)
            self._prune(samples, sample.timestamp)

    def record_quality(self, model_id: str, task_type: str, rating: float) -> None:
        now = datetime.now()
        key = (model_id, enum_value(task_type))
        with self._lock:
            ratings = self._quality[key]
            ratings.append((now, max(0.0, min(1.0, rating))))
            while ratings and ratings[0][0] < now - self.window:
                ratings.popleft()

    def _prune(self, samples: Deque[PerformanceSample], now: datetime) -> None:
        cutoff = now - self.window
        while samples and samples[0].timestamp < cutoff:
            samples.popleft()

    def aggregate(
        self,
        model_id: str,
        task_type: str,
        now: Optional[datetime] = None,
    ) -> Optional[PerformanceRecord]:
        """
        Aggregate samples in the trailing window.

        Args:
            model_id: Model identifier
            task_type: Task type
            now: Reference time (defaults to now)

        Returns:
            PerformanceRecord, or None when there is no data
        """
        now = now or datetime.now()
        cutoff = now - self.window
        key = (model_id, enum_value(task_type))

        with self._lock:
            samples = [s for s in self._samples.get(key, ()) if s.timestamp >= cutoff]
            ratings = [r for t, r in self._quality.get(key, ()) if t >= cutoff]

        if not samples:
            return None

        total = len(samples)
        successes = [s for s in samples if s.success]
        permanent = sum(1 for s in samples if s.permanent_error)
        latencies = [s.latency_ms for s in successes]

        return PerformanceRecord(
            model_id=model_id,
            task_type=enum_value(task_type),
            success_rate=len(successes) / total,
            average_latency_ms=sum(latencies) / len(latencies) if latencies else 0.0,
            quality_rating=sum(ratings) / len(ratings) if ratings else NEUTRAL_SCORE,
            error_rate=permanent / total,
            sample_count=total,
            window_start=cutoff,
            computed_at=now,
        )


class PerformanceMonitor:
    """
    Scores models from their recent track record.

    PATTERN: Weighted blend of success, latency, quality and reliability
    CRITICAL: Unknown (model, task type) pairs score a neutral 0.5
    GOTCHA: Cached scores refresh lazily; a failed refresh serves the stale value
    """

    def __init__(
        self,
        store: Optional[MetricsStore] = None,
        refresh_interval: float = 3600.0,
        weights_by_task_type: Optional[Dict[str, Dict[str, float]]] = None,
        clock=time.monotonic,
    ):
        """
        Initialize performance monitor.

        Args:
            store: Shared metrics store (creates a private one if None)
            refresh_interval: Seconds a cached score stays fresh
            weights_by_task_type: Per task type overrides of the score weights
            clock: Monotonic clock, injectable for tests
        """
        self.store = store or MetricsStore()
        self.refresh_interval = refresh_interval
        self.weights_by_task_type = weights_by_task_type or {}
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self._cache: Dict[Tuple[str, str, str], Tuple[float, float]] = {}
        self._cache_lock = threading.Lock()

    def get_weights(self, task_type: str) -> Dict[str, float]:
        """Normalized score weights for a task type."""
        weights = {**DEFAULT_SCORE_WEIGHTS, **self.weights_by_task_type.get(enum_value(task_type), {})}
        total = sum(weights.values())
        if total <= 0:
            return dict(DEFAULT_SCORE_WEIGHTS)
        return {k: v / total for k, v in weights.items()}

    @staticmethod
    def latency_score(average_latency_ms: float, time_sensitivity: str) -> float:
        """
        Normalize latency against the time-sensitivity expectation curve.

        Returns:
            1.0 at or below the expected latency, expected/actual above it
        """
        expected = EXPECTED_LATENCY_MS.get(
            enum_value(time_sensitivity),
            EXPECTED_LATENCY_MS[TimeSensitivity.NORMAL.value],
        )
        if average_latency_ms <= expected:
            return 1.0
        return expected / average_latency_ms

    def compute_score(
        self,
        record: PerformanceRecord,
        time_sensitivity: str = TimeSensitivity.NORMAL.value,
    ) -> float:
        """Score a performance record in [0, 1]."""
        weights = self.get_weights(record.task_type)

        # No successful call yet means no latency evidence
        if record.average_latency_ms > 0:
            latency = self.latency_score(record.average_latency_ms, time_sensitivity)
        else:
            latency = NEUTRAL_SCORE

        score = (
            weights["success"] * record.success_rate
            + weights["latency"] * latency
            + weights["quality"] * record.quality_rating
            + weights["reliability"] * (1.0 - record.error_rate)
        )
        return max(0.0, min(1.0, score))

    def get_score(
        self,
        model: ModelDescriptor,
        requirements: TaskRequirements,
        time_sensitivity: str = TimeSensitivity.NORMAL.value,
    ) -> float:
        """
        Performance score for a model on a task type.

        Args:
            model: Candidate model
            requirements: Task requirements (task type is the key)
            time_sensitivity: Drives the latency expectation

        Returns:
            Score in [0, 1]
        """
        key = (model.model_id, enum_value(requirements.task_type), enum_value(time_sensitivity))
        now = self.clock()

        with self._cache_lock:
            cached = self._cache.get(key)

        if cached is not None and now - cached[1] < self.refresh_interval:
            return cached[0]

        try:
            record = self.store.aggregate(model.model_id, requirements.task_type)
            score = (
                NEUTRAL_SCORE if record is None
                else self.compute_score(record, time_sensitivity)
            )
        except Exception as e:
            stale = cached[0] if cached is not None else NEUTRAL_SCORE
            self.logger.warning(
                f"Metrics refresh failed for {model.model_id}, "
                f"serving stale score {stale:.2f}: {e}"
            )
            return stale

        with self._cache_lock:
            self._cache[key] = (score, now)

        return score

    def get_record(self, model_id: str, task_type: str) -> Optional[PerformanceRecord]:
        return self.store.aggregate(model_id, task_type)

    def record_success(
        self,
        model_id: str,
        task_type: str,
        latency_ms: float,
    ) -> None:
        """Record a successful execution."""
        self.store.record(
            model_id,
            task_type,
            PerformanceSample(success=True, latency_ms=latency_ms),
        )
        self.logger.debug(f"Recorded success for {model_id} ({latency_ms:.0f}ms)")

    def record_failure(
        self,
        model_id: str,
        task_type: str,
        error_type: str,
        permanent: bool,
        latency_ms: float = 0.0,
    ) -> None:
        """Record a failed execution."""
        self.store.record(
            model_id,
            task_type,
            PerformanceSample(
                success=False,
                latency_ms=latency_ms,
                error_type=error_type,
                permanent_error=permanent,
            ),
        )
        self.logger.debug(f"Recorded {error_type} for {model_id}")

    def record_quality(self, model_id: str, task_type: str, rating: float) -> None:
        """Record a quality rating in [0, 1] for a delivered response."""
        self.store.record_quality(model_id, task_type, rating)

    def invalidate(self) -> None:
        """Drop every cached score."""
        with self._cache_lock:
            self._cache.clear()
