"""Heuristics engine: rule-based adjustments to candidate scores."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional

from ..models.llm_models import (
    CODE_TASK_TYPES,
    ModelDescriptor,
    TaskRequest,
    TaskType,
    TimeSensitivity,
)

logger = logging.getLogger(__name__)

Condition = Callable[[TaskRequest], bool]


@dataclass
class Heuristic(ABC):
    """
    A (condition, adjustment) pair over a score map.

    Subclasses implement adjust(); the engine only calls it when the
    condition holds for the request.
    """

    name: str
    factor: float
    condition: Condition = field(default=lambda request: True)

    def applies(self, request: TaskRequest) -> bool:
        return self.condition(request)

    @abstractmethod
    def adjust(
        self,
        scores: Dict[str, float],
        models: Mapping[str, ModelDescriptor],
        request: TaskRequest,
    ) -> Dict[str, float]:
        """Return a new score map; never mutate `scores`."""
        pass


@dataclass
class TagBoostHeuristic(Heuristic):
    """Multiply the score of every model carrying a tag."""

    tag: str = ""

    def adjust(self, scores, models, request):
        return {
            model_id: (
                score * self.factor
                if model_id in models and models[model_id].has_tag(self.tag)
                else score
            )
            for model_id, score in scores.items()
        }


@dataclass
class FastestModelsHeuristic(Heuristic):
    """Multiply the score of the fastest candidates by average latency."""

    top_n: int = 1

    def adjust(self, scores, models, request):
        latencies = sorted(
            {models[m].average_latency_ms for m in scores if m in models}
        )
        if not latencies:
            return dict(scores)

        # Ties with the n-th fastest latency are boosted too
        cutoff = latencies[min(self.top_n, len(latencies)) - 1]
        return {
            model_id: (
                score * self.factor
                if model_id in models and models[model_id].average_latency_ms <= cutoff
                else score
            )
            for model_id, score in scores.items()
        }


def is_code_task(request: TaskRequest) -> bool:
    return request.task_type in CODE_TASK_TYPES


def long_input(threshold: int) -> Condition:
    return lambda request: request.estimated_input_tokens > threshold


def is_urgent(request: TaskRequest) -> bool:
    return request.time_sensitivity in (
        TimeSensitivity.HIGH,
        TimeSensitivity.CRITICAL,
    )


def default_heuristics(
    code_boost: float = 1.5,
    large_context_threshold: int = 4000,
    large_context_boost: float = 2.0,
    fast_boost: float = 3.0,
) -> List[Heuristic]:
    """Built-in heuristics in registration order."""
    return [
        TagBoostHeuristic(
            name="prefer_specialized_for_code",
            factor=code_boost,
            condition=is_code_task,
            tag=TaskType.CODE_GENERATION.value,
        ),
        TagBoostHeuristic(
            name="prefer_large_context_for_long_input",
            factor=large_context_boost,
            condition=long_input(large_context_threshold),
            tag="large_context",
        ),
        FastestModelsHeuristic(
            name="prefer_fast_for_urgent",
            factor=fast_boost,
            condition=is_urgent,
        ),
    ]


class HeuristicsEngine:
    """
    Applies heuristics to a score map.

    PATTERN: Ordered pipeline of independent score transforms
    CRITICAL: Every matching heuristic applies; multiplicative boosts compound
    GOTCHA: The input map is never mutated
    """

    def __init__(self, heuristics: Optional[List[Heuristic]] = None):
        """
        Initialize heuristics engine.

        Args:
            heuristics: Heuristics in application order (built-ins if None)
        """
        self.heuristics: List[Heuristic] = (
            list(heuristics) if heuristics is not None else default_heuristics()
        )
        self.logger = logging.getLogger(__name__)

    def register(self, heuristic: Heuristic) -> None:
        """Append a heuristic to the end of the pipeline."""
        self.heuristics.append(heuristic)

    def matching(self, request: TaskRequest) -> List[str]:
        """Names of the heuristics whose condition holds for a request."""
        return [h.name for h in self.heuristics if h.applies(request)]

    def apply_heuristics(
        self,
        scores: Mapping[str, float],
        models: Mapping[str, ModelDescriptor],
        request: TaskRequest,
    ) -> Dict[str, float]:
        """
        Adjust candidate scores.

        Args:
            scores: Model id -> score
            models: Model id -> descriptor for every scored model
            request: Task request

        Returns:
            New model id -> adjusted score map
        """
        adjusted = dict(scores)

        for heuristic in self.heuristics:
            if not heuristic.applies(request):
                continue
            adjusted = heuristic.adjust(adjusted, models, request)
            self.logger.debug(f"Applied heuristic: {heuristic.name}")

        return adjusted
