"""Cost tracking service: spend accounting and budget status."""

import logging
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from ..llm.cost import BudgetService
from ..models.llm_models import LLMResponse, PerformanceMetrics, TaskType, enum_value
from ..models.routing_models import BudgetStatus

logger = logging.getLogger(__name__)


def _next_midnight(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


class CostTracker(BudgetService):
    """
    Tracks LLM spend and derives the organization's budget status.

    PATTERN: Real-time tracking with aggregation
    CRITICAL: Track per model, per task type, and globally; every update holds the lock
    GOTCHA: Reset daily stats at midnight
    """

    def __init__(
        self,
        daily_budget: float = 50.0,
        warning_ratio: float = 0.75,
        critical_ratio: float = 0.90,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize cost tracker.

        Args:
            daily_budget: Daily cost limit in USD
            warning_ratio: Share of the daily budget that triggers WARNING
            critical_ratio: Share of the daily budget that triggers CRITICAL
            clock: Wall clock, injectable for tests
        """
        if daily_budget <= 0:
            raise ValueError("daily_budget must be positive")
        if not 0 < warning_ratio <= critical_ratio:
            raise ValueError("Expected 0 < warning_ratio <= critical_ratio")

        self.daily_budget = daily_budget
        self.warning_ratio = warning_ratio
        self.critical_ratio = critical_ratio
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()

        # Global metrics
        self.total_cost = 0.0
        self.total_tokens = 0
        self.total_requests = 0

        # Per-model metrics
        self.model_metrics: Dict[str, PerformanceMetrics] = {}

        # Per task type tracking
        self.task_type_costs: Dict[str, float] = defaultdict(float)
        self.task_type_requests: Dict[str, int] = defaultdict(int)

        # Daily tracking
        self.daily_cost = 0.0
        self.daily_reset_time = _next_midnight(self.clock())

    def track_request(
        self,
        response: LLMResponse,
        task_type: TaskType = TaskType.GENERAL,
    ) -> None:
        """
        Track spend from a response.

        CRITICAL: Called after every successful execution

        Args:
            response: LLM response with cost/token info
            task_type: Task type the response served
        """
        task_type = enum_value(task_type)
        tokens = response.input_tokens + response.output_tokens

        with self._lock:
            self._check_daily_reset()

            self.total_cost += response.total_cost
            self.total_tokens += tokens
            self.total_requests += 1
            self.daily_cost += response.total_cost

            self.task_type_costs[task_type] += response.total_cost
            self.task_type_requests[task_type] += 1

            self._update_model_metrics(response, task_type)

        self.logger.debug(
            f"Tracked: ${response.total_cost:.4f} for {task_type} "
            f"using {response.model_used}"
        )

    def _update_model_metrics(self, response: LLMResponse, task_type: str) -> None:
        model_name = response.model_used

        if model_name not in self.model_metrics:
            self.model_metrics[model_name] = PerformanceMetrics(
                model_name=model_name,
                provider=response.provider,
            )

        metrics = self.model_metrics[model_name]
        metrics.total_requests += 1
        if response.fallback_used:
            metrics.fallback_requests += 1

        metrics.total_tokens += response.input_tokens + response.output_tokens
        metrics.total_cost += response.total_cost
        metrics.cost_by_task_type[task_type] = (
            metrics.cost_by_task_type.get(task_type, 0.0) + response.total_cost
        )

        # Running average
        total_latency = metrics.average_latency_ms * (metrics.total_requests - 1)
        total_latency += response.latency_ms
        metrics.average_latency_ms = total_latency / metrics.total_requests

        metrics.last_updated = self.clock()

    def _check_daily_reset(self) -> None:
        """Reset daily metrics if needed; caller holds the lock."""
        now = self.clock()
        if now >= self.daily_reset_time:
            self.logger.info(
                f"Daily reset - Yesterday's cost: ${self.daily_cost:.2f}"
            )
            self.daily_cost = 0.0
            self.daily_reset_time = _next_midnight(now)

    def get_budget_status(self) -> BudgetStatus:
        """
        Budget status from today's spend against the daily budget.

        Returns:
            CRITICAL at or above critical_ratio, WARNING at or above
            warning_ratio, NORMAL otherwise
        """
        with self._lock:
            self._check_daily_reset()
            ratio = self.daily_cost / self.daily_budget

        if ratio >= self.critical_ratio:
            return BudgetStatus.CRITICAL
        if ratio >= self.warning_ratio:
            return BudgetStatus.WARNING
        return BudgetStatus.NORMAL

    def get_cost_report(
        self,
        scope: str = "global",
        identifier: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Get cost report for a scope.

        Args:
            scope: Report scope (global, task_type, model)
            identifier: Task type or model id

        Returns:
            Cost report dictionary
        """
        if scope == "global":
            return {
                "total_cost": self.total_cost,
                "daily_cost": self.daily_cost,
                "daily_budget": self.daily_budget,
                "budget_status": self.get_budget_status().value,
                "total_tokens": self.total_tokens,
                "total_requests": self.total_requests,
                "average_cost_per_request": (
                    self.total_cost / self.total_requests
                    if self.total_requests > 0
                    else 0
                ),
                "models_used": len(self.model_metrics),
            }

        elif scope == "task_type":
            if not identifier:
                return {
                    task_type: {
                        "cost": cost,
                        "requests": self.task_type_requests[task_type],
                    }
                    for task_type, cost in self.task_type_costs.items()
                }
            identifier = enum_value(identifier)
            return {
                "task_type": identifier,
                "cost": self.task_type_costs.get(identifier, 0.0),
                "requests": self.task_type_requests.get(identifier, 0),
            }

        elif scope == "model":
            if not identifier:
                return {
                    name: metrics.model_dump()
                    for name, metrics in self.model_metrics.items()
                }
            metrics = self.model_metrics.get(identifier)
            return metrics.model_dump() if metrics else {}

        else:
            raise ValueError(f"Unknown scope: {scope}")
