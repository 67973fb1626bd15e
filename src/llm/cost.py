"""Cost estimation and budget-aware cost scoring."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from ..models.llm_models import (
    ModelDescriptor,
    TaskComplexity,
    TaskRequest,
    TaskType,
    enum_value,
)
from ..models.routing_models import BudgetStatus

logger = logging.getLogger(__name__)

# How much harder cost counts as budget health worsens
BUDGET_SENSITIVITY = {
    BudgetStatus.NORMAL.value: 1.0,
    BudgetStatus.WARNING.value: 2.0,
    BudgetStatus.CRITICAL.value: 5.0,
}

DEFAULT_OUTPUT_BASELINE = 500

DEFAULT_COMPLEXITY_MULTIPLIERS = {
    TaskComplexity.SIMPLE.value: 0.5,
    TaskComplexity.MEDIUM.value: 1.0,
    TaskComplexity.COMPLEX.value: 2.0,
    TaskComplexity.EXPERT.value: 3.0,
}


class BudgetService(ABC):
    """Source of the organization's current budget status."""

    @abstractmethod
    def get_budget_status(self) -> BudgetStatus:
        """Return the current budget status."""
        pass


class StaticBudgetService(BudgetService):
    """Budget service returning a fixed, settable status."""

    def __init__(self, status: BudgetStatus = BudgetStatus.NORMAL):
        self.status = status

    def get_budget_status(self) -> BudgetStatus:
        return self.status


class CostManager:
    """
    Estimates request cost and turns it into a score.

    PATTERN: Linear penalty on cost relative to the per-task budget
    CRITICAL: Scores are clamped to [0, 1], never negative
    GOTCHA: Budget status is read on every call, it changes under load
    """

    def __init__(
        self,
        budget_service: Optional[BudgetService] = None,
        average_task_budget: float = 0.05,
        output_token_baselines: Optional[Dict[str, int]] = None,
        complexity_multipliers: Optional[Dict[str, float]] = None,
    ):
        """
        Initialize cost manager.

        Args:
            budget_service: Budget status source (static NORMAL if None)
            average_task_budget: Average spend per task in USD
            output_token_baselines: Expected output tokens per task type
            complexity_multipliers: Output scaling per complexity
        """
        if average_task_budget <= 0:
            raise ValueError("average_task_budget must be positive")

        self.budget_service = budget_service or StaticBudgetService()
        self.average_task_budget = average_task_budget
        self.output_token_baselines = output_token_baselines or {}
        self.complexity_multipliers = complexity_multipliers or dict(
            DEFAULT_COMPLEXITY_MULTIPLIERS
        )
        self.logger = logging.getLogger(__name__)

    def estimate_tokens(self, request: TaskRequest) -> Tuple[int, int]:
        """
        Estimate input and output tokens for a request.

        PATTERN: Caller estimate wins; otherwise task baseline x complexity

        Args:
            request: Task request

        Returns:
            (input_tokens, output_tokens)
        """
        input_tokens = request.estimated_input_tokens

        if request.estimated_output_tokens is not None:
            return input_tokens, request.estimated_output_tokens

        baseline = self.output_token_baselines.get(
            enum_value(request.task_type),
            self.output_token_baselines.get(TaskType.GENERAL.value, DEFAULT_OUTPUT_BASELINE),
        )
        multiplier = self.complexity_multipliers.get(enum_value(request.complexity), 1.0)

        return input_tokens, int(baseline * multiplier)

    def estimate_cost(self, model: ModelDescriptor, request: TaskRequest) -> float:
        """
        Estimate request cost on a model in USD.

        Args:
            model: Candidate model
            request: Task request

        Returns:
            Estimated cost
        """
        input_tokens, output_tokens = self.estimate_tokens(request)
        input_cost = (input_tokens / 1000) * model.cost_per_1k_input
        output_cost = (output_tokens / 1000) * model.cost_per_1k_output
        return input_cost + output_cost

    def score_cost(self, cost: float, status: BudgetStatus) -> float:
        """
        Score a cost under a budget status.

        Args:
            cost: Estimated cost in USD
            status: Budget status

        Returns:
            1.0 for free, falling linearly to 0 at average_task_budget / sensitivity
        """
        sensitivity = BUDGET_SENSITIVITY.get(
            BudgetStatus(status).value,
            BUDGET_SENSITIVITY[BudgetStatus.NORMAL.value],
        )
        effective_budget = self.average_task_budget / sensitivity
        return max(0.0, min(1.0, 1.0 - cost / effective_budget))

    def get_score(self, model: ModelDescriptor, request: TaskRequest) -> float:
        """
        Cost score for a model; higher means cheaper relative to budget.

        Args:
            model: Candidate model
            request: Task request

        Returns:
            Score in [0, 1]
        """
        status = self.budget_service.get_budget_status()
        return self.score_cost(self.estimate_cost(model, request), status)
