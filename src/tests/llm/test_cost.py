"""Tests for cost estimation and budget-aware cost scoring."""

import pytest
from src.llm.cost import CostManager, StaticBudgetService
from src.models.llm_models import (
    ModelDescriptor,
    ModelProvider,
    TaskComplexity,
    TaskRequest,
    TaskType,
)
from src.models.routing_models import BudgetStatus


class TestCostManager:
    """Test suite for CostManager."""

    def setup_method(self):
        """Set up test fixtures."""
        self.budget = StaticBudgetService()
        self.manager = CostManager(
            budget_service=self.budget,
            average_task_budget=0.10,
            output_token_baselines={"code_generation": 1000, "general": 400},
        )
        self.model = ModelDescriptor(
            model_id="priced",
            provider=ModelProvider.OPENAI,
            context_window=128000,
            cost_per_1k_input=0.01,
            cost_per_1k_output=0.03,
        )

    def test_caller_estimate_wins(self):
        """Test explicit output estimates are used as-is."""
        request = TaskRequest(estimated_input_tokens=300, estimated_output_tokens=700)

        assert self.manager.estimate_tokens(request) == (300, 700)

    def test_output_baseline_scaled_by_complexity(self):
        """Test output estimates follow task type and complexity."""
        simple = TaskRequest(task_type=TaskType.CODE_GENERATION, complexity=TaskComplexity.SIMPLE)
        expert = TaskRequest(task_type=TaskType.CODE_GENERATION, complexity=TaskComplexity.EXPERT)

        assert self.manager.estimate_tokens(simple) == (0, 500)
        assert self.manager.estimate_tokens(expert) == (0, 3000)

    def test_unknown_task_type_uses_general_baseline(self):
        """Test task types without a baseline fall back to general."""
        request = TaskRequest(task_type=TaskType.PLANNING)

        assert self.manager.estimate_tokens(request) == (0, 400)

    def test_estimate_cost(self):
        """Test cost is per-1k input plus output pricing."""
        request = TaskRequest(estimated_input_tokens=2000, estimated_output_tokens=1000)

        assert self.manager.estimate_cost(self.model, request) == pytest.approx(0.02 + 0.03)

    def test_free_model_scores_one(self):
        """Test zero cost gets the maximum score."""
        assert self.manager.score_cost(0.0, BudgetStatus.NORMAL) == 1.0
        assert self.manager.score_cost(0.0, BudgetStatus.CRITICAL) == 1.0

    def test_score_clamped_at_zero(self):
        """Test costs far above budget never go negative."""
        assert self.manager.score_cost(10.0, BudgetStatus.NORMAL) == 0.0

    def test_score_non_increasing_in_cost(self):
        """Test the cost score never rises as cost rises."""
        costs = [0.0, 0.001, 0.01, 0.02, 0.05, 0.08, 0.1, 0.5, 2.0]

        for status in BudgetStatus:
            scores = [self.manager.score_cost(c, status) for c in costs]
            assert all(a >= b for a, b in zip(scores, scores[1:]))

    def test_critical_budget_is_steeper(self):
        """Test the same cost delta costs more score under critical budget."""
        low, high = 0.001, 0.011

        normal_drop = (
            self.manager.score_cost(low, BudgetStatus.NORMAL)
            - self.manager.score_cost(high, BudgetStatus.NORMAL)
        )
        warning_drop = (
            self.manager.score_cost(low, BudgetStatus.WARNING)
            - self.manager.score_cost(high, BudgetStatus.WARNING)
        )
        critical_drop = (
            self.manager.score_cost(low, BudgetStatus.CRITICAL)
            - self.manager.score_cost(high, BudgetStatus.CRITICAL)
        )

        assert critical_drop > warning_drop > normal_drop > 0

    def test_get_score_reads_budget_status(self):
        """Test get_score follows the live budget status."""
        request = TaskRequest(estimated_input_tokens=1000, estimated_output_tokens=500)

        normal = self.manager.get_score(self.model, request)
        self.budget.status = BudgetStatus.CRITICAL
        critical = self.manager.get_score(self.model, request)

        assert critical < normal

    def test_invalid_budget(self):
        """Test the per-task budget must be positive."""
        with pytest.raises(ValueError):
            CostManager(average_task_budget=0)
