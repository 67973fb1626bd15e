"""Model routing decision models."""

import uuid
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Set
from enum import Enum
from datetime import datetime
from .llm_models import (
    TaskComplexity,
    TaskRequest,
    TaskType,
)


class BudgetStatus(str, Enum):
    """Organization budget health."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class FallbackScope(str, Enum):
    """What a fallback chain is keyed on."""

    MODEL = "model"
    TASK_TYPE = "task_type"
    CATEGORY = "category"


class DecisionReason(str, Enum):
    """Why the Decision Service picked a model."""

    PREFERRED = "preferred"
    SCORED = "scored"
    DEFAULT = "default"


class ExecutionState(str, Enum):
    """States of a single request's execution state machine."""

    SELECTING = "selecting"
    EXECUTING = "executing"
    RETRYING = "retrying"
    FALLING_BACK = "falling_back"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TaskRequirements(BaseModel):
    """Requirements derived from a task request for candidate lookup."""

    task_type: TaskType
    complexity: TaskComplexity
    required_capabilities: Set[str] = Field(default_factory=set)
    min_context_window: int = Field(default=0, ge=0)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


class ScoredCandidate(BaseModel):
    """A model and the scores computed for one request."""

    model_id: str
    performance_score: float = Field(default=0.0)
    cost_score: float = Field(default=0.0)
    feature_score: float = Field(default=0.0)
    base_score: float = Field(default=0.0, description="Weighted score before heuristics")
    final_score: float = Field(default=0.0, description="Score after heuristics")
    estimated_cost: float = Field(default=0.0)


class RoutingDecision(BaseModel):
    """Model routing decision."""

    decision_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    selected_model_id: str
    reason: DecisionReason
    candidates: List[ScoredCandidate] = Field(
        default_factory=list,
        description="Scored candidates, best first",
    )
    estimated_cost: float = Field(default=0.0, description="Estimated cost in USD")

    class Config:
        """Pydantic configuration."""

        use_enum_values = True

    @property
    def ranked_model_ids(self) -> List[str]:
        return [c.model_id for c in self.candidates]


class DecisionRecord(BaseModel):
    """Audit entry for one selection decision."""

    decision_id: str
    request: Dict[str, Any] = Field(description="Task request snapshot")
    candidates: List[ScoredCandidate] = Field(default_factory=list)
    selected_model_id: str
    reason: DecisionReason
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True

    @classmethod
    def from_decision(
        cls,
        request: TaskRequest,
        decision: RoutingDecision,
    ) -> "DecisionRecord":
        return cls(
            decision_id=decision.decision_id,
            request=request.model_dump(mode="json"),
            candidates=list(decision.candidates),
            selected_model_id=decision.selected_model_id,
            reason=decision.reason,
        )


class PerformanceSample(BaseModel):
    """One observed execution of a model."""

    timestamp: datetime = Field(default_factory=datetime.now)
    success: bool
    latency_ms: float = Field(default=0.0, ge=0)
    error_type: Optional[str] = Field(default=None)
    permanent_error: bool = Field(default=False)


class PerformanceRecord(BaseModel):
    """Rolling aggregate of samples for one (model, task type) pair."""

    model_id: str
    task_type: str
    success_rate: float = Field(ge=0, le=1)
    average_latency_ms: float = Field(ge=0)
    quality_rating: float = Field(ge=0, le=1)
    error_rate: float = Field(ge=0, le=1)
    sample_count: int = Field(ge=0)
    window_start: datetime
    computed_at: datetime = Field(default_factory=datetime.now)


class FallbackChain(BaseModel):
    """Ordered fallback models for a model, task type or size category."""

    key: str
    scope: FallbackScope = Field(default=FallbackScope.MODEL)
    model_ids: List[str] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


class TaskAnalysis(BaseModel):
    """Task complexity analysis result."""

    task_type: TaskType
    complexity: TaskComplexity
    estimated_tokens: int = Field(ge=0, description="Input tokens of the prompt")
    complexity_score: float = Field(ge=0, le=1)
    confidence: float = Field(ge=0, le=1, description="Analysis confidence")
    reasoning: str = Field(description="Why this classification")

    class Config:
        """Pydantic configuration."""

        use_enum_values = True
