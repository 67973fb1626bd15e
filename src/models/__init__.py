"""Models package for the LLM orchestrator."""

from .llm_models import (
    ModelProvider,
    DeploymentMode,
    SizeCategory,
    ModelStatus,
    TaskType,
    TaskComplexity,
    TimeSensitivity,
    ModelDescriptor,
    TaskConstraints,
    TaskRequest,
    LLMResponse,
    AttemptRecord,
    PerformanceMetrics,
)
from .routing_models import (
    BudgetStatus,
    FallbackScope,
    DecisionReason,
    ExecutionState,
    TaskRequirements,
    ScoredCandidate,
    RoutingDecision,
    DecisionRecord,
    PerformanceSample,
    PerformanceRecord,
    FallbackChain,
    TaskAnalysis,
)
from .prompt_models import (
    OutputFormat,
    PromptTemplate,
    ContextItem,
    ProcessedResponse,
    FormattedOutput,
)

__all__ = [
    # LLM models
    "ModelProvider",
    "DeploymentMode",
    "SizeCategory",
    "ModelStatus",
    "TaskType",
    "TaskComplexity",
    "TimeSensitivity",
    "ModelDescriptor",
    "TaskConstraints",
    "TaskRequest",
    "LLMResponse",
    "AttemptRecord",
    "PerformanceMetrics",
    # Routing models
    "BudgetStatus",
    "FallbackScope",
    "DecisionReason",
    "ExecutionState",
    "TaskRequirements",
    "ScoredCandidate",
    "RoutingDecision",
    "DecisionRecord",
    "PerformanceSample",
    "PerformanceRecord",
    "FallbackChain",
    "TaskAnalysis",
    # Prompt models
    "OutputFormat",
    "PromptTemplate",
    "ContextItem",
    "ProcessedResponse",
    "FormattedOutput",
]
