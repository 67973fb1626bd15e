"""LLM-related data models."""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Set
from enum import Enum
from datetime import datetime


class ModelProvider(str, Enum):
    """Supported model providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"


class DeploymentMode(str, Enum):
    """How a model is deployed."""

    HOSTED = "hosted"
    SELF_HOSTED = "self_hosted"
    FINE_TUNED = "fine_tuned"


class SizeCategory(str, Enum):
    """Coarse model size categories, also used to key fallback chains."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"


class ModelStatus(str, Enum):
    """Registry status of a model."""

    ACTIVE = "active"
    DISABLED = "disabled"


class TaskType(str, Enum):
    """Task types the orchestrator routes."""

    CODE_GENERATION = "code_generation"
    CODE_REVIEW = "code_review"
    DEBUGGING = "debugging"
    PLANNING = "planning"
    DOCUMENTATION = "documentation"
    TESTING = "testing"
    ANALYSIS = "analysis"
    GENERAL = "general"


CODE_TASK_TYPES = {
    TaskType.CODE_GENERATION.value,
    TaskType.CODE_REVIEW.value,
    TaskType.DEBUGGING.value,
}


class TaskComplexity(str, Enum):
    """Task complexity levels."""

    SIMPLE = "simple"      # Short, mechanical answers
    MEDIUM = "medium"      # Typical day-to-day tasks
    COMPLEX = "complex"    # Multi-step reasoning
    EXPERT = "expert"      # Architecture-level work


class TimeSensitivity(str, Enum):
    """How urgently the caller needs an answer."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class ModelDescriptor(BaseModel):
    """Catalogue entry describing one model."""

    model_id: str = Field(description="Unique model identifier")
    provider: ModelProvider
    deployment: DeploymentMode = Field(default=DeploymentMode.HOSTED)
    size: SizeCategory = Field(default=SizeCategory.MEDIUM)
    context_window: int = Field(gt=0, description="Context window in tokens")
    max_output_tokens: int = Field(default=4096, gt=0)
    capabilities: Set[str] = Field(default_factory=set)
    specializations: Set[str] = Field(default_factory=set)
    cost_per_1k_input: float = Field(default=0.0, ge=0)
    cost_per_1k_output: float = Field(default=0.0, ge=0)
    average_latency_ms: float = Field(default=2000.0, ge=0)
    status: ModelStatus = Field(default=ModelStatus.ACTIVE)
    api_endpoint: Optional[str] = Field(default=None, description="API endpoint")

    class Config:
        """Pydantic configuration."""

        use_enum_values = True

    @property
    def is_active(self) -> bool:
        return self.status == ModelStatus.ACTIVE

    def has_tag(self, tag: str) -> bool:
        """True if the tag is among capabilities or specializations."""
        return tag in self.capabilities or tag in self.specializations


class TaskConstraints(BaseModel):
    """Optional hard constraints and routing hints supplied by the caller."""

    max_cost: Optional[float] = Field(default=None, ge=0)
    max_latency_ms: Optional[float] = Field(default=None, ge=0)
    preferred_model: Optional[str] = Field(default=None)
    preferred_provider: Optional[ModelProvider] = Field(default=None)
    provider_preference: List[ModelProvider] = Field(default_factory=list)
    required_capabilities: Set[str] = Field(default_factory=set)
    fallback_models: List[str] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True
        frozen = True


class TaskRequest(BaseModel):
    """A single routing request; immutable once built."""

    task_type: TaskType = Field(default=TaskType.GENERAL)
    complexity: TaskComplexity = Field(default=TaskComplexity.MEDIUM)
    estimated_input_tokens: int = Field(default=0, ge=0)
    estimated_output_tokens: Optional[int] = Field(default=None, ge=0)
    time_sensitivity: TimeSensitivity = Field(default=TimeSensitivity.NORMAL)
    constraints: TaskConstraints = Field(default_factory=TaskConstraints)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True
        frozen = True


class LLMResponse(BaseModel):
    """Response from a provider after routing and fallback."""

    content: str = Field(description="Response content")
    model_used: str = Field(description="Model that generated response")
    provider: ModelProvider
    input_tokens: int = Field(default=0)
    output_tokens: int = Field(default=0)
    total_cost: float = Field(default=0.0, description="Cost in USD")
    latency_ms: int = Field(default=0, description="Response time")
    fallback_used: bool = Field(default=False)
    attempts: List["AttemptRecord"] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


class AttemptRecord(BaseModel):
    """What happened when one model was tried for a request."""

    model_id: str
    executions: int = Field(default=0)
    succeeded: bool = Field(default=False)
    error_type: Optional[str] = Field(default=None)
    error_message: Optional[str] = Field(default=None)
    latency_ms: int = Field(default=0)


class PerformanceMetrics(BaseModel):
    """Lifetime usage metrics for a model."""

    model_name: str
    provider: ModelProvider
    total_requests: int = Field(default=0)
    total_tokens: int = Field(default=0)
    total_cost: float = Field(default=0.0)
    average_latency_ms: float = Field(default=0.0)
    fallback_requests: int = Field(default=0)
    cost_by_task_type: Dict[str, float] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=datetime.now)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


LLMResponse.model_rebuild()


def enum_value(value):
    """Plain value of an enum member; other values pass through."""
    return value.value if isinstance(value, Enum) else value
