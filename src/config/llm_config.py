"""Orchestrator configuration with environment variable loading."""

import os
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from dotenv import load_dotenv
from ..models.llm_models import (
    DeploymentMode,
    ModelDescriptor,
    ModelProvider,
    SizeCategory,
    TaskComplexity,
    TaskType,
)
from ..models.routing_models import FallbackChain, FallbackScope

# Load environment variables from .env file
load_dotenv()


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


CODE_CAPABILITIES = {
    TaskType.CODE_GENERATION.value,
    TaskType.CODE_REVIEW.value,
    TaskType.DEBUGGING.value,
    TaskType.TESTING.value,
}

GENERAL_CAPABILITIES = {
    TaskType.PLANNING.value,
    TaskType.DOCUMENTATION.value,
    TaskType.ANALYSIS.value,
    TaskType.GENERAL.value,
}


class OrchestratorConfig(BaseModel):
    """Configuration for the model routing and fallback system."""

    # Provider credentials and endpoints
    ollama_host: str = Field(
        default_factory=lambda: os.getenv("OLLAMA_HOST", "http://localhost:11434"),
        description="Ollama API endpoint",
    )
    ollama_models: List[str] = Field(
        default_factory=lambda: os.getenv(
            "OLLAMA_MODELS",
            "qwen2.5-coder:14b"
        ).split(","),
        description="Available Ollama models",
    )
    openai_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY"),
        description="OpenAI API key",
    )
    anthropic_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"),
        description="Anthropic API key",
    )
    openrouter_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("OPENROUTER_API_KEY"),
        description="OpenRouter API key",
    )
    catalogue_path: Optional[str] = Field(
        default_factory=lambda: os.getenv("MODEL_CATALOGUE_PATH"),
        description="YAML/JSON model catalogue replacing the built-in one",
    )

    # Decision Service
    default_model_id: str = Field(
        default_factory=lambda: os.getenv("DEFAULT_MODEL", "qwen2.5-coder:14b"),
        description="Model used when no candidate satisfies the constraints",
    )
    performance_weight: float = Field(
        default_factory=lambda: _env_float("ROUTING_PERFORMANCE_WEIGHT", "0.5"),
        ge=0,
    )
    cost_weight: float = Field(
        default_factory=lambda: _env_float("ROUTING_COST_WEIGHT", "0.3"),
        ge=0,
    )
    feature_weight: float = Field(
        default_factory=lambda: _env_float("ROUTING_FEATURE_WEIGHT", "0.2"),
        ge=0,
    )

    # Heuristics
    code_specialization_boost: float = Field(default=1.5, gt=0)
    large_context_threshold: int = Field(
        default_factory=lambda: _env_int("LARGE_CONTEXT_THRESHOLD", "4000"),
    )
    large_context_boost: float = Field(default=2.0, gt=0)
    fast_model_boost: float = Field(default=3.0, gt=0)

    # Performance Monitor
    metrics_refresh_interval: float = Field(
        default_factory=lambda: _env_float("METRICS_REFRESH_INTERVAL", "3600"),
        description="Seconds a cached performance score stays fresh",
    )
    metrics_window_days: int = Field(
        default_factory=lambda: _env_int("METRICS_WINDOW_DAYS", "7"),
        description="Trailing window for performance aggregates",
    )
    performance_weights: Dict[str, Dict[str, float]] = Field(
        default_factory=dict,
        description="Per task type weights for success/latency/quality/reliability",
    )

    # Cost Manager
    average_task_budget: float = Field(
        default_factory=lambda: _env_float("AVERAGE_TASK_BUDGET", "0.05"),
        gt=0,
        description="Average budget per task in USD",
    )
    daily_budget: float = Field(
        default_factory=lambda: _env_float("DAILY_COST_LIMIT", "50.00"),
        gt=0,
        description="Daily cost limit in USD",
    )
    budget_warning_ratio: float = Field(default=0.75, gt=0, le=1)
    budget_critical_ratio: float = Field(default=0.90, gt=0, le=1)
    output_token_baselines: Dict[str, int] = Field(
        default_factory=lambda: {
            TaskType.CODE_GENERATION.value: 1500,
            TaskType.CODE_REVIEW.value: 800,
            TaskType.DEBUGGING.value: 1000,
            TaskType.PLANNING.value: 1200,
            TaskType.DOCUMENTATION.value: 1000,
            TaskType.TESTING.value: 1200,
            TaskType.ANALYSIS.value: 800,
            TaskType.GENERAL.value: 500,
        },
    )
    complexity_multipliers: Dict[str, float] = Field(
        default_factory=lambda: {
            TaskComplexity.SIMPLE.value: 0.5,
            TaskComplexity.MEDIUM.value: 1.0,
            TaskComplexity.COMPLEX.value: 2.0,
            TaskComplexity.EXPERT.value: 3.0,
        },
    )

    # Request Handler / Fallback Engine
    max_retries: int = Field(
        default_factory=lambda: _env_int("MAX_RETRIES", "3"),
        ge=0,
        description="Retries of the primary model on transient errors",
    )
    retry_base_delay: float = Field(
        default_factory=lambda: _env_float("RETRY_BASE_DELAY", "1.0"),
        ge=0,
    )
    retry_max_delay: float = Field(
        default_factory=lambda: _env_float("RETRY_MAX_DELAY", "30.0"),
        ge=0,
    )
    request_timeout: Optional[float] = Field(
        default_factory=lambda: _env_float("REQUEST_TIMEOUT", "120"),
        description="Default deadline across retries and fallbacks in seconds",
    )
    temperature: float = Field(default=0.7, ge=0, le=2)

    # Response cache
    enable_cache: bool = Field(
        default_factory=lambda: _env_bool("ENABLE_CACHE", "true"),
        description="Enable response caching",
    )
    cache_ttl: int = Field(
        default_factory=lambda: _env_int("CACHE_TTL", "3600"),
        description="Cache time-to-live in seconds",
    )
    cache_max_size: int = Field(default=1000, gt=0)

    # Telemetry and knowledge base
    decision_log_path: Optional[str] = Field(
        default_factory=lambda: os.getenv("DECISION_LOG_PATH"),
        description="JSONL file receiving decision records",
    )
    qdrant_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("QDRANT_URL"),
    )
    qdrant_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("QDRANT_API_KEY"),
    )
    qdrant_collection: str = Field(
        default_factory=lambda: os.getenv("QDRANT_COLLECTION", "knowledge_base"),
    )

    def routing_weights(self) -> Dict[str, float]:
        """
        Routing weights normalized to sum to 1.

        Raises:
            ValueError: If every weight is zero
        """
        total = self.performance_weight + self.cost_weight + self.feature_weight
        if total <= 0:
            raise ValueError("At least one routing weight must be positive")
        return {
            "performance": self.performance_weight / total,
            "cost": self.cost_weight / total,
            "feature": self.feature_weight / total,
        }

    def get_model_descriptors(self) -> List[ModelDescriptor]:
        """
        Get the built-in model catalogue.

        PATTERN: Self-hosted models always listed, hosted ones only with a key

        Returns:
            List of ModelDescriptor objects
        """
        descriptors = []

        ollama_known = {
            "qwen2.5-coder:14b": {
                "size": SizeCategory.MEDIUM,
                "context_window": 32768,
                "capabilities": CODE_CAPABILITIES | GENERAL_CAPABILITIES,
                "specializations": {TaskType.CODE_GENERATION.value},
                "average_latency_ms": 4000,
            },
        }

        for model_name in self.ollama_models:
            model_name = model_name.strip()
            if not model_name:
                continue
            data = ollama_known.get(
                model_name,
                {"context_window": 8192, "capabilities": GENERAL_CAPABILITIES},
            )
            descriptors.append(
                ModelDescriptor(
                    model_id=model_name,
                    provider=ModelProvider.OLLAMA,
                    deployment=DeploymentMode.SELF_HOSTED,
                    api_endpoint=self.ollama_host,
                    **data,
                )
            )

        if self.openai_api_key:
            descriptors.extend([
                ModelDescriptor(
                    model_id="gpt-4o-mini",
                    provider=ModelProvider.OPENAI,
                    size=SizeCategory.MEDIUM,
                    context_window=128000,
                    cost_per_1k_input=0.00015,
                    cost_per_1k_output=0.0006,
                    capabilities=CODE_CAPABILITIES | GENERAL_CAPABILITIES | {"large_context"},
                    average_latency_ms=1200,
                ),
                ModelDescriptor(
                    model_id="gpt-4o",
                    provider=ModelProvider.OPENAI,
                    size=SizeCategory.LARGE,
                    context_window=128000,
                    cost_per_1k_input=0.0025,
                    cost_per_1k_output=0.01,
                    capabilities=CODE_CAPABILITIES | GENERAL_CAPABILITIES | {"large_context"},
                    specializations={TaskType.CODE_GENERATION.value},
                    average_latency_ms=2500,
                ),
            ])

        if self.anthropic_api_key:
            descriptors.extend([
                ModelDescriptor(
                    model_id="claude-3-5-haiku-latest",
                    provider=ModelProvider.ANTHROPIC,
                    size=SizeCategory.SMALL,
                    context_window=200000,
                    cost_per_1k_input=0.0008,
                    cost_per_1k_output=0.004,
                    capabilities=CODE_CAPABILITIES | GENERAL_CAPABILITIES | {"large_context"},
                    average_latency_ms=900,
                ),
                ModelDescriptor(
                    model_id="claude-3-5-sonnet-latest",
                    provider=ModelProvider.ANTHROPIC,
                    size=SizeCategory.LARGE,
                    context_window=200000,
                    cost_per_1k_input=0.003,
                    cost_per_1k_output=0.015,
                    capabilities=CODE_CAPABILITIES | GENERAL_CAPABILITIES | {"large_context"},
                    specializations={TaskType.CODE_GENERATION.value},
                    average_latency_ms=3000,
                ),
            ])

        if self.openrouter_api_key:
            descriptors.append(
                ModelDescriptor(
                    model_id="meta-llama/llama-3-70b-instruct",
                    provider=ModelProvider.OPENROUTER,
                    size=SizeCategory.LARGE,
                    context_window=8192,
                    cost_per_1k_input=0.0007,
                    cost_per_1k_output=0.0008,
                    capabilities=GENERAL_CAPABILITIES | {TaskType.CODE_GENERATION.value},
                    average_latency_ms=2000,
                )
            )

        return descriptors

    def get_fallback_chains(
        self,
        descriptors: Optional[List[ModelDescriptor]] = None,
    ) -> List[FallbackChain]:
        """
        Get the default fallback chains, keyed by size category.

        Args:
            descriptors: Catalogue to build chains for (built-in if None)

        Returns:
            Chains restricted to models present in the catalogue
        """
        descriptors = descriptors if descriptors is not None else self.get_model_descriptors()
        present = {d.model_id for d in descriptors}

        preferred = {
            SizeCategory.XLARGE: ["claude-3-5-sonnet-latest", "gpt-4o"],
            SizeCategory.LARGE: ["claude-3-5-sonnet-latest", "gpt-4o", "gpt-4o-mini"],
            SizeCategory.MEDIUM: ["gpt-4o-mini", "claude-3-5-haiku-latest"],
            SizeCategory.SMALL: ["claude-3-5-haiku-latest", "gpt-4o-mini"],
        }

        chains = []
        for category, model_ids in preferred.items():
            chain = [m for m in model_ids if m in present]
            if self.default_model_id in present and self.default_model_id not in chain:
                chain.append(self.default_model_id)
            if chain:
                chains.append(
                    FallbackChain(
                        key=category.value,
                        scope=FallbackScope.CATEGORY,
                        model_ids=chain,
                    )
                )

        return chains
