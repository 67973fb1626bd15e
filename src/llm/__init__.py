"""LLM subsystem: model routing, fallback execution and response handling."""

from .base import BaseLLM
from .analyzer import TaskComplexityAnalyzer
from .cache import LLMResponseCache, make_cache_key
from .context import ContextPruner
from .cost import BudgetService, CostManager, StaticBudgetService
from .exceptions import (
    AllModelsFailedError,
    InvalidTransitionError,
    NoCandidatesError,
    NotFoundError,
    OrchestratorError,
    PermanentProviderError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    TemplateNotFoundError,
    TemplateRenderError,
    TransientProviderError,
)
from .fallback import FallbackEngine, RequestExecution
from .formatter import ResponseFormatter
from .heuristics import Heuristic, HeuristicsEngine, default_heuristics
from .performance import MetricsStore, PerformanceMonitor
from .prompts import PromptTemplateManager
from .registry import ModelRegistry
from .router import DecisionService

__all__ = [
    "BaseLLM",
    "TaskComplexityAnalyzer",
    "LLMResponseCache",
    "make_cache_key",
    "ContextPruner",
    "BudgetService",
    "CostManager",
    "StaticBudgetService",
    "AllModelsFailedError",
    "InvalidTransitionError",
    "NoCandidatesError",
    "NotFoundError",
    "OrchestratorError",
    "PermanentProviderError",
    "ProviderError",
    "RateLimitError",
    "RequestTimeoutError",
    "TemplateNotFoundError",
    "TemplateRenderError",
    "TransientProviderError",
    "FallbackEngine",
    "RequestExecution",
    "ResponseFormatter",
    "Heuristic",
    "HeuristicsEngine",
    "default_heuristics",
    "MetricsStore",
    "PerformanceMonitor",
    "PromptTemplateManager",
    "ModelRegistry",
    "DecisionService",
]
