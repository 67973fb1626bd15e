"""Services package for the LLM orchestrator."""

from .cost_tracking_service import CostTracker
from .knowledge_service import InMemoryKnowledgeBase, KnowledgeBase, QdrantKnowledgeBase
from .llm_service import LLMOrchestrator
from .telemetry_service import DecisionLog

__all__ = [
    "CostTracker",
    "DecisionLog",
    "InMemoryKnowledgeBase",
    "KnowledgeBase",
    "LLMOrchestrator",
    "QdrantKnowledgeBase",
]
