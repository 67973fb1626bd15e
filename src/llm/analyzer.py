"""Task complexity analyzer turning prompt text into a routable TaskRequest."""

import logging
from typing import Dict, List, Optional

from ..models.llm_models import (
    TaskComplexity,
    TaskConstraints,
    TaskRequest,
    TaskType,
    TimeSensitivity,
)
from ..models.routing_models import TaskAnalysis
from .tokens import count_message_tokens

logger = logging.getLogger(__name__)


class TaskComplexityAnalyzer:
    """
    Analyzes task complexity to feed the Decision Service.

    PATTERN: Multi-factor heuristic analysis balancing accuracy and speed
    CRITICAL: Pure computation, never awaits
    """

    def __init__(self):
        """Initialize task complexity analyzer."""
        self.logger = logging.getLogger(__name__)

        # Keywords indicating complex tasks
        self.complex_keywords = {
            "architecture",
            "design",
            "refactor",
            "optimize",
            "complex",
            "advanced",
            "sophisticated",
            "comprehensive",
            "intricate",
            "multi-step",
            "distributed",
            "scalable",
            "concurrency",
            "security",
        }

        # Keywords indicating simple tasks
        self.simple_keywords = {
            "typo",
            "rename",
            "format",
            "simple",
            "basic",
            "quick",
            "minor",
            "small",
            "trivial",
            "obvious",
            "straightforward",
        }

        # Baseline complexity each task type carries
        self.task_type_complexity = {
            TaskType.PLANNING.value: 0.7,
            TaskType.CODE_GENERATION.value: 0.6,
            TaskType.DEBUGGING.value: 0.6,
            TaskType.ANALYSIS.value: 0.6,
            TaskType.CODE_REVIEW.value: 0.5,
            TaskType.TESTING.value: 0.4,
            TaskType.DOCUMENTATION.value: 0.3,
            TaskType.GENERAL.value: 0.5,
        }

        # Task type keywords, checked in order; first hit wins
        self.task_type_keywords = {
            TaskType.DEBUGGING.value: {"debug", "bug", "error", "traceback", "crash", "troubleshoot"},
            TaskType.CODE_REVIEW.value: {"review", "audit", "inspect", "critique"},
            TaskType.TESTING.value: {"test", "coverage", "pytest", "unittest"},
            TaskType.DOCUMENTATION.value: {"document", "readme", "docstring", "docs"},
            TaskType.PLANNING.value: {"plan", "roadmap", "strategy", "milestone"},
            TaskType.ANALYSIS.value: {"analyze", "analyse", "compare", "evaluate", "assess"},
            TaskType.CODE_GENERATION.value: {"implement", "write", "generate", "function", "class", "code"},
        }

    def analyze_task(
        self,
        task_description: str,
        task_type: Optional[TaskType] = None,
        message_history: Optional[List[Dict[str, str]]] = None,
    ) -> TaskAnalysis:
        """
        Analyze task complexity and requirements.

        Args:
            task_description: Description of the task (usually the rendered prompt)
            task_type: Known task type (inferred from the text if None)
            message_history: Optional chat messages counted toward the input

        Returns:
            TaskAnalysis with complexity and token estimate
        """
        message_history = message_history or []

        if task_type is None:
            task_type = self.infer_task_type(task_description)
        task_type = TaskType(task_type)

        estimated_tokens = count_message_tokens(
            message_history or [{"role": "user", "content": task_description}]
        )

        complexity_score = self._calculate_complexity_score(
            task_description,
            task_type,
            estimated_tokens,
        )
        complexity = self._complexity_for_score(complexity_score)

        return TaskAnalysis(
            task_type=task_type,
            complexity=complexity,
            estimated_tokens=estimated_tokens,
            complexity_score=complexity_score,
            confidence=self._calculate_confidence(task_description, complexity_score),
            reasoning=self._generate_reasoning(
                task_description,
                complexity_score,
                estimated_tokens,
            ),
        )

    def build_request(
        self,
        messages: List[Dict[str, str]],
        task_type: TaskType,
        time_sensitivity: TimeSensitivity = TimeSensitivity.NORMAL,
        constraints: Optional[TaskConstraints] = None,
    ) -> TaskRequest:
        """
        Build a TaskRequest from rendered chat messages.

        Args:
            messages: Rendered prompt messages
            task_type: Task type
            time_sensitivity: Caller urgency
            constraints: Optional hard constraints

        Returns:
            Frozen TaskRequest ready for routing
        """
        text = "\n".join(m.get("content", "") for m in messages)
        analysis = self.analyze_task(text, task_type=task_type, message_history=messages)

        self.logger.debug(
            f"Analyzed {analysis.task_type} task: {analysis.complexity} "
            f"({analysis.estimated_tokens} tokens)"
        )

        return TaskRequest(
            task_type=analysis.task_type,
            complexity=analysis.complexity,
            estimated_input_tokens=analysis.estimated_tokens,
            time_sensitivity=time_sensitivity,
            constraints=constraints or TaskConstraints(),
        )

    def infer_task_type(self, task_description: str) -> TaskType:
        """Guess the task type from keywords, GENERAL when nothing matches."""
        lower_desc = task_description.lower()
        for task_type, keywords in self.task_type_keywords.items():
            if any(kw in lower_desc for kw in keywords):
                return TaskType(task_type)
        return TaskType.GENERAL

    def _complexity_for_score(self, score: float) -> TaskComplexity:
        if score < 0.3:
            return TaskComplexity.SIMPLE
        if score < 0.6:
            return TaskComplexity.MEDIUM
        if score < 0.8:
            return TaskComplexity.COMPLEX
        return TaskComplexity.EXPERT

    def _calculate_complexity_score(
        self,
        task_description: str,
        task_type: TaskType,
        estimated_tokens: int,
    ) -> float:
        """
        Calculate complexity score (0-1).

        PATTERN: Multi-factor scoring combining keywords, length, and task type
        CRITICAL: Score must be normalized to 0-1 range

        Args:
            task_description: Task description
            task_type: Task type
            estimated_tokens: Estimated tokens

        Returns:
            Complexity score (0-1)
        """
        score = 0.0
        lower_desc = task_description.lower()

        # Factor 1: Keyword analysis (40% weight)
        complex_count = sum(1 for kw in self.complex_keywords if kw in lower_desc)
        simple_count = sum(1 for kw in self.simple_keywords if kw in lower_desc)

        keyword_score = 0.5  # Default neutral
        if complex_count > simple_count:
            keyword_score = 0.6 + min(complex_count * 0.1, 0.4)
        elif simple_count > complex_count:
            keyword_score = 0.4 - min(simple_count * 0.1, 0.4)

        score += keyword_score * 0.4

        # Factor 2: Token count (30% weight)
        if estimated_tokens < 500:
            token_score = 0.2
        elif estimated_tokens < 2000:
            token_score = 0.5
        else:
            token_score = 0.8

        score += token_score * 0.3

        # Factor 3: Task type (30% weight)
        score += self.task_type_complexity.get(task_type.value, 0.5) * 0.3

        return max(0.0, min(1.0, score))

    def _calculate_confidence(
        self,
        task_description: str,
        complexity_score: float,
    ) -> float:
        """
        Calculate confidence in the analysis.

        Returns:
            Confidence score (0.5-1)
        """
        confidence = 0.7  # Base confidence

        word_count = len(task_description.split())
        if word_count > 50:
            confidence += 0.1
        elif word_count < 10:
            confidence -= 0.1

        # Mid-range is ambiguous
        if 0.3 < complexity_score < 0.6:
            confidence -= 0.05

        return max(0.5, min(1.0, confidence))

    def _generate_reasoning(
        self,
        task_description: str,
        complexity_score: float,
        estimated_tokens: int,
    ) -> str:
        reasons = []

        if complexity_score < 0.3:
            reasons.append("simple task with basic requirements")
        elif complexity_score < 0.6:
            reasons.append("moderate complexity requiring capable model")
        elif complexity_score < 0.8:
            reasons.append("complex task requiring premium model")
        else:
            reasons.append("expert-level task")

        if estimated_tokens > 2000:
            reasons.append(f"large context ({estimated_tokens} tokens)")
        elif estimated_tokens < 500:
            reasons.append("compact task")

        lower_desc = task_description.lower()
        complex_found = sorted(kw for kw in self.complex_keywords if kw in lower_desc)
        if complex_found:
            reasons.append(f"complexity indicators: {', '.join(complex_found[:3])}")

        return "; ".join(reasons)
