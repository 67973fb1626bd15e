"""Decision Service: picks the model that serves a task request."""

import logging
from typing import Dict, List, Optional, Protocol

from ..models.llm_models import ModelDescriptor, TaskRequest, enum_value
from ..models.routing_models import (
    DecisionReason,
    DecisionRecord,
    RoutingDecision,
    ScoredCandidate,
    TaskRequirements,
)
from .cost import CostManager
from .exceptions import NoCandidatesError
from .heuristics import HeuristicsEngine
from .performance import PerformanceMonitor
from .registry import ModelRegistry

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS = {
    "performance": 0.5,
    "cost": 0.3,
    "feature": 0.2,
}

# Float noise below this is treated as a tie
SCORE_PRECISION = 9


class DecisionSink(Protocol):
    """Anything that accepts decision records (see DecisionLog)."""

    def record(self, record: DecisionRecord) -> None:
        ...


def normalize_weights(weights: Dict[str, float]) -> Dict[str, float]:
    """
    Normalize routing weights to sum to 1.

    Raises:
        ValueError: On negative weights or when every weight is zero
    """
    merged = {**DEFAULT_WEIGHTS, **weights}
    if any(w < 0 for w in merged.values()):
        raise ValueError(f"Routing weights must be non-negative: {merged}")
    total = sum(merged.values())
    if total <= 0:
        raise ValueError("At least one routing weight must be positive")
    return {k: v / total for k, v in merged.items()}


def feature_match_score(model: ModelDescriptor, requirements: TaskRequirements) -> float:
    """
    Fraction of desired tags a model carries.

    The task type is always desired; required capabilities are already
    guaranteed by the candidate lookup, so they are not counted again.
    """
    desired = {enum_value(requirements.task_type)}
    matched = sum(1 for tag in desired if model.has_tag(tag))
    return matched / len(desired)


class DecisionService:
    """
    Selects a model for each task request.

    PATTERN: Filter, score, adjust, argmax
    CRITICAL: Pure computation; a request never waits on the network here
    GOTCHA: The default model bypasses hard constraints, it is the last resort
    """

    def __init__(
        self,
        registry: ModelRegistry,
        performance_monitor: PerformanceMonitor,
        cost_manager: CostManager,
        heuristics_engine: Optional[HeuristicsEngine] = None,
        weights: Optional[Dict[str, float]] = None,
        decision_sink: Optional[DecisionSink] = None,
        provider_preference: Optional[List[str]] = None,
    ):
        """
        Initialize decision service.

        Args:
            registry: Model registry
            performance_monitor: Performance scores source
            cost_manager: Cost scores source
            heuristics_engine: Score adjustments (built-in heuristics if None)
            weights: performance/cost/feature weights, normalized to sum 1
            decision_sink: Receives a DecisionRecord per decision
            provider_preference: Provider order used to break score ties
        """
        self.registry = registry
        self.performance_monitor = performance_monitor
        self.cost_manager = cost_manager
        self.heuristics_engine = heuristics_engine or HeuristicsEngine()
        self.weights = normalize_weights(weights or {})
        self.decision_sink = decision_sink
        self.provider_preference = [enum_value(p) for p in provider_preference or []]
        self.logger = logging.getLogger(__name__)

    def derive_requirements(self, request: TaskRequest) -> TaskRequirements:
        """Requirements used for the candidate lookup and the hard filter."""
        _, output_tokens = self.cost_manager.estimate_tokens(request)
        return TaskRequirements(
            task_type=request.task_type,
            complexity=request.complexity,
            required_capabilities=set(request.constraints.required_capabilities),
            min_context_window=request.estimated_input_tokens + output_tokens,
        )

    def select_model(self, request: TaskRequest) -> str:
        """Model id selected for a request."""
        return self.decide(request).selected_model_id

    def decide(self, request: TaskRequest) -> RoutingDecision:
        """
        Make a routing decision.

        PATTERN: Preferred short-circuit, hard filter, score, heuristics, argmax
        CRITICAL: A decision record is emitted for every outcome

        Args:
            request: Task request

        Returns:
            RoutingDecision with candidates ranked best first

        Raises:
            NoCandidatesError: If nothing qualifies and the default model
                is missing or disabled
        """
        requirements = self.derive_requirements(request)

        preferred = self._preferred_model(request, requirements)
        if preferred is not None:
            decision = RoutingDecision(
                selected_model_id=preferred.model_id,
                reason=DecisionReason.PREFERRED,
                estimated_cost=self.cost_manager.estimate_cost(preferred, request),
            )
            self.logger.info(f"Routing to preferred model {preferred.model_id}")
            return self._emit(request, decision)

        candidates = [
            model for model in self.registry.get_candidates(requirements)
            if self._satisfies_constraints(model, request, requirements)
        ]

        if not candidates:
            return self._emit(request, self._default_decision(request, "no candidates"))

        try:
            scored = self._score_candidates(candidates, request, requirements)
        except Exception as e:
            self.logger.error(f"Scoring failed, using default model: {e}")
            return self._emit(request, self._default_decision(request, "scoring failed"))

        selected = scored[0]
        decision = RoutingDecision(
            selected_model_id=selected.model_id,
            reason=DecisionReason.SCORED,
            candidates=scored,
            estimated_cost=selected.estimated_cost,
        )

        self.logger.info(
            f"Routing {request.task_type} task to {selected.model_id} "
            f"(score {selected.final_score:.3f}, {len(scored)} candidates)"
        )
        return self._emit(request, decision)

    def _preferred_model(
        self,
        request: TaskRequest,
        requirements: TaskRequirements,
    ) -> Optional[ModelDescriptor]:
        model_id = request.constraints.preferred_model
        if not model_id or model_id not in self.registry:
            return None

        model = self.registry.get_model(model_id)
        if not model.is_active:
            self.logger.info(f"Preferred model {model_id} is disabled, scoring instead")
            return None

        if not set(requirements.required_capabilities).issubset(model.capabilities):
            return None

        if not self._satisfies_constraints(model, request, requirements):
            self.logger.info(f"Preferred model {model_id} violates constraints, scoring instead")
            return None

        return model

    def _satisfies_constraints(
        self,
        model: ModelDescriptor,
        request: TaskRequest,
        requirements: TaskRequirements,
    ) -> bool:
        constraints = request.constraints

        if model.context_window < requirements.min_context_window:
            return False

        if (
            constraints.max_latency_ms is not None
            and model.average_latency_ms > constraints.max_latency_ms
        ):
            return False

        if (
            constraints.max_cost is not None
            and self.cost_manager.estimate_cost(model, request) > constraints.max_cost
        ):
            return False

        return True

    def _default_decision(self, request: TaskRequest, why: str) -> RoutingDecision:
        default = self.registry.get_default_model()
        if default is None:
            raise NoCandidatesError(
                f"No model can serve {request.task_type} request ({why}) and "
                f"default model {self.registry.default_model_id!r} is unavailable"
            )

        self.logger.warning(
            f"No candidate satisfies {request.task_type} request ({why}), "
            f"falling back to default model {default.model_id}"
        )
        return RoutingDecision(
            selected_model_id=default.model_id,
            reason=DecisionReason.DEFAULT,
            estimated_cost=self.cost_manager.estimate_cost(default, request),
        )

    def _score_candidates(
        self,
        candidates: List[ModelDescriptor],
        request: TaskRequest,
        requirements: TaskRequirements,
    ) -> List[ScoredCandidate]:
        """
        Score candidates and rank them best first.

        Ties on the final score go to the lowest estimated cost, then the
        provider preference order, then the model id.
        """
        models = {m.model_id: m for m in candidates}
        partial: Dict[str, ScoredCandidate] = {}
        base_scores: Dict[str, float] = {}

        for model in candidates:
            performance = self.performance_monitor.get_score(
                model,
                requirements,
                request.time_sensitivity,
            )
            cost = self.cost_manager.get_score(model, request)
            feature = feature_match_score(model, requirements)
            base = (
                performance * self.weights["performance"]
                + cost * self.weights["cost"]
                + feature * self.weights["feature"]
            )
            base_scores[model.model_id] = base
            partial[model.model_id] = ScoredCandidate(
                model_id=model.model_id,
                performance_score=performance,
                cost_score=cost,
                feature_score=feature,
                base_score=base,
                estimated_cost=self.cost_manager.estimate_cost(model, request),
            )

        adjusted = self.heuristics_engine.apply_heuristics(base_scores, models, request)

        scored = [
            candidate.model_copy(update={"final_score": adjusted[model_id]})
            for model_id, candidate in partial.items()
        ]

        preference = self.provider_preference
        if request.constraints.provider_preference:
            preference = list(request.constraints.provider_preference)
        if request.constraints.preferred_provider:
            preference = [request.constraints.preferred_provider] + preference

        def provider_rank(model_id: str) -> int:
            provider = enum_value(models[model_id].provider)
            return preference.index(provider) if provider in preference else len(preference)

        return sorted(
            scored,
            key=lambda c: (
                -round(c.final_score, SCORE_PRECISION),
                c.estimated_cost,
                provider_rank(c.model_id),
                c.model_id,
            ),
        )

    def _emit(self, request: TaskRequest, decision: RoutingDecision) -> RoutingDecision:
        if self.decision_sink is not None:
            try:
                self.decision_sink.record(DecisionRecord.from_decision(request, decision))
            except Exception as e:
                self.logger.warning(f"Failed to record decision {decision.decision_id}: {e}")
        return decision
