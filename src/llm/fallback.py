"""Request handler: executes a routed request with retries and fallback chains."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional

from ..models.llm_models import (
    AttemptRecord,
    LLMResponse,
    ModelDescriptor,
    TaskRequest,
    enum_value,
)
from ..models.routing_models import ExecutionState, FallbackScope, RoutingDecision
from .base import BaseLLM
from .context import ContextPruner
from .cost import CostManager
from .exceptions import (
    AllModelsFailedError,
    InvalidTransitionError,
    NoCandidatesError,
    NotFoundError,
    PermanentProviderError,
    ProviderError,
    RequestTimeoutError,
    TransientProviderError,
)
from .performance import PerformanceMonitor
from .registry import ModelRegistry
from .router import DecisionService

logger = logging.getLogger(__name__)

TRANSITIONS = {
    ExecutionState.SELECTING: {ExecutionState.EXECUTING, ExecutionState.FAILED},
    ExecutionState.EXECUTING: {
        ExecutionState.SUCCEEDED,
        ExecutionState.RETRYING,
        ExecutionState.FALLING_BACK,
        ExecutionState.FAILED,
    },
    ExecutionState.RETRYING: {ExecutionState.EXECUTING, ExecutionState.FAILED},
    ExecutionState.FALLING_BACK: {ExecutionState.EXECUTING, ExecutionState.FAILED},
    ExecutionState.SUCCEEDED: set(),
    ExecutionState.FAILED: set(),
}


class RequestExecution:
    """
    State machine instance for one request.

    CRITICAL: One instance per request, never shared between requests
    """

    def __init__(self):
        self.state = ExecutionState.SELECTING
        self.history: List[ExecutionState] = [self.state]
        self.attempts: List[AttemptRecord] = []

    def transition(self, new_state: ExecutionState) -> None:
        """
        Move to a new state.

        Raises:
            InvalidTransitionError: If the transition table forbids it
        """
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Illegal transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    @property
    def finished(self) -> bool:
        return self.state in (ExecutionState.SUCCEEDED, ExecutionState.FAILED)


class FallbackEngine:
    """
    Executes requests against providers with retry and fallback.

    PATTERN: Explicit state machine, exponential backoff on the primary only
    CRITICAL: Attempts within a request are strictly sequential
    CRITICAL: The performance monitor hears about every outcome before the next step
    GOTCHA: Each fallback model gets exactly one execution
    """

    def __init__(
        self,
        decision_service: DecisionService,
        registry: ModelRegistry,
        providers: Dict[str, BaseLLM],
        performance_monitor: PerformanceMonitor,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        temperature: float = 0.7,
        context_pruner: Optional[ContextPruner] = None,
        cost_tracker=None,
        cost_manager: Optional[CostManager] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize fallback engine.

        Args:
            decision_service: Selects the primary model
            registry: Model registry (fallback chains, descriptors)
            providers: Model id -> provider adapter
            performance_monitor: Receives success and failure signals
            max_retries: Retries of the primary after its first execution
            base_delay: Base delay for exponential backoff (seconds)
            max_delay: Maximum delay between retries (seconds)
            temperature: Sampling temperature passed to providers
            context_pruner: Fits messages to each model's window (none if None)
            cost_tracker: Optional CostTracker receiving every response
            cost_manager: Output token estimates, shared with the router (defaults if None)
            sleep: Awaitable sleep, injectable for tests
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self.decision_service = decision_service
        self.registry = registry
        self.providers = providers
        self.performance_monitor = performance_monitor
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.temperature = temperature
        self.context_pruner = context_pruner
        self.cost_tracker = cost_tracker
        self.cost_manager = cost_manager or CostManager()
        self.sleep = sleep
        self.logger = logging.getLogger(__name__)

    def backoff_delay(self, retry: int) -> float:
        """Delay before retry number `retry` (0-based)."""
        return min(self.base_delay * (2 ** retry), self.max_delay)

    def output_reservation(
        self,
        request: TaskRequest,
        descriptor: ModelDescriptor,
        max_tokens: Optional[int] = None,
    ) -> int:
        """
        Tokens kept free for the response on one attempt.

        CRITICAL: Same estimate the router filters context windows with, so a
            prompt that passed routing is not truncated at execution
        """
        if max_tokens is not None:
            return max_tokens
        _, estimated = self.cost_manager.estimate_tokens(request)
        return min(estimated, descriptor.max_output_tokens)

    async def handle_request(
        self,
        request: TaskRequest,
        messages: List[Dict[str, str]],
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Route and execute a request.

        PATTERN: Selecting -> Executing -> {Succeeded | Retrying | FallingBack | Failed}

        Args:
            request: Task request
            messages: Chat messages to send
            timeout: Deadline in seconds across retries and fallbacks
            max_tokens: Maximum tokens to generate

        Returns:
            Response annotated with the serving model and attempt history

        Raises:
            NoCandidatesError: If no model (not even the default) can serve
            AllModelsFailedError: If the primary and every fallback failed
            RequestTimeoutError: If the deadline passed first
        """
        execution = RequestExecution()
        deadline = time.monotonic() + timeout if timeout is not None else None

        try:
            decision = self.decision_service.decide(request)
        except NoCandidatesError:
            execution.transition(ExecutionState.FAILED)
            raise

        primary = decision.selected_model_id
        execution.transition(ExecutionState.EXECUTING)

        response = await self._run_primary(
            execution, request, messages, primary, deadline, max_tokens
        )
        if response is not None:
            return response

        for model_id in self.resolve_fallback_chain(request, decision):
            execution.transition(ExecutionState.FALLING_BACK)
            self.logger.info(f"Falling back from {primary} to {model_id}")
            execution.transition(ExecutionState.EXECUTING)

            attempt = AttemptRecord(model_id=model_id)
            execution.attempts.append(attempt)
            try:
                return await self._execute(
                    execution, attempt, request, messages, deadline, max_tokens,
                    fallback_used=True,
                )
            except ProviderError:
                continue

        execution.transition(ExecutionState.FAILED)
        summary = ", ".join(
            f"{a.model_id} ({a.error_type})" for a in execution.attempts
        )
        self.logger.error(f"All models failed for {request.task_type} request: {summary}")
        raise AllModelsFailedError(
            f"All {len(execution.attempts)} models failed: {summary}",
            attempts=execution.attempts,
        )

    async def _run_primary(
        self,
        execution: RequestExecution,
        request: TaskRequest,
        messages: List[Dict[str, str]],
        model_id: str,
        deadline: Optional[float],
        max_tokens: Optional[int],
    ) -> Optional[LLMResponse]:
        """Primary model with retries on transient errors; None when it gave up."""
        attempt = AttemptRecord(model_id=model_id)
        execution.attempts.append(attempt)

        for retry in range(self.max_retries + 1):
            try:
                return await self._execute(
                    execution, attempt, request, messages, deadline, max_tokens,
                    fallback_used=False,
                )
            except PermanentProviderError:
                return None
            except TransientProviderError:
                if retry >= self.max_retries:
                    self.logger.warning(
                        f"Retries exhausted on {model_id} after {attempt.executions} executions"
                    )
                    return None

                delay = self.backoff_delay(retry)
                execution.transition(ExecutionState.RETRYING)
                self.logger.warning(
                    f"Retrying {model_id} (retry {retry + 1}/{self.max_retries}) "
                    f"in {delay:.2f}s"
                )
                await self._backoff(execution, delay, deadline)
                execution.transition(ExecutionState.EXECUTING)

        return None

    async def _backoff(
        self,
        execution: RequestExecution,
        delay: float,
        deadline: Optional[float],
    ) -> None:
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or delay >= remaining:
                # Sleeping would carry us past the deadline
                if remaining > 0:
                    await self.sleep(remaining)
                self._fail_timeout(execution)
        await self.sleep(delay)

    def _fail_timeout(self, execution: RequestExecution) -> None:
        execution.transition(ExecutionState.FAILED)
        tried = ", ".join(a.model_id for a in execution.attempts)
        self.logger.error(f"Request deadline exceeded after trying: {tried}")
        raise RequestTimeoutError(
            f"Request deadline exceeded after {len(execution.attempts)} models",
            attempts=execution.attempts,
        )

    async def _execute(
        self,
        execution: RequestExecution,
        attempt: AttemptRecord,
        request: TaskRequest,
        messages: List[Dict[str, str]],
        deadline: Optional[float],
        max_tokens: Optional[int],
        fallback_used: bool,
    ) -> LLMResponse:
        """
        One execution of one model.

        Raises:
            TransientProviderError: Retryable failure (already recorded)
            PermanentProviderError: Non-retryable failure (already recorded)
            RequestTimeoutError: Deadline passed (request is FAILED)
        """
        model_id = attempt.model_id
        attempt.executions += 1

        remaining = None
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._fail_timeout(execution)

        started = time.monotonic()
        try:
            provider = self.providers.get(model_id)
            if provider is None:
                raise PermanentProviderError(f"No provider configured for {model_id}")

            descriptor = provider.descriptor
            reserved_tokens = self.output_reservation(request, descriptor, max_tokens)
            attempt_messages = messages
            if self.context_pruner is not None:
                attempt_messages = self.context_pruner.fit_messages(
                    messages,
                    descriptor.context_window,
                    reserve_tokens=reserved_tokens,
                )

            call = provider.agenerate(
                messages=attempt_messages,
                max_tokens=reserved_tokens,
                temperature=self.temperature,
            )
            if remaining is not None:
                content = await asyncio.wait_for(call, timeout=remaining)
            else:
                content = await call

        except asyncio.TimeoutError as e:
            if deadline is None or time.monotonic() < deadline:
                error = TransientProviderError(f"Timeout from {model_id}: {e}")
                self._record_failure(attempt, request, error, started)
                raise error from e

            latency_ms = int((time.monotonic() - started) * 1000)
            attempt.latency_ms += latency_ms
            attempt.error_type = "timeout"
            attempt.error_message = "cancelled at request deadline"
            self.logger.warning(
                f"Attempt {attempt.executions} on {model_id} cancelled at deadline"
            )
            self._fail_timeout(execution)

        except ProviderError as e:
            self._record_failure(attempt, request, e, started)
            raise

        except Exception as e:
            # Adapters should only raise ProviderError; anything else is not retryable
            error = PermanentProviderError(f"Unexpected error from {model_id}: {e}")
            self.logger.error(f"Unexpected error on {model_id}: {e}", exc_info=True)
            self._record_failure(attempt, request, error, started)
            raise error from e

        latency_ms = int((time.monotonic() - started) * 1000)
        attempt.latency_ms += latency_ms
        attempt.succeeded = True

        self.performance_monitor.record_success(model_id, request.task_type, latency_ms)

        input_tokens = sum(
            provider.get_num_tokens(msg.get("content", ""))
            for msg in attempt_messages
        )
        output_tokens = provider.get_num_tokens(content)

        response = LLMResponse(
            content=content,
            model_used=model_id,
            provider=descriptor.provider,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_cost=provider.calculate_cost(input_tokens, output_tokens),
            latency_ms=sum(a.latency_ms for a in execution.attempts),
            fallback_used=fallback_used,
            attempts=list(execution.attempts),
        )

        if self.cost_tracker is not None:
            self.cost_tracker.track_request(response, task_type=request.task_type)

        execution.transition(ExecutionState.SUCCEEDED)
        self.logger.info(
            f"Success with {model_id} (execution {attempt.executions}, "
            f"{len(execution.attempts)} models tried, {latency_ms}ms)"
        )
        return response

    def _record_failure(
        self,
        attempt: AttemptRecord,
        request: TaskRequest,
        error: ProviderError,
        started: float,
    ) -> None:
        latency_ms = int((time.monotonic() - started) * 1000)
        permanent = not isinstance(error, TransientProviderError)
        error_type = type(error).__name__

        attempt.latency_ms += latency_ms
        attempt.error_type = error_type
        attempt.error_message = str(error)

        self.performance_monitor.record_failure(
            attempt.model_id,
            request.task_type,
            error_type=error_type,
            permanent=permanent,
            latency_ms=latency_ms,
        )
        self.logger.warning(
            f"{error_type} on {attempt.model_id} "
            f"(attempt {attempt.executions}): {error}"
        )

    def resolve_fallback_chain(
        self,
        request: TaskRequest,
        decision: RoutingDecision,
    ) -> List[str]:
        """
        Fallback models for a failed primary, in order.

        Resolution: request fallback_models, else the chain configured for the
        model id, the task type, the model's size category, else the remaining
        ranked candidates. The primary, duplicates and inactive or unknown
        models are dropped.

        Args:
            request: Task request
            decision: Routing decision of the request

        Returns:
            Model ids to try, one execution each
        """
        primary = decision.selected_model_id
        model_ids = self._configured_chain(request, primary)
        if model_ids is None:
            model_ids = decision.ranked_model_ids

        chain: List[str] = []
        for model_id in model_ids:
            if model_id == primary or model_id in chain:
                continue
            try:
                model = self.registry.get_model(model_id)
            except NotFoundError:
                self.logger.warning(f"Skipping unknown fallback model {model_id}")
                continue
            if not model.is_active:
                self.logger.info(f"Skipping disabled fallback model {model_id}")
                continue
            chain.append(model_id)

        return chain

    def _configured_chain(self, request: TaskRequest, primary: str) -> Optional[List[str]]:
        if request.constraints.fallback_models:
            return list(request.constraints.fallback_models)

        chain = self.registry.get_fallback_chain(FallbackScope.MODEL, primary)
        if chain is None:
            chain = self.registry.get_fallback_chain(
                FallbackScope.TASK_TYPE,
                enum_value(request.task_type),
            )
        if chain is None and primary in self.registry:
            size = enum_value(self.registry.get_model(primary).size)
            chain = self.registry.get_fallback_chain(FallbackScope.CATEGORY, size)

        return list(chain.model_ids) if chain is not None else None
