"""High-level orchestration service: prompt in, processed response out."""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..config.llm_config import OrchestratorConfig
from ..llm import (
    BaseLLM,
    BudgetService,
    ContextPruner,
    CostManager,
    DecisionService,
    FallbackEngine,
    HeuristicsEngine,
    LLMResponseCache,
    MetricsStore,
    ModelRegistry,
    PerformanceMonitor,
    PromptTemplateManager,
    ResponseFormatter,
    TaskComplexityAnalyzer,
    default_heuristics,
    make_cache_key,
)
from ..llm.formatter import Schema
from ..llm.providers import create_provider
from ..models.llm_models import TaskConstraints, TaskType, TimeSensitivity
from ..models.prompt_models import ContextItem, OutputFormat, ProcessedResponse
from .cost_tracking_service import CostTracker
from .knowledge_service import KnowledgeBase, QdrantKnowledgeBase
from .telemetry_service import DecisionLog

logger = logging.getLogger(__name__)


class LLMOrchestrator:
    """
    Facade over routing, fallback execution, context and post-processing.

    PATTERN: Render -> Context -> Route -> Execute with fallback -> Format -> Cache
    CRITICAL: Single entry point for collaborators (process_request)
    GOTCHA: Models whose provider has no credentials are registered but get no adapter
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        registry: Optional[ModelRegistry] = None,
        providers: Optional[Dict[str, BaseLLM]] = None,
        knowledge_base: Optional[KnowledgeBase] = None,
        budget_service: Optional[BudgetService] = None,
        prompt_manager: Optional[PromptTemplateManager] = None,
        embedding_function: Optional[Callable] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Orchestrator configuration (creates default if None)
            registry: Model registry (built from config if None)
            providers: Model id -> adapter (created from config if None)
            knowledge_base: Context source (Qdrant if configured, else none)
            budget_service: Budget status source (the cost tracker if None)
            prompt_manager: Prompt templates (built-ins if None)
            embedding_function: Embeddings for the Qdrant knowledge base
        """
        self.config = config or OrchestratorConfig()
        self.logger = logging.getLogger(__name__)

        self.registry = registry if registry is not None else self._build_registry()
        self.providers: Dict[str, BaseLLM] = (
            providers if providers is not None else self._initialize_providers()
        )

        self.cost_tracker = CostTracker(
            daily_budget=self.config.daily_budget,
            warning_ratio=self.config.budget_warning_ratio,
            critical_ratio=self.config.budget_critical_ratio,
        )
        self.metrics_store = MetricsStore(
            window=timedelta(days=self.config.metrics_window_days),
        )
        self.performance_monitor = PerformanceMonitor(
            store=self.metrics_store,
            refresh_interval=self.config.metrics_refresh_interval,
            weights_by_task_type=self.config.performance_weights,
        )
        self.cost_manager = CostManager(
            budget_service=budget_service or self.cost_tracker,
            average_task_budget=self.config.average_task_budget,
            output_token_baselines=self.config.output_token_baselines,
            complexity_multipliers=self.config.complexity_multipliers,
        )
        self.heuristics_engine = HeuristicsEngine(
            default_heuristics(
                code_boost=self.config.code_specialization_boost,
                large_context_threshold=self.config.large_context_threshold,
                large_context_boost=self.config.large_context_boost,
                fast_boost=self.config.fast_model_boost,
            )
        )
        self.decision_log = DecisionLog(path=self.config.decision_log_path)
        self.decision_service = DecisionService(
            registry=self.registry,
            performance_monitor=self.performance_monitor,
            cost_manager=self.cost_manager,
            heuristics_engine=self.heuristics_engine,
            weights=self.config.routing_weights(),
            decision_sink=self.decision_log,
        )
        self.context_pruner = ContextPruner()
        self.fallback_engine = FallbackEngine(
            decision_service=self.decision_service,
            registry=self.registry,
            providers=self.providers,
            performance_monitor=self.performance_monitor,
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
            temperature=self.config.temperature,
            context_pruner=self.context_pruner,
            cost_tracker=self.cost_tracker,
            cost_manager=self.cost_manager,
        )

        self.analyzer = TaskComplexityAnalyzer()
        self.prompt_manager = prompt_manager or PromptTemplateManager()
        self.formatter = ResponseFormatter()
        self.cache = LLMResponseCache(
            max_size=self.config.cache_max_size,
            default_ttl=self.config.cache_ttl,
        ) if self.config.enable_cache else None

        if knowledge_base is None and self.config.qdrant_url and embedding_function:
            knowledge_base = QdrantKnowledgeBase(
                collection_name=self.config.qdrant_collection,
                embedding_function=embedding_function,
                url=self.config.qdrant_url,
                api_key=self.config.qdrant_api_key,
            )
        self.knowledge_base = knowledge_base

        self.logger.info(
            f"LLM Orchestrator initialized with {len(self.registry)} models "
            f"({len(self.providers)} with providers)"
        )

    def _build_registry(self) -> ModelRegistry:
        if self.config.catalogue_path:
            return ModelRegistry.from_file(self.config.catalogue_path)

        descriptors = self.config.get_model_descriptors()
        return ModelRegistry(
            models=descriptors,
            default_model_id=self.config.default_model_id,
            fallback_chains=self.config.get_fallback_chains(descriptors),
        )

    def _initialize_providers(self) -> Dict[str, BaseLLM]:
        """
        Create an adapter for every registered model.

        CRITICAL: Handle missing API keys gracefully
        """
        providers: Dict[str, BaseLLM] = {}

        for descriptor in self.registry.list_models():
            try:
                provider = create_provider(descriptor, self.config)
            except Exception as e:
                self.logger.error(f"Failed to initialize {descriptor.model_id}: {e}")
                continue

            if provider is not None:
                providers[descriptor.model_id] = provider
                self.logger.debug(f"Initialized provider: {descriptor.model_id}")

        return providers

    async def process_request(
        self,
        task_type: TaskType,
        template_id: str,
        variables: Dict[str, Any],
        output_format: Optional[OutputFormat] = None,
        schema: Optional[Schema] = None,
        constraints: Optional[TaskConstraints] = None,
        timeout: Optional[float] = None,
        time_sensitivity: TimeSensitivity = TimeSensitivity.NORMAL,
        max_tokens: Optional[int] = None,
        use_cache: bool = True,
    ) -> ProcessedResponse:
        """
        Process a request end to end.

        PATTERN: Check cache -> Context -> Route -> Execute -> Format -> Cache
        CRITICAL: Template errors surface before any model is called

        Args:
            task_type: Task type
            template_id: Prompt template id
            variables: Template variables
            output_format: Output format (template default, or JSON with a schema)
            schema: Pydantic model class or JSON schema for JSON output
            constraints: Hard constraints and routing hints
            timeout: Deadline in seconds (config default if None)
            time_sensitivity: Caller urgency
            max_tokens: Maximum tokens to generate
            use_cache: Consult and fill the response cache

        Returns:
            Processed response

        Raises:
            TemplateNotFoundError: Unknown template id
            TemplateRenderError: Missing template variables
            NoCandidatesError: No model can serve the request
            AllModelsFailedError: The primary and every fallback failed
            RequestTimeoutError: The deadline passed first
        """
        start_time = datetime.now()
        task_type = TaskType(task_type)
        template = self.prompt_manager.get_template(template_id)

        if output_format is None:
            output_format = OutputFormat.JSON if schema is not None else template.default_output_format
        output_format = OutputFormat(output_format)

        # Validates variables before anything else happens
        base_messages = self.prompt_manager.render(template_id, variables, output_format=output_format)

        cache_key = None
        if self.cache and use_cache:
            cache_key = make_cache_key(
                task_type=task_type.value,
                template_id=template_id,
                variables=variables,
                output_format=output_format.value,
                schema=self._schema_fingerprint(schema),
                constraints=constraints.model_dump(mode="json") if constraints else None,
                max_tokens=max_tokens,
            )
            cached = await self.cache.get(cache_key)
            if cached is not None:
                self.logger.info(f"Cache hit! Saved ${cached.total_cost:.4f}")
                return cached

        context_items = await self._retrieve_context(template, base_messages[-1]["content"])
        messages = self.prompt_manager.render(
            template_id,
            variables,
            context_items=context_items,
            output_format=output_format,
        )

        request = self.analyzer.build_request(
            messages,
            task_type=task_type,
            time_sensitivity=time_sensitivity,
            constraints=constraints,
        )
        if max_tokens is not None:
            # Routing reserves the same output room execution will ask for
            request = request.model_copy(update={"estimated_output_tokens": max_tokens})

        response = await self.fallback_engine.handle_request(
            request,
            messages,
            timeout=timeout if timeout is not None else self.config.request_timeout,
            max_tokens=max_tokens,
        )

        formatted = self.formatter.format(response.content, output_format, schema)
        if not formatted.valid:
            self.performance_monitor.record_quality(response.model_used, task_type, 0.0)
        elif schema is not None:
            self.performance_monitor.record_quality(response.model_used, task_type, 1.0)

        processed = ProcessedResponse(
            content=formatted.content,
            output_format=output_format,
            parsed=formatted.parsed,
            valid=formatted.valid,
            validation_errors=formatted.validation_errors,
            model_used=response.model_used,
            fallback_used=response.fallback_used,
            attempts=response.attempts,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            total_cost=response.total_cost,
            latency_ms=int((datetime.now() - start_time).total_seconds() * 1000),
            context_items_used=len(context_items),
        )

        if cache_key is not None:
            await self.cache.set(cache_key, processed)

        self.logger.info(
            f"Processed {task_type.value} request with {processed.model_used} "
            f"(cost: ${processed.total_cost:.4f}, "
            f"latency: {processed.latency_ms}ms, valid: {processed.valid})"
        )
        return processed

    async def _retrieve_context(self, template, query: str) -> List[ContextItem]:
        if self.knowledge_base is None or not template.use_context or template.context_limit <= 0:
            return []

        try:
            items = await self.knowledge_base.query(query, limit=template.context_limit)
        except Exception as e:
            self.logger.warning(f"Context retrieval failed, continuing without it: {e}")
            return []

        selected = self.context_pruner.select_items(items, template.context_max_tokens)
        if len(selected) < len(items):
            self.logger.debug(
                f"Kept {len(selected)}/{len(items)} context items "
                f"within {template.context_max_tokens} tokens"
            )
        return selected

    @staticmethod
    def _schema_fingerprint(schema: Optional[Schema]) -> Optional[Dict[str, Any]]:
        if schema is None:
            return None
        if isinstance(schema, type):
            return schema.model_json_schema()
        return schema

    def get_available_models(self) -> List[str]:
        """Model ids that are active and have a provider adapter."""
        return [
            m.model_id for m in self.registry.list_models(include_disabled=False)
            if m.model_id in self.providers
        ]

    def get_cache_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Cache stats dictionary
        """
        if not self.cache:
            return {"enabled": False}

        stats = self.cache.get_stats()
        stats["enabled"] = True
        return stats

    def get_cost_report(self) -> Dict[str, Any]:
        return self.cost_tracker.get_cost_report("global")

    async def cleanup(self) -> None:
        """Clean up resources."""
        for model_id, provider in self.providers.items():
            try:
                await provider.close()
            except Exception as e:
                self.logger.error(f"Error closing provider {model_id}: {e}")

        if self.knowledge_base is not None:
            try:
                await self.knowledge_base.close()
            except Exception as e:
                self.logger.error(f"Error closing knowledge base: {e}")

        if self.cache:
            self.cache.cleanup_expired()

        self.logger.info("LLM Orchestrator cleaned up")

    async def close(self) -> None:
        """Alias for cleanup() to match common close() pattern."""
        await self.cleanup()
