"""Model registry: the catalogue the Decision Service routes over."""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from ..models.llm_models import ModelDescriptor, ModelStatus
from ..models.routing_models import FallbackChain, FallbackScope, TaskRequirements
from .exceptions import NotFoundError

logger = logging.getLogger(__name__)


class ModelRegistry:
    """
    Catalogue of model descriptors and fallback chains.

    PATTERN: Reads are lock-free snapshots, admin writes are serialized
    CRITICAL: Model ids are unique
    GOTCHA: Disabled models come back only through activate_model()
    """

    def __init__(
        self,
        models: Optional[Iterable[ModelDescriptor]] = None,
        default_model_id: Optional[str] = None,
        fallback_chains: Optional[Iterable[FallbackChain]] = None,
    ):
        """
        Initialize model registry.

        Args:
            models: Initial descriptors
            default_model_id: Model used when nothing else qualifies
            fallback_chains: Configured fallback chains

        Raises:
            ValueError: On duplicate model ids
        """
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._models: Dict[str, ModelDescriptor] = {}
        self._chains: Dict[tuple, FallbackChain] = {}
        self.default_model_id = default_model_id

        for model in models or []:
            self.register_model(model)

        for chain in fallback_chains or []:
            self.set_fallback_chain(chain)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ModelRegistry":
        """
        Load a catalogue from a YAML or JSON file.

        Expected layout::

            default_model: gpt-4o-mini
            models:
              - model_id: gpt-4o-mini
                provider: openai
                context_window: 128000
            fallback_chains:
              - key: large
                scope: category
                model_ids: [gpt-4o, gpt-4o-mini]

        Args:
            path: Catalogue file path

        Returns:
            Populated registry
        """
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data: Dict[str, Any] = json.load(f)
            else:
                data = yaml.safe_load(f) or {}

        models = [ModelDescriptor(**m) for m in data.get("models", [])]
        chains = [FallbackChain(**c) for c in data.get("fallback_chains", [])]

        logger.info(f"Loaded {len(models)} models from {path}")

        return cls(
            models=models,
            default_model_id=data.get("default_model"),
            fallback_chains=chains,
        )

    def register_model(self, model: ModelDescriptor) -> None:
        """
        Add a model to the catalogue.

        Raises:
            ValueError: If the model id is already registered
        """
        with self._lock:
            if model.model_id in self._models:
                raise ValueError(f"Model already registered: {model.model_id}")
            self._models[model.model_id] = model

        self.logger.debug(f"Registered model: {model.model_id}")

    def update_model(self, model: ModelDescriptor) -> None:
        """
        Replace a descriptor's metadata (costs, latency, tags).

        CRITICAL: Status is preserved, updates never re-activate a model

        Raises:
            NotFoundError: If the model is unknown
        """
        with self._lock:
            current = self._models.get(model.model_id)
            if current is None:
                raise NotFoundError(f"Unknown model: {model.model_id}")
            self._models[model.model_id] = model.model_copy(
                update={"status": current.status}
            )

    def disable_model(self, model_id: str) -> None:
        """Mark a model disabled; it stops appearing among candidates."""
        with self._lock:
            current = self._models.get(model_id)
            if current is None:
                raise NotFoundError(f"Unknown model: {model_id}")
            self._models[model_id] = current.model_copy(
                update={"status": ModelStatus.DISABLED.value}
            )

        self.logger.warning(f"Model disabled: {model_id}")

    def activate_model(self, model_id: str) -> None:
        """Explicitly re-activate a disabled model."""
        with self._lock:
            current = self._models.get(model_id)
            if current is None:
                raise NotFoundError(f"Unknown model: {model_id}")
            self._models[model_id] = current.model_copy(
                update={"status": ModelStatus.ACTIVE.value}
            )

        self.logger.info(f"Model activated: {model_id}")

    def get_model(self, model_id: str) -> ModelDescriptor:
        """
        Look up a model by id.

        Raises:
            NotFoundError: If the model is unknown
        """
        model = self._models.get(model_id)
        if model is None:
            raise NotFoundError(f"Unknown model: {model_id}")
        return model

    def list_models(self, include_disabled: bool = True) -> List[ModelDescriptor]:
        models = list(self._models.values())
        if include_disabled:
            return models
        return [m for m in models if m.is_active]

    def get_candidates(self, requirements: TaskRequirements) -> List[ModelDescriptor]:
        """
        Active models carrying every required capability tag.

        Args:
            requirements: Derived task requirements

        Returns:
            Matching descriptors in registration order
        """
        required = set(requirements.required_capabilities)
        return [
            model for model in self._models.values()
            if model.is_active and required.issubset(model.capabilities)
        ]

    def get_default_model(self) -> Optional[ModelDescriptor]:
        """Default model if configured, registered and active."""
        if not self.default_model_id:
            return None
        model = self._models.get(self.default_model_id)
        if model is None or not model.is_active:
            return None
        return model

    def set_fallback_chain(self, chain: FallbackChain) -> None:
        """Install or replace a fallback chain."""
        with self._lock:
            self._chains[(chain.scope, chain.key)] = chain

    def get_fallback_chain(
        self,
        scope: FallbackScope,
        key: str,
    ) -> Optional[FallbackChain]:
        return self._chains.get((FallbackScope(scope).value, key))

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)
