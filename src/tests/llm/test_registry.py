"""Tests for the model registry."""

import json

import pytest
import yaml
from src.llm.exceptions import NotFoundError
from src.llm.registry import ModelRegistry
from src.models.llm_models import ModelDescriptor, ModelProvider, TaskComplexity, TaskType
from src.models.routing_models import FallbackChain, FallbackScope, TaskRequirements


def make_descriptor(model_id: str, **kwargs) -> ModelDescriptor:
    fields = {
        "provider": ModelProvider.OPENAI,
        "context_window": 16000,
        "capabilities": {"code_generation"},
    }
    fields.update(kwargs)
    return ModelDescriptor(model_id=model_id, **fields)


def requirements(*capabilities: str) -> TaskRequirements:
    return TaskRequirements(
        task_type=TaskType.CODE_GENERATION,
        complexity=TaskComplexity.MEDIUM,
        required_capabilities=set(capabilities),
    )


class TestModelRegistry:
    """Test suite for ModelRegistry."""

    def setup_method(self):
        """Set up test fixtures."""
        self.registry = ModelRegistry(
            models=[
                make_descriptor("coder", capabilities={"code_generation", "debugging"}),
                make_descriptor("writer", capabilities={"documentation"}),
            ],
            default_model_id="writer",
        )

    def test_register_and_get(self):
        """Test registering a model makes it retrievable."""
        self.registry.register_model(make_descriptor("new-model"))

        assert "new-model" in self.registry
        assert self.registry.get_model("new-model").model_id == "new-model"
        assert len(self.registry) == 3

    def test_duplicate_id_rejected(self):
        """Test model ids are unique."""
        with pytest.raises(ValueError):
            self.registry.register_model(make_descriptor("coder"))

    def test_unknown_model_raises(self):
        """Test lookups of unknown ids."""
        with pytest.raises(NotFoundError):
            self.registry.get_model("missing")

        with pytest.raises(NotFoundError):
            self.registry.disable_model("missing")

    def test_get_candidates_filters_by_capability(self):
        """Test candidates carry every required capability."""
        candidates = self.registry.get_candidates(requirements("code_generation", "debugging"))

        assert [m.model_id for m in candidates] == ["coder"]

    def test_get_candidates_without_requirements(self):
        """Test every active model qualifies without required capabilities."""
        candidates = self.registry.get_candidates(requirements())

        assert {m.model_id for m in candidates} == {"coder", "writer"}

    def test_disabled_model_not_a_candidate(self):
        """Test disabling removes a model from candidate lists."""
        self.registry.disable_model("coder")

        assert self.registry.get_candidates(requirements("code_generation")) == []
        assert not self.registry.get_model("coder").is_active

    def test_single_model_disabled_leaves_no_candidates(self):
        """Test a registry whose only model is disabled yields nothing."""
        registry = ModelRegistry(models=[make_descriptor("m1")])
        registry.disable_model("m1")

        assert registry.get_candidates(requirements()) == []

    def test_activate_model(self):
        """Test disabled models come back only when re-activated."""
        self.registry.disable_model("coder")
        self.registry.activate_model("coder")

        assert self.registry.get_model("coder").is_active
        assert len(self.registry.get_candidates(requirements("code_generation"))) == 1

    def test_update_preserves_status(self):
        """Test metadata updates never re-activate a disabled model."""
        self.registry.disable_model("coder")
        self.registry.update_model(make_descriptor("coder", cost_per_1k_input=0.5))

        model = self.registry.get_model("coder")
        assert model.cost_per_1k_input == 0.5
        assert not model.is_active

    def test_update_unknown_model(self):
        """Test updating an unregistered model."""
        with pytest.raises(NotFoundError):
            self.registry.update_model(make_descriptor("ghost"))

    def test_list_models(self):
        """Test listing with and without disabled models."""
        self.registry.disable_model("writer")

        assert len(self.registry.list_models()) == 2
        assert [m.model_id for m in self.registry.list_models(include_disabled=False)] == ["coder"]

    def test_default_model(self):
        """Test the default model lookup."""
        assert self.registry.get_default_model().model_id == "writer"

        self.registry.disable_model("writer")
        assert self.registry.get_default_model() is None

    def test_default_model_unregistered(self):
        """Test a default id without a descriptor."""
        registry = ModelRegistry(models=[make_descriptor("a")], default_model_id="b")

        assert registry.get_default_model() is None

    def test_fallback_chains(self):
        """Test chains are keyed by scope and key."""
        self.registry.set_fallback_chain(
            FallbackChain(key="coder", scope=FallbackScope.MODEL, model_ids=["writer"])
        )

        chain = self.registry.get_fallback_chain(FallbackScope.MODEL, "coder")
        assert chain.model_ids == ["writer"]
        assert self.registry.get_fallback_chain(FallbackScope.TASK_TYPE, "coder") is None
        assert self.registry.get_fallback_chain("model", "coder") is chain


class TestRegistryFromFile:
    """Test loading catalogues from disk."""

    CATALOGUE = {
        "default_model": "small",
        "models": [
            {
                "model_id": "small",
                "provider": "ollama",
                "deployment": "self_hosted",
                "size": "small",
                "context_window": 8192,
                "capabilities": ["general"],
            },
            {
                "model_id": "big",
                "provider": "anthropic",
                "size": "large",
                "context_window": 200000,
                "cost_per_1k_input": 0.003,
                "cost_per_1k_output": 0.015,
                "capabilities": ["code_generation", "general"],
                "specializations": ["code_generation"],
            },
        ],
        "fallback_chains": [
            {"key": "large", "scope": "category", "model_ids": ["small"]},
        ],
    }

    def test_from_yaml(self, tmp_path):
        """Test loading a YAML catalogue."""
        path = tmp_path / "models.yaml"
        path.write_text(yaml.safe_dump(self.CATALOGUE))

        registry = ModelRegistry.from_file(path)

        assert len(registry) == 2
        assert registry.default_model_id == "small"
        assert registry.get_model("small").deployment == "self_hosted"
        assert registry.get_model("big").has_tag("code_generation")
        assert registry.get_fallback_chain(FallbackScope.CATEGORY, "large").model_ids == ["small"]

    def test_from_json(self, tmp_path):
        """Test loading a JSON catalogue."""
        path = tmp_path / "models.json"
        path.write_text(json.dumps(self.CATALOGUE))

        registry = ModelRegistry.from_file(str(path))

        assert registry.get_model("big").provider == "anthropic"
        assert registry.get_default_model().model_id == "small"
