"""Prompt, context and processed-response models."""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from enum import Enum

from .llm_models import AttemptRecord, TaskType


class OutputFormat(str, Enum):
    """Post-processing formats for model output."""

    TEXT = "text"
    MARKDOWN = "markdown"
    JSON = "json"


class PromptTemplate(BaseModel):
    """A reusable prompt with named placeholders."""

    template_id: str
    task_type: TaskType = Field(default=TaskType.GENERAL)
    system_prompt: str = Field(default="")
    user_prompt: str = Field(description="User prompt with {placeholders}")
    use_context: bool = Field(default=True, description="Query the knowledge base")
    context_limit: int = Field(default=5, ge=0)
    context_max_tokens: int = Field(
        default=2000,
        ge=0,
        description="Token budget for all context items together",
    )
    default_output_format: OutputFormat = Field(default=OutputFormat.TEXT)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


class ContextItem(BaseModel):
    """A piece of knowledge base context."""

    content: str
    source: Optional[str] = Field(default=None)
    relevance: float = Field(default=0.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProcessedResponse(BaseModel):
    """Final result of process_request."""

    content: str = Field(description="Raw model output")
    output_format: OutputFormat = Field(default=OutputFormat.TEXT)
    parsed: Optional[Any] = Field(default=None, description="Parsed JSON payload")
    valid: bool = Field(default=True)
    validation_errors: List[str] = Field(default_factory=list)
    model_used: str
    fallback_used: bool = Field(default=False)
    attempts: List[AttemptRecord] = Field(default_factory=list)
    input_tokens: int = Field(default=0)
    output_tokens: int = Field(default=0)
    total_cost: float = Field(default=0.0)
    latency_ms: int = Field(default=0)
    cache_hit: bool = Field(default=False)
    context_items_used: int = Field(default=0)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


class FormattedOutput(BaseModel):
    """Model output after post-processing into an output format."""

    content: str
    output_format: OutputFormat = Field(default=OutputFormat.TEXT)
    parsed: Optional[Any] = Field(default=None)
    valid: bool = Field(default=True)
    validation_errors: List[str] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True
