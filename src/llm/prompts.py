"""Prompt templates rendered into chat messages."""

import logging
import string
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..models.llm_models import TaskType
from ..models.prompt_models import ContextItem, OutputFormat, PromptTemplate
from .exceptions import TemplateNotFoundError, TemplateRenderError

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"

JSON_INSTRUCTION = (
    "Respond with a single JSON object only, no prose before or after it."
)

BUILTIN_TEMPLATES = [
    PromptTemplate(
        template_id=TaskType.CODE_GENERATION.value,
        task_type=TaskType.CODE_GENERATION,
        system_prompt=(
            "You are a senior software engineer. Write correct, idiomatic, "
            "well-tested code and explain only what is not obvious."
        ),
        user_prompt="Implement the following in {language}:\n\n{task}",
        default_output_format=OutputFormat.MARKDOWN,
    ),
    PromptTemplate(
        template_id=TaskType.CODE_REVIEW.value,
        task_type=TaskType.CODE_REVIEW,
        system_prompt=(
            "You are a meticulous code reviewer. Point out bugs, security "
            "issues and maintainability problems, most severe first."
        ),
        user_prompt="Review this code:\n\n{code}",
        default_output_format=OutputFormat.MARKDOWN,
    ),
    PromptTemplate(
        template_id=TaskType.DEBUGGING.value,
        task_type=TaskType.DEBUGGING,
        system_prompt=(
            "You are an expert debugger. Find the root cause before "
            "proposing a fix."
        ),
        user_prompt="Error:\n{error}\n\nCode:\n{code}",
        default_output_format=OutputFormat.MARKDOWN,
    ),
    PromptTemplate(
        template_id=TaskType.PLANNING.value,
        task_type=TaskType.PLANNING,
        system_prompt="You are a technical lead breaking work into concrete steps.",
        user_prompt="Create an implementation plan for:\n\n{goal}",
        default_output_format=OutputFormat.MARKDOWN,
    ),
    PromptTemplate(
        template_id=TaskType.DOCUMENTATION.value,
        task_type=TaskType.DOCUMENTATION,
        system_prompt="You write clear, accurate developer documentation.",
        user_prompt="Document the following:\n\n{subject}",
        default_output_format=OutputFormat.MARKDOWN,
    ),
    PromptTemplate(
        template_id=TaskType.TESTING.value,
        task_type=TaskType.TESTING,
        system_prompt=(
            "You write focused automated tests covering edge cases and "
            "failure paths."
        ),
        user_prompt="Write tests for:\n\n{code}",
        default_output_format=OutputFormat.MARKDOWN,
    ),
    PromptTemplate(
        template_id=TaskType.ANALYSIS.value,
        task_type=TaskType.ANALYSIS,
        system_prompt="You are an analyst. Be precise and cite the evidence you use.",
        user_prompt="Analyze the following:\n\n{subject}",
    ),
    PromptTemplate(
        template_id=TaskType.GENERAL.value,
        task_type=TaskType.GENERAL,
        system_prompt="You are a helpful assistant for a software team.",
        user_prompt="{prompt}",
        use_context=False,
    ),
]


def template_fields(text: str) -> List[str]:
    """Named placeholders in a format string, in order of appearance."""
    fields = []
    for _, field_name, _, _ in string.Formatter().parse(text):
        if field_name is None:
            continue
        name = field_name.split(".")[0].split("[")[0]
        if name and name not in fields:
            fields.append(name)
    return fields


class PromptTemplateManager:
    """
    Registry and renderer of prompt templates.

    PATTERN: str.format placeholders, validated before rendering
    CRITICAL: Rendering never reaches a model; errors here surface to the caller
    """

    def __init__(
        self,
        templates: Optional[Iterable[PromptTemplate]] = None,
        include_builtins: bool = True,
    ):
        """
        Initialize template manager.

        Args:
            templates: Additional templates (override built-ins with the same id)
            include_builtins: Register the built-in template per task type
        """
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._templates: Dict[str, PromptTemplate] = {}

        for template in (BUILTIN_TEMPLATES if include_builtins else []):
            self._templates[template.template_id] = template
        for template in templates or []:
            self._templates[template.template_id] = template

    def register_template(self, template: PromptTemplate) -> None:
        """Add or replace a template."""
        with self._lock:
            replaced = template.template_id in self._templates
            self._templates[template.template_id] = template

        self.logger.info(
            f"{'Replaced' if replaced else 'Registered'} template: {template.template_id}"
        )

    def get_template(self, template_id: str) -> PromptTemplate:
        """
        Look up a template.

        Raises:
            TemplateNotFoundError: If the id is unknown
        """
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(f"Unknown prompt template: {template_id}")
        return template

    def list_templates(self) -> List[str]:
        return sorted(self._templates)

    def render(
        self,
        template_id: str,
        variables: Dict[str, Any],
        context_items: Optional[Sequence[ContextItem]] = None,
        output_format: Optional[OutputFormat] = None,
    ) -> List[Dict[str, str]]:
        """
        Render a template into chat messages.

        Layout: system prompt, optional context message, user prompt.

        Args:
            template_id: Template id
            variables: Placeholder values
            context_items: Knowledge base context, most relevant first
            output_format: Requested output format (JSON adds an instruction)

        Returns:
            Chat messages in OpenAI format

        Raises:
            TemplateNotFoundError: If the id is unknown
            TemplateRenderError: If placeholders have no value
        """
        template = self.get_template(template_id)

        missing = [
            name
            for name in template_fields(template.system_prompt)
            + template_fields(template.user_prompt)
            if name not in variables
        ]
        if missing:
            raise TemplateRenderError(
                f"Template {template_id} is missing variables: {', '.join(sorted(set(missing)))}"
            )

        try:
            system_prompt = template.system_prompt.format(**variables)
            user_prompt = template.user_prompt.format(**variables)
        except (KeyError, IndexError, AttributeError, ValueError) as e:
            raise TemplateRenderError(f"Failed to render template {template_id}: {e}") from e

        if output_format is not None and OutputFormat(output_format) == OutputFormat.JSON:
            system_prompt = f"{system_prompt}\n\n{JSON_INSTRUCTION}".strip()

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        if context_items:
            messages.append({
                "role": "user",
                "content": "Relevant context:\n\n" + self.format_context(context_items),
            })

        messages.append({"role": "user", "content": user_prompt})
        return messages

    def format_context(self, items: Sequence[ContextItem]) -> str:
        """Join context items, most relevant first, with their sources."""
        parts = []
        for item in items:
            header = f"[Source: {item.source}]\n" if item.source else ""
            parts.append(f"{header}{item.content}")
        return CONTEXT_SEPARATOR.join(parts)
