"""Tests for prompt template management."""

import pytest
from src.llm.exceptions import TemplateNotFoundError, TemplateRenderError
from src.llm.prompts import JSON_INSTRUCTION, PromptTemplateManager, template_fields
from src.models.llm_models import TaskType
from src.models.prompt_models import ContextItem, OutputFormat, PromptTemplate


class TestTemplateFields:
    """Test placeholder discovery."""

    def test_fields_in_order(self):
        """Test named placeholders are listed once, in order."""
        assert template_fields("Fix {error} in {code} ({error})") == ["error", "code"]

    def test_attribute_and_index_access(self):
        """Test only the root name of a placeholder counts."""
        assert template_fields("{user.name} owns {items[0]}") == ["user", "items"]

    def test_no_fields(self):
        """Test plain text and escaped braces."""
        assert template_fields("Return {{}} as JSON") == []


class TestPromptTemplateManager:
    """Test suite for PromptTemplateManager."""

    def setup_method(self):
        """Set up test fixtures."""
        self.manager = PromptTemplateManager()

    def test_builtin_template_per_task_type(self):
        """Test a built-in template exists for every task type."""
        assert set(self.manager.list_templates()) == {t.value for t in TaskType}

    def test_unknown_template(self):
        """Test unknown ids raise a not-found error."""
        with pytest.raises(TemplateNotFoundError):
            self.manager.get_template("nope")

    def test_render_layout(self):
        """Test rendering yields system then user messages."""
        messages = self.manager.render(
            "code_generation",
            {"language": "Python", "task": "a token bucket rate limiter"},
        )

        assert [m["role"] for m in messages] == ["system", "user"]
        assert "Python" in messages[-1]["content"]
        assert "token bucket" in messages[-1]["content"]

    def test_missing_variables(self):
        """Test missing placeholders are reported by name."""
        with pytest.raises(TemplateRenderError) as exc_info:
            self.manager.render("debugging", {"code": "x = 1"})

        assert "error" in str(exc_info.value)

    def test_extra_variables_ignored(self):
        """Test unused variables are harmless."""
        messages = self.manager.render("general", {"prompt": "Hi", "unused": 1})

        assert messages[-1]["content"] == "Hi"

    def test_context_message(self):
        """Test context items become a message before the user prompt."""
        items = [
            ContextItem(content="Use snake_case.", source="STYLE.md", relevance=0.9),
            ContextItem(content="Python 3.11 only.", relevance=0.4),
        ]

        messages = self.manager.render("code_review", {"code": "def f(): pass"}, context_items=items)

        assert len(messages) == 3
        context = messages[1]["content"]
        assert context.startswith("Relevant context:")
        assert "[Source: STYLE.md]" in context
        assert context.index("snake_case") < context.index("Python 3.11")
        assert messages[2]["content"].endswith("def f(): pass")

    def test_json_output_adds_instruction(self):
        """Test JSON output appends the JSON instruction to the system prompt."""
        messages = self.manager.render("analysis", {"subject": "logs"}, output_format=OutputFormat.JSON)

        assert messages[0]["content"].endswith(JSON_INSTRUCTION)

    def test_register_custom_template(self):
        """Test custom templates can be added and override built-ins."""
        self.manager.register_template(
            PromptTemplate(
                template_id="general",
                user_prompt="Q: {question}",
                use_context=False,
            )
        )

        messages = self.manager.render("general", {"question": "Why?"})

        assert messages == [{"role": "user", "content": "Q: Why?"}]

    def test_constructor_templates(self):
        """Test templates passed at construction, without built-ins."""
        manager = PromptTemplateManager(
            templates=[PromptTemplate(template_id="summary", user_prompt="Summarize: {text}")],
            include_builtins=False,
        )

        assert manager.list_templates() == ["summary"]

    def test_format_context(self):
        """Test context items are joined with a separator."""
        text = self.manager.format_context([
            ContextItem(content="one"),
            ContextItem(content="two", source="b.md"),
        ])

        assert text == "one\n\n---\n\n[Source: b.md]\ntwo"
