"""Response post-processing: output formats and schema validation."""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ValidationError, create_model

from ..models.prompt_models import FormattedOutput, OutputFormat

logger = logging.getLogger(__name__)

FENCED_BLOCK = re.compile(r"```(?:json)?\s*(\{.*?\}|\[.*?\])\s*```", re.DOTALL)
MARKDOWN_WRAPPER = re.compile(r"^```(?:markdown|md)\s*\n(.*)\n```$", re.DOTALL)

JSON_SCHEMA_TYPES: Dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "array": list,
    "object": dict,
}

Schema = Union[Type[BaseModel], Dict[str, Any]]


def extract_json(text: str) -> Any:
    """
    Extract a JSON value from model output.

    PATTERN: Direct parse, then fenced block, then the outermost braces

    Raises:
        ValueError: If no JSON can be found
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    match = FENCED_BLOCK.search(text)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass

    raise ValueError("Could not extract JSON from response")


def model_from_json_schema(schema: Dict[str, Any], name: str = "ResponseSchema") -> Type[BaseModel]:
    """
    Build a pydantic model from a JSON-schema object.

    GOTCHA: Only top-level properties/required are honored; nested
    objects and arrays are checked for type, not shape

    Args:
        schema: JSON schema with "properties" and optional "required"
        name: Model class name (schema "title" wins)

    Returns:
        Pydantic model class
    """
    required = set(schema.get("required", []))
    fields: Dict[str, Tuple[Any, Any]] = {}

    for field_name, prop in schema.get("properties", {}).items():
        field_type = JSON_SCHEMA_TYPES.get(prop.get("type"), Any)
        if field_name in required:
            fields[field_name] = (field_type, ...)
        else:
            fields[field_name] = (Optional[field_type], None)

    return create_model(schema.get("title", name), **fields)


class ResponseFormatter:
    """
    Turns raw model output into the requested format.

    CRITICAL: Never raises on bad model output; problems land in validation_errors
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def format(
        self,
        content: str,
        output_format: OutputFormat = OutputFormat.TEXT,
        schema: Optional[Schema] = None,
    ) -> FormattedOutput:
        """
        Post-process model output.

        Args:
            content: Raw model output
            output_format: Target format
            schema: Pydantic model class or JSON schema (JSON format only)

        Returns:
            FormattedOutput with parsed data and validation status
        """
        output_format = OutputFormat(output_format)

        if output_format == OutputFormat.JSON:
            return self._format_json(content, schema)

        if output_format == OutputFormat.MARKDOWN:
            text = content.strip()
            match = MARKDOWN_WRAPPER.match(text)
            if match:
                text = match.group(1).strip()
            return FormattedOutput(content=text, output_format=output_format)

        return FormattedOutput(content=content.strip(), output_format=output_format)

    def _format_json(self, content: str, schema: Optional[Schema]) -> FormattedOutput:
        try:
            data = extract_json(content)
        except ValueError as e:
            self.logger.warning(f"Response is not valid JSON: {e}")
            return FormattedOutput(
                content=content,
                output_format=OutputFormat.JSON,
                valid=False,
                validation_errors=[str(e)],
            )

        if schema is None:
            return FormattedOutput(
                content=content,
                output_format=OutputFormat.JSON,
                parsed=data,
            )

        errors = self.validate(data, schema)
        if errors:
            self.logger.warning(f"Response failed schema validation: {'; '.join(errors)}")

        return FormattedOutput(
            content=content,
            output_format=OutputFormat.JSON,
            parsed=data,
            valid=not errors,
            validation_errors=errors,
        )

    def validate(self, data: Any, schema: Schema) -> List[str]:
        """
        Validate parsed data against a schema.

        Returns:
            Human-readable errors, empty when valid
        """
        model = schema if isinstance(schema, type) else model_from_json_schema(schema)

        if not isinstance(data, dict):
            return [f"Expected a JSON object, got {type(data).__name__}"]

        try:
            model.model_validate(data)
        except ValidationError as e:
            return [
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            ]
        return []
