"""Schema support for structured LLM responses.

This package provides:
- Schema adapters implementing describe/construct/validate over pydantic models
- Structured per-field validation errors
- Caller validation rules and the schema validator
- Provider-specific response formats for native schema enforcement
- Schema resolution from models, JSON schema dicts, files and URLs
"""

from .adapters import ArraySchemaAdapter, BaseSchemaAdapter, PydanticSchemaAdapter
from .field_errors import FieldErrors, FieldPath, format_path
from .formats import (
    AnthropicToolFormat,
    BaseResponseFormat,
    FallbackPromptFormat,
    OpenAIResponseFormat,
    ResponseFormatFactory,
)
from .manager import SchemaDefinitionError, SchemaManager, SchemaNotFoundError
from .validators import (
    ErrorCategory,
    Rule,
    SchemaValidationResult,
    SchemaValidator,
    ValidationRule,
    max_items,
    min_items,
    rule,
)

__all__ = [
    # Adapters
    "BaseSchemaAdapter",
    "PydanticSchemaAdapter",
    "ArraySchemaAdapter",
    # Errors
    "FieldErrors",
    "FieldPath",
    "format_path",
    # Formats
    "BaseResponseFormat",
    "OpenAIResponseFormat",
    "AnthropicToolFormat",
    "FallbackPromptFormat",
    "ResponseFormatFactory",
    # Manager
    "SchemaManager",
    "SchemaNotFoundError",
    "SchemaDefinitionError",
    # Validators
    "ErrorCategory",
    "Rule",
    "SchemaValidationResult",
    "SchemaValidator",
    "ValidationRule",
    "rule",
    "min_items",
    "max_items",
]
