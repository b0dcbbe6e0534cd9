"""Schema validation results, caller validation rules and the validator."""

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from structured_llm_client.exceptions import MalformedJSONException
from structured_llm_client.schema.field_errors import FieldErrors

if TYPE_CHECKING:
    from structured_llm_client.schema.adapters import BaseSchemaAdapter

logger = logging.getLogger(__name__)

ValidationRule = Callable[[Any], Any]


class ErrorCategory(Enum):
    """Categories of validation failure, used for logging and diagnostics."""

    MISSING_FIELD = "missing_field"
    TYPE_ERROR = "type_error"
    FORMAT_ERROR = "format_error"
    JSON_PARSE_ERROR = "json_parse_error"
    RULE_ERROR = "rule_error"
    VALIDATION_ERROR = "validation_error"


class SchemaValidationResult:
    """Result of constructing or validating a value against a schema."""

    def __init__(
        self,
        success: bool,
        value: Any = None,
        errors: FieldErrors | None = None,
        validation_time_ms: float = 0,
        error_category: ErrorCategory | None = None,
    ) -> None:
        """Initialize validation result.

        Args:
            success: Whether construction/validation succeeded
            value: The typed value when successful
            errors: Per-field errors when construction/validation failed
            validation_time_ms: Time taken for validation in milliseconds
            error_category: Category of validation error
        """
        self.success = success
        self.value = value
        self.errors = errors if errors is not None else FieldErrors()
        self.validation_time_ms = validation_time_ms
        self.error_category = error_category

    @classmethod
    def ok(cls, value: Any) -> "SchemaValidationResult":
        return cls(success=True, value=value)

    @classmethod
    def failed(
        cls, errors: FieldErrors, category: ErrorCategory | None = None
    ) -> "SchemaValidationResult":
        return cls(
            success=False,
            errors=errors,
            error_category=category or ErrorCategory.VALIDATION_ERROR,
        )

    def __repr__(self) -> str:
        if self.success:
            return f"SchemaValidationResult(success=True, value={self.value!r})"
        return f"SchemaValidationResult(success=False, errors={self.errors!r})"


def categorize_validation_error(error: ValidationError) -> ErrorCategory:
    """Categorize a pydantic validation error by its first error type.

    Args:
        error: Pydantic validation error

    Returns:
        Error category
    """
    error_details = error.errors()

    if not error_details:
        return ErrorCategory.VALIDATION_ERROR

    error_type = error_details[0].get("type", "unknown")

    if error_type == "missing":
        return ErrorCategory.MISSING_FIELD
    elif error_type.endswith("_type") or error_type.endswith("_parsing"):
        return ErrorCategory.TYPE_ERROR
    elif "format" in error_type:
        return ErrorCategory.FORMAT_ERROR
    else:
        return ErrorCategory.VALIDATION_ERROR


def _resolve_path(value: Any, path: Sequence[str | int]) -> Any:
    for segment in path:
        if isinstance(segment, int) or isinstance(value, Mapping):
            value = value[segment]
        else:
            value = getattr(value, segment)
    return value


@dataclass(frozen=True)
class Rule:
    """A predicate on (part of) a constructed value with its error message.

    Args:
        check: Predicate receiving the value found at ``path``
        message: Message reported when the predicate is false
        path: Field path the predicate applies to; empty for the whole value
    """

    check: Callable[[Any], bool]
    message: str
    path: tuple[str | int, ...] = ()

    def __call__(self, value: Any) -> FieldErrors | None:
        try:
            target = _resolve_path(value, self.path)
        except (AttributeError, IndexError, KeyError, TypeError):
            return FieldErrors({self.path: ["field is missing"]})
        if self.check(target):
            return None
        return FieldErrors({self.path: [self.message]})


def rule(
    check: Callable[[Any], bool],
    message: str,
    path: Sequence[str | int] | str = (),
) -> Rule:
    """Build a validation rule.

    Example:
        ```python
        even_sum = rule(
            lambda series: sum(series) % 2 == 0,
            "The sum of the series must be even",
            path="series",
        )
        ```
    """
    if isinstance(path, str):
        path = (path,)
    return Rule(check=check, message=message, path=tuple(path))


def min_items(count: int, path: Sequence[str | int] | str = ()) -> Rule:
    """Rule requiring a sequence to hold at least ``count`` items."""
    return rule(
        lambda items: items is not None and len(items) >= count,
        f"should have at least {count} item(s)",
        path,
    )


def max_items(count: int, path: Sequence[str | int] | str = ()) -> Rule:
    """Rule requiring a sequence to hold at most ``count`` items."""
    return rule(
        lambda items: items is not None and len(items) <= count,
        f"should have at most {count} item(s)",
        path,
    )


def _rule_name(validation_rule: ValidationRule) -> str:
    return getattr(validation_rule, "__name__", type(validation_rule).__name__)


def run_rules(value: Any, rules: Iterable[ValidationRule]) -> FieldErrors:
    """Run caller-supplied validation rules in order and collect their errors.

    A rule passes by returning ``None`` or ``True``. It fails by returning
    ``False``, a message, a list of messages, a path-to-messages mapping or
    a FieldErrors, or by raising ``ValueError`` or ``AssertionError``
    as pydantic validators do.

    Args:
        value: The constructed value
        rules: Validation rules

    Returns:
        FieldErrors, empty when every rule passed
    """
    errors = FieldErrors()
    for validation_rule in rules:
        try:
            outcome = validation_rule(value)
        except ValidationError as exc:
            errors.extend(FieldErrors.from_validation_error(exc))
            continue
        except (ValueError, AssertionError) as exc:
            message = str(exc) or f"failed validation rule '{_rule_name(validation_rule)}'"
            errors.add((), message)
            continue

        if outcome is None or outcome is True:
            continue
        if outcome is False:
            errors.add((), f"failed validation rule '{_rule_name(validation_rule)}'")
            continue
        errors.extend(FieldErrors.coerce(outcome))
    return errors


class SchemaValidator:
    """Runs construct and validate for a schema adapter, timing the result."""

    def validate_data(
        self, data: Any, adapter: "BaseSchemaAdapter"
    ) -> SchemaValidationResult:
        """Construct and validate parsed JSON data.

        Args:
            data: Parsed JSON data
            adapter: Schema adapter to construct and validate with

        Returns:
            Validation result with the typed value or per-field errors
        """
        start_time = time.time()

        result = adapter.construct(data)
        if result.success:
            result = adapter.validate(result.value)

        result.validation_time_ms = (time.time() - start_time) * 1000
        if not result.success:
            logger.debug(
                "Validation failed (%s): %s",
                result.error_category.value if result.error_category else "unknown",
                result.errors.render_lines(),
            )
        return result

    def validate_response(
        self, response_text: str, adapter: "BaseSchemaAdapter"
    ) -> SchemaValidationResult:
        """Parse a complete response text, then construct and validate it.

        Args:
            response_text: Complete model output
            adapter: Schema adapter to construct and validate with

        Returns:
            Validation result; unparseable text yields a single synthetic
            root error categorised as a JSON parse error
        """
        # decoding imports this module at load time
        from structured_llm_client.decoding.assembler import (
            IncrementalJSONAssembler,
        )

        start_time = time.time()
        assembler = IncrementalJSONAssembler()
        assembler.feed(response_text)
        try:
            data = assembler.finalize()
        except MalformedJSONException as exc:
            result = SchemaValidationResult.failed(
                FieldErrors.unparseable(str(exc)), ErrorCategory.JSON_PARSE_ERROR
            )
            result.validation_time_ms = (time.time() - start_time) * 1000
            return result

        return self.validate_data(data, adapter)
