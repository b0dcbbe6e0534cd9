"""Schema adapters: the describe/construct/validate capability used by decoding.

The decoding core never inspects schema shapes. It only calls the adapter
interface defined here:

- ``describe()`` returns the JSON schema sent to the model transport
- ``construct(data)`` coerces parsed JSON into a typed value or FieldErrors
- ``validate(value)`` runs caller-supplied semantic rules
- ``construct_partial(data)`` builds a best-effort value for partial streams
"""

import copy
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from functools import lru_cache
from types import NoneType, UnionType
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel, TypeAdapter, ValidationError

from structured_llm_client.schema.field_errors import FieldErrors
from structured_llm_client.schema.validators import (
    ErrorCategory,
    SchemaValidationResult,
    ValidationRule,
    categorize_validation_error,
    run_rules,
)


class BaseSchemaAdapter(ABC):
    """Base class for schema adapters."""

    def __init__(self, validators: Iterable[ValidationRule] = ()) -> None:
        self.validators: list[ValidationRule] = list(validators)

    @property
    @abstractmethod
    def name(self) -> str:
        """Short name of the schema, used when naming provider formats."""
        pass

    @property
    def element(self) -> "BaseSchemaAdapter | None":
        """Adapter for a single record when the schema is an array of records."""
        return None

    @property
    def is_array(self) -> bool:
        """Whether the schema describes an array of records."""
        return self.element is not None

    @abstractmethod
    def describe(self) -> dict[str, Any]:
        """Return the JSON schema describing the target value.

        Must return an equal dictionary on every call for the same adapter.
        """
        pass

    @abstractmethod
    def construct(self, data: Any) -> SchemaValidationResult:
        """Coerce parsed JSON into a typed value. Never raises."""
        pass

    @abstractmethod
    def construct_partial(self, data: Any) -> Any:
        """Build a best-effort value from incomplete data without validating."""
        pass

    def validate(self, value: Any) -> SchemaValidationResult:
        """Run the caller-supplied validation rules on a constructed value.

        Args:
            value: Value returned by a successful ``construct``

        Returns:
            Validation result carrying the value or the rule errors
        """
        errors = run_rules(value, self.validators)
        if errors:
            return SchemaValidationResult.failed(errors, ErrorCategory.RULE_ERROR)
        return SchemaValidationResult.ok(value)

    def with_validators(self, validators: Iterable[ValidationRule]) -> "BaseSchemaAdapter":
        """Return a copy of this adapter with extra validation rules appended."""
        adapter = copy.copy(self)
        adapter.validators = [*self.validators, *validators]
        return adapter


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) in (Union, UnionType):
        args = [arg for arg in get_args(annotation) if arg is not NoneType]
        if len(args) == 1:
            return args[0]
    return annotation


def _is_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def _is_list(annotation: Any) -> bool:
    return get_origin(annotation) in (list, Sequence) or annotation is list


@lru_cache(maxsize=256)
def _cached_type_adapter(annotation: Any) -> TypeAdapter[Any]:
    return TypeAdapter(annotation)


def _type_adapter(annotation: Any) -> TypeAdapter[Any]:
    try:
        return _cached_type_adapter(annotation)
    except TypeError:
        # Unhashable annotations (e.g. Annotated with dict metadata)
        return TypeAdapter(annotation)


def _placeholder(annotation: Any) -> Any:
    return [] if _is_list(_unwrap_optional(annotation)) else None


def _partial_value(annotation: Any, raw: Any) -> Any:
    if raw is None:
        return _placeholder(annotation)

    inner = _unwrap_optional(annotation)
    if _is_model(inner):
        return _partial_model(inner, raw) if isinstance(raw, dict) else None

    if _is_list(inner):
        if not isinstance(raw, list):
            return []
        args = get_args(inner)
        item_type = args[0] if args else Any
        return [_partial_value(item_type, item) for item in raw]

    if annotation is Any or annotation is None:
        return raw

    try:
        return _type_adapter(annotation).validate_python(raw)
    except ValidationError:
        return _placeholder(annotation)


def _partial_model(model: type[BaseModel], data: dict[str, Any]) -> BaseModel:
    values: dict[str, Any] = {}
    for field_name, field_info in model.model_fields.items():
        key = field_info.alias or field_name
        values[field_name] = _partial_value(field_info.annotation, data.get(key))
    return model.model_construct(**values)


class PydanticSchemaAdapter(BaseSchemaAdapter):
    """Schema adapter backed by a pydantic model class.

    Args:
        model: Pydantic model describing one target value
        validators: Semantic validation rules run after construction

    Example:
        ```python
        class Series(BaseModel):
            series: list[int]

        adapter = PydanticSchemaAdapter(
            Series,
            validators=[
                min_items(10, "series"),
                rule(lambda s: sum(s) % 2 == 0,
                     "The sum of the series must be even", "series"),
            ],
        )
        ```
    """

    def __init__(
        self,
        model: type[BaseModel],
        validators: Iterable[ValidationRule] = (),
    ) -> None:
        super().__init__(validators)
        if not _is_model(model):
            raise TypeError(f"Expected a pydantic model class, got {model!r}")
        self.model = model
        self._schema: dict[str, Any] | None = None

    @property
    def name(self) -> str:
        return self.model.__name__

    def describe(self) -> dict[str, Any]:
        """Return the model's JSON schema."""
        if self._schema is None:
            self._schema = self.model.model_json_schema()
        return copy.deepcopy(self._schema)

    def construct(self, data: Any) -> SchemaValidationResult:
        """Validate parsed JSON into a model instance.

        Args:
            data: Parsed JSON data

        Returns:
            Result with the model instance, or FieldErrors keyed by the
            pydantic error locations
        """
        try:
            instance = self.model.model_validate(data)
        except ValidationError as e:
            return SchemaValidationResult.failed(
                FieldErrors.from_validation_error(e),
                categorize_validation_error(e),
            )
        return SchemaValidationResult.ok(instance)

    def construct_partial(self, data: Any) -> BaseModel:
        """Build an unvalidated instance from incomplete data.

        Missing or type-incompatible fields are filled with ``None``, or an
        empty list for list fields. Nested models and lists of models are
        built recursively.
        """
        return _partial_model(self.model, data if isinstance(data, dict) else {})


class ArraySchemaAdapter(BaseSchemaAdapter):
    """Schema adapter for an array whose elements follow another adapter.

    Used for record streaming, where each element is constructed and
    validated on its own as soon as it closes.

    Args:
        element: Adapter for a single array element
        validators: Rules on the whole array, run after element rules
    """

    WRAPPER_KEY = "items"

    def __init__(
        self,
        element: BaseSchemaAdapter,
        validators: Iterable[ValidationRule] = (),
    ) -> None:
        super().__init__(validators)
        self._element = element

    @property
    def name(self) -> str:
        return f"{self.element.name}List"

    @property
    def element(self) -> BaseSchemaAdapter:
        return self._element

    def describe(self) -> dict[str, Any]:
        """Return an array schema, hoisting element ``$defs`` to the root."""
        items = self.element.describe()
        defs = items.pop("$defs", None)
        schema: dict[str, Any] = {"type": "array", "items": items}
        if defs:
            schema["$defs"] = defs
        return schema

    def _unwrap(self, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get(self.WRAPPER_KEY), list):
            return data[self.WRAPPER_KEY]
        return data

    def construct(self, data: Any) -> SchemaValidationResult:
        """Construct every element, prefixing element errors with the index.

        Accepts a JSON array or an ``{"items": [...]}`` wrapper object.
        """
        data = self._unwrap(data)
        if not isinstance(data, list):
            return SchemaValidationResult.failed(
                FieldErrors({(): ["expected an array"]}), ErrorCategory.TYPE_ERROR
            )

        values: list[Any] = []
        errors = FieldErrors()
        category: ErrorCategory | None = None
        for index, item in enumerate(data):
            result = self.element.construct(item)
            if result.success:
                values.append(result.value)
            else:
                errors.extend(result.errors, (index,))
                category = category or result.error_category

        if errors:
            return SchemaValidationResult.failed(errors, category)
        return SchemaValidationResult.ok(values)

    def validate(self, value: Any) -> SchemaValidationResult:
        """Run element rules on each element, then the array rules."""
        errors = FieldErrors()
        for index, item in enumerate(value):
            result = self.element.validate(item)
            if not result.success:
                errors.extend(result.errors, (index,))
        errors.extend(run_rules(value, self.validators))

        if errors:
            return SchemaValidationResult.failed(errors, ErrorCategory.RULE_ERROR)
        return SchemaValidationResult.ok(value)

    def construct_partial(self, data: Any) -> list[Any]:
        data = self._unwrap(data)
        if not isinstance(data, list):
            return []
        return [self.element.construct_partial(item) for item in data]
