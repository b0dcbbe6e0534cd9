"""Schema management: resolving schema inputs to adapters, loading and caching."""

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any, get_args, get_origin

import requests
from pydantic import BaseModel, create_model

from structured_llm_client.schema.adapters import (
    ArraySchemaAdapter,
    BaseSchemaAdapter,
    PydanticSchemaAdapter,
)
from structured_llm_client.schema.validators import ValidationRule

logger = logging.getLogger(__name__)

SchemaInput = BaseSchemaAdapter | type[BaseModel] | dict[str, Any] | str | Any


class SchemaNotFoundError(Exception):
    """Exception raised when a requested schema cannot be found."""

    pass


class SchemaDefinitionError(Exception):
    """Exception raised when a schema definition is invalid."""

    pass


class SchemaManager:
    """Resolves schema inputs to adapters and manages JSON schemas.

    Accepted schema inputs:
    - A ``BaseSchemaAdapter`` (used as-is)
    - A pydantic model class
    - ``list[Model]`` or ``[Model]`` for an array of records
    - A JSON schema dictionary (object or array)
    - The name of a registered or file-based JSON schema

    JSON schemas are loaded from configured directories, URLs or runtime
    registration, cached, and turned into pydantic models.
    """

    def __init__(self, schema_directories: list[str] | None = None) -> None:
        """Initialize SchemaManager.

        Args:
            schema_directories: Directories to search for schema files.
                               Defaults to ['schemas/'] if None.
        """
        self.schema_directories = (
            schema_directories if schema_directories is not None else ["schemas/"]
        )
        self._schema_cache: dict[str, dict[str, Any]] = {}
        self._model_cache: dict[str, type[BaseModel]] = {}
        self._url_cache: dict[str, dict[str, Any]] = {}

    def get_adapter(
        self,
        schema_input: SchemaInput,
        validators: Iterable[ValidationRule] = (),
    ) -> BaseSchemaAdapter:
        """Resolve a schema input to a schema adapter.

        Args:
            schema_input: Adapter, model class, ``list[Model]``, schema dict
                or schema name
            validators: Extra validation rules for the resolved schema

        Returns:
            Schema adapter; array inputs give an ``ArraySchemaAdapter``
        """
        validators = list(validators)

        if isinstance(schema_input, BaseSchemaAdapter):
            if validators:
                return schema_input.with_validators(validators)
            return schema_input

        element_input = self._array_element(schema_input)
        if element_input is not None:
            return ArraySchemaAdapter(self.get_adapter(element_input), validators)

        return PydanticSchemaAdapter(self.get_pydantic_model(schema_input), validators)

    def _array_element(self, schema_input: Any) -> Any:
        if get_origin(schema_input) is list:
            args = get_args(schema_input)
            if len(args) != 1:
                raise SchemaDefinitionError("list schemas need exactly one element type")
            return args[0]
        if isinstance(schema_input, list):
            if len(schema_input) != 1:
                raise SchemaDefinitionError("list schemas need exactly one element type")
            return schema_input[0]
        if isinstance(schema_input, dict) and schema_input.get("type") == "array":
            items = schema_input.get("items")
            if not isinstance(items, dict):
                raise SchemaDefinitionError("array schemas need an 'items' object schema")
            if "$defs" in schema_input and "$defs" not in items:
                items = {**items, "$defs": schema_input["$defs"]}
            return items
        return None

    def load_schema(self, schema_name: str) -> dict[str, Any]:
        """Load a JSON schema by name.

        Args:
            schema_name: Name of the schema (without .json extension)

        Returns:
            JSON schema as dictionary

        Raises:
            SchemaNotFoundError: If schema cannot be found
        """
        if schema_name in self._schema_cache:
            return self._schema_cache[schema_name]

        for directory in self.schema_directories:
            schema_path = Path(directory) / f"{schema_name}.json"
            if schema_path.exists():
                try:
                    with open(schema_path, encoding="utf-8") as f:
                        schema_dict = json.load(f)
                except (json.JSONDecodeError, FileNotFoundError) as e:
                    raise SchemaDefinitionError(
                        f"Invalid schema file {schema_path}: {e}"
                    ) from e

                self._validate_schema(schema_dict)
                self._schema_cache[schema_name] = schema_dict
                logger.debug("Loaded schema '%s' from %s", schema_name, schema_path)
                return schema_dict

        raise SchemaNotFoundError(
            f"Schema '{schema_name}' not found in directories: {self.schema_directories}"
        )

    def load_schema_from_url(self, url: str) -> dict[str, Any]:
        """Load a JSON schema from a URL.

        Args:
            url: URL to fetch schema from

        Returns:
            JSON schema as dictionary

        Raises:
            SchemaDefinitionError: If URL fetch or schema validation fails
        """
        if url in self._url_cache:
            return self._url_cache[url]

        try:
            response = requests.get(url, timeout=30)
            response.raise_for_status()
            schema_dict = response.json()
        except requests.RequestException as e:
            raise SchemaDefinitionError(f"Failed to fetch schema from {url}: {e}") from e
        except json.JSONDecodeError as e:
            raise SchemaDefinitionError(f"Invalid JSON schema from {url}: {e}") from e

        self._validate_schema(schema_dict)
        self._url_cache[url] = schema_dict
        return schema_dict

    def register_schema(self, name: str, schema_dict: dict[str, Any]) -> None:
        """Register a schema at runtime.

        Args:
            name: Name to register schema under
            schema_dict: JSON schema as dictionary

        Raises:
            SchemaDefinitionError: If schema is invalid
        """
        self._validate_schema(schema_dict)
        self._schema_cache[name] = schema_dict
        self._model_cache.pop(name, None)

    def get_pydantic_model(
        self, schema_input: str | dict[str, Any] | type[BaseModel]
    ) -> type[BaseModel]:
        """Get or generate a Pydantic model from schema.

        Args:
            schema_input: Schema name, schema dict, or existing Pydantic model

        Returns:
            Pydantic model class
        """
        if isinstance(schema_input, type) and issubclass(schema_input, BaseModel):
            return schema_input

        if isinstance(schema_input, dict):
            self._validate_schema(schema_input)
            return self._generate_model_from_schema(
                schema_input, schema_input.get("title", "DynamicModel")
            )

        if not isinstance(schema_input, str):
            raise SchemaDefinitionError(f"Unsupported schema input: {schema_input!r}")

        schema_name = schema_input
        if schema_name in self._model_cache:
            return self._model_cache[schema_name]

        if schema_name.startswith(("http://", "https://")):
            schema_dict = self.load_schema_from_url(schema_name)
        else:
            schema_dict = self.load_schema(schema_name)
        model_class = self._generate_model_from_schema(schema_dict, schema_name)

        self._model_cache[schema_name] = model_class
        return model_class

    def list_available_schemas(self) -> list[str]:
        """List all available schemas.

        Returns:
            List of schema names
        """
        schema_names = set()

        for directory in self.schema_directories:
            dir_path = Path(directory)
            if dir_path.exists():
                for schema_file in dir_path.glob("*.json"):
                    schema_names.add(schema_file.stem)

        schema_names.update(self._schema_cache.keys())

        return sorted(schema_names)

    def _validate_schema(self, schema_dict: dict[str, Any]) -> None:
        """Validate that a dictionary is a usable JSON schema.

        Args:
            schema_dict: Dictionary to validate

        Raises:
            SchemaDefinitionError: If schema is invalid
        """
        if not isinstance(schema_dict, dict):
            raise SchemaDefinitionError("Schema must be a dictionary")

        if "type" not in schema_dict and "$ref" not in schema_dict:
            raise SchemaDefinitionError("Schema must have 'type' or '$ref' field")

    def _generate_model_from_schema(
        self,
        schema_dict: dict[str, Any],
        model_name: str,
        defs: dict[str, Any] | None = None,
    ) -> type[BaseModel]:
        """Generate a Pydantic model from a JSON schema.

        Handles objects with scalar, nested object, typed array and local
        ``$ref`` properties. Non-object schemas are wrapped in a model with
        a single ``value`` field.

        Args:
            schema_dict: JSON schema dictionary
            model_name: Name for the generated model
            defs: ``$defs`` of the root schema, for resolving references

        Returns:
            Generated Pydantic model class
        """
        defs = defs if defs is not None else schema_dict.get("$defs", {})
        schema_dict = self._resolve_ref(schema_dict, defs)
        model_name = self._model_name(model_name)

        if schema_dict.get("type") != "object":
            value_type = self._json_type_to_python_type(schema_dict, model_name, defs)
            return create_model(model_name, value=(value_type, ...))

        properties = schema_dict.get("properties", {})
        required_fields = schema_dict.get("required", [])

        field_definitions: dict[str, Any] = {}

        for field_name, field_schema in properties.items():
            field_type = self._json_type_to_python_type(
                field_schema, f"{model_name}_{field_name}", defs
            )

            if field_name in required_fields:
                field_definitions[field_name] = (field_type, ...)
            else:
                field_definitions[field_name] = (field_type | None, None)

        return create_model(model_name, **field_definitions)  # type: ignore[call-overload]

    def _json_type_to_python_type(
        self, field_schema: dict[str, Any], name: str, defs: dict[str, Any]
    ) -> Any:
        """Convert JSON schema type to Python type.

        Args:
            field_schema: JSON schema field definition
            name: Name for generated nested models
            defs: ``$defs`` of the root schema

        Returns:
            Python type
        """
        field_schema = self._resolve_ref(field_schema, defs)
        json_type = field_schema.get("type", "string")

        if json_type == "object" and field_schema.get("properties"):
            return self._generate_model_from_schema(field_schema, name, defs)

        if json_type == "array":
            items = field_schema.get("items")
            if isinstance(items, dict):
                item_type = self._json_type_to_python_type(items, f"{name}_item", defs)
                return list[item_type]  # type: ignore[valid-type]
            return list

        type_mapping = {
            "string": str,
            "integer": int,
            "number": float,
            "boolean": bool,
            "object": dict,
            "null": type(None),
        }

        return type_mapping.get(json_type, str)

    def _resolve_ref(
        self, schema_dict: dict[str, Any], defs: dict[str, Any]
    ) -> dict[str, Any]:
        ref = schema_dict.get("$ref")
        if not isinstance(ref, str) or not ref.startswith("#/$defs/"):
            return schema_dict
        target = defs.get(ref.removeprefix("#/$defs/"))
        if target is None:
            raise SchemaDefinitionError(f"Unresolvable schema reference: {ref}")
        return target

    def _model_name(self, name: str) -> str:
        cleaned = "".join(c if c.isalnum() or c == "_" else "_" for c in name)
        return cleaned or "DynamicModel"
