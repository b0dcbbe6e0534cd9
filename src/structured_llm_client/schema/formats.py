"""Provider-specific response formats for native schema support.

A response format merges the schema description into the request channel a
provider understands (``response_format``, a forced tool call or a system
prompt hint) and extracts response text and streamed text fragments back
out of LiteLLM responses.
"""

import copy
import json
from abc import ABC, abstractmethod
from typing import Any
from uuid import uuid4

TOOL_NAME = "structured_response"
WRAPPER_KEY = "items"


def wrap_root(schema_dict: dict[str, Any]) -> dict[str, Any]:
    """Wrap a non-object schema as ``{"items": <schema>}``.

    Providers that require an object root (OpenAI strict mode, tool
    parameters) receive the wrapper; decoding accepts both forms.
    """
    if schema_dict.get("type") == "object":
        return schema_dict
    inner = copy.deepcopy(schema_dict)
    defs = inner.pop("$defs", None)
    wrapped: dict[str, Any] = {
        "title": inner.pop("title", None) or "Items",
        "type": "object",
        "properties": {WRAPPER_KEY: inner},
        "required": [WRAPPER_KEY],
        "additionalProperties": False,
    }
    if defs:
        wrapped["$defs"] = defs
    return wrapped


def _first_choice(response: Any) -> Any:
    choices = getattr(response, "choices", None)
    if not choices:
        return None
    return choices[0]


class BaseResponseFormat(ABC):
    """Base class for provider-specific response formats."""

    @abstractmethod
    def build_request(
        self,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Build LiteLLM ``completion`` keyword arguments carrying the schema.

        Args:
            messages: Chat messages
            schema_dict: JSON schema dictionary from the schema adapter

        Returns:
            Keyword arguments including ``messages``
        """
        pass

    def extract_text(self, response: Any) -> str:
        """Extract the response text from a complete LiteLLM response."""
        choice = _first_choice(response)
        if choice is None:
            return ""
        return getattr(choice.message, "content", None) or ""

    def extract_fragment(self, chunk: Any) -> str:
        """Extract the text fragment carried by one streamed chunk."""
        choice = _first_choice(chunk)
        if choice is None:
            return ""
        delta = getattr(choice, "delta", None)
        return getattr(delta, "content", None) or ""


class OpenAIResponseFormat(BaseResponseFormat):
    """Response format for OpenAI models using strict structured outputs."""

    def build_request(
        self,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Attach the schema as a strict ``json_schema`` response format."""
        schema = self.prepare_strict_schema(schema_dict)
        response_format = {
            "type": "json_schema",
            "json_schema": {
                "name": self._generate_schema_name(schema),
                "schema": schema,
                "strict": True,
            },
        }
        return {
            "messages": messages,
            "response_format": response_format,
            "allowed_openai_params": ["response_format"],
        }

    def prepare_strict_schema(self, schema_dict: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of the schema that satisfies OpenAI strict mode.

        Strict mode requires an object root, every property listed in
        ``required`` and ``additionalProperties: false`` on every object.
        """
        schema = wrap_root(copy.deepcopy(schema_dict))
        self._fix_required(schema)
        self._ensure_no_additional_properties(schema)
        return schema

    def _fix_required(self, schema_dict: Any) -> None:
        if isinstance(schema_dict, dict):
            if schema_dict.get("type") == "object" and "properties" in schema_dict:
                schema_dict["required"] = list(schema_dict["properties"])
            for value in schema_dict.values():
                self._fix_required(value)
        elif isinstance(schema_dict, list):
            for item in schema_dict:
                self._fix_required(item)

    def _ensure_no_additional_properties(self, schema_dict: Any) -> None:
        if isinstance(schema_dict, dict):
            if (
                schema_dict.get("type") == "object"
                and "additionalProperties" not in schema_dict
            ):
                schema_dict["additionalProperties"] = False
            for value in schema_dict.values():
                self._ensure_no_additional_properties(value)
        elif isinstance(schema_dict, list):
            for item in schema_dict:
                self._ensure_no_additional_properties(item)

    def _generate_schema_name(self, schema_dict: dict[str, Any]) -> str:
        """Generate a name for the schema.

        Args:
            schema_dict: JSON schema dictionary

        Returns:
            Schema name for OpenAI API
        """
        if "title" in schema_dict:
            name = "".join(c for c in str(schema_dict["title"]) if c.isalnum() or c in "_-")
            if name:
                return name

        if "description" in schema_dict:
            name = schema_dict["description"].replace(" ", "_").replace("-", "_")
            name = "".join(c for c in name if c.isalnum() or c == "_")
            if name:
                return name[:64]

        return f"schema_{uuid4().hex[:8]}"


class AnthropicToolFormat(BaseResponseFormat):
    """Response format for Anthropic models using a forced tool call."""

    def build_request(
        self,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Force a single tool call whose parameters are the schema."""
        return {
            "messages": messages,
            "tools": [self._create_tool_definition(schema_dict)],
            "tool_choice": {"type": "function", "function": {"name": TOOL_NAME}},
        }

    def _create_tool_definition(self, schema_dict: dict[str, Any]) -> dict[str, Any]:
        """Create tool definition from JSON schema.

        Args:
            schema_dict: JSON schema dictionary

        Returns:
            Tool definition in OpenAI-compatible format
        """
        parameters = wrap_root(schema_dict)
        description = parameters.get(
            "description", "Provide structured response according to schema"
        )

        return {
            "type": "function",
            "function": {
                "name": TOOL_NAME,
                "description": description,
                "parameters": parameters,
            },
        }

    def extract_text(self, response: Any) -> str:
        """Return the forced tool call's JSON arguments."""
        choice = _first_choice(response)
        if choice is None:
            return ""
        tool_calls = getattr(choice.message, "tool_calls", None)
        if tool_calls:
            arguments = getattr(tool_calls[0].function, "arguments", None)
            if isinstance(arguments, dict):
                return json.dumps(arguments)
            if arguments:
                return str(arguments)
        return super().extract_text(response)

    def extract_fragment(self, chunk: Any) -> str:
        """Return the tool-call argument delta, or text content if present."""
        choice = _first_choice(chunk)
        if choice is None:
            return ""
        delta = getattr(choice, "delta", None)
        tool_calls = getattr(delta, "tool_calls", None)
        if tool_calls:
            return "".join(
                getattr(call.function, "arguments", None) or ""
                for call in tool_calls
                if getattr(call, "function", None) is not None
            )
        return getattr(delta, "content", None) or ""


class FallbackPromptFormat(BaseResponseFormat):
    """Fallback format for providers without native schema support."""

    def build_request(
        self,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Add a schema hint to the system prompt."""
        return {"messages": self._enhance_messages_with_schema_hint(messages, schema_dict)}

    def _enhance_messages_with_schema_hint(
        self, messages: list[dict[str, Any]], schema_dict: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Add schema hints to messages for better compliance.

        Args:
            messages: Original chat messages
            schema_dict: JSON schema dictionary

        Returns:
            New message list with the hint in the system message
        """
        schema_instruction = (
            f"Please respond with valid JSON that matches this schema: "
            f"{self._describe_schema(schema_dict)}. "
            f"JSON schema: {json.dumps(schema_dict)}. "
            "Ensure your response is properly formatted JSON with no additional text."
        )

        enhanced_messages = [dict(message) for message in messages]

        for message in enhanced_messages:
            if message.get("role") == "system" and isinstance(message.get("content"), str):
                message["content"] = f"{message['content']}\n\n{schema_instruction}"
                break
        else:
            enhanced_messages.insert(0, {"role": "system", "content": schema_instruction})

        return enhanced_messages

    def _describe_schema(self, schema_dict: dict[str, Any]) -> str:
        """Create a human-readable description of the schema.

        Args:
            schema_dict: JSON schema dictionary

        Returns:
            Human-readable schema description
        """
        if schema_dict.get("type") == "object":
            properties = schema_dict.get("properties", {})
            required = schema_dict.get("required", [])

            if not properties:
                return "an empty object {}"

            field_descriptions = []
            for field, field_schema in properties.items():
                field_type = field_schema.get("type", "any")
                req_text = "required" if field in required else "optional"

                description = f'"{field}": {field_type} ({req_text})'

                if "description" in field_schema:
                    description += f" - {field_schema['description']}"

                field_descriptions.append(description)

            return "object with fields: " + ", ".join(field_descriptions)

        elif schema_dict.get("type") == "array":
            items_schema = schema_dict.get("items", {})
            item_type = (
                items_schema.get("type", "object")
                if isinstance(items_schema, dict)
                else "mixed"
            )
            return f"array of {item_type} items"

        else:
            return f"value of type {schema_dict.get('type', 'any')}"


class ResponseFormatFactory:
    """Factory for creating appropriate response formats based on provider."""

    def get_format(self, provider: str, model: str) -> BaseResponseFormat:
        """Get appropriate response format for provider and model.

        Args:
            provider: Provider name (e.g., 'openai', 'anthropic')
            model: Model name

        Returns:
            Appropriate response format instance
        """
        provider_lower = provider.lower()

        if provider_lower == "openai" or "gpt" in model.lower():
            return OpenAIResponseFormat()
        elif provider_lower == "anthropic" or "claude" in model.lower():
            return AnthropicToolFormat()
        else:
            return FallbackPromptFormat()

