"""Shared pytest configuration and fixtures for the test suite."""

import os
from collections.abc import Iterator
from typing import Any
from unittest.mock import Mock

import pytest
from pydantic import BaseModel

IS_CI = os.getenv("CI", "false").lower() == "true"


class Person(BaseModel):
    """Record model shared by the streaming tests."""

    first_name: str
    last_name: str


class Series(BaseModel):
    """Integer series model shared by the retry tests."""

    series: list[int]


class ScriptedTransport:
    """Transport double that replays scripted responses.

    Each call consumes the next response; responses given as lists are
    streamed fragment by fragment. Calls and stream closures are recorded.
    """

    def __init__(self, responses: list[str | list[str]]) -> None:
        self.responses = list(responses)
        self.calls: list[list[dict[str, Any]]] = []
        self.options: list[dict[str, Any]] = []
        self.closed_streams = 0

    def _next(self, messages: list[dict[str, Any]], options: dict[str, Any]) -> Any:
        self.calls.append([dict(message) for message in messages])
        self.options.append(options)
        return self.responses.pop(0)

    def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> str:
        response = self._next(messages, options)
        return response if isinstance(response, str) else "".join(response)

    def stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> Iterator[str]:
        response = self._next(messages, options)
        fragments = [response] if isinstance(response, str) else response
        try:
            yield from fragments
        finally:
            self.closed_streams += 1

    async def acomplete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> str:
        return self.complete(model, messages, schema_dict, **options)

    async def astream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> Any:
        response = self._next(messages, options)
        fragments = [response] if isinstance(response, str) else response
        try:
            for fragment in fragments:
                yield fragment
        finally:
            self.closed_streams += 1


def make_chunk(content: str | None = None, arguments: str | None = None) -> Mock:
    """Build a LiteLLM-style streamed chunk."""
    chunk = Mock()
    chunk.choices = [Mock()]
    chunk.choices[0].delta.content = content
    if arguments is None:
        chunk.choices[0].delta.tool_calls = None
    else:
        tool_call = Mock()
        tool_call.function.arguments = arguments
        chunk.choices[0].delta.tool_calls = [tool_call]
    return chunk


@pytest.fixture
def mock_api_response() -> Mock:
    """Mock API response for testing."""
    mock_response = Mock()
    mock_response.choices = [Mock()]
    mock_response.choices[0].message.content = '{"first_name": "Ada", "last_name": "Lovelace"}'
    mock_response.choices[0].message.tool_calls = None
    return mock_response


@pytest.fixture
def sample_api_key() -> str:
    """Sample API key for testing."""
    return "test-api-key-12345"


class SecureTestConfig:
    """Test configuration that doesn't expose API keys in repr."""

    def __init__(self, openai_key: str | None, anthropic_key: str | None) -> None:
        self._openai_key = openai_key
        self._anthropic_key = anthropic_key

    def __getitem__(self, key: str) -> Any:
        if key == "openai_api_key":
            return self._openai_key
        elif key == "anthropic_api_key":
            return self._anthropic_key
        else:
            raise KeyError(key)

    def __repr__(self) -> str:
        return "SecureTestConfig(keys_available=True)"


@pytest.fixture
def integration_test_setup() -> SecureTestConfig:
    """Setup fixture for integration tests - skips without real API keys."""
    openai_key = os.getenv("OPENAI_API_KEY")
    anthropic_key = os.getenv("ANTHROPIC_API_KEY")

    if not openai_key and not anthropic_key:
        pytest.skip(
            "Integration tests require real API keys. Set OPENAI_API_KEY or "
            "ANTHROPIC_API_KEY environment variables."
        )

    return SecureTestConfig(openai_key=openai_key, anthropic_key=anthropic_key)
