"""Unit tests for agent connection classes."""

import asyncio
import json
from unittest.mock import Mock, patch

import pytest
from conftest import Person, ScriptedTransport, Series

from structured_llm_client.agents.agent_connection import (
    AgentConnection,
    AnthropicAgent,
    LiteLLMAgent,
    OpenAIAgent,
)
from structured_llm_client.decoding import AsyncResultChannel, ResultChannel, StreamMode
from structured_llm_client.exceptions import (
    ConfigurationException,
    ProviderException,
    SchemaValidationException,
)
from structured_llm_client.request import ChatCompletionRequest
from structured_llm_client.schema.validators import min_items, rule

PEOPLE = [
    {"first_name": "Ada", "last_name": "Lovelace"},
    {"first_name": "Alan", "last_name": "Turing"},
]
USER_MESSAGE = [{"role": "user", "content": "Name two computing pioneers"}]
SERIES_RULES = [
    min_items(10, "series"),
    rule(lambda s: sum(s) % 2 == 0, "The sum of the series must be even", "series"),
]


def make_agent(transport: ScriptedTransport, **kwargs: object) -> LiteLLMAgent:
    return LiteLLMAgent(
        model="gpt-4o-mini", api_key="test-key", transport=transport, **kwargs
    )


class TestAgentConnection:
    """Test the abstract base AgentConnection class."""

    @pytest.mark.unit
    def test_agent_connection_is_abstract(self) -> None:
        """Test that AgentConnection cannot be instantiated directly."""
        with pytest.raises(TypeError):
            AgentConnection()  # type: ignore[abstract]


class TestLiteLLMAgent:
    """Test the LiteLLMAgent implementation."""

    @pytest.mark.unit
    def test_litellm_agent_initialization(self) -> None:
        """Test basic LiteLLM agent initialization."""
        agent = LiteLLMAgent(model="gpt-4o-mini", api_key="test-key")
        assert agent.model == "gpt-4o-mini"
        assert agent.api_key == "test-key"
        assert agent.max_tokens == 1000
        assert agent.max_retries == 0

    @pytest.mark.unit
    def test_litellm_agent_requires_model(self) -> None:
        with pytest.raises(ValueError, match="Model is required"):
            LiteLLMAgent(model=None, api_key="test-key")  # type: ignore[arg-type]

    @pytest.mark.unit
    def test_litellm_agent_requires_api_key(self) -> None:
        with pytest.raises(ValueError, match="API key is required"):
            LiteLLMAgent(model="gpt-4o-mini", api_key=None)

    @pytest.mark.unit
    def test_chat_completion_ok(self) -> None:
        """Test a non-streaming completion."""
        transport = ScriptedTransport([json.dumps(PEOPLE[0])])
        agent = make_agent(transport)

        status, value = agent.chat_completion(
            ChatCompletionRequest(schema=Person, messages=USER_MESSAGE)
        )

        assert status == "ok"
        assert value == Person(**PEOPLE[0])
        assert transport.options[0] == {"max_tokens": 1000, "api_key": "test-key"}

    @pytest.mark.unit
    def test_chat_completion_retries_with_corrections(self) -> None:
        """Test the series example through the agent."""
        transport = ScriptedTransport(
            [
                json.dumps({"series": [1, 2, 3, 4, 5]}),
                json.dumps({"series": list(range(1, 21))}),
            ]
        )
        agent = make_agent(transport)

        result = agent.chat_completion(
            ChatCompletionRequest(
                schema=Series,
                messages=USER_MESSAGE,
                max_retries=10,
                validators=SERIES_RULES,
            )
        )

        assert result.is_ok
        assert len(transport.calls) == 2
        assert len(transport.calls[1]) == 3
        assert "The sum of the series must be even" in transport.calls[1][2]["content"]

    @pytest.mark.unit
    def test_chat_completion_exhausted(self) -> None:
        """Test that exhaustion returns the last FieldErrors."""
        transport = ScriptedTransport(["{}", "{}"])
        agent = make_agent(transport)

        status, errors = agent.chat_completion(
            ChatCompletionRequest(schema=Person, messages=USER_MESSAGE, max_retries=1)
        )

        assert status == "error"
        assert list(errors) == [("first_name",), ("last_name",)]
        assert len(transport.calls) == 2

    @pytest.mark.unit
    def test_provider_config_and_model_override(self) -> None:
        """Test that request options reach the transport."""
        transport = ScriptedTransport([json.dumps(PEOPLE[0])])
        agent = make_agent(transport)

        agent.chat_completion(
            ChatCompletionRequest(
                model="gpt-4o",
                schema=Person,
                messages=USER_MESSAGE,
                provider_config={"temperature": 0, "max_tokens": 20},
            )
        )

        assert transport.options[0] == {
            "max_tokens": 20,
            "api_key": "test-key",
            "temperature": 0,
        }

    @pytest.mark.unit
    def test_configuration_error_before_any_call(self) -> None:
        """Test that invalid combinations fail before the transport is used."""
        transport = ScriptedTransport([])
        agent = make_agent(transport)

        with pytest.raises(ConfigurationException):
            agent.chat_completion(
                ChatCompletionRequest(
                    schema=Person,
                    messages=USER_MESSAGE,
                    stream=True,
                    stream_mode=StreamMode.PARTIAL,
                    max_retries=2,
                )
            )
        assert transport.calls == []

    @pytest.mark.unit
    def test_record_stream(self) -> None:
        """Test record streaming of two people."""
        text = json.dumps(PEOPLE)
        split = text.index("}") + 1
        transport = ScriptedTransport([[text[:split], text[split:]]])
        agent = make_agent(transport)

        channel = agent.chat_completion(
            ChatCompletionRequest(schema=list[Person], messages=USER_MESSAGE, stream=True)
        )

        assert isinstance(channel, ResultChannel)
        assert transport.calls == []
        results = channel.collect()
        assert [tuple(r) for r in results] == [
            ("ok", Person(**PEOPLE[0])),
            ("ok", Person(**PEOPLE[1])),
        ]
        assert transport.closed_streams == 1

    @pytest.mark.unit
    def test_channel_reiteration_calls_model_again(self) -> None:
        """Test that each iteration issues a fresh model call."""
        response = [json.dumps(PEOPLE[0])]
        transport = ScriptedTransport([response, response])
        agent = make_agent(transport)

        channel = agent.chat_completion_stream(
            ChatCompletionRequest(schema=Person, messages=USER_MESSAGE)
        )
        first = channel.final()
        second = channel.final()

        assert first == second
        assert len(transport.calls) == 2

    @pytest.mark.unit
    def test_closing_channel_closes_stream(self) -> None:
        """Test that abandoning a channel closes the upstream stream."""
        transport = ScriptedTransport([["[", json.dumps(PEOPLE[0]), ", ", json.dumps(PEOPLE[1]), "]"]])
        agent = make_agent(transport)

        with agent.chat_completion_stream(
            ChatCompletionRequest(schema=[Person], messages=USER_MESSAGE)
        ) as channel:
            for result in channel:
                assert result.value.first_name == "Ada"
                break

        assert transport.closed_streams == 1

    @pytest.mark.unit
    def test_streamed_single_mode_with_retries(self) -> None:
        """Test stream_mode off: one terminal result with the retry loop."""
        transport = ScriptedTransport([["{", "}"], ["{", json.dumps(PEOPLE[0])[1:]]])
        agent = make_agent(transport)

        channel = agent.chat_completion_stream(
            ChatCompletionRequest(
                schema=Person,
                messages=USER_MESSAGE,
                stream_mode=StreamMode.OFF,
                max_retries=1,
            )
        )
        results = channel.collect()

        assert [r.status for r in results] == ["ok"]
        assert len(transport.calls) == 2

    @pytest.mark.unit
    def test_query_returns_value(self) -> None:
        """Test the convenience query with a system message."""
        transport = ScriptedTransport([json.dumps(PEOPLE[0])])
        agent = make_agent(transport)

        person = agent.query("Describe Ada", Person, system_message="Be accurate")

        assert person.first_name == "Ada"
        assert transport.calls[0][0] == {"role": "system", "content": "Be accurate"}

    @pytest.mark.unit
    def test_query_raises_on_failure(self) -> None:
        """Test that query unwraps errors into SchemaValidationException."""
        transport = ScriptedTransport(["{}", "{}", "{}"])
        agent = make_agent(transport, max_retries=2)

        with pytest.raises(SchemaValidationException) as exc_info:
            agent.query("Describe Ada", Person)

        assert len(transport.calls) == 3
        assert ("first_name",) in exc_info.value.field_errors

    @pytest.mark.unit
    def test_query_stream(self) -> None:
        """Test partial streaming through query_stream."""
        transport = ScriptedTransport([['{"first_name": "A', 'da", "last_name": "L"}']])
        agent = make_agent(transport)

        results = agent.query_stream("Describe Ada", Person).collect()

        assert [r.status for r in results] == ["partial", "partial", "ok"]

    @pytest.mark.unit
    def test_transport_errors_propagate(self) -> None:
        """Test that transport failures are raised, never retried."""
        transport = Mock()
        transport.complete.side_effect = ProviderException("boom", provider="openai")
        agent = LiteLLMAgent(model="gpt-4o-mini", api_key="k", transport=transport)

        with pytest.raises(ProviderException):
            agent.chat_completion(
                ChatCompletionRequest(schema=Person, messages=USER_MESSAGE, max_retries=3)
            )
        assert transport.complete.call_count == 1

    @pytest.mark.unit
    @patch("structured_llm_client.agents.transport.completion")
    def test_default_transport_uses_litellm(
        self, mock_completion: Mock, mock_api_response: Mock
    ) -> None:
        """Test the full path through LiteLLMTransport."""
        mock_completion.return_value = mock_api_response
        agent = LiteLLMAgent(model="gpt-4o-mini", api_key="test-key")

        result = agent.chat_completion(
            ChatCompletionRequest(schema=Person, messages=USER_MESSAGE)
        )

        assert result.value == Person(**PEOPLE[0])
        assert mock_completion.call_args.kwargs["api_key"] == "test-key"


class TestAsyncAgent:
    """Test the async agent surface."""

    @pytest.mark.unit
    def test_achat_completion(self) -> None:
        transport = ScriptedTransport(["{}", json.dumps(PEOPLE[1])])
        agent = make_agent(transport)

        result = asyncio.run(
            agent.achat_completion(
                ChatCompletionRequest(schema=Person, messages=USER_MESSAGE, max_retries=1)
            )
        )

        assert result.value == Person(**PEOPLE[1])
        assert len(transport.calls) == 2

    @pytest.mark.unit
    def test_achat_completion_stream(self) -> None:
        transport = ScriptedTransport([[json.dumps(PEOPLE)[:30], json.dumps(PEOPLE)[30:]]])
        agent = make_agent(transport)

        async def run() -> list[object]:
            channel = await agent.achat_completion(
                ChatCompletionRequest(schema=list[Person], messages=USER_MESSAGE, stream=True)
            )
            assert isinstance(channel, AsyncResultChannel)
            return await channel.acollect()

        results = asyncio.run(run())

        assert [r.value.first_name for r in results] == ["Ada", "Alan"]


class TestProviderAgents:
    """Test the provider convenience classes."""

    @pytest.mark.unit
    def test_openai_agent_defaults(self) -> None:
        agent = OpenAIAgent(api_key="test-key")
        assert agent.model == "gpt-4o-mini"

    @pytest.mark.unit
    def test_anthropic_agent_defaults(self) -> None:
        agent = AnthropicAgent(api_key="test-key", max_retries=2)
        assert agent.model == "claude-3-haiku-20240307"
        assert agent.max_retries == 2
