"""Integration tests for structured completions against real providers."""

import pytest
from conftest import SecureTestConfig
from dotenv import load_dotenv
from pydantic import BaseModel

from structured_llm_client.agents.agent_connection import (
    AnthropicAgent,
    LiteLLMAgent,
    OpenAIAgent,
)
from structured_llm_client.request import ChatCompletionRequest
from structured_llm_client.schema.validators import min_items, rule

# Load environment variables from .env file if it exists
load_dotenv()


class Person(BaseModel):
    first_name: str
    last_name: str


class Series(BaseModel):
    series: list[int]


SERIES_RULES = [
    min_items(10, "series"),
    rule(lambda s: sum(s) % 2 == 0, "The sum of the series must be even", "series"),
]


def build_agents(config: SecureTestConfig) -> list[LiteLLMAgent]:
    agents: list[LiteLLMAgent] = []
    if config["openai_api_key"]:
        agents.append(OpenAIAgent(api_key=config["openai_api_key"]))
    if config["anthropic_api_key"]:
        agents.append(AnthropicAgent(api_key=config["anthropic_api_key"]))
    return agents


@pytest.mark.integration
class TestStructuredCompletion:
    """End-to-end decoding with real models."""

    def test_series_with_retries(self, integration_test_setup: SecureTestConfig) -> None:
        """Test that validation feedback converges to a valid series."""
        for agent in build_agents(integration_test_setup):
            result = agent.chat_completion(
                ChatCompletionRequest(
                    schema=Series,
                    messages=[
                        {"role": "user", "content": "Give me a short series of integers."}
                    ],
                    max_retries=10,
                    validators=SERIES_RULES,
                )
            )

            status, value = result
            assert status == "ok", result.errors
            assert len(value.series) >= 10
            assert sum(value.series) % 2 == 0

    def test_record_stream(self, integration_test_setup: SecureTestConfig) -> None:
        """Test that records arrive one by one."""
        for agent in build_agents(integration_test_setup):
            channel = agent.chat_completion_stream(
                ChatCompletionRequest(
                    schema=list[Person],
                    messages=[
                        {
                            "role": "user",
                            "content": "List two pioneers of computing by name.",
                        }
                    ],
                )
            )

            with channel:
                results = channel.collect()

            assert len(results) >= 2
            assert all(result.is_ok for result in results)

    def test_partial_stream(self, integration_test_setup: SecureTestConfig) -> None:
        """Test that partial streaming ends with exactly one terminal result."""
        for agent in build_agents(integration_test_setup):
            results = agent.query_stream(
                "Describe Ada Lovelace.", Person
            ).collect()

            assert [r.is_terminal for r in results].count(True) == 1
            assert results[-1].is_ok
