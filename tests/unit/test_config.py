"""Unit tests for configuration utilities."""

from typing import Any
from unittest.mock import patch

import pytest

from structured_llm_client.agents.agent_connection import (
    AnthropicAgent,
    LiteLLMAgent,
    OpenAIAgent,
)
from structured_llm_client.exceptions import ConfigurationException
from structured_llm_client.utils.config import (
    create_anthropic_agent,
    create_litellm_agent,
    create_openai_agent,
    get_available_providers,
    get_default_max_retries,
    get_default_models,
    load_environment,
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Environment without provider keys or retry settings."""
    for name in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "STRUCTURED_LLM_MAX_RETRIES"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@patch("structured_llm_client.utils.config.load_dotenv")
class TestConfigurationUtils:
    """Test configuration utility functions."""

    @pytest.mark.unit
    def test_load_environment(self, mock_load_dotenv: Any) -> None:
        """Test loading environment variables."""
        load_environment()
        mock_load_dotenv.assert_called_once()

    @pytest.mark.unit
    def test_create_openai_agent_with_env_key(
        self, mock_load_dotenv: Any, clean_env: pytest.MonkeyPatch
    ) -> None:
        """Test creating OpenAI agent with environment API key."""
        clean_env.setenv("OPENAI_API_KEY", "test-openai-key")

        agent = create_openai_agent()

        assert isinstance(agent, OpenAIAgent)
        assert agent.model == "gpt-4o-mini"
        assert agent.api_key == "test-openai-key"
        assert agent.max_tokens == 1000
        assert agent.max_retries == 0

    @pytest.mark.unit
    def test_create_openai_agent_with_explicit_values(
        self, mock_load_dotenv: Any, clean_env: pytest.MonkeyPatch
    ) -> None:
        """Test creating OpenAI agent with explicit arguments."""
        agent = create_openai_agent(
            model="gpt-4o", api_key="explicit-key", max_tokens=2000, max_retries=3
        )

        assert agent.model == "gpt-4o"
        assert agent.api_key == "explicit-key"
        assert agent.max_tokens == 2000
        assert agent.max_retries == 3

    @pytest.mark.unit
    def test_create_openai_agent_no_key_raises_error(
        self, mock_load_dotenv: Any, clean_env: pytest.MonkeyPatch
    ) -> None:
        """Test that missing OpenAI API key raises ValueError."""
        with pytest.raises(ValueError, match="OpenAI API key not found"):
            create_openai_agent()

    @pytest.mark.unit
    def test_create_anthropic_agent_with_env_key(
        self, mock_load_dotenv: Any, clean_env: pytest.MonkeyPatch
    ) -> None:
        """Test creating Anthropic agent with environment API key."""
        clean_env.setenv("ANTHROPIC_API_KEY", "test-anthropic-key")
        clean_env.setenv("STRUCTURED_LLM_MAX_RETRIES", "4")

        agent = create_anthropic_agent()

        assert isinstance(agent, AnthropicAgent)
        assert agent.model == "claude-3-haiku-20240307"
        assert agent.api_key == "test-anthropic-key"
        assert agent.max_retries == 4

    @pytest.mark.unit
    def test_create_anthropic_agent_no_key_raises_error(
        self, mock_load_dotenv: Any, clean_env: pytest.MonkeyPatch
    ) -> None:
        with pytest.raises(ValueError, match="Anthropic API key not found"):
            create_anthropic_agent()

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("model", "env_name"),
        [
            ("gpt-4o-mini", "OPENAI_API_KEY"),
            ("openai/gpt-4o", "OPENAI_API_KEY"),
            ("claude-3-haiku-20240307", "ANTHROPIC_API_KEY"),
            ("anthropic/claude-3-5-sonnet", "ANTHROPIC_API_KEY"),
        ],
    )
    def test_create_litellm_agent_infers_key(
        self,
        mock_load_dotenv: Any,
        clean_env: pytest.MonkeyPatch,
        model: str,
        env_name: str,
    ) -> None:
        """Test API key inference from the model name."""
        clean_env.setenv(env_name, "inferred-key")

        agent = create_litellm_agent(model=model)

        assert isinstance(agent, LiteLLMAgent)
        assert agent.api_key == "inferred-key"

    @pytest.mark.unit
    def test_create_litellm_agent_unknown_model_needs_key(
        self, mock_load_dotenv: Any, clean_env: pytest.MonkeyPatch
    ) -> None:
        with pytest.raises(ValueError, match="API key not found for model"):
            create_litellm_agent(model="mystery-model")

    @pytest.mark.unit
    def test_get_available_providers(
        self, mock_load_dotenv: Any, clean_env: pytest.MonkeyPatch
    ) -> None:
        """Test provider availability detection."""
        clean_env.setenv("OPENAI_API_KEY", "key")

        assert get_available_providers() == {"openai": True, "anthropic": False}

    @pytest.mark.unit
    def test_get_default_models(self, mock_load_dotenv: Any) -> None:
        models = get_default_models()
        assert models == {
            "openai": "gpt-4o-mini",
            "anthropic": "claude-3-haiku-20240307",
        }


@patch("structured_llm_client.utils.config.load_dotenv")
class TestDefaultMaxRetries:
    """Test the retry budget setting."""

    @pytest.mark.unit
    def test_unset_is_zero(self, mock_load_dotenv: Any, clean_env: pytest.MonkeyPatch) -> None:
        assert get_default_max_retries() == 0

    @pytest.mark.unit
    def test_reads_environment(
        self, mock_load_dotenv: Any, clean_env: pytest.MonkeyPatch
    ) -> None:
        clean_env.setenv("STRUCTURED_LLM_MAX_RETRIES", " 3 ")
        assert get_default_max_retries() == 3

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["many", "-1", "1.5"])
    def test_invalid_values_raise(
        self, mock_load_dotenv: Any, clean_env: pytest.MonkeyPatch, value: str
    ) -> None:
        """Test that invalid settings raise ConfigurationException."""
        clean_env.setenv("STRUCTURED_LLM_MAX_RETRIES", value)

        with pytest.raises(ConfigurationException) as exc_info:
            get_default_max_retries()

        assert exc_info.value.config_key == "STRUCTURED_LLM_MAX_RETRIES"
        assert exc_info.value.config_value == value
