"""Configuration utilities for environment-based setup."""

import os

from dotenv import load_dotenv

from structured_llm_client.agents.agent_connection import (
    AnthropicAgent,
    LiteLLMAgent,
    OpenAIAgent,
)
from structured_llm_client.exceptions import ConfigurationException

MAX_RETRIES_ENV = "STRUCTURED_LLM_MAX_RETRIES"


def load_environment() -> None:
    """Load environment variables from .env file if it exists."""
    load_dotenv()


def get_default_max_retries() -> int:
    """Read the default retry budget from the environment.

    Returns:
        Value of STRUCTURED_LLM_MAX_RETRIES, or 0 when unset

    Raises:
        ConfigurationException: If the value is not a non-negative integer
    """
    load_environment()

    raw_value = os.getenv(MAX_RETRIES_ENV)
    if raw_value is None or raw_value.strip() == "":
        return 0

    try:
        value = int(raw_value)
    except ValueError as e:
        raise ConfigurationException(
            f"{MAX_RETRIES_ENV} must be a non-negative integer, got '{raw_value}'",
            config_key=MAX_RETRIES_ENV,
            config_value=raw_value,
        ) from e

    if value < 0:
        raise ConfigurationException(
            f"{MAX_RETRIES_ENV} must be a non-negative integer, got '{raw_value}'",
            config_key=MAX_RETRIES_ENV,
            config_value=raw_value,
        )
    return value


def create_openai_agent(
    model: str = "gpt-4o-mini",
    api_key: str | None = None,
    max_tokens: int = 1000,
    max_retries: int | None = None,
) -> OpenAIAgent:
    """Create an OpenAI agent with environment-based configuration.

    Args:
        model: OpenAI model name (default: 'gpt-4o-mini')
        api_key: OpenAI API key (if None, loads from OPENAI_API_KEY env var)
        max_tokens: Maximum tokens for response
        max_retries: Default retry budget (if None, loads from
            STRUCTURED_LLM_MAX_RETRIES)

    Returns:
        Configured OpenAIAgent

    Raises:
        ValueError: If no API key is found in parameter or environment
    """
    load_environment()

    if api_key is None:
        api_key = os.getenv("OPENAI_API_KEY")

    if api_key is None:
        raise ValueError(
            "OpenAI API key not found. Set OPENAI_API_KEY environment variable "
            "or pass api_key parameter."
        )

    if max_retries is None:
        max_retries = get_default_max_retries()

    return OpenAIAgent(
        model=model, api_key=api_key, max_tokens=max_tokens, max_retries=max_retries
    )


def create_anthropic_agent(
    model: str = "claude-3-haiku-20240307",
    api_key: str | None = None,
    max_tokens: int = 1000,
    max_retries: int | None = None,
) -> AnthropicAgent:
    """Create an Anthropic agent with environment-based configuration.

    Args:
        model: Anthropic model name (default: 'claude-3-haiku-20240307')
        api_key: Anthropic API key (if None, loads from ANTHROPIC_API_KEY env var)
        max_tokens: Maximum tokens for response
        max_retries: Default retry budget (if None, loads from
            STRUCTURED_LLM_MAX_RETRIES)

    Returns:
        Configured AnthropicAgent

    Raises:
        ValueError: If no API key is found in parameter or environment
    """
    load_environment()

    if api_key is None:
        api_key = os.getenv("ANTHROPIC_API_KEY")

    if api_key is None:
        raise ValueError(
            "Anthropic API key not found. Set ANTHROPIC_API_KEY environment variable "
            "or pass api_key parameter."
        )

    if max_retries is None:
        max_retries = get_default_max_retries()

    return AnthropicAgent(
        model=model, api_key=api_key, max_tokens=max_tokens, max_retries=max_retries
    )


def create_litellm_agent(
    model: str,
    api_key: str | None = None,
    max_tokens: int = 1000,
    max_retries: int | None = None,
) -> LiteLLMAgent:
    """Create a LiteLLM agent with environment-based configuration.

    Args:
        model: Model name (e.g., 'gpt-4o-mini', 'claude-3-haiku-20240307')
        api_key: API key (if None, tries to infer from model and environment)
        max_tokens: Maximum tokens for response
        max_retries: Default retry budget (if None, loads from
            STRUCTURED_LLM_MAX_RETRIES)

    Returns:
        Configured LiteLLMAgent

    Raises:
        ValueError: If no API key is found and cannot be inferred
    """
    load_environment()

    if api_key is None:
        # Infer the key from the model family
        if model.startswith(("gpt", "openai/")):
            api_key = os.getenv("OPENAI_API_KEY")
        elif model.startswith(("claude", "anthropic/")):
            api_key = os.getenv("ANTHROPIC_API_KEY")

    if api_key is None:
        raise ValueError(
            f"API key not found for model '{model}'. Set appropriate environment "
            "variable or pass api_key parameter."
        )

    if max_retries is None:
        max_retries = get_default_max_retries()

    return LiteLLMAgent(
        model=model, api_key=api_key, max_tokens=max_tokens, max_retries=max_retries
    )


def get_available_providers() -> dict[str, bool]:
    """Check which providers have API keys available.

    Returns:
        Dictionary mapping provider names to availability status
    """
    load_environment()

    return {
        "openai": os.getenv("OPENAI_API_KEY") is not None,
        "anthropic": os.getenv("ANTHROPIC_API_KEY") is not None,
    }


def get_default_models() -> dict[str, str]:
    """Get default models for each provider.

    Returns:
        Dictionary mapping provider names to default model names
    """
    return {
        "openai": "gpt-4o-mini",
        "anthropic": "claude-3-haiku-20240307",
    }
