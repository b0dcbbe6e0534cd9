"""Utility functions for environment-based configuration."""

from .config import (
    create_anthropic_agent,
    create_litellm_agent,
    create_openai_agent,
    get_available_providers,
    get_default_max_retries,
    get_default_models,
    load_environment,
)

__all__ = [
    "load_environment",
    "create_openai_agent",
    "create_anthropic_agent",
    "create_litellm_agent",
    "get_available_providers",
    "get_default_models",
    "get_default_max_retries",
]
