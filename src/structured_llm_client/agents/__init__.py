"""Agent-related modules for structured LLM connections and model transports."""

from .agent_connection import AgentConnection, AnthropicAgent, LiteLLMAgent, OpenAIAgent
from .transport import LiteLLMTransport, ModelTransport, get_provider_from_model

__all__ = [
    "AgentConnection",
    "LiteLLMAgent",
    "OpenAIAgent",
    "AnthropicAgent",
    "ModelTransport",
    "LiteLLMTransport",
    "get_provider_from_model",
]
