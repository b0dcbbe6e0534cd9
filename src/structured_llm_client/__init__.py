"""Structured LLM Client - schema-validated structured output from language models."""

__version__ = "0.1.0"

# Core agent classes
from .agents import (
    AgentConnection,
    AnthropicAgent,
    LiteLLMAgent,
    LiteLLMTransport,
    ModelTransport,
    OpenAIAgent,
)

# Decoding engine
from .decoding import (
    AsyncResultChannel,
    DecodedResult,
    IncrementalJSONAssembler,
    ResultChannel,
    RetryController,
    StreamMode,
)

# Custom exceptions
from .exceptions import (
    ConfigurationException,
    MalformedJSONException,
    ProviderException,
    SchemaValidationException,
    StructuredLLMException,
)

# Requests
from .request import ChatCompletionRequest, ImagePart, Message, TextPart

# Schema support
from .schema import (
    ArraySchemaAdapter,
    BaseSchemaAdapter,
    FieldErrors,
    PydanticSchemaAdapter,
    SchemaManager,
    max_items,
    min_items,
    rule,
)

# Configuration utilities
from .utils import (
    create_anthropic_agent,
    create_litellm_agent,
    create_openai_agent,
    get_available_providers,
    get_default_max_retries,
    get_default_models,
    load_environment,
)

__all__ = [
    "__version__",
    "AgentConnection",
    "LiteLLMAgent",
    "OpenAIAgent",
    "AnthropicAgent",
    "ModelTransport",
    "LiteLLMTransport",
    "AsyncResultChannel",
    "DecodedResult",
    "IncrementalJSONAssembler",
    "ResultChannel",
    "RetryController",
    "StreamMode",
    "ChatCompletionRequest",
    "Message",
    "TextPart",
    "ImagePart",
    "BaseSchemaAdapter",
    "PydanticSchemaAdapter",
    "ArraySchemaAdapter",
    "FieldErrors",
    "SchemaManager",
    "rule",
    "min_items",
    "max_items",
    "load_environment",
    "create_openai_agent",
    "create_anthropic_agent",
    "create_litellm_agent",
    "get_available_providers",
    "get_default_models",
    "get_default_max_retries",
    # Exceptions
    "StructuredLLMException",
    "ConfigurationException",
    "MalformedJSONException",
    "ProviderException",
    "SchemaValidationException",
]
