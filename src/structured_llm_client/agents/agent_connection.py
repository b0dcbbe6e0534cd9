"""Agent connection classes for structured LLM completions."""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from typing import Any

from structured_llm_client.agents.transport import LiteLLMTransport, ModelTransport
from structured_llm_client.decoding import (
    AsyncResultChannel,
    DecodedResult,
    ResultChannel,
    RetryController,
    StreamMode,
    adecode_stream,
    create_decoder,
    decode_stream,
    resolve_stream_mode,
)
from structured_llm_client.request import ChatCompletionRequest, Message
from structured_llm_client.schema import (
    BaseSchemaAdapter,
    SchemaManager,
    SchemaValidator,
)

logger = logging.getLogger(__name__)


@dataclass
class PreparedCall:
    """A request resolved against an agent, ready for dispatch."""

    model: str
    adapter: BaseSchemaAdapter
    mode: StreamMode
    messages: list[dict[str, Any]]
    schema_dict: dict[str, Any]
    options: dict[str, Any]
    max_retries: int


class AgentConnection(ABC):
    """Abstract base class for structured LLM agent connections."""

    @abstractmethod
    def chat_completion(
        self, request: ChatCompletionRequest
    ) -> DecodedResult | ResultChannel:
        """Run a structured chat completion.

        Args:
            request: The completion request

        Returns:
            A terminal DecodedResult, or a ResultChannel when
            ``request.stream`` is set
        """
        pass

    @abstractmethod
    async def achat_completion(
        self, request: ChatCompletionRequest
    ) -> DecodedResult | AsyncResultChannel:
        """Async counterpart of ``chat_completion``."""
        pass

    @abstractmethod
    def query(
        self,
        message: str,
        schema: Any,
        system_message: str | None = None,
        max_retries: int | None = None,
    ) -> Any:
        """Send a query and return the validated value.

        Args:
            message: The user message to send
            schema: Target schema
            system_message: Optional system message to set context
            max_retries: Corrective re-prompts allowed after a failure

        Returns:
            The validated value matching the schema
        """
        pass


class LiteLLMAgent(AgentConnection):
    """Structured LLM agent using LiteLLM for multi-provider support."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        max_tokens: int = 1000,
        max_retries: int = 0,
        transport: ModelTransport | None = None,
        schema_manager: SchemaManager | None = None,
    ):
        """Initialize the LiteLLM agent.

        Args:
            model: The model name (e.g., 'gpt-4o-mini', 'claude-3-haiku-20240307')
            api_key: The API key for authentication
            max_tokens: Maximum tokens for response (default: 1000)
            max_retries: Default retry budget for ``query`` (default: 0)
            transport: Model transport (default: LiteLLMTransport)
            schema_manager: Schema resolver (default: SchemaManager())

        Raises:
            ValueError: If model or api_key is None
        """
        if model is None:
            raise ValueError("Model is required")
        if api_key is None:
            raise ValueError("API key is required")

        self.model = model
        self.api_key = api_key
        self.max_tokens = max_tokens
        self.max_retries = max_retries

        self.transport = transport or LiteLLMTransport()
        self._schema_manager = schema_manager or SchemaManager()
        self._schema_validator = SchemaValidator()

    def prepare(self, request: ChatCompletionRequest) -> PreparedCall:
        """Resolve schema, decode mode and LiteLLM options for a request.

        Raises:
            ConfigurationException: For invalid stream/retry combinations
            SchemaNotFoundError: If a named schema cannot be found
        """
        adapter = self._schema_manager.get_adapter(
            request.schema_input, request.validators
        )
        mode = resolve_stream_mode(
            adapter, request.stream, request.stream_mode, request.max_retries
        )
        options: dict[str, Any] = {
            "max_tokens": self.max_tokens,
            "api_key": self.api_key,
        }
        options.update(request.provider_config)

        return PreparedCall(
            model=request.model or self.model,
            adapter=adapter,
            mode=mode,
            messages=request.message_dicts(),
            schema_dict=adapter.describe(),
            options=options,
            max_retries=request.max_retries,
        )

    def chat_completion(
        self, request: ChatCompletionRequest
    ) -> DecodedResult | ResultChannel:
        """Run a structured chat completion.

        Non-streaming requests return one terminal result after the retry
        loop; streaming requests return a lazy ResultChannel.

        Example:
            ```python
            status, value = agent.chat_completion(
                ChatCompletionRequest(
                    schema=Person,
                    messages=[{"role": "user", "content": "Describe Ada"}],
                    max_retries=2,
                )
            )
            ```
        """
        if request.stream:
            return self.chat_completion_stream(request)

        call = self.prepare(request)
        logger.info(
            "Structured completion with %s (schema=%s, max_retries=%d)",
            call.model,
            call.adapter.name,
            call.max_retries,
        )

        def fetch(messages: list[dict[str, Any]]) -> list[str]:
            return [
                self.transport.complete(
                    call.model, messages, call.schema_dict, **call.options
                )
            ]

        return self._controller(call).run(fetch, call.messages)

    def chat_completion_stream(self, request: ChatCompletionRequest) -> ResultChannel:
        """Return a lazy channel of streamed results for a request.

        The request is validated immediately; the model is called each
        time the channel is iterated.
        """
        call = self.prepare(request.model_copy(update={"stream": True}))
        logger.info(
            "Streaming completion with %s (schema=%s, mode=%s)",
            call.model,
            call.adapter.name,
            call.mode.value,
        )

        def fetch(messages: list[dict[str, Any]]) -> Iterator[str]:
            return self.transport.stream(
                call.model, messages, call.schema_dict, **call.options
            )

        def factory() -> Iterator[DecodedResult]:
            if call.mode is StreamMode.OFF:
                return self._retry_iter(call, fetch)
            decoder = create_decoder(call.mode, call.adapter, self._schema_validator)
            return decode_stream(decoder, fetch(call.messages))

        return ResultChannel(factory)

    def _retry_iter(self, call: PreparedCall, fetch: Any) -> Iterator[DecodedResult]:
        yield self._controller(call).run(fetch, call.messages)

    async def achat_completion(
        self, request: ChatCompletionRequest
    ) -> DecodedResult | AsyncResultChannel:
        """Async counterpart of ``chat_completion``."""
        if request.stream:
            return self.achat_completion_stream(request)

        call = self.prepare(request)
        logger.info(
            "Structured completion with %s (schema=%s, max_retries=%d)",
            call.model,
            call.adapter.name,
            call.max_retries,
        )

        async def fetch(messages: list[dict[str, Any]]) -> AsyncIterator[str]:
            yield await self.transport.acomplete(
                call.model, messages, call.schema_dict, **call.options
            )

        return await self._controller(call).arun(fetch, call.messages)

    def achat_completion_stream(
        self, request: ChatCompletionRequest
    ) -> AsyncResultChannel:
        """Async counterpart of ``chat_completion_stream``."""
        call = self.prepare(request.model_copy(update={"stream": True}))
        logger.info(
            "Streaming completion with %s (schema=%s, mode=%s)",
            call.model,
            call.adapter.name,
            call.mode.value,
        )

        def fetch(messages: list[dict[str, Any]]) -> AsyncIterator[str]:
            return self.transport.astream(
                call.model, messages, call.schema_dict, **call.options
            )

        async def retry_iter() -> AsyncIterator[DecodedResult]:
            yield await self._controller(call).arun(fetch, call.messages)

        def factory() -> AsyncIterator[DecodedResult]:
            if call.mode is StreamMode.OFF:
                return retry_iter()
            decoder = create_decoder(call.mode, call.adapter, self._schema_validator)
            return adecode_stream(decoder, fetch(call.messages))

        return AsyncResultChannel(factory)

    def query(
        self,
        message: str,
        schema: Any,
        system_message: str | None = None,
        max_retries: int | None = None,
    ) -> Any:
        """Send a query and return the validated value.

        Args:
            message: The user message to send
            schema: JSON schema dict, Pydantic model class, ``list[Model]``
                or schema name
            system_message: Optional system message to set context
            max_retries: Corrective re-prompts allowed (default: the agent's)

        Returns:
            The validated value matching the schema

        Raises:
            SchemaValidationException: If validation still fails after the
                retry budget is spent
        """
        request = self._build_request(message, schema, system_message)
        request.max_retries = self.max_retries if max_retries is None else max_retries
        result = self.chat_completion(request)
        return result.unwrap()

    def query_stream(
        self,
        message: str,
        schema: Any,
        system_message: str | None = None,
        stream_mode: StreamMode | None = None,
    ) -> ResultChannel:
        """Send a query and return a channel of streamed results."""
        request = self._build_request(message, schema, system_message)
        request.stream = True
        request.stream_mode = stream_mode
        return self.chat_completion_stream(request)

    def _build_request(
        self, message: str, schema: Any, system_message: str | None
    ) -> ChatCompletionRequest:
        messages: list[Message] = []
        if system_message:
            messages.append(Message(role="system", content=system_message))
        messages.append(Message(role="user", content=message))
        return ChatCompletionRequest(schema=schema, messages=messages)

    def _controller(self, call: PreparedCall) -> RetryController:
        return RetryController(call.adapter, call.max_retries, self._schema_validator)


class OpenAIAgent(LiteLLMAgent):
    """Convenience class for OpenAI models with sensible defaults."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        max_tokens: int = 1000,
        max_retries: int = 0,
    ):
        """Initialize OpenAI agent with default model.

        Args:
            model: OpenAI model name (default: 'gpt-4o-mini')
            api_key: OpenAI API key
            max_tokens: Maximum tokens for response
            max_retries: Default retry budget for ``query``
        """
        super().__init__(
            model=model, api_key=api_key, max_tokens=max_tokens, max_retries=max_retries
        )


class AnthropicAgent(LiteLLMAgent):
    """Convenience class for Anthropic models with sensible defaults."""

    def __init__(
        self,
        model: str = "claude-3-haiku-20240307",
        api_key: str | None = None,
        max_tokens: int = 1000,
        max_retries: int = 0,
    ):
        """Initialize Anthropic agent with default model.

        Args:
            model: Anthropic model name (default: 'claude-3-haiku-20240307')
            api_key: Anthropic API key
            max_tokens: Maximum tokens for response
            max_retries: Default retry budget for ``query``
        """
        super().__init__(
            model=model, api_key=api_key, max_tokens=max_tokens, max_retries=max_retries
        )
