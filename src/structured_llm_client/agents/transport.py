"""Model transport: issues LiteLLM calls and yields response text fragments."""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterator
from typing import Any

from litellm import acompletion, completion

from structured_llm_client.exceptions import ProviderException
from structured_llm_client.schema.formats import (
    BaseResponseFormat,
    ResponseFormatFactory,
)

logger = logging.getLogger(__name__)


def get_provider_from_model(model: str) -> str:
    """Determine provider from model name.

    Args:
        model: The model name

    Returns:
        Provider name ('openai', 'anthropic', etc.)
    """
    model_lower = model.lower()

    if "/" in model_lower:
        prefix = model_lower.split("/", 1)[0]
        if prefix in ("openai", "anthropic", "gemini", "vertex_ai", "ollama"):
            return "google" if prefix in ("gemini", "vertex_ai") else prefix

    if "claude" in model_lower:
        return "anthropic"
    elif "gpt" in model_lower or model_lower.startswith(("o1", "o3", "o4", "davinci")):
        return "openai"
    elif any(prefix in model_lower for prefix in ["gemini", "palm", "bison"]):
        return "google"
    elif "llama" in model_lower:
        return "meta"
    else:
        return "unknown"


class ModelTransport(ABC):
    """Abstract collaborator that talks to a language model.

    ``complete`` returns the whole response text; ``stream`` yields text
    fragments in arrival order. Closing a stream generator ends the
    upstream request. Failures are raised as ``ProviderException``.
    """

    @abstractmethod
    def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> str:
        pass

    @abstractmethod
    def stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> Iterator[str]:
        pass

    @abstractmethod
    async def acomplete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> str:
        pass

    @abstractmethod
    def astream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> AsyncIterator[str]:
        pass


class LiteLLMTransport(ModelTransport):
    """Transport backed by ``litellm.completion`` / ``litellm.acompletion``.

    The schema description is merged into the request through the response
    format selected for the model's provider.

    Args:
        format_factory: Factory choosing the response format per provider
    """

    def __init__(self, format_factory: ResponseFormatFactory | None = None) -> None:
        self.format_factory = format_factory or ResponseFormatFactory()

    def get_format(self, model: str) -> BaseResponseFormat:
        """Return the response format used for a model."""
        return self.format_factory.get_format(get_provider_from_model(model), model)

    def _request_kwargs(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        options: dict[str, Any],
    ) -> tuple[BaseResponseFormat, dict[str, Any]]:
        response_format = self.get_format(model)
        kwargs = response_format.build_request(messages, schema_dict)
        kwargs.update(options)
        kwargs["model"] = model
        return response_format, kwargs

    def _wrap_error(self, model: str, error: Exception) -> ProviderException:
        provider = get_provider_from_model(model)
        logger.error("Model call to %s failed: %s", model, error)
        return ProviderException(
            f"Model call failed: {error}",
            provider=provider,
            model=model,
            original_error=error,
        )

    def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> str:
        """Send one non-streaming request and return the response text."""
        response_format, kwargs = self._request_kwargs(
            model, messages, schema_dict, options
        )
        logger.info("Requesting completion from %s (%d messages)", model, len(messages))
        try:
            response = completion(**kwargs)
        except Exception as e:
            raise self._wrap_error(model, e) from e
        return response_format.extract_text(response)

    def stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> Iterator[str]:
        """Send a streaming request and yield text fragments."""
        response_format, kwargs = self._request_kwargs(
            model, messages, schema_dict, options
        )
        kwargs["stream"] = True
        logger.info("Requesting stream from %s (%d messages)", model, len(messages))
        try:
            response = completion(**kwargs)
        except Exception as e:
            raise self._wrap_error(model, e) from e

        try:
            chunks = iter(response)
            while True:
                try:
                    chunk = next(chunks)
                except StopIteration:
                    break
                except Exception as e:
                    raise self._wrap_error(model, e) from e
                fragment = response_format.extract_fragment(chunk)
                if fragment:
                    logger.debug("Received fragment of %d chars", len(fragment))
                    yield fragment
        finally:
            close = getattr(response, "close", None)
            if close is not None:
                close()

    async def acomplete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> str:
        """Async counterpart of ``complete``."""
        response_format, kwargs = self._request_kwargs(
            model, messages, schema_dict, options
        )
        logger.info("Requesting completion from %s (%d messages)", model, len(messages))
        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            raise self._wrap_error(model, e) from e
        return response_format.extract_text(response)

    async def astream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        schema_dict: dict[str, Any],
        **options: Any,
    ) -> AsyncIterator[str]:
        """Async counterpart of ``stream``."""
        response_format, kwargs = self._request_kwargs(
            model, messages, schema_dict, options
        )
        kwargs["stream"] = True
        logger.info("Requesting stream from %s (%d messages)", model, len(messages))
        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            raise self._wrap_error(model, e) from e

        try:
            chunks = aiter(response)
            while True:
                try:
                    chunk = await anext(chunks)
                except StopAsyncIteration:
                    break
                except Exception as e:
                    raise self._wrap_error(model, e) from e
                fragment = response_format.extract_fragment(chunk)
                if fragment:
                    logger.debug("Received fragment of %d chars", len(fragment))
                    yield fragment
        finally:
            aclose = getattr(response, "aclose", None)
            if aclose is not None:
                await aclose()
