"""Decode modes: single, record-stream and partial-stream emission policies.

Each decoder is a fold over fragments. ``feed`` consumes one fragment and
returns the results it makes available; ``finish`` is called once at
end-of-stream and returns the remaining terminal results. Decoders move
through ``STREAMING → FINALIZING → DONE`` and hold no state beyond their own
assembler, so the same decoder logic drives sync generators, async
generators or a manual loop.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from enum import Enum

from structured_llm_client.decoding.assembler import IncrementalJSONAssembler
from structured_llm_client.decoding.results import DecodedResult, StreamMode
from structured_llm_client.exceptions import (
    ConfigurationException,
    MalformedJSONException,
)
from structured_llm_client.schema.adapters import BaseSchemaAdapter
from structured_llm_client.schema.field_errors import FieldErrors
from structured_llm_client.schema.validators import SchemaValidator

logger = logging.getLogger(__name__)


class DecodeState(Enum):
    """Lifecycle of a decoder."""

    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"


class BaseDecoder(ABC):
    """Base class for decode mode policies."""

    def __init__(
        self,
        adapter: BaseSchemaAdapter,
        validator: SchemaValidator | None = None,
    ) -> None:
        self.adapter = adapter
        self.validator = validator or SchemaValidator()
        self.assembler = IncrementalJSONAssembler()
        self.state = DecodeState.STREAMING

    @property
    def text(self) -> str:
        """Raw text received so far."""
        return self.assembler.text

    def feed(self, fragment: str | None) -> list[DecodedResult]:
        """Consume one fragment and return the results it completes."""
        if self.state is not DecodeState.STREAMING:
            raise RuntimeError(f"Cannot feed a decoder in state {self.state.value}")
        return self._on_fragment(fragment)

    def finish(self) -> list[DecodedResult]:
        """Signal end-of-stream and return the remaining terminal results."""
        if self.state is not DecodeState.STREAMING:
            raise RuntimeError(f"Cannot finish a decoder in state {self.state.value}")
        self.state = DecodeState.FINALIZING
        results = self._on_finish()
        self.state = DecodeState.DONE
        return results

    @abstractmethod
    def _on_fragment(self, fragment: str | None) -> list[DecodedResult]:
        pass

    @abstractmethod
    def _on_finish(self) -> list[DecodedResult]:
        pass

    def _finalize_whole(self) -> DecodedResult:
        """Parse the complete text, then construct and validate it."""
        try:
            data = self.assembler.finalize()
        except MalformedJSONException as exc:
            logger.debug("Response is not valid JSON: %s", exc)
            return DecodedResult.error(FieldErrors.unparseable(str(exc)), self.text)
        result = self.validator.validate_data(data, self.adapter)
        return DecodedResult.from_validation(result, self.text)


class SingleDecoder(BaseDecoder):
    """Collects every fragment silently and decodes once at end-of-stream."""

    def _on_fragment(self, fragment: str | None) -> list[DecodedResult]:
        self.assembler.feed(fragment)
        return []

    def _on_finish(self) -> list[DecodedResult]:
        return [self._finalize_whole()]


class RecordDecoder(BaseDecoder):
    """Emits one terminal result per array element as soon as it closes.

    Each element is constructed and validated alone with the element
    adapter, so one invalid record never blocks or alters its siblings.
    """

    def __init__(
        self,
        adapter: BaseSchemaAdapter,
        validator: SchemaValidator | None = None,
    ) -> None:
        if adapter.element is None:
            raise ConfigurationException(
                f"Record streaming requires an array schema, got '{adapter.name}'",
                config_key="stream_mode",
                config_value=StreamMode.RECORD.value,
            )
        super().__init__(adapter, validator)
        self.element = adapter.element
        self.records_emitted = 0

    def _on_fragment(self, fragment: str | None) -> list[DecodedResult]:
        self.assembler.feed(fragment)
        return [self._decode_record(text) for text in self.assembler.take_closed_elements()]

    def _on_finish(self) -> list[DecodedResult]:
        results = [
            self._decode_record(text) for text in self.assembler.take_closed_elements()
        ]

        pending = self.assembler.pending_element()
        if pending:
            logger.debug("Stream ended inside record %d", self.records_emitted)
            results.append(self._decode_record(pending))
        elif not self.assembler.records_seen:
            results.append(self._missing_records())
        return results

    def _decode_record(self, text: str) -> DecodedResult:
        index = self.records_emitted
        self.records_emitted += 1
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            return DecodedResult.error(FieldErrors.unparseable(str(exc)), text)

        result = self.validator.validate_data(data, self.element)
        logger.debug("Record %d decoded (success=%s)", index, result.success)
        return DecodedResult.from_validation(result, text)

    def _missing_records(self) -> DecodedResult:
        try:
            self.assembler.finalize()
        except MalformedJSONException as exc:
            return DecodedResult.error(FieldErrors.unparseable(str(exc)), self.text)
        return DecodedResult.error(
            FieldErrors({(): ["expected an array of records"]}), self.text
        )


class PartialDecoder(BaseDecoder):
    """Emits the whole value's best-known state after every fragment.

    Partial values are built with the adapter's forgiving
    ``construct_partial`` and are never validated. Full construction and
    validation run once, at end-of-stream.
    """

    def _on_fragment(self, fragment: str | None) -> list[DecodedResult]:
        value = self.assembler.feed(fragment)
        if not self.assembler.started:
            return []
        return [DecodedResult.partial(self.adapter.construct_partial(value))]

    def _on_finish(self) -> list[DecodedResult]:
        return [self._finalize_whole()]


def resolve_stream_mode(
    adapter: BaseSchemaAdapter,
    stream: bool,
    stream_mode: StreamMode | None,
    max_retries: int,
) -> StreamMode:
    """Select the decode mode for a request, rejecting invalid combinations.

    Args:
        adapter: Schema adapter of the request
        stream: Whether the caller asked for a streamed result
        stream_mode: Requested submode; inferred when streaming and ``None``
        max_retries: Retry budget of the request

    Returns:
        The stream mode to decode with; ``OFF`` means single decoding

    Raises:
        ConfigurationException: For a negative retry budget, a submode
            without streaming, record mode on a non-array schema or a retry
            budget combined with a streaming submode
    """
    if max_retries < 0:
        raise ConfigurationException(
            "max_retries must be a non-negative integer",
            config_key="max_retries",
            config_value=str(max_retries),
        )

    if not stream:
        if stream_mode not in (None, StreamMode.OFF):
            raise ConfigurationException(
                f"stream_mode='{StreamMode(stream_mode).value}' requires stream=True",
                config_key="stream_mode",
                config_value=StreamMode(stream_mode).value,
            )
        return StreamMode.OFF

    if stream_mode is None:
        mode = StreamMode.RECORD if adapter.is_array else StreamMode.PARTIAL
    else:
        mode = StreamMode(stream_mode)

    if mode is StreamMode.RECORD and not adapter.is_array:
        raise ConfigurationException(
            f"stream_mode='record' requires an array schema, got '{adapter.name}'",
            config_key="stream_mode",
            config_value=mode.value,
        )

    if mode is not StreamMode.OFF and max_retries > 0:
        raise ConfigurationException(
            f"max_retries is not supported with stream_mode='{mode.value}': "
            "validation applies to complete values and failures are returned "
            "as terminal results",
            config_key="max_retries",
            config_value=str(max_retries),
        )
    return mode


def create_decoder(
    mode: StreamMode,
    adapter: BaseSchemaAdapter,
    validator: SchemaValidator | None = None,
) -> BaseDecoder:
    """Create the decoder implementing a stream mode."""
    if mode is StreamMode.RECORD:
        return RecordDecoder(adapter, validator)
    if mode is StreamMode.PARTIAL:
        return PartialDecoder(adapter, validator)
    return SingleDecoder(adapter, validator)


def decode_stream(
    decoder: BaseDecoder, fragments: Iterable[str]
) -> Iterator[DecodedResult]:
    """Drive a decoder over a fragment iterable, yielding results in order.

    Closing the returned generator closes the fragment iterator, which ends
    the upstream transport request.
    """
    iterator = iter(fragments)
    try:
        for fragment in iterator:
            yield from decoder.feed(fragment)
        yield from decoder.finish()
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()


async def adecode_stream(
    decoder: BaseDecoder, fragments: AsyncIterable[str]
) -> AsyncIterator[DecodedResult]:
    """Async counterpart of ``decode_stream``."""
    iterator = aiter(fragments)
    try:
        async for fragment in iterator:
            for result in decoder.feed(fragment):
                yield result
        for result in decoder.finish():
            yield result
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
