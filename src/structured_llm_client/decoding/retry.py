"""Retry controller: corrective re-prompting on validation failure."""

import logging
from collections.abc import AsyncIterable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from structured_llm_client.decoding.modes import (
    SingleDecoder,
    adecode_stream,
    decode_stream,
)
from structured_llm_client.decoding.results import DecodedResult
from structured_llm_client.schema.adapters import BaseSchemaAdapter
from structured_llm_client.schema.field_errors import FieldErrors
from structured_llm_client.schema.validators import SchemaValidator

logger = logging.getLogger(__name__)

Message = dict[str, Any]
FetchFn = Callable[[list[Message]], Iterable[str]]
AsyncFetchFn = Callable[[list[Message]], AsyncIterable[str]]

CORRECTION_PROMPT = (
    "Your previous response did not pass validation. "
    "Fix the following errors and respond again with the complete JSON value:\n"
    "{errors}"
)


def build_correction_message(errors: FieldErrors) -> Message:
    """Build the corrective user turn for a failed attempt."""
    return {"role": "user", "content": CORRECTION_PROMPT.format(errors=errors.render())}


@dataclass
class RetryState:
    """Mutable state of one retry run.

    Attributes:
        messages: Conversation sent on the next attempt
        attempt: Number of retries performed so far
        last_errors: Errors of the most recent failed attempt
        transport_calls: Number of model calls issued
    """

    messages: list[Message] = field(default_factory=list)
    attempt: int = 0
    last_errors: FieldErrors | None = None
    transport_calls: int = 0


class RetryController:
    """Runs single-mode decoding with a bounded corrective retry loop.

    On every failed attempt the raw assistant output and a user turn listing
    the field errors are appended to the conversation, and the model is
    called again with the full history. The loop stops after
    ``max_retries + 1`` calls; exhaustion returns the last errors.

    Transport exceptions raised by ``fetch`` propagate unchanged.

    Args:
        adapter: Schema adapter to construct and validate with
        max_retries: Maximum number of additional model calls
        validator: Validator used for construct/validate
    """

    def __init__(
        self,
        adapter: BaseSchemaAdapter,
        max_retries: int = 0,
        validator: SchemaValidator | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        self.adapter = adapter
        self.max_retries = max_retries
        self.validator = validator or SchemaValidator()
        self.state: RetryState | None = None

    def run(self, fetch: FetchFn, messages: list[Message]) -> DecodedResult:
        """Call the model until the response validates or the budget is spent.

        Args:
            fetch: Transport call returning the response fragments for a
                conversation
            messages: Initial conversation

        Returns:
            Terminal ``ok`` or ``error`` result
        """
        state = self._start(messages)
        while True:
            decoder = SingleDecoder(self.adapter, self.validator)
            state.transport_calls += 1
            results = list(decode_stream(decoder, fetch(list(state.messages))))
            result = results[-1]
            if self._settle(state, result, decoder.text):
                return result

    async def arun(self, fetch: AsyncFetchFn, messages: list[Message]) -> DecodedResult:
        """Async counterpart of ``run``."""
        state = self._start(messages)
        while True:
            decoder = SingleDecoder(self.adapter, self.validator)
            state.transport_calls += 1
            results = [
                result
                async for result in adecode_stream(decoder, fetch(list(state.messages)))
            ]
            result = results[-1]
            if self._settle(state, result, decoder.text):
                return result

    def _start(self, messages: list[Message]) -> RetryState:
        self.state = RetryState(messages=[dict(message) for message in messages])
        return self.state

    def _settle(self, state: RetryState, result: DecodedResult, raw_text: str) -> bool:
        """Record an attempt's outcome; return True when the run is over."""
        if result.is_ok:
            logger.debug("Response validated after %d retries", state.attempt)
            return True

        errors = result.errors or FieldErrors.unparseable()
        state.last_errors = errors

        if state.attempt >= self.max_retries:
            if self.max_retries:
                logger.warning(
                    "Validation still failing after %d retries: %s",
                    state.attempt,
                    errors.render_lines(),
                )
            return True

        state.attempt += 1
        logger.warning(
            "Validation failed, retrying (%d/%d): %s",
            state.attempt,
            self.max_retries,
            errors.render_lines(),
        )
        state.messages.append({"role": "assistant", "content": raw_text})
        state.messages.append(build_correction_message(errors))
        return False
