"""Decoded result values and stream modes."""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from structured_llm_client.exceptions import SchemaValidationException
from structured_llm_client.schema.field_errors import FieldErrors
from structured_llm_client.schema.validators import SchemaValidationResult

ResultStatus = Literal["partial", "ok", "error"]


class StreamMode(str, Enum):
    """Emission policy for streamed responses."""

    OFF = "off"
    RECORD = "record"
    PARTIAL = "partial"


@dataclass(frozen=True)
class DecodedResult:
    """One emission of a decode: a partial value, a typed value or errors.

    Unpacks as a ``(status, payload)`` pair, where the payload is the value
    for ``partial``/``ok`` and the FieldErrors for ``error``:

        status, payload = agent.chat_completion(request)
    """

    status: ResultStatus
    value: Any = None
    errors: FieldErrors | None = None
    raw_text: str | None = None

    @classmethod
    def partial(cls, value: Any) -> "DecodedResult":
        return cls(status="partial", value=value)

    @classmethod
    def ok(cls, value: Any, raw_text: str | None = None) -> "DecodedResult":
        return cls(status="ok", value=value, raw_text=raw_text)

    @classmethod
    def error(cls, errors: FieldErrors, raw_text: str | None = None) -> "DecodedResult":
        return cls(status="error", errors=errors, raw_text=raw_text)

    @classmethod
    def from_validation(
        cls, result: SchemaValidationResult, raw_text: str | None = None
    ) -> "DecodedResult":
        if result.success:
            return cls.ok(result.value, raw_text)
        return cls.error(result.errors, raw_text)

    @property
    def is_partial(self) -> bool:
        return self.status == "partial"

    @property
    def is_ok(self) -> bool:
        return self.status == "ok"

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    @property
    def is_terminal(self) -> bool:
        return self.status != "partial"

    @property
    def payload(self) -> Any:
        return self.errors if self.status == "error" else self.value

    def __iter__(self) -> Iterator[Any]:
        yield self.status
        yield self.payload

    def unwrap(self) -> Any:
        """Return the value, raising ``SchemaValidationException`` on errors."""
        if self.status == "error":
            errors = self.errors or FieldErrors()
            raise SchemaValidationException(
                f"Schema validation failed:\n{errors.render()}",
                field_errors=errors,
                response_text=self.raw_text,
            )
        return self.value
