"""Custom exceptions for the structured LLM client."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from structured_llm_client.schema.field_errors import FieldErrors


class StructuredLLMException(Exception):
    """Base exception for the structured LLM client.

    All custom exceptions in this package should inherit from this base class.
    """

    pass


class SchemaValidationException(StructuredLLMException):
    """Raised when a caller unwraps a failed decode result.

    Decode-time validation failures are returned as values. This exception
    only appears when a caller explicitly asks for one, for example through
    ``DecodedResult.unwrap()``.

    Attributes:
        field_errors: The structured per-field errors of the failed result
        response_text: The raw model output that failed to validate
    """

    def __init__(
        self,
        message: str,
        field_errors: "FieldErrors | None" = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.field_errors = field_errors
        self.response_text = response_text

    @property
    def validation_errors(self) -> list[str]:
        """Flat list of rendered error lines."""
        if self.field_errors is None:
            return []
        return self.field_errors.render_lines()


class MalformedJSONException(StructuredLLMException):
    """Raised when the complete model output is not valid JSON.

    Only the final parse of an assembled response raises this; incomplete
    input fed mid-stream never does.

    Attributes:
        text: The text that failed to parse
    """

    def __init__(self, message: str, text: str | None = None):
        super().__init__(message)
        self.text = text


class ProviderException(StructuredLLMException):
    """Raised when the model transport fails.

    This exception is raised when:
    - API authentication fails
    - Rate limits are exceeded
    - The connection drops while streaming
    - Invalid model names or configurations are rejected by the provider

    Transport failures are surfaced immediately and never retried by the
    decode loop.

    Attributes:
        provider: The provider that caused the error
        model: The model that was being used
        original_error: The original exception from the provider
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        model: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.original_error = original_error


class ConfigurationException(StructuredLLMException):
    """Raised when configuration errors occur.

    This exception is raised when:
    - Required configuration is missing
    - A request combines incompatible options (e.g. ``max_retries`` with a
      streaming submode)
    - Invalid configuration values are provided

    It is always raised before any model call is issued.

    Attributes:
        config_key: The configuration key that caused the error
        config_value: The invalid configuration value
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_value: str | None = None,
    ):
        super().__init__(message)
        self.config_key = config_key
        self.config_value = config_value
