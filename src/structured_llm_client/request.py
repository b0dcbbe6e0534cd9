"""Request types for structured chat completions."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from structured_llm_client.decoding.results import StreamMode


class TextPart(BaseModel):
    """Text content part of a multi-part message."""

    type: Literal["text"] = "text"
    text: str


class ImageURL(BaseModel):
    """Image reference of an image content part."""

    url: str
    detail: Literal["auto", "low", "high"] | None = None


class ImagePart(BaseModel):
    """Image content part of a multi-part message."""

    type: Literal["image_url"] = "image_url"
    image_url: ImageURL


ContentPart = TextPart | ImagePart


class Message(BaseModel):
    """A chat message with plain text or multi-part content."""

    role: Literal["system", "user", "assistant"]
    content: str | list[ContentPart]

    def to_dict(self) -> dict[str, Any]:
        """Return the message in the LiteLLM/OpenAI wire format."""
        return self.model_dump(exclude_none=True)


class ChatCompletionRequest(BaseModel):
    """A structured chat completion request.

    Attributes:
        model: Model name; defaults to the agent's model when None
        schema: Target schema (adapter, pydantic model class, ``list[Model]``,
            JSON schema dict or registered schema name)
        messages: Conversation to send
        stream: Return a result channel instead of a single result
        stream_mode: ``off``, ``record`` or ``partial``; inferred when
            streaming and not given
        max_retries: Corrective re-prompts allowed after a failed attempt
        validators: Extra validation rules run after construction
        provider_config: Keyword arguments forwarded to LiteLLM
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True, populate_by_name=True, protected_namespaces=()
    )

    model: str | None = None
    schema_: Any = Field(alias="schema")
    messages: list[Message]
    stream: bool = False
    stream_mode: StreamMode | None = None
    max_retries: int = Field(default=0, ge=0)
    validators: list[Any] = Field(default_factory=list)
    provider_config: dict[str, Any] = Field(default_factory=dict)

    @property
    def schema_input(self) -> Any:
        """The schema as given by the caller."""
        return self.schema_

    def message_dicts(self) -> list[dict[str, Any]]:
        """Return the messages in the LiteLLM/OpenAI wire format."""
        return [message.to_dict() for message in self.messages]
