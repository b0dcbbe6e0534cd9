"""Unit tests for request types."""

import pytest
from conftest import Person
from pydantic import ValidationError

from structured_llm_client.decoding import StreamMode
from structured_llm_client.request import ChatCompletionRequest, ImagePart, Message


@pytest.mark.unit
class TestChatCompletionRequest:
    """Test cases for ChatCompletionRequest."""

    def test_defaults(self) -> None:
        """Test default field values."""
        request = ChatCompletionRequest(
            schema=Person, messages=[{"role": "user", "content": "hi"}]
        )

        assert request.model is None
        assert request.schema_input is Person
        assert request.stream is False
        assert request.stream_mode is None
        assert request.max_retries == 0
        assert request.validators == []
        assert request.provider_config == {}

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ChatCompletionRequest(schema=Person, messages=[], max_retries=-1)

    def test_stream_mode_from_string(self) -> None:
        request = ChatCompletionRequest(
            schema=list[Person], messages=[], stream=True, stream_mode="record"
        )
        assert request.stream_mode is StreamMode.RECORD

    def test_invalid_role_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Message(role="robot", content="hi")

    def test_multipart_message_dicts(self) -> None:
        """Test text and image parts in the wire format."""
        request = ChatCompletionRequest(
            schema=Person,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "Who is this?"},
                        {"type": "image_url", "image_url": {"url": "https://example.com/a.png"}},
                    ],
                }
            ],
        )

        assert isinstance(request.messages[0].content[1], ImagePart)
        assert request.message_dicts() == [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Who is this?"},
                    {"type": "image_url", "image_url": {"url": "https://example.com/a.png"}},
                ],
            }
        ]
