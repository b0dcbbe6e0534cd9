"""Structured per-field validation errors."""

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from pydantic import ValidationError

FieldPath = tuple[str | int, ...]

UNPARSEABLE_MESSAGE = "unparseable response"


def format_path(path: Sequence[str | int]) -> str:
    """Render a field path as ``series[0].name``.

    The empty path (the value itself) renders as ``(root)``.
    """
    if not path:
        return "(root)"
    rendered = ""
    for segment in path:
        if isinstance(segment, int):
            rendered += f"[{segment}]"
        elif rendered:
            rendered += f".{segment}"
        else:
            rendered = str(segment)
    return rendered


class FieldErrors(Mapping[FieldPath, list[str]]):
    """Ordered mapping of field path to error messages.

    Paths are tuples of field names and list indices. Insertion order is the
    order in which validation reported the errors, and is preserved when
    rendering.

    Example:
        ```python
        errors = FieldErrors()
        errors.add(("series",), "should have at least 10 item(s)")
        print(errors.render())
        # series — should have at least 10 item(s)
        ```
    """

    def __init__(
        self,
        errors: Mapping[Sequence[str | int], Iterable[str]] | None = None,
    ) -> None:
        self._errors: dict[FieldPath, list[str]] = {}
        if errors:
            for path, messages in errors.items():
                for message in messages:
                    self.add(path, message)

    def __getitem__(self, path: FieldPath) -> list[str]:
        return self._errors[tuple(path)]

    def __iter__(self) -> Iterator[FieldPath]:
        return iter(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FieldErrors):
            return self._errors == other._errors
        if isinstance(other, Mapping):
            return self._errors == {tuple(k): list(v) for k, v in other.items()}
        return NotImplemented

    def __repr__(self) -> str:
        return f"FieldErrors({self.to_dict()!r})"

    def __str__(self) -> str:
        return self.render()

    def add(self, path: Sequence[str | int], message: str) -> None:
        """Append a message for a field path."""
        self._errors.setdefault(tuple(path), []).append(message)

    def extend(
        self, other: "FieldErrors", prefix: Sequence[str | int] = ()
    ) -> None:
        """Append all errors of ``other``, prefixing each path."""
        for path, messages in other.items():
            for message in messages:
                self.add((*prefix, *path), message)

    @property
    def messages(self) -> list[str]:
        """All messages in validation order, without paths."""
        return [message for messages in self._errors.values() for message in messages]

    def render_lines(self) -> list[str]:
        """Render one ``path — message`` line per message."""
        return [
            f"{format_path(path)} — {message}"
            for path, messages in self._errors.items()
            for message in messages
        ]

    def render(self) -> str:
        """Render all errors as a single human-readable string."""
        return "\n".join(self.render_lines())

    def to_dict(self) -> dict[str, list[str]]:
        """Return a JSON-friendly mapping keyed by rendered path."""
        rendered: dict[str, list[str]] = {}
        for path, messages in self._errors.items():
            rendered.setdefault(format_path(path), []).extend(messages)
        return rendered

    @classmethod
    def from_validation_error(
        cls, error: ValidationError, prefix: Sequence[str | int] = ()
    ) -> "FieldErrors":
        """Convert a pydantic ``ValidationError`` into per-field errors.

        Args:
            error: Pydantic validation error
            prefix: Path segments to prepend to every error location

        Returns:
            FieldErrors keyed by each error's location
        """
        errors = cls()
        for detail in error.errors():
            location = tuple(detail.get("loc", ()))
            errors.add((*prefix, *location), str(detail.get("msg", "invalid value")))
        return errors

    @classmethod
    def unparseable(cls, detail: str | None = None) -> "FieldErrors":
        """Synthetic root error for output that never became valid JSON."""
        message = UNPARSEABLE_MESSAGE
        if detail:
            message = f"{UNPARSEABLE_MESSAGE}: {detail}"
        return cls({(): [message]})

    @classmethod
    def coerce(
        cls, value: Any, default_path: Sequence[str | int] = ()
    ) -> "FieldErrors":
        """Build FieldErrors from a validation rule's return value.

        Accepts a message, a list of messages, a path-to-messages mapping or
        an existing FieldErrors. Plain messages are attached to
        ``default_path``.
        """
        if isinstance(value, FieldErrors):
            return value
        errors = cls()
        if isinstance(value, str):
            errors.add(default_path, value)
        elif isinstance(value, Mapping):
            for path, messages in value.items():
                key = (path,) if isinstance(path, str | int) else tuple(path)
                if isinstance(messages, str):
                    messages = [messages]
                for message in messages:
                    errors.add((*default_path, *key), str(message))
        else:
            for message in value:
                errors.add(default_path, str(message))
        return errors
