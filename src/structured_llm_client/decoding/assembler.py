"""Incremental JSON assembly from a stream of text fragments.

The assembler scans each fragment once, keeping a small structural state
(open containers, string/escape state, the start of an unfinished bare token
and the last position where the prefix ends on a complete value). After each
fragment it repairs the prefix into valid JSON by closing the open string or
token and the open containers, and parses the result. The parsed tree is the
current best-known value.

It also tracks the *records array*, the root array or the array under the
root object's ``"items"`` key, and reports the exact text of each of its
elements once the element's own brackets have closed. Record streaming is built on this.
"""

import json
import logging
import re
from typing import Any

from structured_llm_client.exceptions import MalformedJSONException

logger = logging.getLogger(__name__)

PartialValue = Any

_WHITESPACE = " \t\r\n"
_CLOSERS = {"{": "}", "[": "]"}
_LITERALS = ("true", "false", "null")
_NUMBER_PREFIX = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_INCOMPLETE_UNICODE_ESCAPE = re.compile(r"\\u[0-9a-fA-F]{0,3}$")

# Expected next token inside an open container
_KEY = "key"
_COLON = "colon"
_VALUE = "value"
_COMMA = "comma"

RECORDS_KEY = "items"


def _is_bare_char(char: str) -> bool:
    return char.isalnum() or char in "+-."


def _complete_bare_token(token: str) -> str:
    """Return the JSON text an unfinished number or literal currently stands for."""
    if token in _LITERALS:
        return token
    if any(literal.startswith(token) for literal in _LITERALS):
        return "null"
    match = _NUMBER_PREFIX.match(token)
    if match:
        return match.group()
    return "null"


class _Frame:
    __slots__ = ("kind", "expect", "key")

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.key: str | None = None
        self.expect = _KEY if kind == "{" else _VALUE


class IncrementalJSONAssembler:
    """Builds a monotonically more complete JSON value from text fragments.

    ``feed`` never raises on incomplete input; ``finalize`` performs the one
    complete parse and raises ``MalformedJSONException`` on invalid text.

    Leading text before the first ``{`` or ``[`` (prose, code fences) is
    skipped, and text after the root value closes is ignored.

    Example:
        ```python
        assembler = IncrementalJSONAssembler()
        assembler.feed('{"name": "Ad')   # {"name": "Ad"}
        assembler.feed('a", "age": 3')   # {"name": "Ada", "age": 3}
        assembler.feed('6}')             # {"name": "Ada", "age": 36}
        assembler.finalize()             # {"name": "Ada", "age": 36}
        ```
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._pos = 0
        self._stack: list[_Frame] = []
        self._root_start: int | None = None
        self._root_end: int | None = None
        self._safe_end = 0

        self._in_string = False
        self._string_is_key = False
        self._key_start: int | None = None
        self._escape = False
        self._token_start: int | None = None

        self._records_depth: int | None = None
        self._records_closed = False
        self._element_start: int | None = None
        self._closed_elements: list[str] = []

        self._value: PartialValue = None

    @property
    def text(self) -> str:
        """All text fed so far."""
        return self._buffer

    @property
    def value(self) -> PartialValue:
        """The best-known value after the last fragment."""
        return self._value

    @property
    def started(self) -> bool:
        """Whether the root value has begun."""
        return self._root_start is not None

    @property
    def is_complete(self) -> bool:
        """Whether the root value has closed."""
        return self._root_end is not None

    @property
    def records_seen(self) -> bool:
        """Whether a records array has been opened."""
        return self._records_depth is not None

    def feed(self, fragment: str | None) -> PartialValue:
        """Append a fragment and return the best-known value.

        Args:
            fragment: Next chunk of model output; ``None`` or empty is a no-op

        Returns:
            The reconstructed value so far, ``None`` before the root begins
        """
        if fragment:
            self._buffer += fragment
            self._scan()
            self._value = self._parse_prefix()
        return self._value

    def take_closed_elements(self) -> list[str]:
        """Return the text of records-array elements closed since the last call."""
        closed, self._closed_elements = self._closed_elements, []
        return closed

    def pending_element(self) -> str | None:
        """Text of a records-array element that has started but not closed."""
        if self._element_start is None or self._records_closed:
            return None
        return self._buffer[self._element_start :].strip()

    def finalize(self) -> Any:
        """Parse the complete output.

        Returns:
            The parsed JSON value

        Raises:
            MalformedJSONException: If the output is empty, incomplete or
                not valid JSON
        """
        if self._root_start is None:
            stripped = self._buffer.strip()
            if not stripped:
                raise MalformedJSONException("empty response", self._buffer)
            # Scalar root values carry no brackets to anchor on
            return self._loads(stripped)

        if self._root_end is None:
            raise MalformedJSONException(
                "response ended before the JSON value was complete", self._buffer
            )
        return self._loads(self._buffer[self._root_start : self._root_end])

    def _loads(self, text: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedJSONException(str(e), text) from e

    def _scan(self) -> None:
        buffer = self._buffer
        length = len(buffer)
        while self._pos < length and self._root_end is None:
            index = self._pos
            self._pos += 1
            self._scan_char(buffer[index], index)

    def _scan_char(self, char: str, index: int) -> None:
        if self._root_start is None:
            if char in _CLOSERS:
                self._root_start = index
                self._open(char, index)
            return

        if self._in_string:
            if self._escape:
                self._escape = False
            elif char == "\\":
                self._escape = True
            elif char == '"':
                self._in_string = False
                if self._string_is_key:
                    frame = self._stack[-1]
                    frame.key = self._buffer[self._key_start + 1 : index]
                    frame.expect = _COLON
                else:
                    self._complete_value(index + 1)
            return

        if self._token_start is not None:
            if _is_bare_char(char):
                return
            self._token_start = None
            self._complete_value(index)

        if char in _WHITESPACE:
            return

        frame = self._stack[-1]
        if char == '"':
            self._string_is_key = frame.kind == "{" and frame.expect == _KEY
            if self._string_is_key:
                self._key_start = index
            else:
                self._begin_value(index)
            self._in_string = True
        elif char == ":":
            frame.expect = _VALUE
        elif char == ",":
            frame.expect = _KEY if frame.kind == "{" else _VALUE
        elif char in _CLOSERS:
            self._begin_value(index)
            self._open(char, index)
        elif char in "}]":
            closed = self._stack.pop()
            if len(self._stack) + 1 == self._records_depth and closed.kind == "[":
                self._records_closed = True
            if not self._stack:
                self._root_end = index + 1
                self._safe_end = index + 1
                return
            self._complete_value(index + 1)
        elif _is_bare_char(char):
            self._begin_value(index)
            self._token_start = index

    def _open(self, char: str, index: int) -> None:
        opens_records = char == "[" and self._at_records_position()
        self._stack.append(_Frame(char))
        self._safe_end = index + 1
        if opens_records:
            self._records_depth = len(self._stack)

    def _at_records_position(self) -> bool:
        if self._records_depth is not None:
            return False
        if not self._stack:
            return True
        root = self._stack[0]
        return len(self._stack) == 1 and root.kind == "{" and root.key == RECORDS_KEY

    def _at_records_level(self) -> bool:
        return (
            not self._records_closed
            and self._records_depth is not None
            and len(self._stack) == self._records_depth
        )

    def _begin_value(self, index: int) -> None:
        if self._at_records_level() and self._element_start is None:
            self._element_start = index

    def _complete_value(self, end: int) -> None:
        self._safe_end = end
        self._stack[-1].expect = _COMMA
        if self._at_records_level() and self._element_start is not None:
            self._closed_elements.append(self._buffer[self._element_start : end])
            logger.debug("Record at offset %d closed", self._element_start)
            self._element_start = None

    def _repaired_prefix(self) -> str | None:
        if self._root_start is None:
            return None
        if self._root_end is not None:
            return self._buffer[self._root_start : self._root_end]

        if self._in_string and not self._string_is_key:
            body = self._buffer[self._root_start :]
            if self._escape:
                body = body[:-1]
            body = _INCOMPLETE_UNICODE_ESCAPE.sub("", body) + '"'
        elif self._token_start is not None:
            token = self._buffer[self._token_start :]
            body = self._buffer[self._root_start : self._token_start]
            body += _complete_bare_token(token)
        else:
            body = self._buffer[self._root_start : self._safe_end]

        return body + "".join(_CLOSERS[frame.kind] for frame in reversed(self._stack))

    def _parse_prefix(self) -> PartialValue:
        repaired = self._repaired_prefix()
        if repaired is None:
            return None
        try:
            return json.loads(repaired)
        except json.JSONDecodeError:
            # Malformed model text: keep the last good value until finalize
            logger.debug("Prefix not repairable yet, keeping previous value")
            return self._value
