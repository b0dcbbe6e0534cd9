"""Result channels: lazy, pull-based sequences of decoded results."""

from collections.abc import AsyncIterator, Callable, Iterator
from types import TracebackType

from structured_llm_client.decoding.results import DecodedResult


class ResultChannel:
    """Lazy, forward-only sequence of decoded results.

    Nothing is requested from the model until iteration starts; each pulled
    result drives the next fragment pull from the transport. Every call to
    ``iter()`` invokes ``factory`` again and therefore issues a fresh model
    call. ``close()`` stops the active iteration and closes the upstream
    stream.

    Example:
        ```python
        with agent.chat_completion_stream(request) as channel:
            for result in channel:
                if result.is_ok:
                    print(result.value)
        ```
    """

    def __init__(self, factory: Callable[[], Iterator[DecodedResult]]) -> None:
        self._factory = factory
        self._active: Iterator[DecodedResult] | None = None

    def __iter__(self) -> Iterator[DecodedResult]:
        self.close()
        self._active = self._factory()
        return self._active

    def __enter__(self) -> "ResultChannel":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the active iteration, terminating the upstream request."""
        active, self._active = self._active, None
        close = getattr(active, "close", None)
        if close is not None:
            close()

    def collect(self) -> list[DecodedResult]:
        """Consume one full iteration and return every result."""
        return list(self)

    def final(self) -> DecodedResult:
        """Consume one full iteration and return the last terminal result."""
        terminal: DecodedResult | None = None
        for result in self:
            if result.is_terminal:
                terminal = result
        if terminal is None:
            raise RuntimeError("Stream ended without a terminal result")
        return terminal


class AsyncResultChannel:
    """Async counterpart of ``ResultChannel``.

    Every ``aiter()`` issues a fresh model call. Starting a new iteration
    does not close an unfinished earlier one, since ``__aiter__`` cannot
    await; call ``aclose()`` or use ``async with`` to end it first.
    """

    def __init__(self, factory: Callable[[], AsyncIterator[DecodedResult]]) -> None:
        self._factory = factory
        self._active: AsyncIterator[DecodedResult] | None = None

    def __aiter__(self) -> AsyncIterator[DecodedResult]:
        self._active = self._factory()
        return self._active

    async def __aenter__(self) -> "AsyncResultChannel":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the active iteration, terminating the upstream request."""
        active, self._active = self._active, None
        aclose = getattr(active, "aclose", None)
        if aclose is not None:
            await aclose()

    async def acollect(self) -> list[DecodedResult]:
        """Consume one full iteration and return every result."""
        return [result async for result in self]

    async def afinal(self) -> DecodedResult:
        """Consume one full iteration and return the last terminal result."""
        terminal: DecodedResult | None = None
        async for result in self:
            if result.is_terminal:
                terminal = result
        if terminal is None:
            raise RuntimeError("Stream ended without a terminal result")
        return terminal
