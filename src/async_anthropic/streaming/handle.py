"""Caller-facing stream handle.

``MessageStream`` supports two consumption modes over the same pipeline:

* incremental: ``async for update in stream`` yields ``StreamUpdate``
  values as they arrive (forward-only, not restartable);
* buffered: ``await stream.final_message()`` drains what is left and
  returns the completed ``MessagesResponse``.

Nothing is requested until the first pull.  Use it as an async context
manager (or call ``aclose()``) so an abandoned stream releases its
connection promptly.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncGenerator, AsyncIterator, Callable

from async_anthropic.errors import AnthropicError, Cancelled, TransportError
from async_anthropic.streaming.accumulator import MessageAccumulator, StreamUpdate, TextUpdate
from async_anthropic.streaming.events import Event
from async_anthropic.streaming.retry import RetryOrchestrator, RetryPolicy, RetryState, Sleep
from async_anthropic.types import MessagesResponse

_logger = logging.getLogger(__name__)

EventSource = Callable[[], AsyncIterator[Event]]


class MessageStream:
    """A single streamed Messages call.

    Parameters
    ----------
    open_events:
        Zero-argument factory that issues the request and returns an async
        iterator of parsed events.  Called once per attempt.
    policy:
        Retry policy for the call.
    sleep:
        Optional replacement for ``asyncio.sleep`` between attempts.
    """

    def __init__(
        self,
        open_events: EventSource,
        policy: RetryPolicy | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._open_events = open_events
        self._orchestrator = RetryOrchestrator(policy, sleep=sleep)
        self._state = RetryState()
        self._accumulator: MessageAccumulator | None = None
        self._source: AsyncGenerator[StreamUpdate, None] | None = None
        self._message: MessagesResponse | None = None
        self._error: AnthropicError | None = None
        self._done = False
        # Task currently awaiting the source, and an event set when it returns
        self._puller: asyncio.Task | None = None
        self._pull_finished = asyncio.Event()
        self._abort_requested = False

    # ------------------------------------------------------------------
    # Incremental consumption
    # ------------------------------------------------------------------

    def __aiter__(self) -> MessageStream:
        return self

    async def __anext__(self) -> StreamUpdate:
        update = await self._next_update()
        if update is None:
            raise StopAsyncIteration
        self._state.delivered = True
        return update

    async def text_stream(self) -> AsyncGenerator[str, None]:
        """Yield only the text fragments, in order."""
        async for update in self:
            if isinstance(update, TextUpdate):
                yield update.text

    # ------------------------------------------------------------------
    # Buffered consumption
    # ------------------------------------------------------------------

    async def final_message(self, timeout: float | None = None) -> MessagesResponse:
        """Drain the stream and return the completed message.

        With *timeout*, a call that has not completed in time is aborted
        and ``Cancelled`` is raised.
        """
        if timeout is None:
            return await self._drain()
        try:
            return await asyncio.wait_for(self._drain(), timeout)
        except asyncio.TimeoutError:
            await self.aclose()
            raise Cancelled(f"no complete message within {timeout:g}s") from None

    async def _drain(self) -> MessagesResponse:
        while await self._next_update() is not None:
            pass
        if self._error is not None:
            raise self._error
        if self._message is None:
            raise Cancelled()
        return self._message

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def attempts(self) -> int:
        return self._state.attempts

    @property
    def retry_state(self) -> RetryState:
        return self._state

    def current_snapshot(self) -> MessagesResponse | None:
        """Read-only copy of the in-progress message of the current attempt."""
        if self._message is not None:
            return self._message
        if self._accumulator is None:
            return None
        return self._accumulator.snapshot()

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Abort the call: close the connection and drop partial state.

        If another task is waiting on the stream it is interrupted and
        receives ``Cancelled``; this returns once its cleanup is done.  A
        message that already completed is kept for ``final_message()``.
        """
        if self._done:
            return
        puller = self._puller
        if puller is not None and puller is not asyncio.current_task():
            self._abort_requested = True
            finished = self._pull_finished
            puller.cancel()
            await finished.wait()
            if self._done:
                return

        self._done = True
        if self._accumulator is not None:
            if self._accumulator.is_complete:
                self._message = self._accumulator.result()
            else:
                self._accumulator.cancel()
        if self._source is not None:
            await self._source.aclose()
        self._accumulator = None
        if self._message is None:
            self._error = Cancelled()
            _logger.debug("Stream cancelled after %d attempt(s)", self._state.attempts)

    async def __aenter__(self) -> MessageStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _next_update(self) -> StreamUpdate | None:
        if self._done:
            return None
        if self._source is None:
            self._source = self._orchestrator.run(self._attempt, self._state)
        self._puller = asyncio.current_task()
        self._pull_finished = asyncio.Event()
        try:
            return await self._source.__anext__()
        except StopAsyncIteration:
            self._finish()
            return None
        except asyncio.CancelledError:
            await self.aclose()
            if self._abort_requested:
                # Interrupted by aclose() from another task, not by our own caller
                self._puller.uncancel()
                raise Cancelled() from None
            raise
        except AnthropicError as exc:
            self._done = True
            self._error = exc
            self._accumulator = None
            raise
        finally:
            self._puller = None
            self._pull_finished.set()

    def _finish(self) -> None:
        assert self._accumulator is not None
        self._message = self._accumulator.result()
        self._accumulator = None
        self._done = True

    async def _attempt(self) -> AsyncGenerator[StreamUpdate, None]:
        accumulator = MessageAccumulator()
        self._accumulator = accumulator
        try:
            async with aclosing(self._open_events()) as events:
                async for event in events:
                    update = accumulator.apply(event)
                    if update is not None:
                        yield update
        except TransportError as exc:
            if not accumulator.is_complete:
                raise
            _logger.debug("Ignoring transport error after message_stop: %s", exc)
        # Catches sources that end early without raising themselves
        accumulator.result()
