"""Server-sent event framing.

Turns an async sequence of text lines (``httpx.Response.aiter_lines()``)
into typed ``Event`` values.  Framing rules:

  event: <label>     sets the frame's event label
  data: <text>       appends a data line (multiple are joined with ``\\n``)
  : <comment>        ignored, as are ``id:`` and ``retry:``
  <blank line>       terminates the frame

A frame is only emitted once its terminating blank line has arrived.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator

from async_anthropic.errors import DecodeError, IdleTimeoutError, UnexpectedEndOfStream
from async_anthropic.streaming.events import TERMINAL_EVENTS, Event, parse_event

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """One complete SSE frame."""

    event: str | None
    data: str
    raw: str


class EventFrameParser:
    """Async iterator of ``Event`` values decoded from SSE lines.

    Parameters
    ----------
    lines:
        Text lines without their line terminators, in arrival order.
    idle_timeout:
        Seconds allowed between two complete frames (``ping`` included).
        ``None`` disables the watchdog.

    Raises ``UnexpectedEndOfStream`` if the source runs dry before a
    ``message_stop`` or ``error`` event was seen, and ``IdleTimeoutError``
    when the watchdog fires.
    """

    def __init__(
        self,
        lines: AsyncIterable[str],
        idle_timeout: float | None = None,
    ) -> None:
        self._lines: AsyncIterator[str] = lines.__aiter__()
        self._idle_timeout = idle_timeout
        self._terminal_seen = False
        self._exhausted = False
        self.frames_read = 0

    def __aiter__(self) -> EventFrameParser:
        return self

    async def __anext__(self) -> Event:
        if self._exhausted:
            raise StopAsyncIteration

        frame = await self._next_frame()
        if frame is None:
            self._exhausted = True
            if not self._terminal_seen:
                raise UnexpectedEndOfStream(
                    f"stream ended after {self.frames_read} frames "
                    "without message_stop"
                )
            raise StopAsyncIteration

        self.frames_read += 1
        try:
            event = parse_event(frame.event, frame.data)
        except DecodeError as exc:
            raise DecodeError(exc.detail, frame.raw) from exc
        _logger.debug("Stream event %s", type(event).__name__)

        if isinstance(event, TERMINAL_EVENTS):
            self._terminal_seen = True
        return event

    @property
    def terminal_seen(self) -> bool:
        return self._terminal_seen

    async def aclose(self) -> None:
        """Stop reading and close the line source if it supports it."""
        self._exhausted = True
        closer = getattr(self._lines, "aclose", None)
        if closer is not None:
            await closer()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _next_frame(self) -> Frame | None:
        """Collect lines up to the next blank line.  ``None`` at end of input."""
        loop = asyncio.get_running_loop()
        deadline = (
            loop.time() + self._idle_timeout
            if self._idle_timeout is not None
            else None
        )

        label: str | None = None
        data_lines: list[str] = []
        raw_lines: list[str] = []

        while True:
            line = await self._readline(deadline)
            if line is None:
                if raw_lines:
                    _logger.debug(
                        "Discarding unterminated trailing frame: %r",
                        "\n".join(raw_lines),
                    )
                return None

            if not line:
                if data_lines:
                    return Frame(
                        event=label,
                        data="\n".join(data_lines),
                        raw="\n".join(raw_lines),
                    )
                # Frame without data: nothing to dispatch
                label = None
                raw_lines = []
                continue

            raw_lines.append(line)
            if line.startswith(":"):
                continue

            name, sep, value = line.partition(":")
            if sep and value.startswith(" "):
                value = value[1:]
            if name == "event":
                label = value
            elif name == "data":
                data_lines.append(value)

    async def _readline(self, deadline: float | None) -> str | None:
        try:
            if deadline is None:
                line = await self._lines.__anext__()
            else:
                remaining = deadline - asyncio.get_running_loop().time()
                if remaining <= 0:
                    raise IdleTimeoutError(self._idle_timeout or 0.0)
                line = await asyncio.wait_for(self._lines.__anext__(), remaining)
        except StopAsyncIteration:
            return None
        except asyncio.TimeoutError:
            raise IdleTimeoutError(self._idle_timeout or 0.0) from None
        return line.rstrip("\r\n")
