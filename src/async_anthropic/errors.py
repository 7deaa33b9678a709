"""Error taxonomy for the async Anthropic client.

Every failure surfaced by the library derives from ``AnthropicError``:

  TransportError         - network-level failure before or during the response
  IdleTimeoutError       - no frame arrived within the idle window
  HttpStatusError        - non-2xx response (status, body, retry hint)
  DecodeError            - a frame or body that is not valid for its type
  ProtocolError          - well-formed events in an illegal order
  UnexpectedEndOfStream  - the stream ended before a terminal event
  ApiError               - an error reported by the server inside the stream
  RetriesExhausted       - the retry budget ran out
  Cancelled              - the caller abandoned the call
"""

from __future__ import annotations

import json
from typing import Any


class AnthropicError(RuntimeError):
    """Base class for all client errors."""


class TransportError(AnthropicError):
    """Connection reset, refused, timed out, or otherwise broken."""


class IdleTimeoutError(TransportError):
    """The stream went quiet for longer than the configured idle window."""

    def __init__(self, idle_timeout: float) -> None:
        self.idle_timeout = idle_timeout
        super().__init__(f"no stream frame received for {idle_timeout:g}s")


class HttpStatusError(AnthropicError):
    """The server answered with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        body: str,
        *,
        error_type: str | None = None,
        message: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.error_type = error_type
        self.message = message
        self.retry_after = retry_after
        detail = message or body or "(empty body)"
        if error_type:
            detail = f"{error_type}: {detail}"
        super().__init__(f"HTTP {status_code}: {detail}")

    @classmethod
    def from_body(
        cls,
        status_code: int,
        body: str,
        retry_after: float | None = None,
    ) -> HttpStatusError:
        """Build from a raw response body, unwrapping the API error envelope."""
        error_type, message = _parse_error_envelope(body)
        return cls(
            status_code,
            body,
            error_type=error_type,
            message=message,
            retry_after=retry_after,
        )


class DecodeError(AnthropicError):
    """A payload could not be decoded into the expected structure."""

    def __init__(self, detail: str, raw: str) -> None:
        self.detail = detail
        self.raw = raw
        super().__init__(f"{detail}: {raw!r}")


class ProtocolError(AnthropicError):
    """The server stream violated the event ordering contract."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class UnexpectedEndOfStream(ProtocolError):
    """The stream ended without ``message_stop`` or an error event."""


class ApiError(AnthropicError):
    """A logical error reported by the server (``event: error``)."""

    def __init__(self, error_type: str, message: str | None = None) -> None:
        self.error_type = error_type
        self.message = message
        super().__init__(f"{error_type}: {message or '(no message)'}")


class RetriesExhausted(AnthropicError):
    """All attempts failed with retryable errors."""

    def __init__(self, attempts: int, last_error: AnthropicError) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"gave up after {attempts} attempts: {last_error}")


class Cancelled(AnthropicError):
    """The call was cancelled or timed out on the caller side."""

    def __init__(self, reason: str = "stream cancelled") -> None:
        self.reason = reason
        super().__init__(reason)


def _parse_error_envelope(body: str) -> tuple[str | None, str | None]:
    """Extract ``(type, message)`` from ``{"type": "error", "error": {...}}``."""
    try:
        data: Any = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        return None, None
    if not isinstance(data, dict):
        return None, None
    error = data.get("error")
    if not isinstance(error, dict):
        return None, None
    return error.get("type"), error.get("message")
