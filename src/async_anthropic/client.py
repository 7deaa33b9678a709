"""Async client for the Anthropic Messages API.

Uses one ``httpx.AsyncClient`` connection pool for every call made through
the client.  ``stream()`` returns a lazily started ``MessageStream``;
``create()`` and the model endpoints are plain awaitables.  All of them run
under the configured retry policy.
"""

from __future__ import annotations

import email.utils
import json
import logging
import time
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Callable, Mapping, TypeVar

import httpx

from async_anthropic.config import ClientConfig
from async_anthropic.errors import (
    DecodeError,
    HttpStatusError,
    ProtocolError,
    TransportError,
)
from async_anthropic.streaming.events import Event
from async_anthropic.streaming.handle import MessageStream
from async_anthropic.streaming.retry import RetryOrchestrator, RetryPolicy, Sleep
from async_anthropic.streaming.sse import EventFrameParser
from async_anthropic.types import ModelInfo, ModelList, MessagesRequest, MessagesResponse

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_MESSAGES_PATH = "/v1/messages"
_MODELS_PATH = "/v1/models"


def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header (delta-seconds or HTTP date)."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        _logger.debug("Ignoring unparseable Retry-After header: %r", value)
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def _status_error(status_code: int, body: str, headers: Mapping[str, str]) -> HttpStatusError:
    return HttpStatusError.from_body(
        status_code,
        body,
        retry_after=parse_retry_after(headers.get("retry-after")),
    )


class AsyncAnthropicClient:
    """Async client for the Messages API.

    Parameters
    ----------
    config:
        Connection settings; defaults to ``ClientConfig()``.
    http_client:
        Pre-built ``httpx.AsyncClient`` to send requests through.  It is
        not closed by ``close()``.
    sleep:
        Replacement for ``asyncio.sleep`` between retry attempts.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._policy = self.config.retry.to_policy()
        self._sleep = sleep

        self._headers = {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.config.version,
            "content-type": "application/json",
        }
        if self.config.beta:
            self._headers["anthropic-beta"] = self.config.beta

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                self.config.timeout, connect=self.config.connect_timeout,
            ),
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def stream(
        self,
        request: MessagesRequest,
        policy: RetryPolicy | None = None,
    ) -> MessageStream:
        """Start a streamed Messages call.

        Nothing is sent until the returned stream is first pulled.
        """
        payload = request.to_payload(stream=True)
        return MessageStream(
            lambda: self._open_event_stream(payload),
            policy or self._policy,
            sleep=self._sleep,
        )

    async def _open_event_stream(
        self, payload: dict[str, Any],
    ) -> AsyncGenerator[Event, None]:
        """Issue one streaming request and yield its parsed events."""
        _logger.debug("POST %s (model=%s, stream)", _MESSAGES_PATH, payload.get("model"))
        try:
            async with self._client.stream(
                "POST", self._url(_MESSAGES_PATH), json=payload, headers=self._headers,
            ) as resp:
                if not resp.is_success:
                    body = (await resp.aread()).decode(errors="replace")
                    raise _status_error(resp.status_code, body, resp.headers)

                content_type = resp.headers.get("content-type", "")
                if "text/event-stream" not in content_type:
                    body = (await resp.aread()).decode(errors="replace")
                    raise ProtocolError(
                        f"expected an event stream, got {content_type!r}: {body[:200]}"
                    )

                parser = EventFrameParser(
                    resp.aiter_lines(), idle_timeout=self.config.idle_timeout,
                )
                async with aclosing(parser) as events:
                    async for event in events:
                        yield event
        except httpx.TimeoutException as exc:
            raise TransportError(f"request timed out: {exc!r}") from exc
        except httpx.TransportError as exc:
            raise TransportError(f"connection failed: {exc!r}") from exc

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def create(self, request: MessagesRequest) -> MessagesResponse:
        """Send a non-streaming Messages request."""
        payload = request.to_payload(stream=False)

        async def _once() -> MessagesResponse:
            start = time.monotonic()
            data = await self._request_json("POST", _MESSAGES_PATH, payload)
            response = _decode(MessagesResponse.from_dict, data)
            _logger.debug(
                "Message %s received in %.0fms",
                response.id, (time.monotonic() - start) * 1000,
            )
            return response

        return await self._retrying().call(_once)

    async def list_models(
        self,
        limit: int | None = None,
        after_id: str | None = None,
        before_id: str | None = None,
    ) -> ModelList:
        params = {
            k: v
            for k, v in (("limit", limit), ("after_id", after_id), ("before_id", before_id))
            if v is not None
        }

        async def _once() -> ModelList:
            data = await self._request_json("GET", _MODELS_PATH, params=params)
            return _decode(ModelList.from_dict, data)

        return await self._retrying().call(_once)

    async def get_model(self, model_id: str) -> ModelInfo:
        async def _once() -> ModelInfo:
            data = await self._request_json("GET", f"{_MODELS_PATH}/{model_id}")
            return _decode(ModelInfo.from_dict, data)

        return await self._retrying().call(_once)

    async def _request_json(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            resp = await self._client.request(
                method,
                self._url(path),
                json=payload,
                params=params,
                headers=self._headers,
            )
        except httpx.TimeoutException as exc:
            raise TransportError(f"request timed out: {exc!r}") from exc
        except httpx.TransportError as exc:
            raise TransportError(f"connection failed: {exc!r}") from exc

        if not resp.is_success:
            raise _status_error(resp.status_code, resp.text, resp.headers)
        try:
            return resp.json()
        except ValueError as exc:
            raise DecodeError("response body is not JSON", resp.text) from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _retrying(self) -> RetryOrchestrator:
        return RetryOrchestrator(self._policy, sleep=self._sleep)

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def close(self) -> None:
        """Close the connection pool if this client created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> AsyncAnthropicClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def _decode(build: Callable[[Any], T], data: Any) -> T:
    if not isinstance(data, dict):
        raise DecodeError("response body is not an object", json.dumps(data))
    try:
        return build(data)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"unexpected response shape ({exc})", json.dumps(data)) from exc
