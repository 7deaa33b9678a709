"""Retry policy, failure classification and the attempt orchestrator.

One logical call may span several attempts.  Each attempt is a fresh
request plus a full drain of its stream; a failed attempt is discarded
whole.  Once anything from an attempt has reached the caller the call is
pinned to that attempt and later failures surface unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, TypeVar

from async_anthropic.errors import (
    AnthropicError,
    HttpStatusError,
    RetriesExhausted,
    TransportError,
)

_logger = logging.getLogger(__name__)

T = TypeVar("T")

# 529 is the API's "overloaded" status
_RETRYABLE_STATUS = frozenset({429, 529})


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------

def compute_backoff(
    attempt: int,
    base_delay: float,
    multiplier: float,
    max_delay: float,
    jitter: float,
    seed: Any = None,
) -> float:
    """Delay in seconds before retrying after failed attempt number *attempt*.

    ``base_delay * multiplier ** (attempt - 1)``, stretched by a random
    factor in ``[1, 1 + jitter)`` and capped at *max_delay*.  The random
    draw comes from ``random.Random(seed)``, so a fixed seed gives a fixed
    result.
    """
    if attempt < 1:
        raise ValueError(f"attempt numbers start at 1, got {attempt}")
    delay = base_delay * (multiplier ** (attempt - 1))
    if jitter > 0:
        delay *= 1 + jitter * random.Random(seed).random()
    return max(0.0, min(max_delay, delay))


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff schedule for one call.

    Defaults: 3 attempts, 1s base delay doubling per attempt, up to 25%
    jitter, never more than 60s between attempts.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    jitter: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int, error: AnthropicError | None = None) -> float:
        """Server hint when the error carries one, otherwise the backoff."""
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            return max(0.0, float(retry_after))
        return compute_backoff(
            attempt,
            self.base_delay,
            self.multiplier,
            self.max_delay,
            self.jitter,
        )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_retryable(error: BaseException) -> bool:
    """Whether *error* is transient and a fresh attempt may succeed.

    Retryable:
      TransportError (connection failures, timeouts, idle watchdog)
      HttpStatusError with status 429, 529 or 5xx
    Everything else (other 4xx, decode and protocol errors, server-reported
    API errors, cancellation) is final.
    """
    if isinstance(error, TransportError):
        return True
    if isinstance(error, HttpStatusError):
        code = error.status_code
        return code in _RETRYABLE_STATUS or 500 <= code < 600
    return False


@dataclass
class RetryState:
    """Bookkeeping for one top-level call."""

    attempts: int = 0
    started_at: float = field(default_factory=time.monotonic)
    last_error: AnthropicError | None = None
    delivered: bool = False

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

Sleep = Callable[[float], Awaitable[Any]]


class RetryOrchestrator:
    """Drive attempts of one call until success or a final failure.

    Parameters
    ----------
    policy:
        Attempt budget and backoff schedule.
    sleep:
        Coroutine used to wait between attempts (``asyncio.sleep``).
    """

    def __init__(self, policy: RetryPolicy | None = None, sleep: Sleep | None = None) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def run(
        self,
        attempt: Callable[[], AsyncIterator[T]],
        state: RetryState,
    ) -> AsyncGenerator[T, None]:
        """Re-yield the items of successive attempts.

        *attempt* is called once per try and must return a new async
        iterator.  The caller sets ``state.delivered`` once it has handed
        an item on; from then on no retry happens.
        """
        while True:
            state.attempts += 1
            try:
                async with aclosing(attempt()) as items:
                    async for item in items:
                        yield item
                return
            except AnthropicError as exc:
                state.last_error = exc
                await self._before_retry(exc, state)

    async def call(self, fn: Callable[[], Awaitable[T]], state: RetryState | None = None) -> T:
        """Await ``fn()`` under the same policy (non-streaming requests)."""
        state = state or RetryState()
        while True:
            state.attempts += 1
            try:
                return await fn()
            except AnthropicError as exc:
                state.last_error = exc
                await self._before_retry(exc, state)

    async def _before_retry(self, exc: AnthropicError, state: RetryState) -> None:
        """Re-raise if the failure is final, otherwise wait out the backoff."""
        if not is_retryable(exc):
            raise exc
        if state.delivered:
            _logger.warning(
                "Stream failed after output was delivered; not retrying: %s", exc,
            )
            raise exc
        if state.attempts >= self.policy.max_attempts:
            raise RetriesExhausted(state.attempts, exc) from exc

        delay = self.policy.delay_for(state.attempts, exc)
        _logger.warning(
            "Request failed (attempt %d/%d, %.1fs elapsed): %s; retrying in %.2fs",
            state.attempts, self.policy.max_attempts, state.elapsed, exc, delay,
        )
        await self._sleep(delay)
