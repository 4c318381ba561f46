from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import httpx
from loguru import logger

from citescrape.exceptions import Cancelled, NetworkExhausted

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500})


class CancellationToken:
    """Cooperative cancellation signal shared by the jobs of one run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("Operation cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> None:
        await abortable_sleep(seconds, self)


async def abortable_sleep(seconds: float, cancel: CancellationToken | None = None) -> None:
    """Sleep for ``seconds``, waking early with ``Cancelled`` if the token fires."""
    if cancel is None:
        await asyncio.sleep(max(seconds, 0.0))
        return

    cancel.raise_if_cancelled()
    try:
        await asyncio.wait_for(cancel.wait(), timeout=max(seconds, 0.0))
    except asyncio.TimeoutError:
        return
    raise Cancelled("Operation cancelled during sleep")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    retryable_status_codes: frozenset[int] = field(default=DEFAULT_RETRYABLE_STATUS_CODES)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.backoff_multiplier <= 1:
            raise ValueError("backoff_multiplier must be > 1")
        object.__setattr__(self, "retryable_status_codes", frozenset(self.retryable_status_codes))

    def next_delay(self, delay: float) -> float:
        return min(delay * self.backoff_multiplier, self.max_delay)


async def execute_with_retry(
    operation: Callable[[], Awaitable[httpx.Response]],
    policy: RetryPolicy,
    *,
    cancel: CancellationToken | None = None,
) -> httpx.Response:
    """Run ``operation`` with exponential backoff.

    Returns the first response that is a success and not flagged retryable.
    A non-retryable error response is returned immediately; the final
    attempt's response is returned whatever its status, so callers must
    inspect it. Raises ``NetworkExhausted`` when no attempt produced a
    response, and ``Cancelled`` when the token fires.
    """
    if cancel is not None:
        cancel.raise_if_cancelled()

    delay = policy.initial_delay
    last_error: Exception | None = None
    last_response: httpx.Response | None = None

    for attempt in range(policy.max_retries + 1):
        try:
            response = await operation()
        except httpx.TransportError as exc:
            last_error = exc
            if attempt == policy.max_retries:
                break
            logger.warning(
                f"Network error on attempt {attempt + 1}/{policy.max_retries + 1}, "
                f"retrying in {delay:.1f}s: {exc}"
            )
        else:
            retryable = response.status_code in policy.retryable_status_codes
            if response.is_success and not retryable:
                return response
            if attempt == policy.max_retries or not retryable:
                return response
            last_response = response
            logger.debug(
                f"Retryable status {response.status_code} on attempt "
                f"{attempt + 1}/{policy.max_retries + 1}, retrying in {delay:.1f}s"
            )

        await abortable_sleep(delay, cancel)
        delay = policy.next_delay(delay)

    if last_response is not None:
        return last_response

    raise NetworkExhausted(policy.max_retries + 1, last_error)
