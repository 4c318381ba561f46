from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from citescrape.exceptions import Cancelled, NetworkExhausted
from citescrape.tools.async_utils import map_parallel
from citescrape.tools.retry import (
    CancellationToken,
    RetryPolicy,
    abortable_sleep,
    execute_with_retry,
)

REQUEST = httpx.Request("GET", "https://api.example.com/snapshot/1")


def _responses(*statuses: int):
    queue = list(statuses)
    calls: list[int] = []

    async def operation() -> httpx.Response:
        status = queue.pop(0)
        calls.append(status)
        return httpx.Response(status, request=REQUEST)

    return operation, calls


def test_retry_policy_rejects_invalid_values():
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)
    with pytest.raises(ValueError):
        RetryPolicy(backoff_multiplier=1.0)
    with pytest.raises(ValueError):
        RetryPolicy(initial_delay=-1)


def test_retry_policy_caps_delay_growth():
    policy = RetryPolicy(initial_delay=10, max_delay=15, backoff_multiplier=2)
    assert policy.next_delay(10) == 15


@pytest.mark.asyncio
async def test_accepted_status_retried_until_ready_with_backoff():
    operation, calls = _responses(202, 202, 202, 200)
    policy = RetryPolicy(
        max_retries=5,
        initial_delay=2.0,
        max_delay=5.0,
        backoff_multiplier=2.0,
        retryable_status_codes=frozenset({202, 500}),
    )

    with patch("citescrape.tools.retry.abortable_sleep", new=AsyncMock()) as sleep:
        response = await execute_with_retry(operation, policy)

    assert response.status_code == 200
    assert calls == [202, 202, 202, 200]
    assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0, 5.0]


@pytest.mark.asyncio
async def test_success_returns_without_sleeping():
    operation, calls = _responses(200)
    with patch("citescrape.tools.retry.abortable_sleep", new=AsyncMock()) as sleep:
        response = await execute_with_retry(operation, RetryPolicy())
    assert response.status_code == 200
    assert calls == [200]
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_final_attempt_response_is_returned_even_if_retryable():
    operation, calls = _responses(500, 500, 500)
    with patch("citescrape.tools.retry.abortable_sleep", new=AsyncMock()):
        response = await execute_with_retry(operation, RetryPolicy(max_retries=2))
    assert response.status_code == 500
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_non_retryable_error_returned_immediately():
    operation, calls = _responses(404, 200)
    with patch("citescrape.tools.retry.abortable_sleep", new=AsyncMock()) as sleep:
        response = await execute_with_retry(operation, RetryPolicy(max_retries=3))
    assert response.status_code == 404
    assert calls == [404]
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_network_errors_on_every_attempt_raise_network_exhausted():
    attempts: list[int] = []

    async def operation() -> httpx.Response:
        attempts.append(1)
        raise httpx.ConnectError("connection refused", request=REQUEST)

    with patch("citescrape.tools.retry.abortable_sleep", new=AsyncMock()):
        with pytest.raises(NetworkExhausted) as exc_info:
            await execute_with_retry(operation, RetryPolicy(max_retries=2))

    assert len(attempts) == 3
    assert isinstance(exc_info.value.last_error, httpx.ConnectError)


@pytest.mark.asyncio
async def test_network_error_then_success_recovers():
    state = {"calls": 0}

    async def operation() -> httpx.Response:
        state["calls"] += 1
        if state["calls"] == 1:
            raise httpx.ReadTimeout("timed out", request=REQUEST)
        return httpx.Response(200, request=REQUEST)

    with patch("citescrape.tools.retry.abortable_sleep", new=AsyncMock()):
        response = await execute_with_retry(operation, RetryPolicy())
    assert response.status_code == 200
    assert state["calls"] == 2


@pytest.mark.asyncio
async def test_non_transport_exceptions_propagate():
    async def operation() -> httpx.Response:
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await execute_with_retry(operation, RetryPolicy())


@pytest.mark.asyncio
async def test_already_cancelled_token_fails_before_first_attempt():
    cancel = CancellationToken()
    cancel.cancel()
    operation = AsyncMock()

    with pytest.raises(Cancelled):
        await execute_with_retry(operation, RetryPolicy(), cancel=cancel)
    operation.assert_not_awaited()


@pytest.mark.asyncio
async def test_abortable_sleep_wakes_when_cancelled():
    cancel = CancellationToken()

    async def cancel_soon():
        await asyncio.sleep(0.01)
        cancel.cancel()

    asyncio.create_task(cancel_soon())
    with pytest.raises(Cancelled):
        await asyncio.wait_for(abortable_sleep(30, cancel), timeout=2)


@pytest.mark.asyncio
async def test_abortable_sleep_returns_normally_without_cancellation():
    cancel = CancellationToken()
    await abortable_sleep(0.01, cancel)
    assert cancel.cancelled is False


@pytest.mark.asyncio
async def test_map_parallel_preserves_order_and_bounds_concurrency():
    in_flight = {"now": 0, "max": 0}

    async def work(value: int, index: int) -> tuple[int, int]:
        in_flight["now"] += 1
        in_flight["max"] = max(in_flight["max"], in_flight["now"])
        await asyncio.sleep(0.01 * (5 - value))
        in_flight["now"] -= 1
        return value * 10, index

    results = await map_parallel([1, 2, 3, 4], 2, work)

    assert results == [(10, 0), (20, 1), (30, 2), (40, 3)]
    assert in_flight["max"] <= 2
